from __future__ import annotations

from flask import g, jsonify, request
from flask_login import login_required

from app.core.exceptions import NotFoundError
from app.core.permissions import require_membership, require_role
from app.core.read_model import snapshot_cache
from app.core.tenancy import acting_user_id, org_id
from app.core.utils import json_body
from app.workflow import workflow_bp
from app.workflow.execution import (
    approve_budget,
    approve_execution_plan,
    plan_for_case,
    reject_budget,
    reject_execution_plan,
    submit_budget,
    submit_execution_plan,
)
from app.workflow.pipeline import complete_task, list_tasks, start_task
from app.workflow.quotations import create_boq, resolve_audit, submit_quotation, update_boq_items
from app.workflow.serializers import (
    serialize_boq,
    serialize_case,
    serialize_execution_plan,
    serialize_quotation,
    serialize_task,
)
from app.workflow.services import (
    archive_case,
    assign_team,
    close_case,
    create_case,
    get_boq_or_404,
    get_quotation_or_404,
    list_cases,
)


def _payload() -> dict:
    return json_body()


def _snapshot_or_404(case_id: int):
    snapshot = snapshot_cache().get(case_id)
    if snapshot is None or snapshot.org_id != org_id():
        raise NotFoundError("Case", case_id)
    return snapshot


@workflow_bp.get("/cases")
@login_required
@require_membership
def cases_index():
    filters = {
        "status": request.args.get("status", "").strip(),
        "archived": request.args.get("archived", "").strip(),
        "q": request.args.get("q", "").strip(),
    }
    return jsonify([serialize_case(case) for case in list_cases(filters)])


@workflow_bp.post("/cases")
@login_required
@require_membership
@require_role("admin", "sales_gm", "sales")
def cases_create():
    case = create_case(_payload(), acting_user_id())
    return jsonify(serialize_case(case)), 201


@workflow_bp.get("/cases/<int:case_id>")
@login_required
@require_membership
def case_detail(case_id: int):
    return jsonify(_snapshot_or_404(case_id).to_dict())


@workflow_bp.get("/cases/<int:case_id>/events")
@login_required
@require_membership
def case_events(case_id: int):
    return jsonify(_snapshot_or_404(case_id).history())


@workflow_bp.put("/cases/<int:case_id>/team")
@login_required
@require_membership
@require_role("admin", "sales_gm")
def case_team(case_id: int):
    case = assign_team(case_id, _payload(), acting_user_id())
    return jsonify(serialize_case(case))


@workflow_bp.post("/cases/<int:case_id>/close")
@login_required
@require_membership
@require_role("admin", "accounts")
def case_close(case_id: int):
    case = close_case(case_id, acting_user_id())
    return jsonify(serialize_case(case))


@workflow_bp.post("/cases/<int:case_id>/archive")
@login_required
@require_membership
@require_role("admin")
def case_archive(case_id: int):
    case = archive_case(case_id, acting_user_id())
    return jsonify(serialize_case(case))


@workflow_bp.get("/tasks")
@login_required
@require_membership
def tasks_index():
    filters = {
        "case_id": request.args.get("case_id", "").strip(),
        "assigned_to": request.args.get("assigned_to", "").strip(),
        "status": request.args.get("status", "").strip(),
    }
    return jsonify([serialize_task(task) for task in list_tasks(filters)])


@workflow_bp.post("/tasks/<int:task_id>/start")
@login_required
@require_membership
def task_start(task_id: int):
    return jsonify(serialize_task(start_task(task_id, acting_user_id())))


@workflow_bp.post("/tasks/<int:task_id>/complete")
@login_required
@require_membership
def task_complete(task_id: int):
    return jsonify(serialize_task(complete_task(task_id, _payload(), acting_user_id())))


@workflow_bp.post("/cases/<int:case_id>/boqs")
@login_required
@require_membership
def boq_create(case_id: int):
    boq = create_boq(case_id, _payload().get("items"), acting_user_id())
    return jsonify(serialize_boq(boq)), 201


@workflow_bp.get("/boqs/<int:boq_id>")
@login_required
@require_membership
def boq_detail(boq_id: int):
    return jsonify(serialize_boq(get_boq_or_404(boq_id)))


@workflow_bp.put("/boqs/<int:boq_id>")
@login_required
@require_membership
def boq_update(boq_id: int):
    boq = update_boq_items(boq_id, _payload().get("items"), acting_user_id())
    return jsonify(serialize_boq(boq))


@workflow_bp.post("/cases/<int:case_id>/quotations")
@login_required
@require_membership
def quotation_submit(case_id: int):
    quotation = submit_quotation(case_id, _payload(), acting_user_id(), g.membership)
    return jsonify(serialize_quotation(quotation, g.membership)), 201


@workflow_bp.get("/quotations/<int:quotation_id>")
@login_required
@require_membership
def quotation_detail(quotation_id: int):
    return jsonify(serialize_quotation(get_quotation_or_404(quotation_id), g.membership))


@workflow_bp.post("/quotations/<int:quotation_id>/audit")
@login_required
@require_membership
@require_role("admin", "procurement")
def quotation_audit(quotation_id: int):
    payload = _payload()
    quotation = resolve_audit(quotation_id, payload.get("decision"), payload.get("reason"), acting_user_id())
    return jsonify(serialize_quotation(quotation, g.membership))


@workflow_bp.get("/cases/<int:case_id>/execution-plan")
@login_required
@require_membership
def execution_plan_detail(case_id: int):
    return jsonify(serialize_execution_plan(plan_for_case(case_id)))


@workflow_bp.post("/cases/<int:case_id>/execution-plan")
@login_required
@require_membership
def execution_plan_submit(case_id: int):
    plan = submit_execution_plan(case_id, _payload(), acting_user_id())
    return jsonify(serialize_execution_plan(plan)), 201


@workflow_bp.post("/cases/<int:case_id>/execution-plan/approve")
@login_required
@require_membership
@require_role("admin")
def execution_plan_approve(case_id: int):
    case = approve_execution_plan(case_id, acting_user_id())
    return jsonify(serialize_case(case))


@workflow_bp.post("/cases/<int:case_id>/execution-plan/reject")
@login_required
@require_membership
@require_role("admin")
def execution_plan_reject(case_id: int):
    case = reject_execution_plan(case_id, acting_user_id(), _payload().get("reason"))
    return jsonify(serialize_case(case))


@workflow_bp.post("/cases/<int:case_id>/budget")
@login_required
@require_membership
@require_role("admin", "sales_gm", "execution")
def budget_submit(case_id: int):
    case = submit_budget(case_id, _payload().get("total_budget"), acting_user_id())
    return jsonify(serialize_case(case))


@workflow_bp.post("/cases/<int:case_id>/budget/approve")
@login_required
@require_membership
@require_role("admin", "accounts")
def budget_approve(case_id: int):
    case = approve_budget(case_id, acting_user_id())
    return jsonify(serialize_case(case))


@workflow_bp.post("/cases/<int:case_id>/budget/reject")
@login_required
@require_membership
@require_role("admin", "accounts")
def budget_reject(case_id: int):
    case = reject_budget(case_id, acting_user_id(), _payload().get("reason"))
    return jsonify(serialize_case(case))
