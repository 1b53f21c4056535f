from __future__ import annotations

import logging

from app.core.exceptions import InvalidTransition, NotFoundError, StaleState, ValidationError
from app.core.extensions import db
from app.core.models import CaseStatus, DocumentKind, ExecutionPhase, ExecutionPlan, TaskType, utcnow
from app.core.transactions import run_in_transaction
from app.core.utils import parse_decimal, parse_iso_date, required_text
from app.ledger.services import assign_budget
from app.workflow.documents import request_document
from app.workflow.pipeline import complete_task_in_unit, create_task, open_task
from app.workflow.quotations import approved_quotation
from app.workflow.services import get_case_or_404
from app.workflow.state_machine import apply_transition

logger = logging.getLogger(__name__)


def _parse_phases(raw) -> list[ExecutionPhase]:
    if not isinstance(raw, list) or not raw:
        raise ValidationError("An execution plan needs at least one phase", details={"phases": "empty"})
    phases: list[ExecutionPhase] = []
    for index, item in enumerate(raw, start=1):
        if not isinstance(item, dict):
            raise ValidationError("Invalid phase", details={f"phases[{index}]": "invalid"})
        prefix = f"phases[{index}]"
        name = required_text(item.get("name"), f"{prefix}.name", 120)
        start = parse_iso_date(item.get("start_date"), f"{prefix}.start_date")
        end = parse_iso_date(item.get("end_date"), f"{prefix}.end_date")
        if end < start:
            raise ValidationError("Phase ends before it starts", details={f"{prefix}.end_date": "before_start"})
        try:
            labor_count = int(item.get("labor_count") or 0)
        except (TypeError, ValueError) as exc:
            raise ValidationError("Invalid labour count", details={f"{prefix}.labor_count": "invalid"}) from exc
        if labor_count <= 0:
            raise ValidationError("Labour count must be greater than zero", details={f"{prefix}.labor_count": "not_positive"})
        delivery = parse_iso_date(item.get("material_delivery_date"), f"{prefix}.material_delivery_date")
        phases.append(
            ExecutionPhase(
                position=index,
                name=name,
                start_date=start,
                end_date=end,
                labor_count=labor_count,
                material_delivery_date=delivery,
            )
        )
    return phases


def _submit_execution_plan_unit(case_id: int, payload: dict, user_id: int | None) -> ExecutionPlan:
    case = get_case_or_404(case_id)
    if case.status == CaseStatus.PLANNING_SUBMITTED and case.execution_plan is not None:
        return case.execution_plan
    if case.status == CaseStatus.QUOTATION:
        if approved_quotation(case) is None:
            raise InvalidTransition(
                case.status.value,
                CaseStatus.PLANNING_SUBMITTED.value,
                "The procurement audit has not approved a quotation yet",
            )
        from_status = CaseStatus.QUOTATION
    elif case.status == CaseStatus.WAITING_FOR_PLANNING:
        from_status = CaseStatus.WAITING_FOR_PLANNING
    else:
        raise InvalidTransition(case.status.value, CaseStatus.PLANNING_SUBMITTED.value)

    financial_plan = payload.get("financial_plan") or {}
    if not isinstance(financial_plan, dict):
        raise ValidationError("financial_plan must be an object", details={"financial_plan": "invalid"})
    total_budget = parse_decimal(financial_plan.get("total_budget"), "financial_plan.total_budget", positive=True)
    phases = _parse_phases(payload.get("phases"))

    plan = case.execution_plan
    if plan is None:
        plan = ExecutionPlan(case_id=case.id)
        db.session.add(plan)
    elif plan.phases:
        plan.phases.clear()
        db.session.flush()
    plan.phases.extend(phases)
    plan.total_budget = total_budget
    plan.notes = str(payload.get("notes") or "")[:1000]
    plan.submitted_by_user_id = user_id
    plan.submitted_at = utcnow()
    plan.approved_by_admin = False
    plan.rejection_reason = ""

    planning_task = open_task(case, TaskType.EXECUTION_PLANNING)
    if planning_task is not None:
        complete_task_in_unit(planning_task, {}, user_id)
    apply_transition(
        case,
        from_status,
        CaseStatus.PLANNING_SUBMITTED,
        {"user_id": user_id, "event_type": "EXECUTION_PLAN_SUBMITTED", "details": f"{len(phases)} phase(s), budget {total_budget}"},
    )
    db.session.flush()
    return plan


def submit_execution_plan(case_id: int, payload: dict, user_id: int | None = None) -> ExecutionPlan:
    return run_in_transaction(_submit_execution_plan_unit, case_id, payload, user_id)


def _approve_execution_plan_unit(case_id: int, approver_id: int | None):
    case = get_case_or_404(case_id)
    plan = case.execution_plan
    if case.status == CaseStatus.ACTIVE:
        if plan is not None and plan.approved_by_admin:
            return case, False
        raise StaleState(f"Case {case.case_number} was activated through budget approval")
    apply_transition(
        case,
        CaseStatus.PLANNING_SUBMITTED,
        CaseStatus.ACTIVE,
        {"user_id": approver_id, "event_type": "EXECUTION_PLAN_APPROVED", "details": "Execution plan approved"},
    )
    plan.approved_by_admin = True
    plan.approved_by_user_id = approver_id
    plan.approved_at = utcnow()
    assign_budget(case, plan.total_budget)
    logger.info("Execution plan approved for case %s", case.case_number, extra={"case_id": case.id})
    return case, True


def approve_execution_plan(case_id: int, approver_id: int | None = None):
    case, approved_now = run_in_transaction(_approve_execution_plan_unit, case_id, approver_id)
    if approved_now:
        request_document(DocumentKind.MASTER_PROJECT, case.id)
    return case


def _reject_execution_plan_unit(case_id: int, approver_id: int | None, reason: str):
    case = get_case_or_404(case_id)
    changed = apply_transition(
        case,
        CaseStatus.PLANNING_SUBMITTED,
        CaseStatus.WAITING_FOR_PLANNING,
        {"user_id": approver_id, "reason": reason, "event_type": "EXECUTION_PLAN_REJECTED"},
    )
    if not changed:
        return case
    plan = case.execution_plan
    if plan is not None:
        plan.approved_by_admin = False
        plan.rejected_by_user_id = approver_id
        plan.rejected_at = utcnow()
        plan.rejection_reason = reason[:500]
    if open_task(case, TaskType.EXECUTION_PLANNING) is None:
        create_task(case, TaskType.EXECUTION_PLANNING, approver_id)
    return case


def reject_execution_plan(case_id: int, approver_id: int | None, reason: str | None):
    reason = (reason or "").strip()
    if not reason:
        raise ValidationError("A rejection reason is required", details={"reason": "required"})
    return run_in_transaction(_reject_execution_plan_unit, case_id, approver_id, reason)


def _submit_budget_unit(case_id: int, total_budget, user_id: int | None):
    case = get_case_or_404(case_id)
    amount = parse_decimal(total_budget, "total_budget", positive=True)
    changed = apply_transition(
        case,
        CaseStatus.PENDING_EXECUTION_APPROVAL,
        CaseStatus.PENDING_BUDGET_APPROVAL,
        {"user_id": user_id, "event_type": "BUDGET_SUBMITTED", "details": f"Proposed budget {amount}"},
    )
    if changed:
        case.proposed_budget = amount
    return case


def submit_budget(case_id: int, total_budget, user_id: int | None = None):
    return run_in_transaction(_submit_budget_unit, case_id, total_budget, user_id)


def _approve_budget_unit(case_id: int, approver_id: int | None):
    case = get_case_or_404(case_id)
    changed = apply_transition(
        case,
        CaseStatus.PENDING_BUDGET_APPROVAL,
        CaseStatus.ACTIVE,
        {"user_id": approver_id, "event_type": "BUDGET_APPROVED", "details": f"Budget {case.proposed_budget}"},
    )
    if changed:
        case.budget_approved_by_user_id = approver_id
        case.budget_approved_at = utcnow()
        assign_budget(case, case.proposed_budget)
    return case


def approve_budget(case_id: int, approver_id: int | None = None):
    return run_in_transaction(_approve_budget_unit, case_id, approver_id)


def _reject_budget_unit(case_id: int, approver_id: int | None, reason: str):
    case = get_case_or_404(case_id)
    apply_transition(
        case,
        CaseStatus.PENDING_BUDGET_APPROVAL,
        CaseStatus.PENDING_EXECUTION_APPROVAL,
        {"user_id": approver_id, "reason": reason, "event_type": "BUDGET_REJECTED"},
    )
    return case


def reject_budget(case_id: int, approver_id: int | None, reason: str | None):
    reason = (reason or "").strip()
    if not reason:
        raise ValidationError("A rejection reason is required", details={"reason": "required"})
    return run_in_transaction(_reject_budget_unit, case_id, approver_id, reason)


def plan_for_case(case_id: int) -> ExecutionPlan:
    case = get_case_or_404(case_id)
    if case.execution_plan is None:
        raise NotFoundError("Execution plan for case", case_id)
    return case.execution_plan

