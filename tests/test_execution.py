from __future__ import annotations

from decimal import Decimal

import pytest

from app.core.exceptions import InvalidTransition, StaleState, ValidationError
from app.core.extensions import db
from app.core.models import Case, CaseEvent, CaseStatus, ExecutionPlan, TaskType
from app.workflow.execution import (
    approve_budget,
    approve_execution_plan,
    reject_budget,
    reject_execution_plan,
    submit_budget,
    submit_execution_plan,
)
from app.workflow.services import create_case
from tests.conftest import open_task_of, phases_payload


def _plan_payload(total: str = "100000") -> dict:
    return {"financial_plan": {"total_budget": total}, "phases": phases_payload()}


def test_plan_submission_requires_approved_audit(app, act_as, drive, demo_case_id):
    drive(demo_case_id, "quotation")
    with act_as("execution@casework.local") as user:
        with pytest.raises(InvalidTransition):
            submit_execution_plan(demo_case_id, _plan_payload(), user.id)


def test_plan_submission_moves_case_and_closes_planning_task(app, drive, demo_case_id):
    plan = drive(demo_case_id, "plan")["plan"]

    case = db.session.get(Case, demo_case_id)
    assert case.status == CaseStatus.PLANNING_SUBMITTED
    assert plan.total_budget == Decimal("100000.00")
    assert [phase.name for phase in plan.phases] == ["Carcass build", "Fitting and finish"]
    assert open_task_of(demo_case_id, TaskType.EXECUTION_PLANNING) is None


@pytest.mark.parametrize(
    "broken",
    [
        {"financial_plan": {"total_budget": "0"}},
        {"phases": []},
        {"phases": [{"name": "Backwards", "start_date": "2026-11-10", "end_date": "2026-11-01", "labor_count": 2, "material_delivery_date": "2026-11-01"}]},
        {"phases": [{"name": "Nobody", "start_date": "2026-11-01", "end_date": "2026-11-02", "labor_count": 0, "material_delivery_date": "2026-11-01"}]},
        {"phases": [{"name": "No delivery", "start_date": "2026-11-01", "end_date": "2026-11-02", "labor_count": 1}]},
    ],
)
def test_plan_validation(app, act_as, drive, demo_case_id, broken):
    drive(demo_case_id, "audit")
    payload = _plan_payload()
    payload.update(broken)
    with act_as("execution@casework.local") as user:
        with pytest.raises(ValidationError):
            submit_execution_plan(demo_case_id, payload, user.id)
    assert db.session.get(Case, demo_case_id).status == CaseStatus.QUOTATION


def test_approval_activates_case_and_assigns_budget(app, drive, demo_case_id):
    results = drive(demo_case_id, "active")
    case = results["active"]

    db.session.expire_all()
    case = db.session.get(Case, demo_case_id)
    plan = ExecutionPlan.query.filter_by(case_id=demo_case_id).one()
    assert case.status == CaseStatus.ACTIVE
    assert plan.approved_by_admin is True
    assert plan.approved_at is not None
    assert case.has_cost_center is True
    assert case.total_budget == Decimal("100000.00")
    assert case.spent_amount == Decimal("0.00")
    assert case.remaining_amount == Decimal("100000.00")


def test_second_approval_is_a_noop(app, act_as, drive, demo_case_id):
    drive(demo_case_id, "active")
    approvals = CaseEvent.query.filter_by(case_id=demo_case_id, event_type="EXECUTION_PLAN_APPROVED").count()
    with act_as() as user:
        case = approve_execution_plan(demo_case_id, user.id)
    assert case.status == CaseStatus.ACTIVE
    assert CaseEvent.query.filter_by(case_id=demo_case_id, event_type="EXECUTION_PLAN_APPROVED").count() == approvals == 1


def test_approval_from_wrong_state_is_stale(app, act_as, drive, demo_case_id):
    drive(demo_case_id, "audit")
    with act_as() as user:
        with pytest.raises(StaleState):
            approve_execution_plan(demo_case_id, user.id)


def test_master_record_is_generated_after_approval(app, drive, demo_case_id):
    drive(demo_case_id, "active")
    plan = ExecutionPlan.query.filter_by(case_id=demo_case_id).one()
    assert plan.master_pdf_url == f"/documents/case-{demo_case_id}/master-project.pdf"


def test_rejection_needs_reason_and_reopens_planning(app, act_as, drive, demo_case_id):
    drive(demo_case_id, "plan")
    with act_as() as user:
        with pytest.raises(ValidationError):
            reject_execution_plan(demo_case_id, user.id, "")
        reject_execution_plan(demo_case_id, user.id, "Labour count too low for phase 2")

    case = db.session.get(Case, demo_case_id)
    plan = ExecutionPlan.query.filter_by(case_id=demo_case_id).one()
    assert case.status == CaseStatus.WAITING_FOR_PLANNING
    assert case.last_rejection_reason == "Labour count too low for phase 2"
    assert plan.rejection_reason == "Labour count too low for phase 2"
    assert plan.approved_by_admin is False
    assert open_task_of(demo_case_id, TaskType.EXECUTION_PLANNING) is not None


def test_resubmission_after_rejection_replaces_phases(app, act_as, drive, demo_case_id):
    drive(demo_case_id, "plan")
    with act_as() as user:
        reject_execution_plan(demo_case_id, user.id, "Split the fitting phase")
    payload = _plan_payload("95000")
    payload["phases"] = phases_payload()[:1]
    with act_as("execution@casework.local") as user:
        plan = submit_execution_plan(demo_case_id, payload, user.id)

    assert [phase.position for phase in plan.phases] == [1]
    assert plan.total_budget == Decimal("95000.00")
    assert plan.rejection_reason == ""
    assert db.session.get(Case, demo_case_id).status == CaseStatus.PLANNING_SUBMITTED


def _budget_case(act_as) -> int:
    with act_as("salesgm@casework.local") as user:
        case = create_case(
            {"title": "Lobby signage", "client_name": "Northwind", "status": "PENDING_EXECUTION_APPROVAL"},
            user.id,
        )
    return case.id


def test_budget_path_activates_case(app, act_as):
    case_id = _budget_case(act_as)
    with act_as("execution@casework.local") as user:
        submit_budget(case_id, "40000", user.id)
    with act_as("accounts@casework.local") as user:
        case = approve_budget(case_id, user.id)

    db.session.expire_all()
    case = db.session.get(Case, case_id)
    assert case.status == CaseStatus.ACTIVE
    assert case.total_budget == Decimal("40000.00")
    assert case.remaining_amount == Decimal("40000.00")
    assert case.budget_approved_at is not None


def test_budget_rejection_returns_to_execution_approval(app, act_as):
    case_id = _budget_case(act_as)
    with act_as("execution@casework.local") as user:
        submit_budget(case_id, "40000", user.id)
    with act_as("accounts@casework.local") as user:
        with pytest.raises(ValidationError):
            reject_budget(case_id, user.id, None)
        case = reject_budget(case_id, user.id, "Contingency missing")
    assert case.status == CaseStatus.PENDING_EXECUTION_APPROVAL
    assert case.last_rejection_reason == "Contingency missing"
    assert case.has_cost_center is False


def test_execution_plan_approval_refuses_budget_activated_case(app, act_as):
    case_id = _budget_case(act_as)
    with act_as("execution@casework.local") as user:
        submit_budget(case_id, "40000", user.id)
    with act_as() as user:
        approve_budget(case_id, user.id)
        with pytest.raises(StaleState):
            approve_execution_plan(case_id, user.id)
