from __future__ import annotations

from decimal import Decimal

import pytest
from flask import g

from app.core.exceptions import InvalidTransition, PermissionDenied, ValidationError
from app.core.extensions import db
from app.core.models import (
    AuditStatus,
    Case,
    CaseBOQ,
    CaseBOQItem,
    CaseQuotation,
    CaseStatus,
    CaseTask,
    TaskStatus,
    TaskType,
)
from app.workflow.quotations import (
    QuotationLine,
    compute_quotation_totals,
    create_boq,
    resolve_audit,
    submit_quotation,
    update_boq_items,
)
from app.workflow.serializers import serialize_quotation
from tests.conftest import BOQ_ITEMS, open_task_of


def test_boq_creation_closes_drawing_and_opens_pricing(app, drive, demo_case_id):
    results = drive(demo_case_id, "boq")
    boq = results["boq"]

    case = db.session.get(Case, demo_case_id)
    assert case.status == CaseStatus.BOQ_COMPLETED
    assert [item.name for item in boq.items] == ["Plywood sheet 18mm", "Soft-close hinge"]
    assert all(item.rate == 0 for item in boq.items)
    assert boq.locked is False
    assert open_task_of(demo_case_id, TaskType.DRAWING_TASK) is None
    assert open_task_of(demo_case_id, TaskType.QUOTATION_TASK) is not None


def test_boq_needs_positive_quantities(app, act_as, drive, demo_case_id):
    drive(demo_case_id, "site_visit")
    with act_as("drawing@casework.local") as user:
        with pytest.raises(ValidationError):
            create_boq(demo_case_id, [{"name": "Paint", "quantity": "0"}], user.id)
        with pytest.raises(ValidationError):
            create_boq(demo_case_id, [], user.id)


def test_boq_from_catalog_item(app, act_as, drive, demo_case_id):
    from app.core.models import CatalogItem

    drive(demo_case_id, "site_visit")
    hinge = CatalogItem.query.filter_by(code="HNG-SC").first()
    with act_as("drawing@casework.local") as user:
        boq = create_boq(demo_case_id, [{"catalog_item_id": hinge.id, "quantity": 8}], user.id)
    assert boq.items[0].name == "Soft-close hinge"
    assert boq.items[0].unit == "pcs"
    assert boq.items[0].catalog_item_id == hinge.id


def test_unlocked_boq_can_be_revised(app, act_as, drive, demo_case_id):
    boq = drive(demo_case_id, "boq")["boq"]
    with act_as("drawing@casework.local") as user:
        revised = update_boq_items(boq.id, [{"name": "MDF board", "unit": "sheet", "quantity": "4"}], user.id)
    assert [(item.position, item.name) for item in revised.items] == [(1, "MDF board")]


def test_quotation_submission_locks_boq_and_hands_off_to_audit(app, drive, demo_case_id):
    results = drive(demo_case_id, "quotation")
    quotation = results["quotation"]
    boq_id = results["boq"].id

    db.session.expire_all()
    boq = db.session.get(CaseBOQ, boq_id)
    case = db.session.get(Case, demo_case_id)
    quotation_task = db.session.get(CaseTask, quotation.quotation_task_id)
    audit = CaseTask.query.filter_by(predecessor_task_id=quotation_task.id).one()

    assert boq.locked is True
    assert quotation_task.status == TaskStatus.COMPLETED
    assert audit.type == TaskType.PROCUREMENT_AUDIT
    assert audit.status == TaskStatus.PENDING
    assert case.status == CaseStatus.QUOTATION
    assert quotation.audit_status == AuditStatus.PENDING


def test_quotation_totals(app, drive, demo_case_id):
    quotation = drive(demo_case_id, "quotation")["quotation"]
    # 12 x 150 + 24 x 150 = 5400, less 10%, plus 18% tax
    assert quotation.subtotal == Decimal("5400.00")
    assert quotation.discount_amount == Decimal("540.00")
    assert quotation.tax_amount == Decimal("874.80")
    assert quotation.grand_total == Decimal("5734.80")


def test_compute_totals_rounds_half_up():
    lines = [QuotationLine("Hinge", "pcs", Decimal("3"), Decimal("0.335"))]
    totals = compute_quotation_totals(lines, Decimal("0"), Decimal("0"))
    assert totals.subtotal == Decimal("1.01")
    assert totals.grand_total == Decimal("1.01")


def test_locked_boq_rejects_every_write(app, act_as, drive, demo_case_id):
    boq_id = drive(demo_case_id, "quotation")["boq"].id

    with act_as("drawing@casework.local") as user:
        with pytest.raises(InvalidTransition):
            update_boq_items(boq_id, BOQ_ITEMS, user.id)

    item = CaseBOQItem.query.filter_by(boq_id=boq_id).first()
    item.quantity = Decimal("99")
    with pytest.raises(InvalidTransition):
        db.session.flush()
    db.session.rollback()

    boq = db.session.get(CaseBOQ, boq_id)
    boq.subtotal = Decimal("1")
    with pytest.raises(InvalidTransition):
        db.session.flush()
    db.session.rollback()

    db.session.add(CaseBOQItem(boq_id=boq_id, position=9, name="Extra", unit="unit", quantity=Decimal("1")))
    with pytest.raises(InvalidTransition):
        db.session.flush()
    db.session.rollback()


def test_resubmitting_the_same_quotation_task_is_idempotent(app, act_as, drive, demo_case_id):
    quotation = drive(demo_case_id, "quotation")["quotation"]
    with act_as("quotation@casework.local") as user:
        again = submit_quotation(
            demo_case_id,
            {"task_id": quotation.quotation_task_id, "items": [{"name": "Other", "quantity": "1", "rate": "1"}]},
            user.id,
            g.membership,
        )
    assert again.id == quotation.id
    assert CaseQuotation.query.filter_by(case_id=demo_case_id).count() == 1
    assert CaseTask.query.filter_by(case_id=demo_case_id, type=TaskType.PROCUREMENT_AUDIT).count() == 1


def test_quotation_needs_a_priced_line(app, act_as, drive, demo_case_id):
    boq = drive(demo_case_id, "boq")["boq"]
    with act_as("quotation@casework.local") as user:
        with pytest.raises(ValidationError):
            submit_quotation(
                demo_case_id,
                {"items": [{"boq_item_id": item.id, "rate": "0"} for item in boq.items]},
                user.id,
                g.membership,
            )
    assert db.session.get(CaseBOQ, boq.id).locked is False


def test_pr_code_entry_requires_capability(app, act_as, drive, demo_case_id):
    boq = drive(demo_case_id, "boq")["boq"]
    with act_as("drawing@casework.local") as user:
        with pytest.raises(PermissionDenied):
            submit_quotation(
                demo_case_id,
                {"items": [{"boq_item_id": boq.items[0].id, "rate": "10"}], "internal_pr_code": "PR-1"},
                user.id,
                g.membership,
            )


@pytest.mark.parametrize(
    ("email", "visible"),
    [
        ("admin@casework.local", True),
        ("salesgm@casework.local", True),
        ("quotation@casework.local", True),
        ("sales@casework.local", False),
        ("procurement@casework.local", False),
        ("accounts@casework.local", False),
    ],
)
def test_internal_pr_code_visibility(app, act_as, drive, demo_case_id, email, visible):
    quotation = drive(demo_case_id, "quotation")["quotation"]
    with act_as(email):
        payload = serialize_quotation(quotation, g.membership)
    assert ("internal_pr_code" in payload) is visible
    if visible:
        assert payload["internal_pr_code"] == "PR-7781"


def test_external_rendering_never_carries_internal_fields(app, drive, demo_case_id):
    quotation = drive(demo_case_id, "quotation")["quotation"]
    payload = serialize_quotation(quotation, external=True)
    assert "internal_pr_code" not in payload
    assert "audit_status" not in payload


def test_audit_approval_opens_execution_planning(app, drive, demo_case_id):
    results = drive(demo_case_id, "audit")
    quotation = results["audit"]

    assert quotation.audit_status == AuditStatus.APPROVED
    assert db.session.get(Case, demo_case_id).status == CaseStatus.QUOTATION
    assert open_task_of(demo_case_id, TaskType.EXECUTION_PLANNING) is not None


def test_audit_rejection_sends_case_back_for_pricing(app, act_as, drive, demo_case_id):
    quotation = drive(demo_case_id, "quotation")["quotation"]
    with act_as("procurement@casework.local") as user:
        with pytest.raises(ValidationError):
            resolve_audit(quotation.id, "reject", "", user.id)
        rejected = resolve_audit(quotation.id, "reject", "Hinge rate above framework price", user.id)

    case = db.session.get(Case, demo_case_id)
    assert rejected.audit_status == AuditStatus.REJECTED
    assert rejected.rejection_reason == "Hinge rate above framework price"
    assert case.status == CaseStatus.BOQ_COMPLETED
    assert case.last_rejection_reason == "Hinge rate above framework price"
    assert open_task_of(demo_case_id, TaskType.QUOTATION_TASK) is not None


def test_conflicting_audit_decision_is_refused(app, act_as, drive, demo_case_id):
    quotation = drive(demo_case_id, "audit")["audit"]
    with act_as("procurement@casework.local") as user:
        assert resolve_audit(quotation.id, "approve", None, user.id).audit_status == AuditStatus.APPROVED
        with pytest.raises(InvalidTransition):
            resolve_audit(quotation.id, "reject", "too late", user.id)


def test_requote_after_rejection_reuses_locked_boq(app, act_as, drive, demo_case_id):
    results = drive(demo_case_id, "quotation")
    boq = results["boq"]
    with act_as("procurement@casework.local") as user:
        resolve_audit(results["quotation"].id, "reject", "Discount too deep", user.id)
    with act_as("quotation@casework.local") as user:
        second = submit_quotation(
            demo_case_id,
            {"items": [{"boq_item_id": item.id, "rate": "140"} for item in boq.items], "discount": "5"},
            user.id,
            g.membership,
        )
    assert second.id != results["quotation"].id
    assert second.boq_id == boq.id
    assert db.session.get(Case, demo_case_id).status == CaseStatus.QUOTATION
