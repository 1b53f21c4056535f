from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal

from flask import current_app

from app.core.exceptions import InvalidTransition, NotFoundError, ValidationError
from app.core.extensions import db
from app.core.models import (
    ZERO,
    AuditStatus,
    Case,
    CaseBOQ,
    CaseBOQItem,
    CaseQuotation,
    CaseQuotationItem,
    CaseStatus,
    CaseTask,
    CatalogItem,
    DocumentKind,
    TaskType,
    utcnow,
)
from app.core.permissions import ensure_capability
from app.core.tenancy import org_id
from app.core.transactions import run_in_transaction
from app.core.utils import money, parse_decimal, parse_id
from app.workflow.documents import request_document
from app.workflow.pipeline import AUDIT_REJECTED_RULE, complete_task_in_unit, create_task, get_task_or_404, open_task
from app.workflow.services import get_boq_or_404, get_case_or_404, get_quotation_or_404
from app.workflow.state_machine import log_case_event

logger = logging.getLogger(__name__)

BOQ_OPEN_STATUSES: frozenset[CaseStatus] = frozenset({CaseStatus.WAITING_FOR_DRAWING, CaseStatus.BOQ_COMPLETED})

AUDIT_DECISIONS: dict[str, AuditStatus] = {
    "approve": AuditStatus.APPROVED,
    "approved": AuditStatus.APPROVED,
    "reject": AuditStatus.REJECTED,
    "rejected": AuditStatus.REJECTED,
}


@dataclass(frozen=True)
class BOQLine:
    name: str
    unit: str
    quantity: Decimal
    catalog_item_id: int | None = None


@dataclass(frozen=True)
class QuotationLine:
    name: str
    unit: str
    quantity: Decimal
    rate: Decimal
    boq_item_id: int | None = None

    @property
    def total(self) -> Decimal:
        return money(self.quantity * self.rate)


@dataclass(frozen=True)
class QuotationTotals:
    subtotal: Decimal
    discount_amount: Decimal
    tax_amount: Decimal
    grand_total: Decimal


def latest_boq(case: Case) -> CaseBOQ | None:
    return CaseBOQ.query.filter_by(case_id=case.id).order_by(CaseBOQ.id.desc()).first()


def _boq_lines(items) -> list[BOQLine]:
    if not isinstance(items, list) or not items:
        raise ValidationError("A BOQ needs at least one item", details={"items": "empty"})
    lines: list[BOQLine] = []
    for index, raw in enumerate(items, start=1):
        if not isinstance(raw, dict):
            raise ValidationError("Invalid BOQ item", details={f"items[{index}]": "invalid"})
        quantity = parse_decimal(raw.get("quantity"), f"items[{index}].quantity", positive=True)
        catalog_id = raw.get("catalog_item_id")
        if catalog_id not in (None, ""):
            catalog_pk = parse_id(catalog_id, f"items[{index}].catalog_item_id")
            catalog = CatalogItem.query.filter_by(org_id=org_id(), id=catalog_pk, active=True).first()
            if catalog is None:
                raise NotFoundError("Catalog item", catalog_id)
            lines.append(BOQLine(catalog.name, catalog.unit, quantity, catalog.id))
            continue
        name = str(raw.get("name") or "").strip()
        if not name:
            raise ValidationError("BOQ items need a catalog item or a name", details={f"items[{index}]": "required"})
        lines.append(BOQLine(name[:160], str(raw.get("unit") or "unit")[:20], quantity))
    return lines


def _fill_boq(boq: CaseBOQ, lines: list[BOQLine]) -> None:
    for position, line in enumerate(lines, start=1):
        boq.items.append(
            CaseBOQItem(
                position=position,
                catalog_item_id=line.catalog_item_id,
                name=line.name,
                unit=line.unit,
                quantity=line.quantity,
                rate=ZERO,
                total=ZERO,
            )
        )


def _create_boq_unit(case_id: int, items, user_id: int | None) -> CaseBOQ:
    case = get_case_or_404(case_id)
    if case.status not in BOQ_OPEN_STATUSES:
        raise InvalidTransition(
            case.status.value,
            message=f"BOQs are created while the case waits for drawing or pricing, not in {case.status.value}",
        )
    lines = _boq_lines(items)
    boq = CaseBOQ(org_id=case.org_id, case_id=case.id, created_by_user_id=user_id, subtotal=ZERO)
    _fill_boq(boq, lines)
    db.session.add(boq)
    db.session.flush()
    log_case_event(case, "BOQ_CREATED", f"BOQ #{boq.id} with {len(lines)} item(s)", user_id)

    drawing = open_task(case, TaskType.DRAWING_TASK)
    if drawing is not None:
        complete_task_in_unit(drawing, {}, user_id)
    elif open_task(case, TaskType.QUOTATION_TASK) is None:
        create_task(case, TaskType.QUOTATION_TASK, user_id)
    return boq


def create_boq(case_id: int, items, user_id: int | None = None) -> CaseBOQ:
    boq = run_in_transaction(_create_boq_unit, case_id, items, user_id)
    request_document(DocumentKind.BOQ, boq.id)
    return boq


def _update_boq_unit(boq_id: int, items, user_id: int | None) -> CaseBOQ:
    boq = get_boq_or_404(boq_id)
    if boq.locked:
        raise InvalidTransition("LOCKED", message=f"BOQ {boq.id} is locked by a quotation")
    lines = _boq_lines(items)
    boq.items.clear()
    # Old positions must be gone before the new rows reuse them.
    db.session.flush()
    _fill_boq(boq, lines)
    log_case_event(boq.case, "BOQ_UPDATED", f"BOQ #{boq.id} now has {len(lines)} item(s)", user_id)
    return boq


def update_boq_items(boq_id: int, items, user_id: int | None = None) -> CaseBOQ:
    return run_in_transaction(_update_boq_unit, boq_id, items, user_id)


def compute_quotation_totals(lines: list[QuotationLine], discount: Decimal, tax_rate: Decimal) -> QuotationTotals:
    subtotal = money(sum((line.total for line in lines), ZERO))
    discount_amount = money(subtotal * discount / Decimal("100"))
    taxable = subtotal - discount_amount
    tax_amount = money(taxable * tax_rate / Decimal("100"))
    return QuotationTotals(
        subtotal=subtotal,
        discount_amount=discount_amount,
        tax_amount=tax_amount,
        grand_total=money(taxable + tax_amount),
    )


def _quotation_lines(boq: CaseBOQ, items) -> list[QuotationLine]:
    if not isinstance(items, list) or not items:
        raise ValidationError("A quotation needs at least one item", details={"items": "empty"})
    boq_items = {item.id: item for item in boq.items}
    lines: list[QuotationLine] = []
    for index, raw in enumerate(items, start=1):
        if not isinstance(raw, dict):
            raise ValidationError("Invalid quotation item", details={f"items[{index}]": "invalid"})
        rate = parse_decimal(raw.get("rate"), f"items[{index}].rate")
        boq_item_id = raw.get("boq_item_id")
        if boq_item_id not in (None, ""):
            source = boq_items.get(parse_id(boq_item_id, f"items[{index}].boq_item_id"))
            if source is None:
                raise ValidationError("Item does not belong to the BOQ", details={f"items[{index}]": boq_item_id})
            quantity = source.quantity
            if raw.get("quantity") not in (None, ""):
                quantity = parse_decimal(raw.get("quantity"), f"items[{index}].quantity", positive=True)
            lines.append(QuotationLine(source.name, source.unit, Decimal(quantity), rate, source.id))
            continue
        name = str(raw.get("name") or "").strip()
        if not name:
            raise ValidationError("Quotation items need a BOQ item or a name", details={f"items[{index}]": "required"})
        quantity = parse_decimal(raw.get("quantity"), f"items[{index}].quantity", positive=True)
        lines.append(QuotationLine(name[:160], str(raw.get("unit") or "unit")[:20], quantity, rate))
    if not any(line.rate > 0 for line in lines):
        raise ValidationError("At least one quotation item must be priced", details={"items": "unpriced"})
    return lines


def _quotation_task_for(case: Case, task_id) -> CaseTask | None:
    if task_id not in (None, ""):
        task = get_task_or_404(parse_id(task_id, "task_id"))
        if task.case_id != case.id or task.type != TaskType.QUOTATION_TASK:
            raise ValidationError("Task is not a quotation task of this case", details={"task_id": task_id})
        return task
    return (
        CaseTask.query.filter_by(case_id=case.id, type=TaskType.QUOTATION_TASK)
        .order_by(CaseTask.id.desc())
        .first()
    )


def _submit_quotation_unit(case_id: int, payload: dict, user_id: int | None, membership) -> tuple[CaseQuotation, bool]:
    case = get_case_or_404(case_id)
    task = _quotation_task_for(case, payload.get("task_id"))
    if task is not None:
        existing = CaseQuotation.query.filter_by(quotation_task_id=task.id).first()
        if existing is not None:
            return existing, False
    if task is None or not task.is_open:
        raise InvalidTransition(case.status.value, CaseStatus.QUOTATION.value, "No open quotation task for this case")

    boq = latest_boq(case)
    if boq is None:
        raise NotFoundError("BOQ for case", case.id)

    pr_code = str(payload.get("internal_pr_code") or "").strip()
    if pr_code:
        ensure_capability("read_internal_pr_code", membership)
    discount = parse_decimal(payload.get("discount", "0") or "0", "discount")
    if discount > 100:
        raise ValidationError("discount cannot exceed 100%", details={"discount": "too_high"})
    tax_raw = payload.get("tax_rate")
    tax_rate = parse_decimal(
        current_app.config["DEFAULT_TAX_RATE"] if tax_raw in (None, "") else tax_raw,
        "tax_rate",
    )
    lines = _quotation_lines(boq, payload.get("items"))
    totals = compute_quotation_totals(lines, discount, tax_rate)

    quotation = CaseQuotation(
        org_id=case.org_id,
        case_id=case.id,
        boq_id=boq.id,
        quotation_task_id=task.id,
        subtotal=totals.subtotal,
        discount=discount,
        discount_amount=totals.discount_amount,
        tax_rate=tax_rate,
        tax_amount=totals.tax_amount,
        grand_total=totals.grand_total,
        internal_pr_code=pr_code[:60],
        notes=str(payload.get("notes") or "")[:1000],
        audit_status=AuditStatus.PENDING,
        created_by_user_id=user_id,
    )
    for position, line in enumerate(lines, start=1):
        quotation.items.append(
            CaseQuotationItem(
                position=position,
                boq_item_id=line.boq_item_id,
                name=line.name,
                unit=line.unit,
                quantity=line.quantity,
                rate=money(line.rate),
                total=line.total,
            )
        )
    if not boq.locked:
        boq.locked = True
    db.session.add(quotation)
    db.session.flush()

    complete_task_in_unit(task, {}, user_id)
    log_case_event(
        case,
        "QUOTATION_SUBMITTED",
        f"Quotation #{quotation.id} on BOQ #{boq.id}, grand total {totals.grand_total}",
        user_id,
    )
    logger.info("Quotation %s submitted for case %s", quotation.id, case.case_number, extra={"case_id": case.id})
    return quotation, True


def submit_quotation(case_id: int, payload: dict, user_id: int | None = None, membership=None) -> CaseQuotation:
    quotation, created = run_in_transaction(_submit_quotation_unit, case_id, payload, user_id, membership)
    if created:
        request_document(DocumentKind.QUOTATION, quotation.id)
    return quotation


def _audit_task_for(quotation: CaseQuotation) -> CaseTask:
    task = None
    if quotation.quotation_task_id is not None:
        task = CaseTask.query.filter_by(
            predecessor_task_id=quotation.quotation_task_id,
            type=TaskType.PROCUREMENT_AUDIT,
        ).first()
    if task is None:
        raise NotFoundError("Procurement audit task for quotation", quotation.id)
    return task


def _resolve_audit_unit(quotation_id: int, decision_raw: str, reason: str | None, user_id: int | None) -> CaseQuotation:
    quotation = get_quotation_or_404(quotation_id)
    decision = AUDIT_DECISIONS.get(str(decision_raw or "").strip().lower())
    if decision is None:
        raise ValidationError("decision must be approve or reject", details={"decision": decision_raw})
    if quotation.audit_status == decision:
        return quotation
    if quotation.audit_status != AuditStatus.PENDING:
        raise InvalidTransition(quotation.audit_status.value, decision.value)
    reason = (reason or "").strip()
    if decision == AuditStatus.REJECTED and not reason:
        raise ValidationError("A rejection reason is required", details={"reason": "required"})

    audit_task = _audit_task_for(quotation)
    quotation.audit_status = decision
    quotation.audited_by_user_id = user_id
    quotation.audited_at = utcnow()
    if decision == AuditStatus.REJECTED:
        quotation.rejection_reason = reason[:500]
        complete_task_in_unit(audit_task, {"reason": reason}, user_id, rule=AUDIT_REJECTED_RULE)
    else:
        complete_task_in_unit(audit_task, {}, user_id)
    log_case_event(
        quotation.case,
        "AUDIT_APPROVED" if decision == AuditStatus.APPROVED else "AUDIT_REJECTED",
        f"Quotation #{quotation.id}" + (f": {reason}" if reason else ""),
        user_id,
    )
    return quotation


def resolve_audit(quotation_id: int, decision: str, reason: str | None = None, user_id: int | None = None) -> CaseQuotation:
    return run_in_transaction(_resolve_audit_unit, quotation_id, decision, reason, user_id)


def approved_quotation(case: Case) -> CaseQuotation | None:
    return (
        CaseQuotation.query.filter_by(case_id=case.id, audit_status=AuditStatus.APPROVED)
        .order_by(CaseQuotation.id.desc())
        .first()
    )
