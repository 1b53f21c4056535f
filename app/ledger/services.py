from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from uuid import uuid4

from flask import current_app
from sqlalchemy import func, literal, update

from app.core.exceptions import LedgerImbalance, NotFoundError, ValidationError
from app.core.extensions import db
from app.core.models import (
    Case,
    EntryType,
    Invoice,
    InvoiceKind,
    InvoiceStatus,
    LedgerCategory,
    LedgerEntry,
    ZERO,
    utcnow,
)
from app.core.read_model import mark_case_touched
from app.core.sequences import next_number
from app.core.tenancy import org_id
from app.core.transactions import run_in_transaction
from app.core.utils import money, parse_decimal, parse_iso_date, parse_optional_iso_date, required_text

logger = logging.getLogger(__name__)

NUMBER_PREFIXES = {InvoiceKind.SALES: "INV", InvoiceKind.PURCHASE: "PINV"}
INITIAL_STATUS = {InvoiceKind.SALES: InvoiceStatus.PENDING, InvoiceKind.PURCHASE: InvoiceStatus.PENDING_APPROVAL}
SOURCE_TYPES = {InvoiceKind.SALES: "SalesInvoice", InvoiceKind.PURCHASE: "PurchaseInvoice"}


@dataclass(frozen=True)
class PostingLine:
    type: EntryType
    category: LedgerCategory
    amount: Decimal


def posting_lines(kind: InvoiceKind, amount: Decimal, total_amount: Decimal) -> tuple[PostingLine, PostingLine]:
    if kind == InvoiceKind.SALES:
        return (
            PostingLine(EntryType.CREDIT, LedgerCategory.REVENUE, total_amount),
            PostingLine(EntryType.DEBIT, LedgerCategory.ACCOUNTS_RECEIVABLE, total_amount),
        )
    return (
        PostingLine(EntryType.DEBIT, LedgerCategory.EXPENSE, amount),
        PostingLine(EntryType.CREDIT, LedgerCategory.PAYABLE, amount),
    )


def assert_balanced(transaction_id: str, lines) -> None:
    debits = sum((money(line.amount) for line in lines if line.type == EntryType.DEBIT), ZERO)
    credits = sum((money(line.amount) for line in lines if line.type == EntryType.CREDIT), ZERO)
    if debits != credits:
        raise LedgerImbalance(transaction_id, debits, credits)


def get_invoice_or_404(invoice_id: int) -> Invoice:
    invoice = Invoice.query.filter_by(org_id=org_id(), id=invoice_id).first()
    if invoice is None:
        raise NotFoundError("Invoice", invoice_id)
    return invoice


def _case_for_posting(case_id) -> Case | None:
    if case_id in (None, ""):
        return None
    try:
        case_id = int(case_id)
    except (TypeError, ValueError) as exc:
        raise ValidationError("Invalid case id", details={"case_id": "invalid"}) from exc
    case = Case.query.filter_by(org_id=org_id(), id=case_id).first()
    if case is None:
        raise NotFoundError("Case", case_id)
    return case


def _next_invoice_number(kind: InvoiceKind, issue_date: date) -> str:
    prefix = f"{NUMBER_PREFIXES[kind]}-{issue_date:%Y%m%d}-"

    def issued_so_far() -> int:
        return (
            db.session.query(func.count(Invoice.id))
            .filter(Invoice.org_id == org_id(), Invoice.kind == kind, Invoice.invoice_number.like(f"{prefix}%"))
            .scalar()
        )

    return f"{prefix}{next_number(org_id(), prefix, issued_so_far):04d}"


def _same_figures(invoice: Invoice, case_id, amount: Decimal, tax_amount: Decimal, total_amount: Decimal) -> bool:
    return (
        invoice.case_id == case_id
        and money(invoice.amount) == amount
        and money(invoice.tax_amount) == tax_amount
        and money(invoice.total_amount) == total_amount
    )


def assign_budget(case: Case, total) -> None:
    """Set the budget of ``case`` and recompute remaining in the same UPDATE.

    Runs inside the caller's unit of work; remaining is computed by the
    database from the stored spent amount.
    """
    total = money(parse_decimal(total, "total_budget", positive=True))
    case.has_cost_center = True
    case.total_budget = total
    case.remaining_amount = literal(total, db.Numeric(14, 2)) - Case.spent_amount
    db.session.flush()
    logger.info("Cost center budget for case %s set to %s", case.case_number, total, extra={"case_id": case.id})


def _apply_to_cost_center(case: Case, kind: InvoiceKind, amount: Decimal, total_amount: Decimal) -> None:
    if not case.has_cost_center:
        return
    stmt = update(Case).where(Case.id == case.id, Case.has_cost_center.is_(True))
    if kind == InvoiceKind.PURCHASE:
        # Each SET clause reads only its own column, so clause order is irrelevant.
        stmt = stmt.values(
            spent_amount=Case.spent_amount + amount,
            remaining_amount=Case.remaining_amount - amount,
            version=Case.version + 1,
        )
        if current_app.config.get("ENFORCE_BUDGET_CEILING", True):
            stmt = stmt.where(Case.spent_amount + amount <= Case.total_budget)
    else:
        stmt = stmt.values(received_amount=Case.received_amount + total_amount, version=Case.version + 1)
    result = db.session.execute(stmt.execution_options(synchronize_session=False))
    if result.rowcount == 0:
        db.session.refresh(case)
        raise ValidationError(
            f"Purchase of {amount} exceeds the remaining budget of case {case.case_number}",
            details={"remaining_amount": str(money(case.remaining_amount))},
        )
    db.session.expire(case, ["spent_amount", "remaining_amount", "received_amount", "version"])
    mark_case_touched(case.id)


def _post_invoice_unit(
    kind: InvoiceKind,
    case_id,
    amount,
    tax_amount,
    total_amount,
    metadata: dict,
    user_id: int | None,
) -> Invoice:
    amount = money(parse_decimal(amount, "amount", positive=True))
    tax_amount = money(parse_decimal(tax_amount if tax_amount not in (None, "") else "0", "tax_amount"))
    total_amount = money(parse_decimal(total_amount, "total_amount", positive=True))
    if total_amount != amount + tax_amount:
        raise ValidationError(
            "total_amount must equal amount + tax_amount",
            details={"total_amount": str(total_amount), "expected": str(amount + tax_amount)},
        )
    counterparty = required_text(metadata.get("counterparty_name"), "counterparty_name", 160)
    case = _case_for_posting(case_id)
    if kind == InvoiceKind.SALES and case is None:
        raise ValidationError("Sales invoices must reference a case", details={"case_id": "required"})
    issue_date = parse_iso_date(metadata.get("issue_date") or date.today(), "issue_date")
    due_date = parse_optional_iso_date(metadata.get("due_date"), "due_date")
    if due_date is not None and due_date < issue_date:
        raise ValidationError("Due date is before the issue date", details={"due_date": "before_issue_date"})

    invoice_number = str(metadata.get("invoice_number") or "").strip()[:40]
    if invoice_number:
        existing = Invoice.query.filter_by(org_id=org_id(), kind=kind, invoice_number=invoice_number).first()
        if existing is not None:
            if _same_figures(existing, case.id if case else None, amount, tax_amount, total_amount):
                return existing
            raise ValidationError(
                f"Invoice number {invoice_number} is already used",
                details={"invoice_number": "duplicate"},
            )
    else:
        invoice_number = _next_invoice_number(kind, issue_date)

    transaction_id = uuid4().hex
    invoice = Invoice(
        org_id=org_id(),
        case_id=case.id if case else None,
        kind=kind,
        invoice_number=invoice_number,
        counterparty_name=counterparty,
        amount=amount,
        tax_amount=tax_amount,
        total_amount=total_amount,
        issue_date=issue_date,
        due_date=due_date,
        status=INITIAL_STATUS[kind],
        transaction_id=transaction_id,
        notes=str(metadata.get("notes") or "")[:500],
        created_by_user_id=user_id,
    )
    db.session.add(invoice)
    db.session.flush()

    lines = posting_lines(kind, amount, total_amount)
    assert_balanced(transaction_id, lines)
    for line in lines:
        db.session.add(
            LedgerEntry(
                org_id=invoice.org_id,
                transaction_id=transaction_id,
                entry_date=issue_date,
                type=line.type,
                amount=line.amount,
                category=line.category,
                source_type=SOURCE_TYPES[kind],
                source_id=invoice.id,
                case_id=invoice.case_id,
                description=f"{invoice_number} {counterparty}"[:255],
            )
        )
    db.session.flush()

    if case is not None:
        _apply_to_cost_center(case, kind, amount, total_amount)
    logger.info(
        "Posted %s invoice %s for %s (transaction %s)",
        kind.value.lower(),
        invoice_number,
        total_amount,
        transaction_id,
        extra={"case_id": invoice.case_id, "transaction_id": transaction_id},
    )
    return invoice


def post_invoice(
    kind: InvoiceKind,
    case_id,
    amount,
    tax_amount,
    total_amount,
    metadata: dict | None = None,
    user_id: int | None = None,
) -> Invoice:
    return run_in_transaction(
        _post_invoice_unit, kind, case_id, amount, tax_amount, total_amount, metadata or {}, user_id
    )


def post_sales_invoice(payload: dict, user_id: int | None = None) -> Invoice:
    return post_invoice(
        InvoiceKind.SALES,
        payload.get("case_id"),
        payload.get("amount"),
        payload.get("tax_amount"),
        payload.get("total_amount"),
        payload,
        user_id,
    )


def post_purchase_invoice(payload: dict, user_id: int | None = None) -> Invoice:
    return post_invoice(
        InvoiceKind.PURCHASE,
        payload.get("case_id"),
        payload.get("amount"),
        payload.get("tax_amount"),
        payload.get("total_amount"),
        payload,
        user_id,
    )


def _mark_paid_unit(invoice_id: int, user_id: int | None) -> Invoice:
    invoice = get_invoice_or_404(invoice_id)
    if invoice.status == InvoiceStatus.PAID:
        return invoice
    invoice.status = InvoiceStatus.PAID
    invoice.paid_at = utcnow()
    logger.info("Invoice %s marked paid", invoice.invoice_number, extra={"case_id": invoice.case_id})
    return invoice


def mark_invoice_paid(invoice_id: int, user_id: int | None = None) -> Invoice:
    return run_in_transaction(_mark_paid_unit, invoice_id, user_id)


def transaction_balance(transaction_id: str) -> tuple[Decimal, Decimal]:
    rows = (
        db.session.query(LedgerEntry.type, func.sum(LedgerEntry.amount))
        .filter(LedgerEntry.transaction_id == transaction_id)
        .group_by(LedgerEntry.type)
        .all()
    )
    sums = {entry_type: money(total or 0) for entry_type, total in rows}
    return sums.get(EntryType.DEBIT, ZERO), sums.get(EntryType.CREDIT, ZERO)


def verify_ledger(organization_id: int | None = None) -> list[dict[str, object]]:
    """Return every committed transaction whose debits and credits differ."""
    query = db.session.query(LedgerEntry.transaction_id, LedgerEntry.type, func.sum(LedgerEntry.amount))
    if organization_id is not None:
        query = query.filter(LedgerEntry.org_id == organization_id)
    rows = query.group_by(LedgerEntry.transaction_id, LedgerEntry.type).all()

    totals: dict[str, dict[EntryType, Decimal]] = {}
    for transaction_id, entry_type, total in rows:
        totals.setdefault(transaction_id, {})[entry_type] = money(total or 0)
    problems = []
    for transaction_id, sums in sorted(totals.items()):
        debits = sums.get(EntryType.DEBIT, ZERO)
        credits = sums.get(EntryType.CREDIT, ZERO)
        if debits != credits:
            problems.append({"transaction_id": transaction_id, "debits": str(debits), "credits": str(credits)})
    return problems


def list_ledger_entries(filters: dict[str, str]) -> list[LedgerEntry]:
    query = LedgerEntry.query.filter_by(org_id=org_id())
    if filters.get("case_id"):
        try:
            query = query.filter(LedgerEntry.case_id == int(filters["case_id"]))
        except ValueError as exc:
            raise ValidationError("Invalid case id", details={"case_id": "invalid"}) from exc
    if filters.get("transaction_id"):
        query = query.filter(LedgerEntry.transaction_id == filters["transaction_id"])
    if filters.get("category"):
        try:
            query = query.filter(LedgerEntry.category == LedgerCategory(filters["category"].upper()))
        except ValueError as exc:
            raise ValidationError("Unknown ledger category", details={"category": filters["category"]}) from exc
    return query.order_by(LedgerEntry.id.asc()).all()


def serialize_invoice(invoice: Invoice) -> dict[str, object]:
    return {
        "id": invoice.id,
        "kind": invoice.kind.value,
        "case_id": invoice.case_id,
        "invoice_number": invoice.invoice_number,
        "counterparty_name": invoice.counterparty_name,
        "amount": str(money(invoice.amount)),
        "tax_amount": str(money(invoice.tax_amount)),
        "total_amount": str(money(invoice.total_amount)),
        "issue_date": invoice.issue_date.isoformat(),
        "due_date": invoice.due_date.isoformat() if invoice.due_date else None,
        "status": invoice.status.value,
        "paid_at": invoice.paid_at.isoformat() if invoice.paid_at else None,
        "transaction_id": invoice.transaction_id,
    }


def serialize_entry(entry: LedgerEntry) -> dict[str, object]:
    return {
        "id": entry.id,
        "transaction_id": entry.transaction_id,
        "entry_date": entry.entry_date.isoformat(),
        "type": entry.type.value,
        "amount": str(money(entry.amount)),
        "category": entry.category.value,
        "source_type": entry.source_type,
        "source_id": entry.source_id,
        "case_id": entry.case_id,
        "description": entry.description,
    }
