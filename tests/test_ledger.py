from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest

from app.core.exceptions import InvalidTransition, LedgerImbalance, NotFoundError, ValidationError
from app.core.extensions import db
from app.core.models import (
    Case,
    CaseStatus,
    EntryType,
    Invoice,
    InvoiceKind,
    InvoiceStatus,
    LedgerCategory,
    LedgerEntry,
)
from app.ledger import services as ledger
from app.workflow.execution import approve_budget, submit_budget
from app.workflow.services import close_case, create_case


@pytest.fixture
def funded_case(app, act_as) -> int:
    with act_as("salesgm@casework.local") as user:
        case = create_case(
            {"title": "Warehouse racking", "client_name": "Contoso", "status": "PENDING_EXECUTION_APPROVAL"},
            user.id,
        )
        case_id = case.id
        submit_budget(case_id, "100000", user.id)
    with act_as("accounts@casework.local") as user:
        approve_budget(case_id, user.id)
    return case_id


def _purchase(case_id, amount="10000", tax="0", total=None, **metadata):
    metadata.setdefault("counterparty_name", "Timber Supplies Co")
    return ledger.post_invoice(
        InvoiceKind.PURCHASE,
        case_id,
        amount,
        tax,
        total if total is not None else str(Decimal(amount) + Decimal(tax)),
        metadata,
    )


def _reload(case_id: int) -> Case:
    db.session.expire_all()
    return db.session.get(Case, case_id)


def test_purchase_posts_balanced_pair_and_moves_cost_center(app, act_as, funded_case):
    with act_as("accounts@casework.local"):
        invoice = _purchase(funded_case)

    entries = LedgerEntry.query.filter_by(transaction_id=invoice.transaction_id).order_by(LedgerEntry.id).all()
    assert [(e.type, e.category, e.amount) for e in entries] == [
        (EntryType.DEBIT, LedgerCategory.EXPENSE, Decimal("10000.00")),
        (EntryType.CREDIT, LedgerCategory.PAYABLE, Decimal("10000.00")),
    ]
    assert all(e.case_id == funded_case and e.source_id == invoice.id for e in entries)

    case = _reload(funded_case)
    assert case.spent_amount == Decimal("10000.00")
    assert case.remaining_amount == Decimal("90000.00")
    assert invoice.status == InvoiceStatus.PENDING_APPROVAL
    assert invoice.invoice_number == f"PINV-{date.today():%Y%m%d}-0001"


def test_purchase_with_tax_posts_net_amount(app, act_as, funded_case):
    with act_as("accounts@casework.local"):
        invoice = _purchase(funded_case, amount="1000", tax="180")

    debits, credits = ledger.transaction_balance(invoice.transaction_id)
    assert debits == credits == Decimal("1000.00")
    assert _reload(funded_case).spent_amount == Decimal("1000.00")


def test_sales_invoice_posts_revenue_and_receivable(app, act_as, funded_case):
    with act_as("accounts@casework.local"):
        invoice = ledger.post_sales_invoice(
            {
                "case_id": funded_case,
                "amount": "5000",
                "tax_amount": "900",
                "total_amount": "5900",
                "counterparty_name": "Contoso",
            }
        )

    entries = LedgerEntry.query.filter_by(transaction_id=invoice.transaction_id).order_by(LedgerEntry.id).all()
    assert [(e.type, e.category, e.amount) for e in entries] == [
        (EntryType.CREDIT, LedgerCategory.REVENUE, Decimal("5900.00")),
        (EntryType.DEBIT, LedgerCategory.ACCOUNTS_RECEIVABLE, Decimal("5900.00")),
    ]
    case = _reload(funded_case)
    assert case.received_amount == Decimal("5900.00")
    assert case.spent_amount == Decimal("0.00")
    assert invoice.status == InvoiceStatus.PENDING
    assert invoice.invoice_number.startswith("INV-")


def test_sales_invoice_needs_a_case(app, act_as):
    with act_as("accounts@casework.local"):
        with pytest.raises(ValidationError):
            ledger.post_sales_invoice(
                {"amount": "100", "tax_amount": "0", "total_amount": "100", "counterparty_name": "Walk-in"}
            )
    assert Invoice.query.count() == 0


def test_purchase_without_case_is_company_overhead(app, act_as):
    with act_as("accounts@casework.local"):
        invoice = _purchase(None, amount="250")
    assert invoice.case_id is None
    assert LedgerEntry.query.filter_by(transaction_id=invoice.transaction_id).count() == 2


@pytest.mark.parametrize(
    ("amount", "tax", "total", "counterparty"),
    [
        ("0", "0", "0", "Vendor"),
        ("-5", "0", "-5", "Vendor"),
        ("100", "-1", "99", "Vendor"),
        ("100", "18", "120", "Vendor"),
        ("100", "0", "100", ""),
    ],
)
def test_invalid_postings_leave_no_trace(app, act_as, funded_case, amount, tax, total, counterparty):
    with act_as("accounts@casework.local"):
        with pytest.raises(ValidationError):
            _purchase(funded_case, amount=amount, tax=tax, total=total, counterparty_name=counterparty)
    assert Invoice.query.count() == 0
    assert LedgerEntry.query.count() == 0
    assert _reload(funded_case).spent_amount == Decimal("0.00")


def test_budget_ceiling_blocks_overspend(app, act_as, funded_case):
    with act_as("accounts@casework.local"):
        _purchase(funded_case, amount="95000")
        with pytest.raises(ValidationError):
            _purchase(funded_case, amount="6000")

    case = _reload(funded_case)
    assert case.spent_amount == Decimal("95000.00")
    assert case.remaining_amount == Decimal("5000.00")
    assert Invoice.query.count() == 1
    assert LedgerEntry.query.count() == 2


def test_budget_ceiling_can_be_disabled(app, act_as, funded_case):
    app.config["ENFORCE_BUDGET_CEILING"] = False
    with act_as("accounts@casework.local"):
        _purchase(funded_case, amount="100000")
        _purchase(funded_case, amount="2500")

    case = _reload(funded_case)
    assert case.spent_amount == Decimal("102500.00")
    assert case.remaining_amount == Decimal("-2500.00")


def test_failure_after_entries_rolls_back_everything(app, act_as, funded_case, monkeypatch):
    def explode(*_args, **_kwargs):
        raise RuntimeError("cost center unavailable")

    monkeypatch.setattr(ledger, "_apply_to_cost_center", explode)
    with act_as("accounts@casework.local"):
        with pytest.raises(RuntimeError):
            _purchase(funded_case)

    assert Invoice.query.count() == 0
    assert LedgerEntry.query.count() == 0
    assert _reload(funded_case).spent_amount == Decimal("0.00")


def test_retry_with_same_number_returns_existing_invoice(app, act_as, funded_case):
    with act_as("accounts@casework.local"):
        first = _purchase(funded_case, invoice_number="TS-2209")
        second = _purchase(funded_case, invoice_number="TS-2209")
        with pytest.raises(ValidationError):
            _purchase(funded_case, amount="11000", invoice_number="TS-2209")

    assert second.id == first.id
    assert LedgerEntry.query.count() == 2
    assert _reload(funded_case).spent_amount == Decimal("10000.00")


def test_generated_numbers_are_sequential_per_kind(app, act_as, funded_case):
    with act_as("accounts@casework.local"):
        numbers = [_purchase(funded_case, amount="100").invoice_number for _ in range(3)]
    stamp = f"{date.today():%Y%m%d}"
    assert numbers == [f"PINV-{stamp}-0001", f"PINV-{stamp}-0002", f"PINV-{stamp}-0003"]


def test_mark_paid_is_idempotent_and_does_not_repost(app, act_as, funded_case):
    with act_as("accounts@casework.local"):
        invoice = _purchase(funded_case)
        paid = ledger.mark_invoice_paid(invoice.id)
        paid_at = paid.paid_at
        again = ledger.mark_invoice_paid(invoice.id)
        with pytest.raises(NotFoundError):
            ledger.mark_invoice_paid(99999)

    assert again.status == InvoiceStatus.PAID
    assert again.paid_at == paid_at
    assert LedgerEntry.query.count() == 2


def test_posted_records_are_immutable(app, act_as, funded_case):
    with act_as("accounts@casework.local"):
        invoice = _purchase(funded_case)

    entry = LedgerEntry.query.first()
    entry.amount = Decimal("1")
    with pytest.raises(InvalidTransition):
        db.session.flush()
    db.session.rollback()

    entry = LedgerEntry.query.first()
    db.session.delete(entry)
    with pytest.raises(InvalidTransition):
        db.session.flush()
    db.session.rollback()

    invoice = db.session.get(Invoice, invoice.id)
    invoice.total_amount = Decimal("1")
    with pytest.raises(InvalidTransition):
        db.session.flush()
    db.session.rollback()


def test_unbalanced_transaction_cannot_be_flushed(app, demo_org):
    db.session.add(
        LedgerEntry(
            org_id=demo_org.id,
            transaction_id="lonely",
            type=EntryType.DEBIT,
            amount=Decimal("10"),
            category=LedgerCategory.EXPENSE,
            source_type="Manual",
            source_id=1,
        )
    )
    with pytest.raises(LedgerImbalance):
        db.session.flush()
    db.session.rollback()


def test_books_balance_and_cost_center_holds_after_many_postings(app, act_as, funded_case):
    amounts = ["1200.10", "333.33", "0.01", "4500", "999.99", "12.50"]
    with act_as("accounts@casework.local"):
        for amount in amounts:
            _purchase(funded_case, amount=amount)
            case = _reload(funded_case)
            assert case.remaining_amount == case.total_budget - case.spent_amount
        ledger.post_sales_invoice(
            {"case_id": funded_case, "amount": "2000", "tax_amount": "360", "total_amount": "2360", "counterparty_name": "Contoso"}
        )

    assert ledger.verify_ledger() == []
    case = _reload(funded_case)
    assert case.spent_amount == sum(Decimal(a) for a in amounts)
    total_debits = sum(e.amount for e in LedgerEntry.query.filter_by(type=EntryType.DEBIT))
    total_credits = sum(e.amount for e in LedgerEntry.query.filter_by(type=EntryType.CREDIT))
    assert total_debits == total_credits


def test_close_case_requires_paid_invoices(app, act_as, funded_case):
    with act_as("accounts@casework.local") as user:
        invoice = _purchase(funded_case)
        with pytest.raises(ValidationError):
            close_case(funded_case, user.id)
        ledger.mark_invoice_paid(invoice.id)
        case = close_case(funded_case, user.id)
        assert case.status == CaseStatus.COMPLETED
        assert close_case(funded_case, user.id).status == CaseStatus.COMPLETED


def test_generated_invoice_numbers_follow_a_daily_counter(app, act_as, funded_case):
    with act_as("accounts@casework.local"):
        first = _purchase(funded_case, amount="10", issue_date="2026-03-02")
        second = _purchase(funded_case, amount="10", issue_date="2026-03-02")
        next_day = _purchase(funded_case, amount="10", issue_date="2026-03-03")

    assert [first.invoice_number, second.invoice_number, next_day.invoice_number] == [
        "PINV-20260302-0001",
        "PINV-20260302-0002",
        "PINV-20260303-0001",
    ]
