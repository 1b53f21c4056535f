from __future__ import annotations

from flask import jsonify, request
from flask_login import login_required

from app.core.permissions import require_membership, require_role
from app.core.tenancy import acting_user_id
from app.core.utils import json_body
from app.ledger import ledger_bp
from app.ledger.services import (
    list_ledger_entries,
    mark_invoice_paid,
    post_purchase_invoice,
    post_sales_invoice,
    serialize_entry,
    serialize_invoice,
)


def _payload() -> dict:
    return json_body()


@ledger_bp.post("/sales-invoices")
@login_required
@require_membership
@require_role("admin", "accounts")
def create_sales_invoice():
    invoice = post_sales_invoice(_payload(), acting_user_id())
    return jsonify(serialize_invoice(invoice)), 201


@ledger_bp.post("/purchase-invoices")
@login_required
@require_membership
@require_role("admin", "accounts")
def create_purchase_invoice():
    invoice = post_purchase_invoice(_payload(), acting_user_id())
    return jsonify(serialize_invoice(invoice)), 201


@ledger_bp.post("/invoices/<int:invoice_id>/paid")
@login_required
@require_membership
@require_role("admin", "accounts")
def invoice_paid(invoice_id: int):
    invoice = mark_invoice_paid(invoice_id, acting_user_id())
    return jsonify(serialize_invoice(invoice))


@ledger_bp.get("/entries")
@login_required
@require_membership
def ledger_entries():
    filters = {
        "case_id": request.args.get("case_id", "").strip(),
        "transaction_id": request.args.get("transaction_id", "").strip(),
        "category": request.args.get("category", "").strip(),
    }
    return jsonify([serialize_entry(entry) for entry in list_ledger_entries(filters)])
