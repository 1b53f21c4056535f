from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

from app.core.models import Case, CaseBOQ, CaseQuotation, CaseTask, ExecutionPlan
from app.core.permissions import has_capability


def _iso(value: date | datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _amount(value: Decimal | None) -> str:
    return f"{Decimal(value or 0):.2f}"


def serialize_case(case: Case) -> dict[str, object]:
    return {
        "id": case.id,
        "case_number": case.case_number,
        "title": case.title,
        "client_name": case.client_name,
        "status": case.status.value,
        "archived": case.archived,
        "team": {member.role.value: member.user_id for member in case.team_members},
        "cost_center": {
            "has_cost_center": case.has_cost_center,
            "total_budget": _amount(case.total_budget),
            "spent_amount": _amount(case.spent_amount),
            "remaining_amount": _amount(case.remaining_amount),
            "received_amount": _amount(case.received_amount),
        },
        "last_rejection_reason": case.last_rejection_reason,
    }


def serialize_task(task: CaseTask) -> dict[str, object]:
    return {
        "id": task.id,
        "case_id": task.case_id,
        "type": task.type.value,
        "status": task.status.value,
        "assigned_to_user_id": task.assigned_to_user_id,
        "predecessor_task_id": task.predecessor_task_id,
        "deadline": _iso(task.deadline),
        "started_at": _iso(task.started_at),
        "completed_at": _iso(task.completed_at),
    }


def serialize_boq(boq: CaseBOQ) -> dict[str, object]:
    return {
        "id": boq.id,
        "case_id": boq.case_id,
        "locked": boq.locked,
        "subtotal": _amount(boq.subtotal),
        "created_by_user_id": boq.created_by_user_id,
        "items": [
            {
                "id": item.id,
                "position": item.position,
                "catalog_item_id": item.catalog_item_id,
                "name": item.name,
                "unit": item.unit,
                "quantity": str(item.quantity),
                "rate": _amount(item.rate),
                "total": _amount(item.total),
            }
            for item in boq.items
        ],
    }


def serialize_quotation(quotation: CaseQuotation, membership=None, external: bool = False) -> dict[str, object]:
    """Quotation payload.

    ``internal_pr_code`` is only transmitted to internal viewers whose role
    holds the ``read_internal_pr_code`` capability. External renderings
    (customer PDFs) never carry it, whoever asks.
    """
    payload: dict[str, object] = {
        "id": quotation.id,
        "case_id": quotation.case_id,
        "boq_id": quotation.boq_id,
        "items": [
            {
                "position": item.position,
                "name": item.name,
                "unit": item.unit,
                "quantity": str(item.quantity),
                "rate": _amount(item.rate),
                "total": _amount(item.total),
            }
            for item in quotation.items
        ],
        "subtotal": _amount(quotation.subtotal),
        "discount": _amount(quotation.discount),
        "discount_amount": _amount(quotation.discount_amount),
        "tax_rate": _amount(quotation.tax_rate),
        "tax_amount": _amount(quotation.tax_amount),
        "grand_total": _amount(quotation.grand_total),
        "notes": quotation.notes,
    }
    if external:
        return payload
    payload.update(
        {
            "quotation_task_id": quotation.quotation_task_id,
            "audit_status": quotation.audit_status.value,
            "audited_by_user_id": quotation.audited_by_user_id,
            "audited_at": _iso(quotation.audited_at),
            "rejection_reason": quotation.rejection_reason,
            "pdf_url": quotation.pdf_url,
        }
    )
    if has_capability("read_internal_pr_code", membership):
        payload["internal_pr_code"] = quotation.internal_pr_code
    return payload


def serialize_execution_plan(plan: ExecutionPlan) -> dict[str, object]:
    return {
        "case_id": plan.case_id,
        "financial_plan": {"total_budget": _amount(plan.total_budget)},
        "phases": [
            {
                "name": phase.name,
                "start_date": _iso(phase.start_date),
                "end_date": _iso(phase.end_date),
                "labor_count": phase.labor_count,
                "material_delivery_date": _iso(phase.material_delivery_date),
            }
            for phase in plan.phases
        ],
        "approved_by_admin": plan.approved_by_admin,
        "approved_by_user_id": plan.approved_by_user_id,
        "approved_at": _iso(plan.approved_at),
        "rejected_by_user_id": plan.rejected_by_user_id,
        "rejected_at": _iso(plan.rejected_at),
        "rejection_reason": plan.rejection_reason,
        "master_pdf_url": plan.master_pdf_url,
    }
