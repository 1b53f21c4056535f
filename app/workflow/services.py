from __future__ import annotations

import logging

from sqlalchemy import func

from app.core.exceptions import InvalidTransition, NotFoundError, ValidationError
from app.core.extensions import db
from app.core.models import (
    Case,
    CaseBOQ,
    CaseQuotation,
    CaseStatus,
    CaseTeamMember,
    Invoice,
    InvoiceStatus,
    Membership,
    TaskType,
    TeamRole,
)
from app.core.sequences import next_number
from app.core.tenancy import org_id
from app.core.transactions import run_in_transaction
from app.core.utils import required_text
from app.workflow.pipeline import create_task
from app.workflow.state_machine import ENTRY_STATUSES, apply_transition, log_case_event

logger = logging.getLogger(__name__)

ENTRY_TASKS: dict[CaseStatus, TaskType] = {
    CaseStatus.SITE_VISIT_PENDING: TaskType.SITE_VISIT,
    CaseStatus.WAITING_FOR_PLANNING: TaskType.EXECUTION_PLANNING,
}


def get_case_or_404(case_id: int) -> Case:
    case = Case.query.filter_by(org_id=org_id(), id=case_id).first()
    if case is None:
        raise NotFoundError("Case", case_id)
    return case


def get_boq_or_404(boq_id: int) -> CaseBOQ:
    boq = CaseBOQ.query.filter_by(org_id=org_id(), id=boq_id).first()
    if boq is None:
        raise NotFoundError("BOQ", boq_id)
    return boq


def get_quotation_or_404(quotation_id: int) -> CaseQuotation:
    quotation = CaseQuotation.query.filter_by(org_id=org_id(), id=quotation_id).first()
    if quotation is None:
        raise NotFoundError("Quotation", quotation_id)
    return quotation


def list_cases(filters: dict[str, str]) -> list[Case]:
    query = Case.query.filter_by(org_id=org_id())
    if filters.get("status"):
        try:
            query = query.filter(Case.status == CaseStatus(filters["status"].upper()))
        except ValueError as exc:
            raise ValidationError("Unknown case status", details={"status": filters["status"]}) from exc
    if filters.get("archived", "").lower() in {"1", "true", "yes"}:
        query = query.filter(Case.archived.is_(True))
    else:
        query = query.filter(Case.archived.is_(False))
    if filters.get("q"):
        term = f"%{filters['q'].strip()}%"
        query = query.filter((Case.title.ilike(term)) | (Case.client_name.ilike(term)) | (Case.case_number.ilike(term)))
    return query.order_by(Case.id.desc()).all()


def _next_case_number() -> str:
    def cases_so_far() -> int:
        return db.session.query(func.count(Case.id)).filter(Case.org_id == org_id()).scalar()

    number = next_number(org_id(), "CASE", cases_so_far)
    return f"CASE-{number:04d}"


def _parse_team(raw) -> dict[TeamRole, int]:
    if raw in (None, ""):
        return {}
    if not isinstance(raw, dict):
        raise ValidationError("team must map roles to user ids", details={"team": "invalid"})
    team: dict[TeamRole, int] = {}
    for role_raw, user_raw in raw.items():
        try:
            role = TeamRole(str(role_raw).lower())
        except ValueError as exc:
            raise ValidationError("Unknown team role", details={"team": str(role_raw)}) from exc
        try:
            user_id = int(user_raw)
        except (TypeError, ValueError) as exc:
            raise ValidationError("Invalid user id in team", details={role.value: "invalid"}) from exc
        member = Membership.query.filter_by(org_id=org_id(), user_id=user_id).first()
        if member is None:
            raise ValidationError("Team member does not belong to this organization", details={role.value: user_id})
        team[role] = user_id
    return team


def _create_case_unit(payload: dict, user_id: int | None) -> Case:
    title = required_text(payload.get("title"), "title", 200)
    client_name = required_text(payload.get("client_name"), "client_name", 160)
    raw_status = str(payload.get("status") or CaseStatus.SITE_VISIT_PENDING.value).upper()
    try:
        status = CaseStatus(raw_status)
    except ValueError as exc:
        raise ValidationError("Unknown case status", details={"status": raw_status}) from exc
    if status not in ENTRY_STATUSES:
        raise InvalidTransition("NEW", status.value)
    team = _parse_team(payload.get("team"))

    case = Case(
        org_id=org_id(),
        case_number=_next_case_number(),
        title=title,
        client_name=client_name,
        status=status,
        created_by_user_id=user_id,
    )
    db.session.add(case)
    db.session.flush()
    for role, member_id in team.items():
        case.team_members.append(CaseTeamMember(role=role, user_id=member_id))
    db.session.flush()
    log_case_event(case, "CASE_CREATED", f"{case.title} for {case.client_name}", user_id, to_status=status)

    entry_task = ENTRY_TASKS.get(status)
    if entry_task is not None:
        create_task(case, entry_task, user_id)
    logger.info("Case %s created at %s", case.case_number, status.value, extra={"case_id": case.id})
    return case


def create_case(payload: dict, user_id: int | None = None) -> Case:
    return run_in_transaction(_create_case_unit, payload, user_id)


def _assign_team_unit(case_id: int, payload: dict, user_id: int | None) -> Case:
    case = get_case_or_404(case_id)
    team = _parse_team(payload)
    current = {member.role: member for member in case.team_members}
    for role, member_id in team.items():
        if role in current:
            current[role].user_id = member_id
        else:
            case.team_members.append(CaseTeamMember(role=role, user_id=member_id))
    if team:
        details = ", ".join(f"{role.value}={member_id}" for role, member_id in sorted(team.items(), key=lambda i: i[0].value))
        log_case_event(case, "TEAM_ASSIGNED", details, user_id)
    return case


def assign_team(case_id: int, payload: dict, user_id: int | None = None) -> Case:
    return run_in_transaction(_assign_team_unit, case_id, payload, user_id)


def _close_case_unit(case_id: int, user_id: int | None) -> Case:
    case = get_case_or_404(case_id)
    if case.status == CaseStatus.COMPLETED:
        return case
    unpaid = (
        db.session.query(func.count(Invoice.id))
        .filter(Invoice.case_id == case.id)
        .filter(Invoice.status != InvoiceStatus.PAID)
        .scalar()
    )
    if unpaid:
        raise ValidationError(
            f"Case {case.case_number} still has {unpaid} unpaid invoice(s)",
            details={"unpaid_invoices": unpaid},
        )
    apply_transition(
        case,
        CaseStatus.ACTIVE,
        CaseStatus.COMPLETED,
        {"user_id": user_id, "event_type": "CASE_CLOSED", "details": "Financial closure"},
    )
    return case


def close_case(case_id: int, user_id: int | None = None) -> Case:
    return run_in_transaction(_close_case_unit, case_id, user_id)


def _archive_case_unit(case_id: int, user_id: int | None) -> Case:
    case = get_case_or_404(case_id)
    if case.archived:
        return case
    case.archived = True
    log_case_event(case, "CASE_ARCHIVED", "", user_id)
    return case


def archive_case(case_id: int, user_id: int | None = None) -> Case:
    return run_in_transaction(_archive_case_unit, case_id, user_id)
