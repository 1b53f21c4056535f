from __future__ import annotations

import logging

from app.core.exceptions import InvalidTransition, StaleState, ValidationError
from app.core.extensions import db
from app.core.models import Case, CaseEvent, CaseStatus, utcnow

logger = logging.getLogger(__name__)

CASE_STATUS_TRANSITIONS: dict[CaseStatus, set[CaseStatus]] = {
    CaseStatus.SITE_VISIT_PENDING: {CaseStatus.WAITING_FOR_DRAWING},
    CaseStatus.WAITING_FOR_DRAWING: {CaseStatus.BOQ_COMPLETED},
    CaseStatus.BOQ_COMPLETED: {CaseStatus.QUOTATION},
    CaseStatus.QUOTATION: {CaseStatus.PLANNING_SUBMITTED, CaseStatus.BOQ_COMPLETED},
    CaseStatus.WAITING_FOR_PLANNING: {CaseStatus.PLANNING_SUBMITTED},
    CaseStatus.PLANNING_SUBMITTED: {CaseStatus.ACTIVE, CaseStatus.WAITING_FOR_PLANNING},
    CaseStatus.PENDING_EXECUTION_APPROVAL: {CaseStatus.PENDING_BUDGET_APPROVAL},
    CaseStatus.PENDING_BUDGET_APPROVAL: {CaseStatus.ACTIVE, CaseStatus.PENDING_EXECUTION_APPROVAL},
    CaseStatus.ACTIVE: {CaseStatus.COMPLETED},
    CaseStatus.COMPLETED: set(),
}

# Back-edges; each one needs a stored reason.
REJECTION_EDGES: set[tuple[CaseStatus, CaseStatus]] = {
    (CaseStatus.QUOTATION, CaseStatus.BOQ_COMPLETED),
    (CaseStatus.PLANNING_SUBMITTED, CaseStatus.WAITING_FOR_PLANNING),
    (CaseStatus.PENDING_BUDGET_APPROVAL, CaseStatus.PENDING_EXECUTION_APPROVAL),
}

ENTRY_STATUSES: frozenset[CaseStatus] = frozenset(
    {
        CaseStatus.SITE_VISIT_PENDING,
        CaseStatus.WAITING_FOR_PLANNING,
        CaseStatus.PENDING_EXECUTION_APPROVAL,
    }
)


def is_rejection_edge(from_status: CaseStatus, to_status: CaseStatus) -> bool:
    return (from_status, to_status) in REJECTION_EDGES


def reachable_from(status: CaseStatus) -> set[CaseStatus]:
    seen: set[CaseStatus] = set()
    pending = [status]
    while pending:
        current = pending.pop()
        for nxt in CASE_STATUS_TRANSITIONS.get(current, set()):
            if nxt not in seen:
                seen.add(nxt)
                pending.append(nxt)
    return seen


def apply_transition(
    case: Case,
    from_expected: CaseStatus,
    to_status: CaseStatus,
    metadata: dict[str, object] | None = None,
) -> bool:
    """Move ``case`` along ``from_expected -> to_status`` inside the caller's unit of work.

    Returns True when the status changed and False for the idempotent no-op
    (already at ``to_status``). Raises InvalidTransition for undefined edges,
    StaleState when the case sits at neither end, and ValidationError when a
    rejection edge has no reason. Nothing is committed here.
    """
    metadata = metadata or {}
    if to_status not in CASE_STATUS_TRANSITIONS.get(from_expected, set()):
        raise InvalidTransition(from_expected.value, to_status.value)
    if case.status == to_status:
        return False
    if case.status != from_expected:
        raise StaleState(
            f"Case {case.case_number} is {case.status.value}, expected {from_expected.value}"
        )

    reason = str(metadata.get("reason") or "").strip()
    rejecting = is_rejection_edge(from_expected, to_status)
    if rejecting and not reason:
        raise ValidationError("A rejection reason is required", details={"reason": "required"})

    case.status = to_status
    if rejecting:
        case.last_rejection_reason = reason
    if to_status == CaseStatus.COMPLETED:
        case.completed_at = utcnow()
    db.session.add(case)

    details = str(metadata.get("details") or reason or "")
    log_case_event(
        case,
        str(metadata.get("event_type") or ("STATUS_REJECTED" if rejecting else "STATUS_CHANGED")),
        details,
        metadata.get("user_id"),
        from_status=from_expected,
        to_status=to_status,
    )
    logger.info(
        "Case %s: %s -> %s",
        case.case_number,
        from_expected.value,
        to_status.value,
        extra={"case_id": case.id},
    )
    return True


def log_case_event(
    case: Case,
    event_type: str,
    details: str = "",
    user_id=None,
    from_status: CaseStatus | None = None,
    to_status: CaseStatus | None = None,
) -> CaseEvent:
    item = CaseEvent(
        org_id=case.org_id,
        case_id=case.id,
        event_type=event_type,
        from_status=from_status.value if from_status else "",
        to_status=to_status.value if to_status else "",
        details=details[:500],
        user_id=user_id,
    )
    db.session.add(item)
    return item
