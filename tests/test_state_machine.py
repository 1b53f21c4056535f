from __future__ import annotations

import pytest

from app.core.exceptions import InvalidTransition, StaleState, ValidationError
from app.core.extensions import db
from app.core.models import Case, CaseEvent, CaseStatus
from app.workflow.state_machine import (
    CASE_STATUS_TRANSITIONS,
    ENTRY_STATUSES,
    REJECTION_EDGES,
    apply_transition,
    reachable_from,
)


def test_forward_transition_logs_event(app, demo_case_id):
    case = db.session.get(Case, demo_case_id)
    changed = apply_transition(
        case,
        CaseStatus.SITE_VISIT_PENDING,
        CaseStatus.WAITING_FOR_DRAWING,
        {"details": "visit done"},
    )
    db.session.commit()

    assert changed is True
    assert case.status == CaseStatus.WAITING_FOR_DRAWING
    event = CaseEvent.query.filter_by(case_id=case.id, event_type="STATUS_CHANGED").one()
    assert event.from_status == "SITE_VISIT_PENDING"
    assert event.to_status == "WAITING_FOR_DRAWING"


def test_undefined_edge_is_rejected(app, demo_case_id):
    case = db.session.get(Case, demo_case_id)
    with pytest.raises(InvalidTransition):
        apply_transition(case, CaseStatus.SITE_VISIT_PENDING, CaseStatus.ACTIVE)
    assert case.status == CaseStatus.SITE_VISIT_PENDING


def test_mismatched_predecessor_raises_stale_state(app, demo_case_id):
    case = db.session.get(Case, demo_case_id)
    with pytest.raises(StaleState):
        apply_transition(case, CaseStatus.BOQ_COMPLETED, CaseStatus.QUOTATION)


def test_repeating_a_transition_is_a_noop(app, demo_case_id):
    case = db.session.get(Case, demo_case_id)
    apply_transition(case, CaseStatus.SITE_VISIT_PENDING, CaseStatus.WAITING_FOR_DRAWING)
    db.session.commit()
    events_before = CaseEvent.query.filter_by(case_id=case.id).count()

    assert apply_transition(case, CaseStatus.SITE_VISIT_PENDING, CaseStatus.WAITING_FOR_DRAWING) is False
    db.session.commit()
    assert CaseEvent.query.filter_by(case_id=case.id).count() == events_before


def test_rejection_edge_requires_reason(app, demo_case_id):
    case = db.session.get(Case, demo_case_id)
    case.status = CaseStatus.PLANNING_SUBMITTED
    db.session.commit()

    with pytest.raises(ValidationError):
        apply_transition(case, CaseStatus.PLANNING_SUBMITTED, CaseStatus.WAITING_FOR_PLANNING, {"reason": "  "})

    apply_transition(
        case,
        CaseStatus.PLANNING_SUBMITTED,
        CaseStatus.WAITING_FOR_PLANNING,
        {"reason": "Phase 2 overlaps the delivery window"},
    )
    db.session.commit()
    assert case.last_rejection_reason == "Phase 2 overlaps the delivery window"


def test_completion_stamps_completed_at(app, demo_case_id):
    case = db.session.get(Case, demo_case_id)
    case.status = CaseStatus.ACTIVE
    db.session.commit()

    apply_transition(case, CaseStatus.ACTIVE, CaseStatus.COMPLETED)
    db.session.commit()
    assert case.completed_at is not None


def test_edge_set_never_returns_to_entry_or_leaves_completed():
    for source, targets in CASE_STATUS_TRANSITIONS.items():
        for target in targets:
            if (source, target) in REJECTION_EDGES:
                continue
            assert target not in {CaseStatus.SITE_VISIT_PENDING}
    assert reachable_from(CaseStatus.COMPLETED) == set()
    assert reachable_from(CaseStatus.ACTIVE) == {CaseStatus.COMPLETED}
    for entry in ENTRY_STATUSES:
        assert CaseStatus.COMPLETED in reachable_from(entry)


def test_rejection_edges_point_backwards():
    for source, target in REJECTION_EDGES:
        assert source in reachable_from(target)


def test_cases_are_never_deleted(app, demo_case_id):
    case = db.session.get(Case, demo_case_id)
    db.session.delete(case)
    with pytest.raises(InvalidTransition):
        db.session.flush()
    db.session.rollback()
    assert db.session.get(Case, demo_case_id) is not None
