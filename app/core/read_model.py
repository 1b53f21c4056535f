from __future__ import annotations

import logging
import threading
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from itertools import chain
from typing import Callable

from flask import current_app, has_app_context
from sqlalchemy import event
from sqlalchemy.orm import Session, selectinload

from app.core.extensions import db
from app.core.models import Case, CaseEvent, CaseTask

logger = logging.getLogger(__name__)

TOUCHED_CASES_KEY = "touched_case_ids"
EXTENSION_KEY = "case_snapshots"
DEFAULT_MAX_ENTRIES = 512


@dataclass(frozen=True)
class CostCenterSnapshot:
    has_cost_center: bool
    total_budget: Decimal
    spent_amount: Decimal
    remaining_amount: Decimal
    received_amount: Decimal


@dataclass(frozen=True)
class TaskSnapshot:
    id: int
    type: str
    status: str
    assigned_to_user_id: int | None
    predecessor_task_id: int | None
    deadline: datetime | None
    started_at: datetime | None
    completed_at: datetime | None


@dataclass(frozen=True)
class EventSnapshot:
    id: int
    event_type: str
    from_status: str
    to_status: str
    details: str
    user_id: int | None
    event_at: datetime


@dataclass(frozen=True)
class CaseSnapshot:
    id: int
    org_id: int
    case_number: str
    title: str
    client_name: str
    status: str
    archived: bool
    version: int
    cost_center: CostCenterSnapshot
    team: tuple[tuple[str, int], ...]
    tasks: tuple[TaskSnapshot, ...]
    events: tuple[EventSnapshot, ...]
    last_rejection_reason: str = ""
    execution_plan_approved: bool = False
    master_pdf_url: str = ""
    taken_at: datetime = field(default_factory=datetime.now)

    def open_tasks(self) -> tuple[TaskSnapshot, ...]:
        return tuple(task for task in self.tasks if task.status != "COMPLETED")

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "case_number": self.case_number,
            "title": self.title,
            "client_name": self.client_name,
            "status": self.status,
            "archived": self.archived,
            "version": self.version,
            "cost_center": _plain(self.cost_center.__dict__),
            "team": {role: user_id for role, user_id in self.team},
            "tasks": [_plain(task.__dict__) for task in self.tasks],
            "last_rejection_reason": self.last_rejection_reason,
            "execution_plan_approved": self.execution_plan_approved,
            "master_pdf_url": self.master_pdf_url,
        }

    def history(self) -> list[dict[str, object]]:
        return [_plain(item.__dict__) for item in self.events]


def _plain(values: dict[str, object]) -> dict[str, object]:
    out: dict[str, object] = {}
    for key, value in values.items():
        if isinstance(value, Decimal):
            out[key] = str(value)
        elif isinstance(value, (datetime, date)):
            out[key] = value.isoformat()
        elif isinstance(value, Enum):
            out[key] = value.value
        else:
            out[key] = value
    return out


def build_case_snapshot(case_id: int) -> CaseSnapshot | None:
    case = (
        Case.query.options(
            selectinload(Case.tasks),
            selectinload(Case.team_members),
            selectinload(Case.events),
            selectinload(Case.execution_plan),
        )
        .filter_by(id=case_id)
        .first()
    )
    if case is None:
        return None
    plan = case.execution_plan
    return CaseSnapshot(
        id=case.id,
        org_id=case.org_id,
        case_number=case.case_number,
        title=case.title,
        client_name=case.client_name,
        status=case.status.value,
        archived=case.archived,
        version=case.version,
        cost_center=CostCenterSnapshot(
            has_cost_center=case.has_cost_center,
            total_budget=Decimal(case.total_budget),
            spent_amount=Decimal(case.spent_amount),
            remaining_amount=Decimal(case.remaining_amount),
            received_amount=Decimal(case.received_amount),
        ),
        team=tuple(sorted((member.role.value, member.user_id) for member in case.team_members)),
        tasks=tuple(_task_snapshot(task) for task in case.tasks),
        events=tuple(_event_snapshot(item) for item in case.events),
        last_rejection_reason=case.last_rejection_reason,
        execution_plan_approved=bool(plan and plan.approved_by_admin),
        master_pdf_url=plan.master_pdf_url if plan else "",
    )


def _task_snapshot(task: CaseTask) -> TaskSnapshot:
    return TaskSnapshot(
        id=task.id,
        type=task.type.value,
        status=task.status.value,
        assigned_to_user_id=task.assigned_to_user_id,
        predecessor_task_id=task.predecessor_task_id,
        deadline=task.deadline,
        started_at=task.started_at,
        completed_at=task.completed_at,
    )


def _event_snapshot(item: CaseEvent) -> EventSnapshot:
    return EventSnapshot(
        id=item.id,
        event_type=item.event_type,
        from_status=item.from_status,
        to_status=item.to_status,
        details=item.details,
        user_id=item.user_id,
        event_at=item.event_at,
    )


class CaseSnapshotCache:
    def __init__(
        self,
        loader: Callable[[int], CaseSnapshot | None] = build_case_snapshot,
        max_entries: int = DEFAULT_MAX_ENTRIES,
    ) -> None:
        self._loader = loader
        self._max_entries = max(1, int(max_entries))
        self._lock = threading.RLock()
        self._snapshots: OrderedDict[int, CaseSnapshot] = OrderedDict()
        # Bumped on every invalidation; a build started before it is not stored.
        self._generation = 0
        self._subscribers: list[Callable[[int], None]] = []

    def __len__(self) -> int:
        with self._lock:
            return len(self._snapshots)

    def get(self, case_id: int) -> CaseSnapshot | None:
        with self._lock:
            cached = self._snapshots.get(case_id)
            if cached is not None:
                self._snapshots.move_to_end(case_id)
                return cached
            generation = self._generation
        snapshot = self._loader(case_id)
        if snapshot is None:
            return None
        with self._lock:
            if self._generation == generation:
                self._snapshots[case_id] = snapshot
                self._snapshots.move_to_end(case_id)
                while len(self._snapshots) > self._max_entries:
                    self._snapshots.popitem(last=False)
        return snapshot

    def invalidate(self, case_ids) -> None:
        ids = sorted(set(case_ids))
        with self._lock:
            for case_id in ids:
                self._snapshots.pop(case_id, None)
            if ids:
                self._generation += 1
            subscribers = list(self._subscribers)
        for case_id in ids:
            for callback in subscribers:
                try:
                    callback(case_id)
                except Exception:
                    # The commit already happened; a broken listener must not undo it.
                    logger.exception("Snapshot subscriber failed for case %s", case_id, extra={"case_id": case_id})

    def subscribe(self, callback: Callable[[int], None]) -> Callable[[], None]:
        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    def clear(self) -> None:
        with self._lock:
            self._snapshots.clear()
            self._generation += 1


def snapshot_cache() -> CaseSnapshotCache:
    return current_app.extensions[EXTENSION_KEY]


def init_read_model(app) -> CaseSnapshotCache:
    cache = CaseSnapshotCache(max_entries=app.config.get("SNAPSHOT_CACHE_SIZE", DEFAULT_MAX_ENTRIES))
    app.extensions[EXTENSION_KEY] = cache
    return cache


def mark_case_touched(case_id: int | None, session=None) -> None:
    """Record a case id for writes that bypass the unit of work (bulk UPDATEs)."""
    if case_id is None:
        return
    session = session if session is not None else db.session()
    session.info.setdefault(TOUCHED_CASES_KEY, set()).add(case_id)


@event.listens_for(Session, "after_flush")
def _collect_touched_cases(session, _flush_context) -> None:
    for obj in chain(session.new, session.dirty, session.deleted):
        if isinstance(obj, Case):
            case_id = obj.id
        else:
            case_id = getattr(obj, "case_id", None)
        if case_id is not None:
            session.info.setdefault(TOUCHED_CASES_KEY, set()).add(case_id)


@event.listens_for(Session, "after_commit")
def _publish_committed_cases(session) -> None:
    case_ids = session.info.pop(TOUCHED_CASES_KEY, None)
    if not case_ids or not has_app_context():
        return
    cache = current_app.extensions.get(EXTENSION_KEY)
    if cache is not None:
        cache.invalidate(case_ids)


@event.listens_for(Session, "after_soft_rollback")
def _discard_touched_cases(session, _previous_transaction) -> None:
    session.info.pop(TOUCHED_CASES_KEY, None)
