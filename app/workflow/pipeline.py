from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

from flask import current_app

from app.core.exceptions import InvalidTransition, NotFoundError, ValidationError
from app.core.extensions import db
from app.core.models import Case, CaseBOQ, CaseStatus, CaseTask, TaskStatus, TaskType, TeamRole, utcnow
from app.core.tenancy import org_id
from app.core.transactions import run_in_transaction
from app.core.utils import parse_decimal
from app.workflow.state_machine import apply_transition, log_case_event

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SuccessorRule:
    successor: TaskType | None = None
    transition: tuple[CaseStatus, CaseStatus] | None = None
    deadline_hours_key: str | None = None


TASK_ROLES: dict[TaskType, TeamRole] = {
    TaskType.SITE_VISIT: TeamRole.SITE_ENGINEER,
    TaskType.DRAWING_TASK: TeamRole.DRAWING,
    TaskType.QUOTATION_TASK: TeamRole.QUOTATION,
    TaskType.PROCUREMENT_AUDIT: TeamRole.PROCUREMENT,
    TaskType.EXECUTION_PLANNING: TeamRole.EXECUTION,
}

PIPELINE: dict[TaskType, SuccessorRule] = {
    TaskType.SITE_VISIT: SuccessorRule(
        successor=TaskType.DRAWING_TASK,
        transition=(CaseStatus.SITE_VISIT_PENDING, CaseStatus.WAITING_FOR_DRAWING),
        deadline_hours_key="DRAWING_DEADLINE_HOURS",
    ),
    TaskType.DRAWING_TASK: SuccessorRule(
        successor=TaskType.QUOTATION_TASK,
        transition=(CaseStatus.WAITING_FOR_DRAWING, CaseStatus.BOQ_COMPLETED),
    ),
    TaskType.QUOTATION_TASK: SuccessorRule(
        successor=TaskType.PROCUREMENT_AUDIT,
        transition=(CaseStatus.BOQ_COMPLETED, CaseStatus.QUOTATION),
    ),
    TaskType.PROCUREMENT_AUDIT: SuccessorRule(successor=TaskType.EXECUTION_PLANNING),
    TaskType.EXECUTION_PLANNING: SuccessorRule(),
}

# A rejected audit sends the case back for re-pricing instead of planning.
AUDIT_REJECTED_RULE = SuccessorRule(
    successor=TaskType.QUOTATION_TASK,
    transition=(CaseStatus.QUOTATION, CaseStatus.BOQ_COMPLETED),
)

# Task types closed by a dedicated command rather than a bare completion.
COMMAND_COMPLETED_TASKS: dict[TaskType, str] = {
    TaskType.QUOTATION_TASK: "submitting a quotation",
    TaskType.PROCUREMENT_AUDIT: "resolving the procurement audit",
    TaskType.EXECUTION_PLANNING: "submitting the execution plan",
}


def get_task_or_404(task_id: int) -> CaseTask:
    task = CaseTask.query.filter_by(org_id=org_id(), id=task_id).first()
    if task is None:
        raise NotFoundError("Task", task_id)
    return task


def open_task(case: Case, task_type: TaskType) -> CaseTask | None:
    return (
        CaseTask.query.filter_by(case_id=case.id, type=task_type)
        .filter(CaseTask.status != TaskStatus.COMPLETED)
        .order_by(CaseTask.id.desc())
        .first()
    )


def successor_of(task: CaseTask) -> CaseTask | None:
    return CaseTask.query.filter_by(predecessor_task_id=task.id).first()


def list_tasks(filters: dict[str, str]) -> list[CaseTask]:
    query = CaseTask.query.filter_by(org_id=org_id())
    try:
        if filters.get("case_id"):
            query = query.filter(CaseTask.case_id == int(filters["case_id"]))
        if filters.get("assigned_to"):
            query = query.filter(CaseTask.assigned_to_user_id == int(filters["assigned_to"]))
    except ValueError as exc:
        raise ValidationError("Task filters take numeric ids", details={"filters": "invalid"}) from exc
    if filters.get("status"):
        try:
            query = query.filter(CaseTask.status == TaskStatus(filters["status"].upper()))
        except ValueError as exc:
            raise ValidationError("Unknown task status", details={"status": filters["status"]}) from exc
    return query.order_by(CaseTask.id.asc()).all()


def create_task(
    case: Case,
    task_type: TaskType,
    user_id: int | None,
    predecessor: CaseTask | None = None,
    deadline: datetime | None = None,
) -> CaseTask:
    role = TASK_ROLES[task_type]
    assignee = case.team_member_for(role)
    if assignee is None:
        logger.warning(
            "Case %s has no %s bound; assigning %s to the acting user",
            case.case_number,
            role.value,
            task_type.value,
            extra={"case_id": case.id},
        )
        assignee = user_id
    task = CaseTask(
        org_id=case.org_id,
        case_id=case.id,
        type=task_type,
        status=TaskStatus.PENDING,
        assigned_to_user_id=assignee,
        predecessor_task_id=predecessor.id if predecessor else None,
        deadline=deadline,
    )
    db.session.add(task)
    db.session.flush()
    log_case_event(case, "TASK_CREATED", f"{task_type.value} #{task.id}", user_id)
    return task


def _check_completion_requirements(task: CaseTask, case: Case, payload: dict) -> None:
    if task.type == TaskType.SITE_VISIT:
        task.km_travelled = parse_decimal(payload.get("km_travelled"), "km_travelled", positive=True)
    elif task.type == TaskType.DRAWING_TASK:
        has_boq = db.session.query(CaseBOQ.id).filter_by(case_id=case.id).first() is not None
        if not has_boq:
            raise ValidationError("Create a BOQ before completing the drawing task", details={"boq": "required"})


def complete_task_in_unit(
    task: CaseTask,
    payload: dict,
    user_id: int | None,
    rule: SuccessorRule | None = None,
) -> CaseTask | None:
    """Complete ``task`` inside the caller's unit of work and chain its successor.

    The completion, the case transition and the successor row are flushed
    together; the caller commits. Returns the successor task, or None when
    the task type has none or the task was already completed.
    """
    if task.status == TaskStatus.COMPLETED:
        return None
    case = task.case
    rule = rule or PIPELINE[task.type]
    _check_completion_requirements(task, case, payload)

    now = utcnow()
    task.status = TaskStatus.COMPLETED
    task.completed_at = now
    task.completed_by_user_id = user_id
    if task.started_at is None:
        task.started_at = now
    notes = str(payload.get("notes") or "").strip()
    if notes:
        task.completion_notes = notes[:500]
    db.session.add(task)

    if rule.transition is not None:
        from_status, to_status = rule.transition
        apply_transition(
            case,
            from_status,
            to_status,
            {
                "user_id": user_id,
                "reason": payload.get("reason"),
                "details": f"{task.type.value} #{task.id} completed",
            },
        )

    successor = None
    if rule.successor is not None:
        deadline = None
        if rule.deadline_hours_key:
            deadline = now + timedelta(hours=int(current_app.config[rule.deadline_hours_key]))
        successor = create_task(case, rule.successor, user_id, predecessor=task, deadline=deadline)

    log_case_event(case, "TASK_COMPLETED", f"{task.type.value} #{task.id}", user_id)
    db.session.flush()
    logger.info(
        "Task %s (%s) completed; successor=%s",
        task.id,
        task.type.value,
        successor.type.value if successor else "-",
        extra={"case_id": case.id, "task_id": task.id},
    )
    return successor


def _complete_task_unit(task_id: int, payload: dict, user_id: int | None) -> CaseTask:
    task = get_task_or_404(task_id)
    if task.status == TaskStatus.COMPLETED:
        return task
    if task.type in COMMAND_COMPLETED_TASKS:
        raise ValidationError(
            f"{task.type.value} is completed by {COMMAND_COMPLETED_TASKS[task.type]}",
            details={"task_type": task.type.value},
        )
    complete_task_in_unit(task, payload, user_id)
    return task


def complete_task(task_id: int, payload: dict | None = None, user_id: int | None = None) -> CaseTask:
    return run_in_transaction(_complete_task_unit, task_id, payload or {}, user_id)


def _start_task_unit(task_id: int, user_id: int | None) -> CaseTask:
    task = get_task_or_404(task_id)
    if task.status == TaskStatus.STARTED:
        return task
    if task.status == TaskStatus.COMPLETED:
        raise InvalidTransition(TaskStatus.COMPLETED.value, TaskStatus.STARTED.value)
    task.status = TaskStatus.STARTED
    task.started_at = utcnow()
    db.session.add(task)
    log_case_event(task.case, "TASK_STARTED", f"{task.type.value} #{task.id}", user_id)
    return task


def start_task(task_id: int, user_id: int | None = None) -> CaseTask:
    return run_in_transaction(_start_task_unit, task_id, user_id)
