from __future__ import annotations

from datetime import timedelta

import pytest
from sqlalchemy.exc import IntegrityError

from app.core.exceptions import InvalidTransition, NotFoundError, ValidationError
from app.core.extensions import db
from app.core.models import Case, CaseStatus, CaseTask, TaskStatus, TaskType
from app.workflow.pipeline import TASK_ROLES, complete_task, create_task, start_task, successor_of
from app.workflow.services import create_case
from tests.conftest import open_task_of


def test_site_visit_completion_creates_drawing_task_with_deadline(app, act_as, demo_case_id):
    site_visit = open_task_of(demo_case_id, TaskType.SITE_VISIT)
    with act_as("engineer@casework.local") as user:
        complete_task(site_visit.id, {"km_travelled": "22"}, user.id)

    db.session.expire_all()
    site_visit = db.session.get(CaseTask, site_visit.id)
    drawing = successor_of(site_visit)
    case = db.session.get(Case, demo_case_id)

    assert site_visit.status == TaskStatus.COMPLETED
    assert drawing.type == TaskType.DRAWING_TASK
    assert drawing.status == TaskStatus.PENDING
    assert drawing.deadline - site_visit.completed_at == timedelta(hours=4)
    assert case.status == CaseStatus.WAITING_FOR_DRAWING
    assert drawing.assigned_to_user_id == case.team_member_for(TASK_ROLES[TaskType.DRAWING_TASK])


def test_duplicate_completion_yields_a_single_successor(app, act_as, demo_case_id):
    site_visit = open_task_of(demo_case_id, TaskType.SITE_VISIT)
    with act_as("engineer@casework.local") as user:
        for _ in range(3):
            complete_task(site_visit.id, {"km_travelled": "5"}, user.id)

    assert CaseTask.query.filter_by(case_id=demo_case_id, type=TaskType.DRAWING_TASK).count() == 1
    assert CaseTask.query.filter_by(predecessor_task_id=site_visit.id).count() == 1


def test_second_successor_for_same_predecessor_is_refused_by_the_database(app, act_as, demo_case_id):
    site_visit = open_task_of(demo_case_id, TaskType.SITE_VISIT)
    with act_as("engineer@casework.local") as user:
        complete_task(site_visit.id, {"km_travelled": "5"}, user.id)
        case = db.session.get(Case, demo_case_id)
        with pytest.raises(IntegrityError):
            create_task(case, TaskType.DRAWING_TASK, user.id, predecessor=site_visit)
        db.session.rollback()


def test_site_visit_needs_distance(app, act_as, demo_case_id):
    site_visit = open_task_of(demo_case_id, TaskType.SITE_VISIT)
    with act_as("engineer@casework.local") as user:
        with pytest.raises(ValidationError):
            complete_task(site_visit.id, {}, user.id)

    db.session.expire_all()
    assert db.session.get(CaseTask, site_visit.id).status == TaskStatus.PENDING
    assert db.session.get(Case, demo_case_id).status == CaseStatus.SITE_VISIT_PENDING
    assert CaseTask.query.filter_by(case_id=demo_case_id, type=TaskType.DRAWING_TASK).count() == 0


def test_drawing_task_needs_a_boq(app, act_as, demo_case_id):
    site_visit = open_task_of(demo_case_id, TaskType.SITE_VISIT)
    with act_as("engineer@casework.local") as user:
        complete_task(site_visit.id, {"km_travelled": "5"}, user.id)
    drawing = open_task_of(demo_case_id, TaskType.DRAWING_TASK)
    with act_as("drawing@casework.local") as user:
        with pytest.raises(ValidationError):
            complete_task(drawing.id, {}, user.id)


def test_command_completed_tasks_refuse_bare_completion(app, act_as, drive, demo_case_id):
    drive(demo_case_id, "boq")
    quotation_task = open_task_of(demo_case_id, TaskType.QUOTATION_TASK)
    with act_as("quotation@casework.local") as user:
        with pytest.raises(ValidationError):
            complete_task(quotation_task.id, {}, user.id)


def test_start_task_is_idempotent_and_closed_tasks_cannot_restart(app, act_as, demo_case_id):
    site_visit = open_task_of(demo_case_id, TaskType.SITE_VISIT)
    with act_as("engineer@casework.local") as user:
        first = start_task(site_visit.id, user.id)
        started_at = first.started_at
        again = start_task(site_visit.id, user.id)
        assert again.status == TaskStatus.STARTED
        assert again.started_at == started_at

        complete_task(site_visit.id, {"km_travelled": "3"}, user.id)
        with pytest.raises(InvalidTransition):
            start_task(site_visit.id, user.id)


def test_tasks_of_another_organization_are_not_found(app, act_as, demo_case_id):
    from app.core.models import Membership, Organization, User

    other = Organization(name="Other Org", code="OTHER")
    outsider = User(email="outsider@example.com", full_name="Outsider", password_hash="x")
    db.session.add_all([other, outsider])
    db.session.flush()
    db.session.add(Membership(user_id=outsider.id, org_id=other.id, role="admin"))
    db.session.commit()

    site_visit = open_task_of(demo_case_id, TaskType.SITE_VISIT)
    with act_as("outsider@example.com") as user:
        with pytest.raises(NotFoundError):
            complete_task(site_visit.id, {"km_travelled": "3"}, user.id)


def test_case_created_at_planning_gets_planning_task(app, act_as, user_id):
    with act_as("salesgm@casework.local") as user:
        case = create_case(
            {
                "title": "Office partition",
                "client_name": "Borealis Ltd",
                "status": "WAITING_FOR_PLANNING",
                "team": {"execution": user_id("execution@casework.local")},
            },
            user.id,
        )
    assert case.case_number == "CASE-0002"
    task = open_task_of(case.id, TaskType.EXECUTION_PLANNING)
    assert task is not None
    assert task.assigned_to_user_id == user_id("execution@casework.local")


def test_case_cannot_be_created_mid_pipeline(app, act_as):
    with act_as() as user:
        with pytest.raises(InvalidTransition):
            create_case({"title": "Skip ahead", "client_name": "Nobody", "status": "ACTIVE"}, user.id)
