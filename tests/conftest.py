from __future__ import annotations

import sys
from contextlib import contextmanager
from datetime import date, timedelta
from pathlib import Path

import pytest
from flask import g

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from app import create_app
from app.core.config import Config
from app.core.extensions import db
from app.core.models import Case, CaseTask, Membership, Organization, TaskType, User, seed_demo_data

ADMIN_EMAIL = "admin@casework.local"


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    SECRET_KEY = "test-secret"
    LOG_LEVEL = "WARNING"


@pytest.fixture
def app(tmp_path):
    class _Config(TestConfig):
        DOCUMENT_STORAGE_DIR = str(tmp_path / "documents")

    app = create_app(_Config)
    with app.app_context():
        db.create_all()
        seed_demo_data(db.session)
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def login_as(client):
    def _login(email: str = ADMIN_EMAIL, password: str | None = None):
        if password is None:
            password = "admin123" if email == ADMIN_EMAIL else "demo123"
        return client.post("/auth/login", json={"email": email, "password": password})

    return _login


@pytest.fixture
def demo_org(app) -> Organization:
    return Organization.query.filter_by(code="DEMO").first()


@pytest.fixture
def user_id(app):
    def _lookup(email: str) -> int:
        return User.query.filter_by(email=email).first().id

    return _lookup


@pytest.fixture
def act_as(app):
    """Run service calls with the tenant context of ``email`` bound to ``g``."""

    @contextmanager
    def _act(email: str = ADMIN_EMAIL):
        user = User.query.filter_by(email=email).first()
        membership = Membership.query.filter_by(user_id=user.id).first()
        with app.test_request_context("/"):
            g.org = membership.organization
            g.membership = membership
            yield user

    return _act


@pytest.fixture
def demo_case_id(app) -> int:
    return Case.query.filter_by(case_number="CASE-0001").first().id


def open_task_of(case_id: int, task_type: TaskType) -> CaseTask:
    return (
        CaseTask.query.filter_by(case_id=case_id, type=task_type)
        .filter(CaseTask.completed_at.is_(None))
        .order_by(CaseTask.id.desc())
        .first()
    )


BOQ_ITEMS = [
    {"name": "Plywood sheet 18mm", "unit": "sheet", "quantity": "12"},
    {"name": "Soft-close hinge", "unit": "pcs", "quantity": "24"},
]


def phases_payload() -> list[dict[str, object]]:
    start = date(2026, 11, 2)
    return [
        {
            "name": "Carcass build",
            "start_date": start.isoformat(),
            "end_date": (start + timedelta(days=6)).isoformat(),
            "labor_count": 3,
            "material_delivery_date": (start - timedelta(days=2)).isoformat(),
        },
        {
            "name": "Fitting and finish",
            "start_date": (start + timedelta(days=7)).isoformat(),
            "end_date": (start + timedelta(days=12)).isoformat(),
            "labor_count": 2,
            "material_delivery_date": (start + timedelta(days=5)).isoformat(),
        },
    ]


@pytest.fixture
def drive(act_as, user_id):
    """Move the demo case forward through the pipeline, one named stage at a time."""
    from app.workflow.execution import approve_execution_plan, submit_execution_plan
    from app.workflow.pipeline import complete_task
    from app.workflow.quotations import create_boq, resolve_audit, submit_quotation

    def _to(case_id: int, stage: str):
        stages = ["site_visit", "boq", "quotation", "audit", "plan", "active"]
        results: dict[str, object] = {}
        for current in stages[: stages.index(stage) + 1]:
            if current == "site_visit":
                with act_as("engineer@casework.local") as user:
                    task = open_task_of(case_id, TaskType.SITE_VISIT)
                    results["site_visit"] = complete_task(task.id, {"km_travelled": "14.5"}, user.id)
            elif current == "boq":
                with act_as("drawing@casework.local") as user:
                    results["boq"] = create_boq(case_id, BOQ_ITEMS, user.id)
            elif current == "quotation":
                with act_as("quotation@casework.local") as user:
                    boq = results.get("boq")
                    items = [{"boq_item_id": item.id, "rate": "150"} for item in boq.items] if boq else []
                    results["quotation"] = submit_quotation(
                        case_id,
                        {"items": items, "discount": "10", "tax_rate": "18", "internal_pr_code": "PR-7781"},
                        user.id,
                        g.membership,
                    )
            elif current == "audit":
                with act_as("procurement@casework.local") as user:
                    results["audit"] = resolve_audit(results["quotation"].id, "approve", None, user.id)
            elif current == "plan":
                with act_as("execution@casework.local") as user:
                    results["plan"] = submit_execution_plan(
                        case_id,
                        {"financial_plan": {"total_budget": "100000"}, "phases": phases_payload()},
                        user.id,
                    )
            elif current == "active":
                with act_as() as user:
                    results["active"] = approve_execution_plan(case_id, user.id)
        return results

    return _to
