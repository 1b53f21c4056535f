from __future__ import annotations

import logging

import click
from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException

from app.core.auth import auth_bp
from app.core.config import Config
from app.core.exceptions import WorkflowError
from app.core.extensions import db, login_manager, migrate
from app.core.logging_config import configure_logging
from app.core.models import Organization, User, seed_demo_data
from app.core.read_model import init_read_model
from app.core.tenancy import load_tenant_context
from app.ledger import ledger_bp
from app.workflow import workflow_bp
from app.workflow.documents import init_documents

logger = logging.getLogger(__name__)


def create_app(config_object: type[Config] | None = None) -> Flask:
    app = Flask(__name__)
    app.config.from_object(config_object or Config)
    configure_logging(app)

    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)
    init_read_model(app)
    init_documents(app)

    app.before_request(load_tenant_context)

    app.register_blueprint(auth_bp)
    app.register_blueprint(workflow_bp)
    app.register_blueprint(ledger_bp)

    register_error_handlers(app)
    register_cli(app)
    register_routes(app)
    return app


def register_routes(app: Flask) -> None:
    @app.get("/health")
    def health():
        return jsonify({"status": "ok"})


def register_error_handlers(app: Flask) -> None:
    @app.errorhandler(WorkflowError)
    def workflow_error(error: WorkflowError):
        if error.status_code >= 500:
            logger.error("Unhandled workflow failure: %s", error, exc_info=error)
        else:
            logger.info("Rejected command: %s (%s)", error, error.code)
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(HTTPException)
    def http_error(error: HTTPException):
        code = (error.name or "error").lower().replace(" ", "_")
        return jsonify({"error": code, "message": error.description}), error.code


def register_cli(app: Flask) -> None:
    @app.cli.command("seed-demo")
    @click.option("--reset", is_flag=True, help="Delete existing data before seed.")
    def seed_demo(reset: bool) -> None:
        """Seed a demo organization, its team and one open case."""
        if reset:
            db.drop_all()
            db.create_all()
        if not Organization.query.first():
            seed_demo_data(db.session)
            click.echo("Demo data seeded.")
        else:
            click.echo("Seed skipped: existing organizations found.")

    @app.cli.command("documents-retry")
    @click.option("--limit", type=int, default=100, show_default=True, help="Maximum requests to retry.")
    def documents_retry(limit: int) -> None:
        """Retry document generation requests that have not succeeded yet."""
        from app.workflow.documents import retry_pending_documents

        done, failed = retry_pending_documents(limit)
        click.echo(f"documents done={done} failed={failed}")

    @app.cli.command("ledger-verify")
    @click.option("--org-code", type=str, default=None, help="Optional organization code.")
    def ledger_verify(org_code: str | None) -> None:
        """Check that every ledger transaction balances."""
        from app.ledger.services import verify_ledger

        query = Organization.query
        if org_code:
            query = query.filter_by(code=org_code)
        organizations = query.order_by(Organization.id.asc()).all()
        if not organizations:
            click.echo("No organizations found.")
            return

        unbalanced = 0
        for organization in organizations:
            problems = verify_ledger(organization.id)
            unbalanced += len(problems)
            for problem in problems:
                click.echo(
                    f"[{organization.code}] {problem['transaction_id']} "
                    f"debits={problem['debits']} credits={problem['credits']}"
                )
            click.echo(f"[{organization.code}] unbalanced={len(problems)}")
        if unbalanced:
            raise click.exceptions.Exit(1)


@login_manager.user_loader
def load_user(user_id: str) -> User | None:
    return db.session.get(User, int(user_id))
