from flask import Blueprint

workflow_bp = Blueprint("workflow", __name__, url_prefix="/api")

from app.workflow import routes  # noqa: E402,F401
