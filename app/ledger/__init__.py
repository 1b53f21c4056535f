from flask import Blueprint

ledger_bp = Blueprint("ledger", __name__, url_prefix="/api/ledger")

from app.ledger import routes  # noqa: E402,F401
