from __future__ import annotations

from functools import wraps

from flask import abort, g
from flask_login import current_user

from app.core.exceptions import PermissionDenied

ADMIN = "admin"
SALES_GM = "sales_gm"

CAPABILITIES: dict[str, frozenset[str]] = {
    "read_internal_pr_code": frozenset({ADMIN, SALES_GM, "quotation"}),
    "approve_execution_plan": frozenset({ADMIN}),
    "approve_budget": frozenset({ADMIN, "accounts"}),
    "resolve_audit": frozenset({ADMIN, "procurement"}),
    "post_invoice": frozenset({ADMIN, "accounts"}),
}


def membership_role(membership=None) -> str:
    membership = membership if membership is not None else getattr(g, "membership", None)
    if membership is None:
        return ""
    return (membership.role or "").lower()


def has_capability(capability: str, membership=None) -> bool:
    return membership_role(membership) in CAPABILITIES.get(capability, frozenset())


def ensure_capability(capability: str, membership=None) -> None:
    if not has_capability(capability, membership):
        raise PermissionDenied(capability)


def require_membership(fn):
    @wraps(fn)
    def wrapper(*args, **kwargs):
        if not current_user.is_authenticated:
            abort(401)
        if getattr(g, "org", None) is None:
            abort(403)
        return fn(*args, **kwargs)

    return wrapper


def require_role(*roles: str):
    allowed = {role.lower() for role in roles}

    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            if not current_user.is_authenticated:
                abort(401)
            membership = getattr(g, "membership", None)
            if membership is None:
                abort(403)
            if membership_role(membership) not in allowed:
                abort(403)
            return fn(*args, **kwargs)

        return wrapper

    return decorator
