from __future__ import annotations

import logging

from flask import Blueprint, g, jsonify, request
from flask_login import current_user, login_required, login_user, logout_user
from werkzeug.security import check_password_hash

from app.core.models import User

logger = logging.getLogger(__name__)

auth_bp = Blueprint("auth", __name__, url_prefix="/auth")


@auth_bp.post("/login")
def login_post():
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        payload = request.form
    email = str(payload.get("email") or "").strip().lower()
    password = str(payload.get("password") or "")
    user = User.query.filter_by(email=email).first()
    if not user or not user.is_active or not check_password_hash(user.password_hash, password):
        logger.info("Rejected login for %s", email or "<blank>")
        return jsonify({"error": "invalid_credentials", "message": "Invalid credentials"}), 401
    login_user(user)
    return jsonify({"id": user.id, "email": user.email, "full_name": user.full_name})


@auth_bp.post("/logout")
@login_required
def logout():
    logout_user()
    return jsonify({"status": "logged_out"})


@auth_bp.get("/me")
@login_required
def me():
    membership = getattr(g, "membership", None)
    return jsonify(
        {
            "id": current_user.id,
            "email": current_user.email,
            "full_name": current_user.full_name,
            "org": g.org.code if getattr(g, "org", None) else None,
            "role": membership.role if membership else None,
        }
    )
