"""
Authentication routes.

Provides:
- POST /auth/login
- POST /auth/logout
- GET  /auth/me
- GET  /auth/csrf-token (API clients send it back as X-CSRFToken)
- POST /auth/seed-admin (first system bootstrap)

Rules:
- Only active users may log in.
- seed-admin only works while the users table is empty.
"""

from __future__ import annotations

import logging

from flask import Blueprint, jsonify
from flask_login import current_user, login_required, login_user, logout_user
from flask_wtf.csrf import generate_csrf

from ...constants import Role
from ...errors import ValidationError
from ...extensions import db
from ...models import User
from ...serializers import user_dict
from ...utils import clean_str, json_body

logger = logging.getLogger(__name__)

auth_bp = Blueprint("auth", __name__, url_prefix="/auth")


# ============================================================
# LOGIN / LOGOUT
# ============================================================

@auth_bp.route("/login", methods=["POST"])
def login():
    """Authenticate a user with username + password."""
    data = json_body()
    username = clean_str(data.get("username")) or ""
    password = data.get("password") or ""

    user = User.query.filter_by(username=username).first()

    if not user or not user.check_password(password):
        logger.info("Failed login for %r", username)
        return jsonify({"status": "error", "message": "Invalid username or password", "code": "UNAUTHORIZED"}), 401

    if not user.is_active:
        return jsonify({"status": "error", "message": "This account is disabled", "code": "FORBIDDEN"}), 403

    login_user(user, remember=bool(data.get("remember")))
    return jsonify({"status": "success", "user": user_dict(user)})


@auth_bp.route("/logout", methods=["POST"])
@login_required
def logout():
    """Log out the current user."""
    logout_user()
    return jsonify({"status": "success", "message": "Logged out"})


@auth_bp.route("/me")
@login_required
def me():
    return jsonify({"status": "success", "user": user_dict(current_user)})


@auth_bp.route("/csrf-token")
def csrf_token():
    return jsonify({"status": "success", "csrf_token": generate_csrf()})


# ============================================================
# SEED FIRST ADMIN (BOOTSTRAP)
# ============================================================

@auth_bp.route("/seed-admin", methods=["POST"])
def seed_admin():
    """
    Bootstrap the FIRST admin of the system.

    Safety rules:
    - If ANY user already exists -> blocked
    """
    if User.query.count() > 0:
        return jsonify({"status": "error", "message": "A user already exists", "code": "FORBIDDEN"}), 403

    data = json_body()
    username = clean_str(data.get("username"))
    password = data.get("password") or ""
    if not username or not password:
        raise ValidationError("Username and password are required")

    user = User(
        username=username,
        full_name=clean_str(data.get("full_name")) or "Administrator",
        role=Role.ADMIN,
        is_active=True,
    )
    user.set_password(password)
    db.session.add(user)
    db.session.commit()

    logger.info("First admin %s created", username)
    return jsonify({"status": "success", "user": user_dict(user)}), 201
