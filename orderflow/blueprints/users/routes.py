"""
User management.

Rules enforced:
- Only admins create / edit users.
- Usernames are unique; passwords are only ever stored hashed.
- An admin cannot deactivate or demote themselves (avoids locking the system out).
- Department member lists (for assignee pickers) are open to every logged-in user.

Audit:
- CREATE / UPDATE logged (password hash excluded from snapshots)
"""

from __future__ import annotations

from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required

from ...audit import log_action, serialize_model
from ...constants import Department, Role, normalize_choice
from ...errors import ValidationError
from ...extensions import db
from ...models import User
from ...security import admin_required
from ...serializers import user_dict
from ...services import commit
from ...utils import clean_str, json_body, parse_bool, production_substages

users_bp = Blueprint("users", __name__, url_prefix="/users")


def _apply_profile_fields(user: User, data: dict) -> None:
    """Shared create / edit field handling."""
    if "full_name" in data:
        user.full_name = clean_str(data.get("full_name")) or ""
    if "email" in data:
        user.email = clean_str(data.get("email"))
    if "phone" in data:
        user.phone = clean_str(data.get("phone"))
    if "role" in data:
        user.role = normalize_choice(data.get("role"), Role.ALL, "role")
    if "department" in data:
        user.department = normalize_choice(data.get("department"), Department.ALL, "department", required=False)
    if "production_stage" in data:
        user.production_stage = normalize_choice(
            data.get("production_stage"),
            production_substages(),
            "production stage",
            required=False,
        )
    if user.role != Role.PRODUCTION:
        user.production_stage = None


# ----------------------------------------------------------------------
# Admin user management
# ----------------------------------------------------------------------
@users_bp.route("", methods=["GET"])
@login_required
@admin_required
def list_users():
    query = User.query
    if not parse_bool(request.args.get("include_inactive", "1")):
        query = query.filter_by(is_active=True)
    users = query.order_by(User.username.asc()).all()
    return jsonify({"status": "success", "users": [user_dict(u) for u in users]})


@users_bp.route("", methods=["POST"])
@login_required
@admin_required
def create_user():
    data = json_body()
    username = clean_str(data.get("username"))
    password = data.get("password") or ""

    errors = []
    if not username:
        errors.append("Username is required")
    elif User.query.filter_by(username=username).first():
        errors.append("Username already exists")
    if len(password) < 6:
        errors.append("Password must be at least 6 characters")
    if not data.get("role"):
        errors.append("Role is required")
    if errors:
        raise ValidationError(errors)

    user = User(username=username, is_active=True)
    _apply_profile_fields(user, data)
    user.set_password(password)

    db.session.add(user)
    db.session.flush()
    log_action(user, "CREATE", before=None, after=serialize_model(user))
    commit("create user")

    return jsonify({"status": "success", "user": user_dict(user)}), 201


@users_bp.route("/<int:user_id>", methods=["PATCH"])
@login_required
@admin_required
def update_user(user_id: int):
    user = db.get_or_404(User, user_id)
    data = json_body()
    before = serialize_model(user)

    _apply_profile_fields(user, data)
    if "is_active" in data:
        user.is_active = parse_bool(data.get("is_active"))
    if data.get("password"):
        if len(data["password"]) < 6:
            raise ValidationError("Password must be at least 6 characters")
        user.set_password(data["password"])

    if user.id == current_user.id and (not user.is_active or user.role != Role.ADMIN):
        db.session.rollback()
        raise ValidationError("You cannot deactivate or demote your own account")

    log_action(user, "UPDATE", before=before, after=serialize_model(user))
    commit("update user")
    return jsonify({"status": "success", "user": user_dict(user)})


# ----------------------------------------------------------------------
# Department members (assignee pickers)
# ----------------------------------------------------------------------
@users_bp.route("/department/<department>", methods=["GET"])
@login_required
def department_members(department: str):
    department = normalize_choice(department, Department.ALL, "department")
    users = (
        User.query.filter(User.is_active.is_(True))
        .filter(db.or_(User.department == department, db.and_(User.department.is_(None), User.role == department)))
        .order_by(User.full_name.asc(), User.username.asc())
        .all()
    )
    return jsonify({"status": "success", "department": department, "users": [user_dict(u) for u in users]})
