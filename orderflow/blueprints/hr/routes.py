"""
orderflow/blueprints/hr/routes.py

HR routes: leave types, balances, leave requests, holidays, payroll, employee profiles.

Permissions:
- Every logged-in user: own balances, own leave requests (create / cancel), holiday list,
  own payroll records.
- Admin: leave type and holiday master data, approve / reject leave, payroll, profiles,
  and everybody's records (?user_id=).

Viewers may still request and cancel their own leave (see VIEWER_ALLOWED_ENDPOINTS).
"""

from __future__ import annotations

from datetime import date

from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required

from ...errors import PermissionDenied
from ...extensions import db
from ...models import Holiday, LeaveRequest, LeaveType, PayrollRecord, User
from ...security import admin_required, is_admin
from ...serializers import model_row
from ...services import hr as hr_service
from ...utils import json_body, parse_bool, parse_optional_int

hr_bp = Blueprint("hr", __name__, url_prefix="/hr")

LEAVE_TYPE_FIELDS = ("id", "name", "days_allowed_per_year", "is_carry_forward", "is_paid", "color", "is_active")
LEAVE_REQUEST_FIELDS = (
    "id", "user_id", "leave_type_id", "start_date", "end_date", "days_count", "duration_type",
    "reason", "status", "approved_by_id", "rejection_reason", "decided_at", "created_at",
)
HOLIDAY_FIELDS = ("id", "name", "date", "day_of_week", "type", "year")
PAYROLL_FIELDS = (
    "id", "user_id", "month", "year", "base_salary", "bonus", "deductions", "net_salary", "status", "paid_at",
)
PROFILE_FIELDS = ("id", "user_id", "joining_date", "designation", "employment_status", "base_salary")


def _target_user_id() -> int:
    """?user_id= for admins, the caller otherwise."""
    requested = parse_optional_int(request.args.get("user_id"))
    if requested is None or requested == current_user.id:
        return current_user.id
    if not is_admin():
        raise PermissionDenied("You can only view your own records")
    return requested


def _year() -> int:
    return parse_optional_int(request.args.get("year")) or date.today().year


def _leave_row(leave: LeaveRequest) -> dict:
    row = model_row(leave, LEAVE_REQUEST_FIELDS)
    row["leave_type"] = leave.leave_type.name if leave.leave_type else None
    row["user_name"] = leave.user.display_name if leave.user else None
    return row


# ----------------------------------------------------------------------
# Leave types
# ----------------------------------------------------------------------
@hr_bp.route("/leave-types", methods=["GET"])
@login_required
def leave_types():
    query = LeaveType.query
    if not parse_bool(request.args.get("include_inactive")):
        query = query.filter_by(is_active=True)
    rows = query.order_by(LeaveType.name.asc()).all()
    return jsonify({"status": "success", "leave_types": [model_row(t, LEAVE_TYPE_FIELDS) for t in rows]})


@hr_bp.route("/leave-types", methods=["POST"])
@login_required
@admin_required
def create_leave_type():
    leave_type = hr_service.save_leave_type(json_body())
    return jsonify({"status": "success", "leave_type": model_row(leave_type, LEAVE_TYPE_FIELDS)}), 201


@hr_bp.route("/leave-types/<int:type_id>", methods=["PATCH"])
@login_required
@admin_required
def update_leave_type(type_id: int):
    leave_type = hr_service.save_leave_type(json_body(), db.get_or_404(LeaveType, type_id))
    return jsonify({"status": "success", "leave_type": model_row(leave_type, LEAVE_TYPE_FIELDS)})


# ----------------------------------------------------------------------
# Balances / leave requests
# ----------------------------------------------------------------------
@hr_bp.route("/leave-balances", methods=["GET"])
@login_required
def leave_balances():
    user_id = _target_user_id()
    balances = hr_service.balances_for(user_id, _year())
    return jsonify(
        {
            "status": "success",
            "user_id": user_id,
            "balances": [
                {
                    "leave_type_id": b.leave_type_id,
                    "leave_type": b.leave_type.name,
                    "year": b.year,
                    "balance": b.balance,
                    "used": b.used,
                    "remaining": b.remaining,
                }
                for b in balances
            ],
        }
    )


@hr_bp.route("/leave-requests", methods=["GET"])
@login_required
def leave_requests():
    query = LeaveRequest.query
    if not (is_admin() and parse_bool(request.args.get("all"))):
        query = query.filter_by(user_id=_target_user_id())
    status = request.args.get("status")
    if status:
        query = query.filter_by(status=status.strip().lower())
    rows = query.order_by(LeaveRequest.created_at.desc(), LeaveRequest.id.desc()).all()
    return jsonify({"status": "success", "leave_requests": [_leave_row(r) for r in rows]})


@hr_bp.route("/leave-requests", methods=["POST"])
@login_required
def create_leave_request():
    leave = hr_service.request_leave(current_user._get_current_object(), json_body())
    return jsonify({"status": "success", "leave_request": _leave_row(leave)}), 201


@hr_bp.route("/leave-requests/<int:leave_id>/approve", methods=["POST"])
@login_required
@admin_required
def approve_leave_request(leave_id: int):
    leave = hr_service.decide_leave(db.get_or_404(LeaveRequest, leave_id), True, current_user._get_current_object())
    return jsonify({"status": "success", "leave_request": _leave_row(leave)})


@hr_bp.route("/leave-requests/<int:leave_id>/reject", methods=["POST"])
@login_required
@admin_required
def reject_leave_request(leave_id: int):
    leave = hr_service.decide_leave(
        db.get_or_404(LeaveRequest, leave_id),
        False,
        current_user._get_current_object(),
        json_body().get("reason"),
    )
    return jsonify({"status": "success", "leave_request": _leave_row(leave)})


@hr_bp.route("/leave-requests/<int:leave_id>/cancel", methods=["POST"])
@login_required
def cancel_leave_request(leave_id: int):
    leave = hr_service.cancel_leave(db.get_or_404(LeaveRequest, leave_id), current_user._get_current_object())
    return jsonify({"status": "success", "leave_request": _leave_row(leave)})


# ----------------------------------------------------------------------
# Holidays
# ----------------------------------------------------------------------
@hr_bp.route("/holidays", methods=["GET"])
@login_required
def holidays():
    rows = Holiday.query.filter_by(year=_year()).order_by(Holiday.date.asc()).all()
    return jsonify({"status": "success", "holidays": [model_row(h, HOLIDAY_FIELDS) for h in rows]})


@hr_bp.route("/holidays", methods=["POST"])
@login_required
@admin_required
def create_holiday():
    holiday = hr_service.add_holiday(json_body())
    return jsonify({"status": "success", "holiday": model_row(holiday, HOLIDAY_FIELDS)}), 201


@hr_bp.route("/holidays/<int:holiday_id>", methods=["DELETE"])
@login_required
@admin_required
def remove_holiday(holiday_id: int):
    hr_service.delete_holiday(db.get_or_404(Holiday, holiday_id))
    return jsonify({"status": "success", "message": "Holiday deleted"})


# ----------------------------------------------------------------------
# Payroll
# ----------------------------------------------------------------------
@hr_bp.route("/payroll", methods=["GET"])
@login_required
def payroll():
    query = PayrollRecord.query
    if not (is_admin() and parse_bool(request.args.get("all"))):
        query = query.filter_by(user_id=_target_user_id())
    year = parse_optional_int(request.args.get("year"))
    if year is not None:
        query = query.filter_by(year=year)
    rows = query.order_by(PayrollRecord.year.desc(), PayrollRecord.month.desc()).all()
    return jsonify({"status": "success", "payroll": [model_row(r, PAYROLL_FIELDS) for r in rows]})


@hr_bp.route("/payroll", methods=["POST"])
@login_required
@admin_required
def save_payroll():
    record = hr_service.save_payroll(json_body())
    return jsonify({"status": "success", "payroll": model_row(record, PAYROLL_FIELDS)})


@hr_bp.route("/payroll/<int:record_id>/paid", methods=["POST"])
@login_required
@admin_required
def mark_paid(record_id: int):
    record = hr_service.mark_payroll_paid(db.get_or_404(PayrollRecord, record_id))
    return jsonify({"status": "success", "payroll": model_row(record, PAYROLL_FIELDS)})


# ----------------------------------------------------------------------
# Employee profiles
# ----------------------------------------------------------------------
@hr_bp.route("/profiles/<int:user_id>", methods=["GET"])
@login_required
def profile(user_id: int):
    if user_id != current_user.id and not is_admin():
        raise PermissionDenied("You can only view your own profile")
    user = db.get_or_404(User, user_id)
    data = model_row(user.hr_profile, PROFILE_FIELDS) if user.hr_profile else None
    return jsonify({"status": "success", "user_id": user.id, "profile": data})


@hr_bp.route("/profiles/<int:user_id>", methods=["PUT"])
@login_required
@admin_required
def save_profile(user_id: int):
    saved = hr_service.save_profile(db.get_or_404(User, user_id), json_body())
    return jsonify({"status": "success", "user_id": user_id, "profile": model_row(saved, PROFILE_FIELDS)})
