"""
orderflow/services/hr.py

HR reference data and leave / payroll bookkeeping.

Leave requests:
- days are counted inclusively, skipping Sundays and mandatory holidays
- a half day counts 0.5 and must be a single date
- pending -> approved | rejected | cancelled, approved -> cancelled
- approval consumes the year's balance, cancelling an approved request gives it back

Balances are created lazily per (user, leave type, year) from the type's yearly allowance;
carry-forward types add what was left of the previous year.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from typing import Any, Dict, Iterable, Optional, Set

from ..audit import log_action, serialize_model
from ..constants import LeaveStatus, Role, normalize_choice
from ..errors import InvalidTransition, PermissionDenied, ValidationError
from ..extensions import db
from ..models import HRProfile, Holiday, LeaveBalance, LeaveRequest, LeaveType, PayrollRecord, User
from ..notifications import notify_user
from ..effects import SideEffects
from ..utils import clean_str, parse_bool, parse_date, parse_decimal, parse_optional_int
from . import commit

logger = logging.getLogger(__name__)

FULL_DAY = "full_day"
FIRST_HALF = "first_half"
SECOND_HALF = "second_half"
DURATION_TYPES = (FULL_DAY, FIRST_HALF, SECOND_HALF)

HOLIDAY_TYPES = ("mandatory", "optional")
EMPLOYMENT_STATUSES = ("active", "probation", "notice_period", "inactive")

LEAVE_TRANSITIONS = {
    LeaveStatus.PENDING: (LeaveStatus.APPROVED, LeaveStatus.REJECTED, LeaveStatus.CANCELLED),
    LeaveStatus.APPROVED: (LeaveStatus.CANCELLED,),
    LeaveStatus.REJECTED: (),
    LeaveStatus.CANCELLED: (),
}


def _check_leave_transition(current: str, target: str) -> None:
    if target not in LEAVE_TRANSITIONS.get(current, ()):
        raise InvalidTransition.between(current, target)


# ---------------------------------------------------------------------
# Leave types
# ---------------------------------------------------------------------
def save_leave_type(data: Dict[str, Any], leave_type: Optional[LeaveType] = None) -> LeaveType:
    data = data or {}
    name = clean_str(data.get("name")) if "name" in data or leave_type is None else leave_type.name
    if not name:
        raise ValidationError("Leave type name is required")

    clash = LeaveType.query.filter(LeaveType.name == name)
    if leave_type is not None:
        clash = clash.filter(LeaveType.id != leave_type.id)
    if clash.first() is not None:
        raise ValidationError(f"Leave type {name} already exists")

    days = parse_decimal(data.get("days_allowed_per_year"))
    if days is not None and days < 0:
        raise ValidationError("Days allowed per year cannot be negative")

    before = serialize_model(leave_type) if leave_type is not None else None
    if leave_type is None:
        leave_type = LeaveType(name=name)
        db.session.add(leave_type)

    leave_type.name = name
    if days is not None:
        leave_type.days_allowed_per_year = float(days)
    for flag in ("is_carry_forward", "is_paid", "is_active"):
        if flag in data:
            setattr(leave_type, flag, parse_bool(data[flag]))
    if "color" in data:
        leave_type.color = clean_str(data["color"])

    db.session.flush()
    log_action(leave_type, "UPDATE" if before else "CREATE", before=before, after=serialize_model(leave_type))
    commit("save leave type")
    return leave_type


# ---------------------------------------------------------------------
# Balances
# ---------------------------------------------------------------------
def ensure_balance(user_id: int, leave_type: LeaveType, year: int) -> LeaveBalance:
    """The (user, type, year) balance, created from the yearly allowance when missing (caller commits)."""
    balance = LeaveBalance.query.filter_by(user_id=user_id, leave_type_id=leave_type.id, year=year).first()
    if balance is not None:
        return balance

    allowance = float(leave_type.days_allowed_per_year or 0)
    if leave_type.is_carry_forward:
        last_year = LeaveBalance.query.filter_by(
            user_id=user_id, leave_type_id=leave_type.id, year=year - 1
        ).first()
        if last_year is not None:
            allowance += max(last_year.remaining, 0)

    balance = LeaveBalance(user_id=user_id, leave_type_id=leave_type.id, year=year, balance=allowance, used=0)
    db.session.add(balance)
    db.session.flush()
    return balance


def balances_for(user_id: int, year: int):
    types = LeaveType.query.filter_by(is_active=True).order_by(LeaveType.name.asc()).all()
    rows = [ensure_balance(user_id, t, year) for t in types]
    commit("load balances")
    return rows


# ---------------------------------------------------------------------
# Leave requests
# ---------------------------------------------------------------------
def mandatory_holidays(start: date, end: date) -> Set[date]:
    rows = Holiday.query.filter(
        Holiday.date >= start,
        Holiday.date <= end,
        Holiday.type == "mandatory",
    ).all()
    return {h.date for h in rows}


def count_leave_days(start: date, end: date, duration_type: str = FULL_DAY, holidays: Iterable[date] = ()) -> float:
    if end < start:
        raise ValidationError("End date cannot be before start date")

    holidays = set(holidays)
    if duration_type != FULL_DAY:
        if start != end:
            raise ValidationError("A half day leave must be a single date")
        working = start.weekday() != 6 and start not in holidays
        days = 0.5 if working else 0
    else:
        days = 0
        day = start
        while day <= end:
            # Sundays are off
            if day.weekday() != 6 and day not in holidays:
                days += 1
            day += timedelta(days=1)

    if days == 0:
        raise ValidationError("The selected dates contain no working days")
    return float(days)


def request_leave(user: User, data: Dict[str, Any]) -> LeaveRequest:
    data = data or {}
    errors = []

    leave_type = None
    type_id = parse_optional_int(data.get("leave_type_id"))
    if type_id is not None:
        leave_type = db.session.get(LeaveType, type_id)
    if leave_type is None or not leave_type.is_active:
        errors.append("Select a leave type")

    start = end = None
    try:
        start = parse_date(data.get("start_date"), "start date", required=True)
        end = parse_date(data.get("end_date") or data.get("start_date"), "end date", required=True)
    except ValidationError as exc:
        errors.extend(exc.errors)

    duration_type = normalize_choice(data.get("duration_type") or FULL_DAY, DURATION_TYPES, "duration type")
    if errors:
        raise ValidationError(errors)

    if start.year != end.year:
        raise ValidationError("A leave request cannot span two calendar years")

    days = count_leave_days(start, end, duration_type, mandatory_holidays(start, end))
    balance = ensure_balance(user.id, leave_type, start.year)
    if balance.remaining < days:
        raise ValidationError(f"Insufficient {leave_type.name} balance ({balance.remaining:g} days left)")

    leave = LeaveRequest(
        user_id=user.id,
        leave_type_id=leave_type.id,
        start_date=start,
        end_date=end,
        days_count=days,
        duration_type=duration_type,
        reason=clean_str(data.get("reason")),
        status=LeaveStatus.PENDING,
    )
    db.session.add(leave)
    commit("request leave")
    logger.info("Leave request %s by %s: %s day(s) of %s", leave.id, user.username, days, leave_type.name)
    return leave


def decide_leave(leave: LeaveRequest, approve: bool, actor, reason: Optional[str] = None) -> LeaveRequest:
    target = LeaveStatus.APPROVED if approve else LeaveStatus.REJECTED
    _check_leave_transition(leave.status, target)

    if approve:
        balance = ensure_balance(leave.user_id, leave.leave_type, leave.start_date.year)
        if balance.remaining < leave.days_count:
            raise ValidationError(f"Insufficient balance ({balance.remaining:g} days left)")
        balance.used = (balance.used or 0) + leave.days_count
    else:
        reason = clean_str(reason)
        if not reason:
            raise ValidationError("A rejection reason is required")
        leave.rejection_reason = reason

    leave.status = target
    leave.approved_by_id = actor.id
    leave.decided_at = datetime.utcnow()
    commit("decide leave")

    span = f"{leave.start_date.isoformat()} to {leave.end_date.isoformat()}"
    SideEffects(f"leave {leave.id} {target}").add(
        "notify_requester",
        notify_user,
        leave.user_id,
        title=f"Leave {target}",
        message=f"Your {leave.leave_type.name} leave ({span}) was {target}"
        + (f": {leave.rejection_reason}" if not approve else ""),
    ).run()
    return leave


def cancel_leave(leave: LeaveRequest, actor) -> LeaveRequest:
    if actor.role != Role.ADMIN and leave.user_id != actor.id:
        raise PermissionDenied("You can only cancel your own leave requests")
    _check_leave_transition(leave.status, LeaveStatus.CANCELLED)

    if leave.status == LeaveStatus.APPROVED:
        balance = ensure_balance(leave.user_id, leave.leave_type, leave.start_date.year)
        balance.used = max((balance.used or 0) - leave.days_count, 0)

    leave.status = LeaveStatus.CANCELLED
    leave.decided_at = datetime.utcnow()
    commit("cancel leave")
    return leave


# ---------------------------------------------------------------------
# Holidays
# ---------------------------------------------------------------------
def add_holiday(data: Dict[str, Any]) -> Holiday:
    data = data or {}
    name = clean_str(data.get("name"))
    if not name:
        raise ValidationError("Holiday name is required")
    day = parse_date(data.get("date"), "holiday date", required=True)
    kind = normalize_choice(data.get("type") or "mandatory", HOLIDAY_TYPES, "holiday type")

    if Holiday.query.filter_by(date=day).first() is not None:
        raise ValidationError(f"A holiday already exists on {day.isoformat()}")

    holiday = Holiday(name=name, date=day, day_of_week=day.strftime("%A"), type=kind, year=day.year)
    db.session.add(holiday)
    commit("add holiday")
    return holiday


def delete_holiday(holiday: Holiday) -> None:
    db.session.delete(holiday)
    commit("delete holiday")


# ---------------------------------------------------------------------
# Payroll
# ---------------------------------------------------------------------
def save_payroll(data: Dict[str, Any]) -> PayrollRecord:
    """Create or update the record of one user for one month."""
    data = data or {}
    errors = []

    user = None
    user_id = parse_optional_int(data.get("user_id"))
    if user_id is not None:
        user = db.session.get(User, user_id)
    if user is None:
        errors.append("Select an employee")

    month = parse_optional_int(data.get("month"))
    if month is None or not 1 <= month <= 12:
        errors.append("Month must be between 1 and 12")
    year = parse_optional_int(data.get("year"))
    if year is None or year < 2000:
        errors.append("Year is required")

    base = parse_decimal(data.get("base_salary"))
    if base is None and user is not None and user.hr_profile is not None:
        base = user.hr_profile.base_salary
    if base is None:
        errors.append("Base salary is required")

    bonus = parse_decimal(data.get("bonus")) or 0
    deductions = parse_decimal(data.get("deductions")) or 0
    if bonus < 0 or deductions < 0:
        errors.append("Bonus and deductions cannot be negative")

    if errors:
        raise ValidationError(errors)

    record = PayrollRecord.query.filter_by(user_id=user.id, month=month, year=year).first()
    if record is None:
        record = PayrollRecord(user_id=user.id, month=month, year=year)
        db.session.add(record)
    elif record.status == "paid":
        raise InvalidTransition("A paid payroll record cannot be changed")

    record.base_salary = base
    record.bonus = bonus
    record.deductions = deductions
    record.recalculate()
    commit("save payroll")
    return record


def mark_payroll_paid(record: PayrollRecord) -> PayrollRecord:
    if record.status == "paid":
        raise InvalidTransition.between("paid", "paid")
    record.status = "paid"
    record.paid_at = datetime.utcnow()
    commit("mark payroll paid")
    return record


# ---------------------------------------------------------------------
# Profiles
# ---------------------------------------------------------------------
def save_profile(user: User, data: Dict[str, Any]) -> HRProfile:
    data = data or {}
    values = {}
    if "joining_date" in data:
        values["joining_date"] = parse_date(data.get("joining_date"), "joining date")
    if "designation" in data:
        values["designation"] = clean_str(data.get("designation"))
    if "employment_status" in data:
        values["employment_status"] = normalize_choice(
            data.get("employment_status"), EMPLOYMENT_STATUSES, "employment status"
        )
    if "base_salary" in data:
        salary = parse_decimal(data.get("base_salary"))
        if salary is not None and salary < 0:
            raise ValidationError("Base salary cannot be negative")
        values["base_salary"] = salary

    profile = user.hr_profile
    if profile is None:
        profile = HRProfile(user_id=user.id)
        db.session.add(profile)
    for name, value in values.items():
        setattr(profile, name, value)

    commit("save HR profile")
    return profile
