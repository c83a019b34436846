"""
orderflow/seed.py

Seed default leave types and app settings.

Rules:
- Safe to run multiple times (idempotent).
- Existing rows are left as the admins configured them; only missing rows are added.

NOTE:
- Users are not seeded here; see the create-admin command and POST /auth/seed-admin.
"""

from __future__ import annotations

from .constants import PRODUCTION_SUBSTAGES
from .extensions import db
from .models import LeaveType
from .utils import PRODUCTION_SUBSTAGES_KEY, get_setting, set_setting


DEFAULT_LEAVE_TYPES = [
    # name, days per year, carry forward, paid, color
    ("Casual Leave", 12, False, True, "#3b82f6"),
    ("Sick Leave", 8, False, True, "#ef4444"),
    ("Earned Leave", 15, True, True, "#10b981"),
    ("Unpaid Leave", 30, False, False, "#6b7280"),
]


def seed_defaults() -> dict:
    """
    Create default leave types and the production substage catalogue if missing.

    Returns counts of what was added.
    """
    added = {"leave_types": 0, "settings": 0}

    for name, days, carry, paid, color in DEFAULT_LEAVE_TYPES:
        if LeaveType.query.filter_by(name=name).first():
            continue
        db.session.add(
            LeaveType(
                name=name,
                days_allowed_per_year=days,
                is_carry_forward=carry,
                is_paid=paid,
                color=color,
                is_active=True,
            )
        )
        added["leave_types"] += 1

    if get_setting(PRODUCTION_SUBSTAGES_KEY) is None:
        set_setting(PRODUCTION_SUBSTAGES_KEY, list(PRODUCTION_SUBSTAGES))
        added["settings"] += 1

    db.session.commit()
    return added
