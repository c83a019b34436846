"""
orderflow/priority.py

Delivery-date urgency.

Priority is derived, never entered: it is recomputed from the delivery date whenever an
item is read and whenever its delivery date changes. The value stored on OrderItem is only
the last computed snapshot, kept so that an escalation to HIGH can be detected.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Optional, Union

from .constants import Priority

# Days left above which an item is LOW, and at or above which it is MEDIUM
LOW_AFTER_DAYS = 5
MEDIUM_FROM_DAYS = 3

DateLike = Union[date, datetime, str, None]


def _as_date(value: DateLike) -> Optional[date]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    if not text:
        return None
    # Accept both "2024-05-01" and full ISO timestamps
    return datetime.fromisoformat(text[:10]).date() if len(text) >= 10 else None


def days_until(delivery_date: DateLike, today: date | None = None) -> Optional[int]:
    """Whole calendar days from today to the delivery date (negative when overdue)."""
    target = _as_date(delivery_date)
    if target is None:
        return None
    today = today or date.today()
    return (target - today).days


def compute_priority(delivery_date: DateLike, today: date | None = None) -> str:
    """
    Priority for a delivery date.

    > 5 days left  -> low
    3 .. 5 days    -> medium
    < 3 days       -> high (includes overdue)
    no date        -> low
    """
    days = days_until(delivery_date, today)
    if days is None:
        return Priority.LOW
    if days > LOW_AFTER_DAYS:
        return Priority.LOW
    if days >= MEDIUM_FROM_DAYS:
        return Priority.MEDIUM
    return Priority.HIGH


def priority_color(priority: str) -> str:
    return Priority.COLORS.get(priority, Priority.COLORS[Priority.LOW])


def is_escalation(previous: str | None, current: str | None) -> bool:
    """True only when the priority moves into HIGH."""
    return current == Priority.HIGH and previous != Priority.HIGH
