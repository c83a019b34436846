from datetime import date, datetime, timedelta

import pytest

from orderflow.constants import Priority
from orderflow.priority import compute_priority, days_until, is_escalation, priority_color

TODAY = date(2024, 5, 1)


@pytest.mark.parametrize(
    "offset, expected",
    [
        (30, Priority.LOW),
        (6, Priority.LOW),
        (5, Priority.MEDIUM),
        (3, Priority.MEDIUM),
        (2, Priority.HIGH),
        (0, Priority.HIGH),
        (-4, Priority.HIGH),
    ],
)
def test_priority_bands(offset, expected):
    assert compute_priority(TODAY + timedelta(days=offset), today=TODAY) == expected


def test_missing_delivery_date_is_low():
    assert compute_priority(None, today=TODAY) == Priority.LOW
    assert compute_priority("", today=TODAY) == Priority.LOW


def test_accepts_iso_strings_and_datetimes():
    assert days_until("2024-05-03T10:00:00", today=TODAY) == 2
    assert compute_priority(datetime(2024, 5, 4, 23, 59), today=TODAY) == Priority.MEDIUM


def test_escalation_only_when_entering_high():
    assert is_escalation(Priority.MEDIUM, Priority.HIGH)
    assert is_escalation(None, Priority.HIGH)
    assert not is_escalation(Priority.HIGH, Priority.HIGH)
    assert not is_escalation(Priority.LOW, Priority.MEDIUM)


def test_colors():
    assert priority_color(Priority.HIGH) == "red"
    assert priority_color("bogus") == "blue"
