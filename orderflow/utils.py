"""
Utility functions shared across the app. This includes:
- parsing helpers for request payloads (ints, decimals, dates, trimmed strings)
- get_setting / set_setting: key/value app settings with defaults
- production_substages: the configured production sub-step catalogue
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any

from flask import request

from .constants import PRODUCTION_SUBSTAGES
from .errors import ValidationError
from .extensions import db
from .models import AppSetting

PRODUCTION_SUBSTAGES_KEY = "production_substages"


# ---------------------------------------------------------------------
# Request parsing
# ---------------------------------------------------------------------
def json_body() -> dict:
    """Request JSON as a dict (form data is accepted too, for simple clients)."""
    data = request.get_json(silent=True)
    if isinstance(data, dict):
        return data
    if request.form:
        return request.form.to_dict()
    return {}


def clean_str(value: Any) -> str | None:
    """Trimmed string or None for empty input."""
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def parse_optional_int(value: Any) -> int | None:
    """Parse optional int from form/query. Returns None if empty/invalid."""
    if value is None or isinstance(value, bool):
        return None
    raw = str(value).strip()
    if raw == "":
        return None
    try:
        return int(raw)
    except ValueError:
        return None


def parse_decimal(value: Any) -> Decimal | None:
    """Parse decimal from user input (accepts comma or dot)."""
    if value is None:
        return None
    raw = str(value).strip().replace(",", ".")
    if raw == "":
        return None
    try:
        return Decimal(raw)
    except (InvalidOperation, ValueError):
        return None


def parse_date(value: Any, field: str = "date", *, required: bool = False) -> date | None:
    """Parse an ISO date (YYYY-MM-DD, timestamps accepted). Raises ValidationError if malformed."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    raw = clean_str(value)
    if raw is None:
        if required:
            raise ValidationError(f"{field} is required")
        return None
    try:
        return datetime.fromisoformat(raw[:10]).date()
    except ValueError:
        raise ValidationError(f"Invalid {field}: {raw!r}")


def parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value or "").strip().lower() in {"1", "true", "yes", "on"}


# ---------------------------------------------------------------------
# App settings
# ---------------------------------------------------------------------
def get_setting(key: str, default: Any = None) -> Any:
    """Return a stored setting value, or `default` when missing."""
    row = AppSetting.query.filter_by(key=key).first()
    if row is None or row.value is None:
        return default
    return row.value


def set_setting(key: str, value: Any) -> AppSetting:
    """Create or update a setting (caller commits)."""
    row = AppSetting.query.filter_by(key=key).first()
    if row is None:
        row = AppSetting(key=key)
        db.session.add(row)
    row.value = value
    return row


def production_substages() -> list[str]:
    """Configured production sub-step catalogue (falls back to the defaults)."""
    configured = get_setting(PRODUCTION_SUBSTAGES_KEY)
    if isinstance(configured, list) and configured:
        return [str(s).strip().lower() for s in configured if str(s).strip()]
    return list(PRODUCTION_SUBSTAGES)
