"""
orderflow/audit.py

Audit logging helpers.

Goals:
- Capture WHO did WHAT to WHICH record, with BEFORE/AFTER snapshots.
- Store a username snapshot so identity survives renames / deleted users.
- Store the client IP when the action came in over HTTP.

IMPORTANT:
- log_action() ADDS an AuditLog entry to the current SQLAlchemy session.
  The caller controls the transaction (commit/rollback), so the audit row is
  committed atomically with the change it describes.
- Workflow moves are not audited here; they go to the order timeline.
"""

from __future__ import annotations

import json
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, Optional

from flask import has_request_context, request
from flask_login import current_user

from .extensions import db
from .models import AuditLog


def _safe_value(value: Any) -> Any:
    """JSON-safe representation of a column value."""
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (dict, list)):
        return value
    return str(value)


def serialize_model(instance: Any, exclude: tuple = ("password_hash",)) -> Dict[str, Any]:
    """
    Snapshot of a model's scalar columns.

    Relationships are not followed. Secrets listed in `exclude` are dropped.
    """
    data: Dict[str, Any] = {}
    for column in instance.__table__.columns:
        if column.name in exclude:
            continue
        data[column.name] = _safe_value(getattr(instance, column.key, None))
    return data


def _actor(actor):
    if actor is not None:
        return actor
    if has_request_context() and current_user.is_authenticated:
        return current_user
    return None


def log_action(
    entity: Any,
    action: str,
    *,
    before: Optional[Dict[str, Any]] = None,
    after: Optional[Dict[str, Any]] = None,
    actor=None,
) -> AuditLog:
    """
    Add an AuditLog entry to the current db session.

    Parameters:
        entity: SQLAlchemy model instance with .id (flush first for new rows)
        action: CREATE / UPDATE / DELETE
        before / after: dict snapshots (see serialize_model)
        actor: acting user; defaults to current_user inside a request

    SECURITY NOTE:
    - request.remote_addr is as Flask sees it. Behind a reverse proxy configure ProxyFix.
    """
    entity_id = getattr(entity, "id", None)
    if entity_id is None:
        raise ValueError("log_action entity must have an 'id' attribute (after flush).")

    user = _actor(actor)

    entry = AuditLog(
        user_id=getattr(user, "id", None),
        username_snapshot=getattr(user, "username", None),
        entity_type=entity.__class__.__name__,
        entity_id=int(entity_id),
        action=str(action).upper(),
        before_data=json.dumps(before, ensure_ascii=False) if before else None,
        after_data=json.dumps(after, ensure_ascii=False) if after else None,
        ip_address=request.remote_addr if has_request_context() else None,
    )
    db.session.add(entry)
    return entry
