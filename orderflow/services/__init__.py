"""
Service layer: operations that change orders, items and HR records.

Routes stay thin; everything that validates, writes and fans out lives here.

IMPORTANT:
- Validate first, then mutate, then commit() once for the primary write.
- Secondary writes (timeline, activity, notifications) go through effects.SideEffects
  after that commit.
"""

from __future__ import annotations

import logging

from sqlalchemy.exc import SQLAlchemyError

from ..errors import OrderFlowError
from ..extensions import db

logger = logging.getLogger(__name__)


def _database_error(label: str, exc: SQLAlchemyError) -> OrderFlowError:
    db.session.rollback()
    logger.error("%s failed: %s", label, exc)
    return OrderFlowError(
        str(getattr(exc, "orig", None) or exc),
        code="DATABASE_ERROR",
        status_code=500,
    )


def flush(label: str) -> None:
    """Flush pending rows (ids needed before commit); failures surface like commit()."""
    try:
        db.session.flush()
    except SQLAlchemyError as exc:
        raise _database_error(label, exc) from exc


def commit(label: str) -> None:
    """Commit the primary write; on failure roll back and surface the raw database message."""
    try:
        db.session.commit()
    except SQLAlchemyError as exc:
        raise _database_error(label, exc) from exc
