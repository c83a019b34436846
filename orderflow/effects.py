"""
orderflow/effects.py

Secondary effects of a workflow action (timeline rows, activity logs, notifications).

The primary state change is committed first. The steps registered here run afterwards,
each in its own transaction: a failing step is rolled back and logged, the remaining
steps still run, and nothing is raised to the caller.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, List, Tuple

from .extensions import db
from .models import OrderActivityLog, TimelineEntry

logger = logging.getLogger(__name__)


class SideEffects:
    def __init__(self, label: str):
        self.label = label
        self._steps: List[Tuple[str, Callable[..., Any], tuple, dict]] = []

    def add(self, name: str, func: Callable[..., Any], *args, **kwargs) -> "SideEffects":
        self._steps.append((name, func, args, kwargs))
        return self

    def __len__(self):
        return len(self._steps)

    def run(self) -> List[str]:
        """Run every step; returns the names of the steps that failed."""
        failed: List[str] = []
        for name, func, args, kwargs in self._steps:
            try:
                func(*args, **kwargs)
                db.session.commit()
            except Exception:
                db.session.rollback()
                logger.exception("Side effect %r failed (%s)", name, self.label)
                failed.append(name)
        self._steps.clear()
        return failed


def record_timeline(
    order_id: int,
    action: str,
    *,
    item_id: int | None = None,
    stage: str | None = None,
    substage: str | None = None,
    notes: str | None = None,
    actor=None,
    attachments: list | None = None,
    is_public: bool = True,
) -> TimelineEntry:
    entry = TimelineEntry(
        order_id=order_id,
        item_id=item_id,
        stage=stage,
        substage=substage,
        action=action,
        performed_by_id=getattr(actor, "id", None),
        performed_by_name=getattr(actor, "display_name", None),
        notes=notes,
        attachments=attachments,
        is_public=is_public,
    )
    db.session.add(entry)
    return entry


def record_activity(
    order_id: int,
    action: str,
    message: str,
    *,
    item_id: int | None = None,
    department: str | None = None,
    actor=None,
    details: dict | None = None,
) -> OrderActivityLog:
    row = OrderActivityLog(
        order_id=order_id,
        item_id=item_id,
        department=department,
        action=action,
        message=message,
        created_by_id=getattr(actor, "id", None),
        created_by_name=getattr(actor, "display_name", None),
        details=details,
    )
    db.session.add(row)
    return row
