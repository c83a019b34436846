"""
orderflow/realtime.py

In-process change feed.

Inserts / updates / deletes on the watched tables are collected while the session flushes
and published to subscribers only after the transaction commits (a rollback discards them).
Subscribers treat an event as "something changed, refetch"; payloads are never applied.

Subscriber errors are logged and never reach the code that committed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, List, Optional

from sqlalchemy import event
from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)

WATCHED_TABLES = frozenset(
    {
        "orders",
        "order_items",
        "outsource_jobs",
        "dispatch_records",
        "order_files",
        "timeline",
        "order_activity_logs",
    }
)

_PENDING_KEY = "orderflow.change_events"


@dataclass(frozen=True)
class ChangeEvent:
    table: str
    type: str  # insert | update | delete
    record_id: Optional[int] = None
    order_id: Optional[int] = None


class ChangeFeed:
    """Minimal publish/subscribe registry."""

    def __init__(self):
        self._subscribers: List[Callable[[ChangeEvent], None]] = []

    def subscribe(self, callback: Callable[[ChangeEvent], None]) -> None:
        if callback not in self._subscribers:
            self._subscribers.append(callback)

    def unsubscribe(self, callback: Callable[[ChangeEvent], None]) -> None:
        if callback in self._subscribers:
            self._subscribers.remove(callback)

    def publish(self, change: ChangeEvent) -> None:
        for callback in list(self._subscribers):
            try:
                callback(change)
            except Exception:
                logger.exception("Change feed subscriber %r failed for %s", callback, change)


change_feed = ChangeFeed()


def _order_id_of(instance) -> Optional[int]:
    if instance.__tablename__ == "orders":
        return instance.id
    return getattr(instance, "order_id", None)


def _collect(session, instances, change_type: str) -> None:
    pending = session.info.setdefault(_PENDING_KEY, [])
    for instance in instances:
        table = getattr(instance, "__tablename__", None)
        if table not in WATCHED_TABLES:
            continue
        pending.append(
            ChangeEvent(
                table=table,
                type=change_type,
                record_id=getattr(instance, "id", None),
                order_id=_order_id_of(instance),
            )
        )


@event.listens_for(Session, "after_flush")
def _collect_changes(session, flush_context):
    _collect(session, session.new, "insert")
    _collect(session, session.dirty, "update")
    _collect(session, session.deleted, "delete")


@event.listens_for(Session, "after_commit")
def _publish_changes(session):
    events = session.info.pop(_PENDING_KEY, [])
    for change in events:
        change_feed.publish(change)


@event.listens_for(Session, "after_rollback")
def _discard_changes(session):
    session.info.pop(_PENDING_KEY, None)
