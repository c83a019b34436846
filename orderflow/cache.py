"""
orderflow/cache.py

Order read cache.

- Snapshots are kept in Flask-Caching for ORDER_CACHE_TTL seconds.
- A pending-request registry makes concurrent readers of the same key wait for the
  fetch already in flight instead of issuing their own.
- Change-feed events delete the affected keys (see invalidation_keys), so the next
  read goes back to the database.

Keys:
    orders:all            serialized snapshots of every order
    timeline:<order_id>   timeline of one order
    activity:<order_id>   activity log of one order
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Dict, Set

from .extensions import cache
from .realtime import ChangeEvent, change_feed

logger = logging.getLogger(__name__)

ORDERS_KEY = "orders:all"

ORDER_TABLES = frozenset({"orders", "order_items", "outsource_jobs", "dispatch_records", "order_files"})


def timeline_key(order_id: int) -> str:
    return f"timeline:{order_id}"


def activity_key(order_id: int) -> str:
    return f"activity:{order_id}"


def invalidation_keys(change: ChangeEvent) -> Set[str]:
    """Cache keys made stale by a change event."""
    keys: Set[str] = set()
    if change.table in ORDER_TABLES:
        keys.add(ORDERS_KEY)
    elif change.table == "timeline" and change.order_id is not None:
        keys.add(timeline_key(change.order_id))
    elif change.table == "order_activity_logs" and change.order_id is not None:
        keys.add(activity_key(change.order_id))
    return keys


class OrderCache:
    """TTL cache with request de-duplication and change-driven invalidation."""

    def __init__(self, backend=None, ttl: int = 30, wait_timeout: float = 10.0):
        self.backend = backend if backend is not None else cache
        self.ttl = ttl
        self.wait_timeout = wait_timeout
        self._pending: Dict[str, threading.Event] = {}
        self._lock = threading.Lock()

    def init_app(self, app) -> None:
        self.ttl = int(app.config.get("ORDER_CACHE_TTL", self.ttl))
        self.wait_timeout = float(app.config.get("ORDER_CACHE_WAIT", self.wait_timeout))
        change_feed.subscribe(self.handle_change)

    # -----------------------------------------------------------------
    def get(self, key: str, loader: Callable[[], Any], *, force: bool = False) -> Any:
        """
        Cached value for `key`, loading it with `loader` on a miss.

        force=True skips the cached value (the fresh result is still stored).
        """
        if not force:
            value = self.backend.get(key)
            if value is not None:
                return value

        with self._lock:
            in_flight = self._pending.get(key)
            if in_flight is None:
                in_flight = threading.Event()
                self._pending[key] = in_flight
                owner = True
            else:
                owner = False

        if not owner:
            in_flight.wait(self.wait_timeout)
            value = self.backend.get(key)
            if value is not None:
                return value
            # The other fetch failed or timed out; load for ourselves
            return loader()

        try:
            value = loader()
            self.backend.set(key, value, timeout=self.ttl)
            return value
        finally:
            with self._lock:
                self._pending.pop(key, None)
            in_flight.set()

    def is_pending(self, key: str) -> bool:
        with self._lock:
            return key in self._pending

    def invalidate(self, *keys: str) -> None:
        for key in keys:
            self.backend.delete(key)

    def handle_change(self, change: ChangeEvent) -> None:
        keys = invalidation_keys(change)
        if keys:
            logger.debug("Invalidating %s after %s on %s", sorted(keys), change.type, change.table)
            self.invalidate(*keys)


order_cache = OrderCache()
