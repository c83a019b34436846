"""
orderflow/dashboard.py

Read-only projections over order snapshots: filtering, sorting, pagination,
per-department counts and the urgent list.

Priority is always recomputed here from the delivery date, since "today" moves on while a
snapshot sits in the cache.
"""

from __future__ import annotations

import math
from typing import Iterable, List, Optional

from .constants import Department, Priority, Stage
from .priority import compute_priority
from .visibility import item_department

SORT_KEYS = ("priority", "delivery_date", "created_at", "order_number")


def item_priority(item: dict) -> str:
    return compute_priority(item.get("delivery_date"))


def order_priority(order: dict) -> str:
    """Most urgent priority among the order's items (order date when it has none)."""
    priorities = [item_priority(i) for i in order.get("items") or []]
    if not priorities:
        return compute_priority(order.get("delivery_date"))
    return min(priorities, key=lambda p: Priority.RANK[p])


def _matches_search(order: dict, needle: str) -> bool:
    haystack = [
        order.get("order_number"),
        order.get("customer_name"),
        order.get("customer_phone"),
        order.get("customer_email"),
    ]
    haystack.extend(i.get("product_name") for i in order.get("items") or [])
    return any(needle in str(value).casefold() for value in haystack if value)


def filter_orders(
    orders: Iterable[dict],
    *,
    stage: Optional[str] = None,
    department: Optional[str] = None,
    priority: Optional[str] = None,
    search: Optional[str] = None,
) -> List[dict]:
    result = []
    needle = (search or "").strip().casefold()
    for order in orders:
        items = order.get("items") or []
        if stage and not any(i.get("current_stage") == stage for i in items):
            continue
        if department and not any(item_department(i) == department for i in items):
            continue
        if priority and order_priority(order) != priority:
            continue
        if needle and not _matches_search(order, needle):
            continue
        result.append(order)
    return result


def sort_orders(orders: Iterable[dict], sort_by: str = "priority", descending: bool = False) -> List[dict]:
    if sort_by not in SORT_KEYS:
        sort_by = "priority"

    if sort_by == "priority":
        # Most urgent first, then earliest delivery
        def key(o):
            return (Priority.RANK[order_priority(o)], o.get("delivery_date") or "9999-12-31")
    else:
        def key(o):
            return o.get(sort_by) or ""

    return sorted(orders, key=key, reverse=descending)


def paginate(rows: List, page: int = 1, per_page: int = 20) -> dict:
    per_page = max(1, min(int(per_page or 20), 200))
    total = len(rows)
    pages = max(1, math.ceil(total / per_page))
    page = max(1, min(int(page or 1), pages))
    start = (page - 1) * per_page
    return {
        "items": rows[start:start + per_page],
        "page": page,
        "per_page": per_page,
        "total": total,
        "pages": pages,
    }


def department_counts(orders: Iterable[dict]) -> dict:
    """Open item count per department (plus completed)."""
    counts = {dept: 0 for dept in Department.ALL}
    counts[Stage.COMPLETED] = 0
    for order in orders:
        for item in order.get("items") or []:
            if item.get("is_completed") or item.get("current_stage") == Stage.COMPLETED:
                counts[Stage.COMPLETED] += 1
                continue
            dept = item_department(item)
            if dept in counts:
                counts[dept] += 1
    return counts


def priority_counts(orders: Iterable[dict]) -> dict:
    counts = {p: 0 for p in Priority.ALL}
    for order in orders:
        for item in order.get("items") or []:
            if not item.get("is_completed"):
                counts[item_priority(item)] += 1
    return counts


def urgent_orders(orders: Iterable[dict]) -> List[dict]:
    """Orders with at least one open high-priority item."""
    return [
        o for o in orders
        if any(
            not i.get("is_completed") and item_priority(i) == Priority.HIGH
            for i in o.get("items") or []
        )
    ]
