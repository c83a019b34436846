"""
orderflow/visibility.py

Which orders a user may see.

Rules:
- Admin and sales (and read-only viewers) see every order.
- Department roles see active orders (not completed, not archived) that contain at least
  one item owned by their department. Ownership is assigned_department, or the department
  of current_stage for rows written before assigned_department existed.
- Production staff with a specialty only see production items sitting on that substage.
- Assignment to a user never narrows department visibility; "assigned to me" is a
  separate filter.

Every function accepts model instances or serialized snapshots (dicts).

SECURITY NOTE:
- Routes call order_visible_to() through security.order_access_required; list endpoints
  run visible_orders() on the full cached order set.
"""

from __future__ import annotations

from typing import Any, Iterable, List

from .constants import Role, Stage, department_for_stage


def _get(obj: Any, key: str, default=None):
    if isinstance(obj, dict):
        return obj.get(key, default)
    return getattr(obj, key, default)


def _norm(value) -> str:
    return (str(value) if value is not None else "").strip().lower()


def _items(order) -> list:
    return list(_get(order, "items", None) or [])


def sees_everything(viewer) -> bool:
    return _get(viewer, "role") in (Role.ADMIN, Role.SALES, Role.VIEWER)


def can_view_financials(viewer) -> bool:
    return _get(viewer, "role") in Role.FULL_VISIBILITY


def item_department(item) -> str:
    """Owning department of an item, with the stage fallback for legacy rows."""
    assigned = _norm(_get(item, "assigned_department"))
    if assigned:
        return assigned
    return department_for_stage(_norm(_get(item, "current_stage"))) or ""


def item_visible_to(item, viewer) -> bool:
    if sees_everything(viewer):
        return True

    role = _norm(_get(viewer, "role"))
    if not role or item_department(item) != role:
        return False

    if role == Role.PRODUCTION:
        specialty = _norm(_get(viewer, "production_stage"))
        if specialty:
            return (
                _norm(_get(item, "current_stage")) == Stage.PRODUCTION
                and _norm(_get(item, "current_substage")) == specialty
            )
    return True


def order_is_active(order) -> bool:
    return not _get(order, "is_completed", False) and not _get(order, "is_archived", False)


def order_visible_to(order, viewer) -> bool:
    if sees_everything(viewer):
        return True
    if not order_is_active(order):
        # Department staff may still open completed orders their department worked on
        return bool(_get(order, "is_completed", False)) and any(
            item_department(i) == _norm(_get(viewer, "role")) for i in _items(order)
        )
    return any(item_visible_to(item, viewer) for item in _items(order))


def visible_orders(orders: Iterable, viewer) -> List:
    """Active orders the viewer may work on (admin/sales: every active order)."""
    if sees_everything(viewer):
        return [o for o in orders if not _get(o, "is_archived", False) and not _get(o, "is_completed", False)]
    return [
        o for o in orders
        if order_is_active(o) and any(item_visible_to(i, viewer) for i in _items(o))
    ]


def completed_orders(orders: Iterable, viewer) -> List:
    """Completed orders; department staff only see those their department touched."""
    done = [o for o in orders if _get(o, "is_completed", False)]
    if sees_everything(viewer):
        return done
    role = _norm(_get(viewer, "role"))
    return [o for o in done if any(item_department(i) == role for i in _items(o))]


def assigned_to_me(orders: Iterable, viewer) -> List:
    """Orders with at least one item assigned to the viewer personally."""
    viewer_id = _get(viewer, "id")
    return [
        o for o in orders
        if any(_get(i, "assigned_to_id") == viewer_id for i in _items(o))
    ]
