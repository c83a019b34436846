"""
orderflow/security.py

Access control helpers for Order Flow.

Key rules:
- The client is never trusted; all permission checks are server-side.
- Admin: full access.
- Sales: every order, financial fields, imports, vendors.
- Design / prepress / production: orders with items in their department
  (production staff with a specialty: items at their production substage).
- Viewer: read-only (no mutating requests), except explicit self-service actions.

This module also provides a global safety net:
- viewer_readonly_guard() blocks POST/PUT/PATCH/DELETE for viewers.
  Wired via app.before_request in the app factory.

IMPORTANT:
- Decorators must preserve wrapped function metadata to avoid Flask endpoint collisions.
  We use functools.wraps everywhere.
"""

from __future__ import annotations

from functools import wraps
from typing import Any, Callable, Optional, Tuple

from flask import jsonify, request
from flask_login import current_user

from .constants import Role
from .visibility import order_visible_to

MUTATING_METHODS = {"POST", "PUT", "PATCH", "DELETE"}

# Self-service endpoints a viewer may still call
VIEWER_ALLOWED_ENDPOINTS = {
    "auth.logout",
    "notifications.mark_read",
    "notifications.mark_all_read",
    "hr.create_leave_request",
    "hr.cancel_leave_request",
}


def _forbidden(message: str = "You do not have permission to perform this action") -> Tuple[Any, int]:
    """Consistent JSON 403."""
    return jsonify({"status": "error", "message": message, "code": "FORBIDDEN"}), 403


def is_admin() -> bool:
    """Return True if current user is authenticated and admin."""
    return bool(current_user.is_authenticated and getattr(current_user, "is_admin", False))


def has_role(*roles: str) -> bool:
    """Admins pass every role check."""
    if not current_user.is_authenticated:
        return False
    return is_admin() or current_user.role in roles


def viewer_readonly_guard() -> Optional[Tuple[Any, int]]:
    """
    Global guard: viewers cannot mutate data.

    Blocks POST/PUT/PATCH/DELETE for authenticated users with the viewer role,
    except for the endpoints in VIEWER_ALLOWED_ENDPOINTS.
    """
    if request.method not in MUTATING_METHODS:
        return None

    if not current_user.is_authenticated:
        return None

    if current_user.role != Role.VIEWER:
        return None

    endpoint = (request.endpoint or "").strip()
    if endpoint in VIEWER_ALLOWED_ENDPOINTS:
        return None

    return _forbidden("Read-only accounts cannot make changes")


def admin_required(view_func: Callable[..., Any]) -> Callable[..., Any]:
    """Decorator: admin-only."""
    @wraps(view_func)
    def wrapper(*args: Any, **kwargs: Any):
        if not is_admin():
            return _forbidden()
        return view_func(*args, **kwargs)

    return wrapper


def roles_required(*roles: str) -> Callable[..., Any]:
    """
    Decorator factory: any of the given roles (admins always pass).

    Usage:
        @roles_required(Role.SALES)
        def import_lookup(): ...
    """
    def decorator(view_func: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(view_func)
        def wrapper(*args: Any, **kwargs: Any):
            if not has_role(*roles):
                return _forbidden()
            return view_func(*args, **kwargs)

        return wrapper

    return decorator


def order_access_required(get_order_func: Callable[..., Any]) -> Callable[..., Any]:
    """
    Decorator factory: VIEW permission for an order.

    Admin / sales / viewer: always allowed.
    Others: only orders with at least one item visible to them.

    Usage:
        @order_access_required(lambda order_id, **_: get_order(order_id))
        def order_detail(order_id): ...
    """
    def decorator(view_func: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(view_func)
        def wrapper(*args: Any, **kwargs: Any):
            order = get_order_func(**kwargs)

            if is_admin():
                return view_func(*args, **kwargs)

            if not order_visible_to(order, current_user):
                return _forbidden("You do not have access to this order")

            return view_func(*args, **kwargs)

        return wrapper

    return decorator
