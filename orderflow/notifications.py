"""
orderflow/notifications.py

Notification fan-out.

Stage change:
- admins always
- sales only when the item reaches dispatch / completed
- staff of the department that owns the new stage (dispatch/completed -> production)
- never the user who made the change

Priority escalation (into HIGH): admins + the item's department.

These run as side effects (see effects.SideEffects): the caller has already committed
the change that triggered them.
"""

from __future__ import annotations

import logging
from typing import Iterable, List, Optional

from .constants import NotificationType, Role, Stage, audience_department
from .extensions import db
from .models import Notification, OrderItem, User

logger = logging.getLogger(__name__)

STAGE_LABELS = {
    Stage.SALES: "Sales",
    Stage.DESIGN: "Design",
    Stage.PREPRESS: "Prepress",
    Stage.PRODUCTION: "Production",
    Stage.OUTSOURCE: "Outsource",
    Stage.DISPATCH: "Dispatch",
    Stage.COMPLETED: "Completed",
}


def stage_label(stage: str | None) -> str:
    return STAGE_LABELS.get(stage or "", (stage or "").replace("_", " ").title())


def _dedupe(ids: Iterable[int]) -> List[int]:
    seen = set()
    result = []
    for user_id in ids:
        if user_id is None or user_id in seen:
            continue
        seen.add(user_id)
        result.append(user_id)
    return result


def stage_change_recipients(users: Iterable, stage: str, actor_id: Optional[int] = None) -> List[int]:
    """User ids to notify when an item enters `stage`."""
    department = audience_department(stage)
    include_sales = stage in (Stage.DISPATCH, Stage.COMPLETED)

    ids = []
    for user in users:
        if not getattr(user, "is_active", True):
            continue
        role = getattr(user, "role", None)
        if role == Role.ADMIN:
            ids.append(user.id)
        elif include_sales and role == Role.SALES:
            ids.append(user.id)
        elif department and getattr(user, "work_department", None) == department:
            ids.append(user.id)

    return [user_id for user_id in _dedupe(ids) if user_id != actor_id]


def escalation_recipients(users: Iterable, department: Optional[str]) -> List[int]:
    """User ids to notify when an item becomes urgent."""
    ids = []
    for user in users:
        if not getattr(user, "is_active", True):
            continue
        if getattr(user, "role", None) == Role.ADMIN:
            ids.append(user.id)
        elif department and getattr(user, "work_department", None) == department:
            ids.append(user.id)
    return _dedupe(ids)


def _active_users() -> List[User]:
    return User.query.filter(User.is_active.is_(True)).all()


def _write(user_ids: Iterable[int], *, title: str, message: str, type_: str, order_id=None, item_id=None) -> int:
    count = 0
    for user_id in user_ids:
        db.session.add(
            Notification(
                user_id=user_id,
                order_id=order_id,
                item_id=item_id,
                title=title,
                message=message,
                type=type_,
            )
        )
        count += 1
    return count


# ---------------------------------------------------------------------
# Fan-outs (caller commits)
# ---------------------------------------------------------------------
def notify_stage_change(item: OrderItem, stage: str, actor=None) -> int:
    label = stage_label(stage)
    recipients = stage_change_recipients(_active_users(), stage, getattr(actor, "id", None))
    type_ = NotificationType.SUCCESS if stage in (Stage.DISPATCH, Stage.COMPLETED) else NotificationType.INFO
    count = _write(
        recipients,
        title=f"Order moved to {label}",
        message=f"{item.product_name} ({item.order.order_number}) is now in {label}",
        type_=type_,
        order_id=item.order_id,
        item_id=item.id,
    )
    logger.debug("Stage change on item %s -> %s notified %d users", item.id, stage, count)
    return count


def notify_priority_escalation(item: OrderItem, previous: Optional[str]) -> int:
    recipients = escalation_recipients(_active_users(), item.department)
    return _write(
        recipients,
        title="Urgent Order Alert",
        message=(
            f"{item.product_name} ({item.order.order_number}) is now high priority "
            f"(was {previous or 'unset'}); delivery on {item.delivery_date}"
        ),
        type_=NotificationType.URGENT,
        order_id=item.order_id,
        item_id=item.id,
    )


def notify_ready_for_dispatch(item: OrderItem, actor=None) -> int:
    actor_id = getattr(actor, "id", None)
    admins = [u.id for u in _active_users() if u.role == Role.ADMIN and u.id != actor_id]
    return _write(
        admins,
        title="Ready for Dispatch",
        message=f"{item.product_name} ({item.order.order_number}) finished production",
        type_=NotificationType.SUCCESS,
        order_id=item.order_id,
        item_id=item.id,
    )


def notify_user(user_id: Optional[int], *, title: str, message: str, order_id=None, item_id=None,
                type_: str = NotificationType.INFO) -> int:
    if not user_id:
        return 0
    return _write([user_id], title=title, message=message, type_=type_, order_id=order_id, item_id=item_id)
