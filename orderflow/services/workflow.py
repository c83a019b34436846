"""
orderflow/services/workflow.py

Applies workflow plans to order items.

process_item():
    1) plan_transition() validates the request (nothing written on failure)
    2) sub-flow or generic move is applied and committed
    3) timeline / activity / notifications / escalation run as side effects

IMPORTANT:
- Only this module (and services.outsource) writes current_stage / current_status, always
  through OrderItem.move_to(), so assigned_department never drifts from the stage.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from ..constants import (
    DispatchMode,
    ItemStatus,
    Role,
    Stage,
    TimelineAction,
    department_for_stage,
)
from ..effects import SideEffects, record_activity, record_timeline
from ..errors import PermissionDenied
from ..extensions import db
from ..models import DispatchRecord, OrderItem
from ..notifications import (
    notify_priority_escalation,
    notify_ready_for_dispatch,
    notify_stage_change,
    notify_user,
)
from ..priority import is_escalation
from ..utils import clean_str, production_substages
from ..workflow import production
from ..workflow.dispatch import SELF_PICKUP_COURIER, DispatchDecision, DispatchFinalize, pickup_handover
from ..workflow.transitions import (
    Action,
    Subflow,
    TransitionPlan,
    TransitionRequest,
    allowed_destinations,
    current_department,
    default_destination,
    plan_transition,
)
from . import commit
from .outsource import assign_to_outsource

logger = logging.getLogger(__name__)


def require_can_act(item: OrderItem, actor) -> None:
    """Admin and sales act on any item; department staff only on their department's items."""
    role = getattr(actor, "role", None)
    if role in Role.FULL_VISIBILITY:
        return
    if role == Role.VIEWER or actor.work_department != item.department:
        raise PermissionDenied("You can only work on items assigned to your department")


def destinations(item: OrderItem) -> Dict[str, Any]:
    current = current_department(item)
    default = default_destination(current, item.current_status)
    return {
        "current_department": current,
        "current_status": item.current_status,
        "default": {"department": default[0], "status": default[1]} if default else None,
        "departments": allowed_destinations(current),
    }


def _check_escalation(item: OrderItem) -> None:
    previous, current = item.refresh_priority()
    if is_escalation(previous, current):
        notify_priority_escalation(item, previous)


def _standard_effects(item: OrderItem, actor, plan: TransitionPlan, from_stage: str, message: str) -> SideEffects:
    effects = SideEffects(f"item {item.id} {plan.action}")
    effects.add("timeline", record_timeline, item.order_id, plan.timeline_action, item_id=item.id,
                stage=plan.stage, substage=item.current_substage, notes=plan.note, actor=actor)
    effects.add("activity", record_activity, item.order_id, plan.timeline_action, message,
                item_id=item.id, department=plan.department, actor=actor,
                details={"from_stage": from_stage, "to_stage": plan.stage, "status": plan.status})
    if plan.stage != from_stage:
        effects.add("notify_stage", notify_stage_change, item, plan.stage, actor)
    effects.add("priority", _check_escalation, item)
    return effects


# ---------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------
def process_item(item: OrderItem, payload: Dict[str, Any], actor) -> OrderItem:
    require_can_act(item, actor)

    request = TransitionRequest.from_payload(payload)
    plan = plan_transition(item, request, production_substages())

    if plan.subflow == Subflow.OUTSOURCE:
        assign_to_outsource(item, plan.details, actor, note=plan.note)
        return item
    if plan.subflow == Subflow.DISPATCH_DECISION:
        return _apply_dispatch_decision(item, plan, actor)
    if plan.subflow == Subflow.DISPATCH_FINALIZE:
        return mark_dispatched(item, plan.details, actor, note=plan.note)
    if plan.subflow == Subflow.PICKUP:
        receiver = clean_str((request.dispatch or {}).get("receiver_name"))
        return mark_dispatched(item, pickup_handover(receiver), actor, note=plan.note)
    return _apply_plan(item, plan, actor)


def _apply_plan(item: OrderItem, plan: TransitionPlan, actor) -> OrderItem:
    from_stage = item.current_stage
    from_department = item.department
    previous_assignee = item.assigned_to_id

    if plan.record_breadcrumb:
        item.previous_department = plan.previous_department
        item.previous_assigned_to_id = plan.previous_assigned_to_id
    elif plan.action in (Action.APPROVE, Action.REJECT):
        item.previous_department = None
        item.previous_assigned_to_id = None

    item.move_to(plan.stage, plan.status)

    if plan.assign_order_owner:
        item.assigned_to_id = item.order.assigned_user_id
    elif not plan.keep_assignee:
        item.assigned_to_id = plan.assigned_to_id

    if plan.production_sequence is not None:
        production.apply_sequence(item, plan.production_sequence)

    commit("process item")
    logger.info(
        "Item %s: %s/%s -> %s/%s (%s)",
        item.id, from_department, from_stage, plan.department, plan.status, plan.action,
    )

    effects = _standard_effects(
        item, actor, plan, from_stage,
        f"{item.product_name} moved from {from_department} to {plan.department} ({plan.status})",
    )
    if item.assigned_to_id and item.assigned_to_id != previous_assignee and item.assigned_to_id != actor.id:
        effects.add(
            "notify_assignee",
            notify_user,
            item.assigned_to_id,
            title="Order Assigned to You",
            message=f"{item.product_name} ({item.order.order_number}) has been assigned to you",
            order_id=item.order_id,
            item_id=item.id,
        )
    if plan.status == ItemStatus.READY_FOR_DISPATCH:
        effects.add("notify_ready", notify_ready_for_dispatch, item, actor)
    effects.run()
    return item


# ---------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------
def _dispatch_record(item: OrderItem) -> DispatchRecord:
    record = item.dispatch_record
    if record is None:
        record = DispatchRecord(item=item, order_id=item.order_id)
        db.session.add(record)
    return record


def _apply_dispatch_decision(item: OrderItem, plan: TransitionPlan, actor) -> OrderItem:
    decision: DispatchDecision = plan.details
    from_stage = item.current_stage

    record = _dispatch_record(item)
    record.mode = decision.mode
    record.courier_company = decision.courier_company
    record.courier_address = decision.courier_address
    record.courier_phone = decision.courier_phone
    record.courier_notes = decision.courier_notes
    record.is_express = decision.is_express
    record.decided_by_id = getattr(actor, "id", None)

    item.order.shipping_method = decision.mode
    item.move_to(plan.stage, plan.status)
    item.assigned_to_id = plan.assigned_to_id
    commit("dispatch decision")

    what = "Customer pickup" if decision.mode == DispatchMode.PICKUP else f"Courier: {decision.courier_company}"
    _standard_effects(item, actor, plan, from_stage, f"{item.product_name}: {what}").run()
    return item


def mark_dispatched(item: OrderItem, finalize: DispatchFinalize, actor, *, note: Optional[str] = None) -> OrderItem:
    """Final step of every item: stage completed, status dispatched."""
    from_stage = item.current_stage

    record = _dispatch_record(item)
    if record.mode is None:
        record.mode = DispatchMode.PICKUP if finalize.courier_company == SELF_PICKUP_COURIER else DispatchMode.COURIER
    record.courier_company = finalize.courier_company
    record.tracking_number = finalize.tracking_number
    record.dispatch_date = finalize.dispatch_date
    record.is_express = record.is_express or finalize.is_express
    record.dispatched_by_id = getattr(actor, "id", None)

    item.move_to(Stage.COMPLETED, ItemStatus.DISPATCHED)
    item.is_dispatched = True
    item.is_completed = True
    order_completed = item.order.refresh_completion()
    commit("mark dispatched")

    logger.info("Item %s dispatched (%s, %s)", item.id, finalize.courier_company, finalize.tracking_number)
    if order_completed:
        logger.info("Order %s completed", item.order.order_number)

    details = f"Courier: {finalize.courier_company}, Tracking: {finalize.tracking_number}"
    if finalize.notes:
        details = f"{details}, {finalize.notes}"
    plan = TransitionPlan(
        action=Action.PROCESS,
        department=department_for_stage(Stage.COMPLETED),
        stage=Stage.COMPLETED,
        status=ItemStatus.DISPATCHED,
        note=f"{note} | {details}" if note else details,
        timeline_action=TimelineAction.DISPATCHED,
    )
    effects = SideEffects(f"dispatch item {item.id}")
    effects.add("timeline", record_timeline, item.order_id, plan.timeline_action, item_id=item.id,
                stage=plan.stage, notes=plan.note, actor=actor)
    effects.add("activity", record_activity, item.order_id, plan.timeline_action,
                f"{item.product_name} dispatched ({details})", item_id=item.id,
                department=plan.department, actor=actor,
                details={"from_stage": from_stage, "order_completed": order_completed})
    effects.add("notify_stage", notify_stage_change, item, Stage.COMPLETED, actor)
    effects.run()
    return item


# ---------------------------------------------------------------------
# Production substages
# ---------------------------------------------------------------------
def start_substage(item: OrderItem, substage: Optional[str], actor) -> OrderItem:
    require_can_act(item, actor)
    name = production.start_substage(item, substage, production_substages())
    commit("start substage")

    SideEffects(f"start substage item {item.id}").add(
        "timeline", record_timeline, item.order_id, TimelineAction.SUBSTAGE_STARTED,
        item_id=item.id, stage=Stage.PRODUCTION, substage=name,
        notes=f"Started {name}", actor=actor,
    ).run()
    return item


def complete_substage(item: OrderItem, actor, note: Optional[str] = None) -> production.SubstageOutcome:
    require_can_act(item, actor)
    outcome = production.complete_substage(item, production_substages())
    commit("complete substage")

    text = f"Completed {outcome.completed}"
    if outcome.next_substage:
        text = f"{text}, next: {outcome.next_substage}"
    else:
        text = f"{text}, ready for dispatch"
    if note:
        text = f"{text} | {note}"

    effects = SideEffects(f"complete substage item {item.id}")
    effects.add("timeline", record_timeline, item.order_id, TimelineAction.SUBSTAGE_COMPLETED,
                item_id=item.id, stage=Stage.PRODUCTION, substage=outcome.completed, notes=text, actor=actor)
    if outcome.ready_for_dispatch:
        effects.add("activity", record_activity, item.order_id, TimelineAction.SUBSTAGE_COMPLETED,
                    f"{item.product_name} finished production", item_id=item.id,
                    department=Stage.PRODUCTION, actor=actor)
        effects.add("notify_ready", notify_ready_for_dispatch, item, actor)
    effects.run()
    return outcome


def set_sequence(item: OrderItem, sequence, actor) -> List[str]:
    require_can_act(item, actor)
    cleaned = production.set_sequence(item, sequence, production_substages())
    commit("set production sequence")

    SideEffects(f"sequence item {item.id}").add(
        "timeline", record_timeline, item.order_id, TimelineAction.PRODUCTION_SEQUENCE_SET,
        item_id=item.id, stage=Stage.PRODUCTION,
        notes="Production sequence: " + " > ".join(cleaned), actor=actor,
    ).run()
    return cleaned


# ---------------------------------------------------------------------
# Maintenance (CLI)
# ---------------------------------------------------------------------
def backfill_departments() -> int:
    """Repair rows whose assigned_department disagrees with their stage."""
    fixed = 0
    for item in OrderItem.query.all():
        expected = department_for_stage(item.current_stage)
        if expected and item.assigned_department != expected:
            logger.info("Item %s: assigned_department %r -> %r", item.id, item.assigned_department, expected)
            item.assigned_department = expected
            fixed += 1
    commit("backfill departments")
    return fixed


def refresh_priorities() -> int:
    """Re-snapshot the priority of open items; returns the number of escalations notified."""
    escalations = []
    for item in OrderItem.query.filter(OrderItem.is_dispatched.is_(False)).all():
        previous, current = item.refresh_priority()
        if is_escalation(previous, current):
            escalations.append((item, previous))
    commit("refresh priorities")

    effects = SideEffects("refresh priorities")
    for item, previous in escalations:
        effects.add(f"escalation:{item.id}", notify_priority_escalation, item, previous)
    failed = effects.run()
    return len(escalations) - len(failed)
