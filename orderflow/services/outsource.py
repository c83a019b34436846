"""
orderflow/services/outsource.py

Outsource sub-flow: send an item to a vendor and track the job until it comes back.

Stage checks come from workflow.outsource; an illegal move raises before anything changes.
Saving the vendor to the vendor list is optional and non-fatal: if it fails, the job is
still created with the typed-in vendor details.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError

from ..constants import ItemStatus, OutsourceStage, Stage, TimelineAction
from ..effects import SideEffects, record_activity, record_timeline
from ..errors import InvalidTransition, ValidationError
from ..extensions import db
from ..models import OrderItem, OutsourceFollowUp, OutsourceJob, Vendor
from ..notifications import notify_ready_for_dispatch, notify_stage_change
from ..utils import clean_str, parse_date, production_substages
from ..workflow.outsource import (
    OutsourceDetails,
    check_outsource_transition,
    decision_outcome,
    normalize_decision,
    qc_next_stage,
)
from ..workflow.production import apply_sequence, validate_sequence
from . import commit

logger = logging.getLogger(__name__)


def get_job(item: OrderItem) -> OutsourceJob:
    if item.outsource_job is None:
        raise ValidationError("Item has no outsource job")
    return item.outsource_job


def _save_vendor(details: OutsourceDetails) -> Optional[int]:
    """Add the vendor to the vendor list (or reuse the existing row). Failure is logged only."""
    try:
        with db.session.begin_nested():
            vendor = Vendor.query.filter_by(vendor_name=details.vendor_name, phone=details.phone).first()
            if vendor is None:
                vendor = Vendor(
                    vendor_name=details.vendor_name,
                    vendor_company=details.vendor_company,
                    contact_person=details.contact_person,
                    phone=details.phone,
                    email=details.email,
                    city=details.city,
                )
                db.session.add(vendor)
                db.session.flush()
            return vendor.id
    except SQLAlchemyError as exc:
        logger.warning("Could not save vendor %r: %s", details.vendor_name, exc)
        return None


def _outsource_effects(item: OrderItem, actor, action: str, notes: str, label: str) -> SideEffects:
    effects = SideEffects(label)
    effects.add("timeline", record_timeline, item.order_id, action, item_id=item.id,
                stage=Stage.OUTSOURCE, notes=notes, actor=actor)
    effects.add("activity", record_activity, item.order_id, action, notes, item_id=item.id,
                department=Stage.OUTSOURCE, actor=actor)
    return effects


# ---------------------------------------------------------------------
# Assign
# ---------------------------------------------------------------------
def assign_to_outsource(
    item: OrderItem,
    details: OutsourceDetails,
    actor,
    *,
    note: Optional[str] = None,
    save_vendor: bool = False,
) -> OutsourceJob:
    vendor_id = details.vendor_id
    if save_vendor or details.save_vendor:
        vendor_id = _save_vendor(details) or vendor_id

    if item.outsource_job is not None:
        # An item returning to a vendor gets a fresh job
        db.session.delete(item.outsource_job)
        db.session.flush()

    job = OutsourceJob(
        item=item,
        order_id=item.order_id,
        vendor_id=vendor_id,
        vendor_name=details.vendor_name,
        vendor_company=details.vendor_company,
        contact_person=details.contact_person,
        phone=details.phone,
        email=details.email,
        city=details.city,
        work_type=details.work_type,
        quantity_sent=details.quantity_sent,
        expected_ready_date=details.expected_ready_date,
        special_instructions=details.special_instructions,
        stage=OutsourceStage.OUTSOURCED,
        assigned_by_id=getattr(actor, "id", None),
        assigned_by_name=getattr(actor, "display_name", None),
    )
    db.session.add(job)
    item.move_to(Stage.OUTSOURCE, ItemStatus.SENT_TO_VENDOR)
    item.assigned_to_id = None
    commit("assign to outsource")

    summary = (
        f"Sent to {details.vendor_name} ({details.quantity_sent} pcs, "
        f"expected {details.expected_ready_date.isoformat()})"
    )
    effects = _outsource_effects(
        item, actor, TimelineAction.OUTSOURCE_ASSIGNED,
        f"{note} | {summary}" if note else summary,
        f"outsource item {item.id}",
    )
    effects.add("notify_stage", notify_stage_change, item, Stage.OUTSOURCE, actor)
    effects.run()
    return job


# ---------------------------------------------------------------------
# Stage machine
# ---------------------------------------------------------------------
def _move_job(item: OrderItem, job: OutsourceJob, target: str, actor, notes: Optional[str]) -> OutsourceJob:
    previous = job.stage
    job.stage = target
    commit("update outsource stage")

    message = f"Outsource stage: {previous} -> {target}"
    _outsource_effects(
        item, actor, TimelineAction.OUTSOURCE_STAGE_CHANGED,
        f"{message} | {notes}" if notes else message,
        f"outsource stage item {item.id}",
    ).run()
    return job


def update_outsource_stage(item: OrderItem, target: str, actor, *, reason: Optional[str] = None) -> OutsourceJob:
    job = get_job(item)
    target = check_outsource_transition(job.stage, target, reason)
    return _move_job(item, job, target, actor, clean_str(reason))


def add_follow_up_note(item: OrderItem, note: str, actor) -> OutsourceFollowUp:
    job = get_job(item)
    note = clean_str(note)
    if not note:
        raise ValidationError("Follow-up note cannot be empty")

    row = OutsourceFollowUp(
        job=job,
        note=note,
        created_by_id=getattr(actor, "id", None),
        created_by_name=getattr(actor, "display_name", None),
    )
    db.session.add(row)
    commit("add follow-up note")

    SideEffects(f"follow-up item {item.id}").add(
        "timeline", record_timeline, item.order_id, TimelineAction.OUTSOURCE_FOLLOW_UP,
        item_id=item.id, stage=Stage.OUTSOURCE, notes=note, actor=actor, is_public=False,
    ).run()
    return row


def record_vendor_dispatch(item: OrderItem, data: Dict[str, Any], actor) -> OutsourceJob:
    job = get_job(item)
    target = check_outsource_transition(job.stage, OutsourceStage.VENDOR_DISPATCHED)

    data = data or {}
    errors = []
    courier = clean_str(data.get("courier_name"))
    if not courier:
        errors.append("Courier name is required")
    tracking = clean_str(data.get("tracking_number"))
    if not tracking:
        errors.append("Tracking number is required")
    dispatched_on = None
    try:
        dispatched_on = parse_date(data.get("vendor_dispatch_date") or data.get("dispatch_date"),
                                   "dispatch date", required=True)
    except ValidationError as exc:
        errors.extend(exc.errors)
    if errors:
        raise ValidationError(errors)

    job.courier_name = courier
    job.tracking_number = tracking
    job.vendor_dispatch_date = dispatched_on
    return _move_job(item, job, target, actor, f"Courier: {courier}, Tracking: {tracking}")


def receive_from_vendor(item: OrderItem, data: Dict[str, Any], actor) -> OutsourceJob:
    job = get_job(item)
    target = check_outsource_transition(job.stage, OutsourceStage.RECEIVED_FROM_VENDOR)

    data = data or {}
    errors = []
    receiver = clean_str(data.get("receiver_name"))
    if not receiver:
        errors.append("Receiver name is required")
    received_on = None
    try:
        received_on = parse_date(data.get("received_date"), "received date", required=True)
    except ValidationError as exc:
        errors.extend(exc.errors)
    if errors:
        raise ValidationError(errors)

    job.receiver_name = receiver
    job.received_date = received_on
    return _move_job(item, job, target, actor, f"Received by {receiver}")


def record_quality_check(item: OrderItem, data: Dict[str, Any], actor) -> OutsourceJob:
    """pass -> decision_pending; fail -> back to vendor_in_progress."""
    job = get_job(item)
    data = data or {}
    target = check_outsource_transition(job.stage, qc_next_stage(data.get("result") or data.get("qc_result")))

    notes = clean_str(data.get("notes") or data.get("qc_notes"))
    job.qc_result = "pass" if target == OutsourceStage.DECISION_PENDING else "fail"
    job.qc_notes = notes
    label = f"QC {job.qc_result}"
    return _move_job(item, job, target, actor, f"{label}: {notes}" if notes else label)


def post_qc_decision(item: OrderItem, data: Dict[str, Any], actor) -> OrderItem:
    """After a passed QC: back into production, or straight to ready-for-dispatch."""
    job = get_job(item)
    if job.stage != OutsourceStage.DECISION_PENDING:
        raise InvalidTransition("A decision can only be recorded after the quality check passes")

    data = data or {}
    decision = normalize_decision(data.get("decision"))
    stage, status = decision_outcome(decision)

    sequence = None
    if status == ItemStatus.PRODUCTION_IN_PROGRESS and data.get("production_sequence") is not None:
        sequence = validate_sequence(data.get("production_sequence"), production_substages())

    job.decision = decision
    item.move_to(stage, status)
    item.assigned_to_id = None
    if sequence:
        apply_sequence(item, sequence)
    commit("post-QC decision")

    notes = clean_str(data.get("notes"))
    message = f"QC decision: {decision}"
    effects = SideEffects(f"qc decision item {item.id}")
    effects.add("timeline", record_timeline, item.order_id, TimelineAction.STAGE_CHANGED,
                item_id=item.id, stage=stage, notes=f"{message} | {notes}" if notes else message, actor=actor)
    effects.add("notify_stage", notify_stage_change, item, stage, actor)
    if status == ItemStatus.READY_FOR_DISPATCH:
        effects.add("notify_ready", notify_ready_for_dispatch, item, actor)
    effects.run()
    return item
