"""
orderflow/services/orders.py

Order intake and order-level operations.

create_order() validates the whole form before anything is written; a failed validation
leaves no order, item or audit row behind. Orders that reference a cached WooCommerce
import get their customer / product fields from the cached payload (those fields are
locked, whatever the client sent).

SECURITY NOTE:
- Routes check roles with decorators; the delivery-date and delete rules are checked here
  as well because they depend on the acting user, not the route.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional

from flask import current_app

from ..audit import log_action, serialize_model
from ..constants import (
    Department,
    OrderSource,
    Role,
    TimelineAction,
    normalize_choice,
    stage_for_department,
)
from ..effects import SideEffects, record_activity, record_timeline
from ..errors import DuplicateOrderError, PermissionDenied, ValidationError
from ..extensions import db
from ..models import Order, OrderFile, OrderItem, OutsourceJob, User, WooCommerceImport
from ..notifications import notify_priority_escalation, notify_user
from ..order_numbers import check_duplicate
from ..priority import is_escalation
from ..serializers import order_snapshot
from ..storage import object_key, object_store
from ..utils import clean_str, parse_bool, parse_date, parse_decimal, parse_optional_int, production_substages
from ..woocommerce import OrderIntakeForm
from ..workflow.outsource import validate_outsource_details
from ..workflow.production import apply_sequence, validate_sequence
from ..workflow.transitions import INITIAL_STATUS
from . import commit, flush

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------
def get_order(order_id: int) -> Order:
    return db.get_or_404(Order, order_id)


def get_item(order_id: int, item_id: int) -> OrderItem:
    return OrderItem.query.filter_by(id=item_id, order_id=order_id).first_or_404()


def load_order_snapshots() -> List[dict]:
    """Every order as a cacheable snapshot, newest first."""
    orders = Order.query.order_by(Order.created_at.desc(), Order.id.desc()).all()
    return [order_snapshot(o) for o in orders]


def _require_admin_or_sales(actor, what: str) -> None:
    if getattr(actor, "role", None) not in Role.FULL_VISIBILITY:
        raise PermissionDenied(f"Only admin and sales can {what}")


def clean_specifications(raw) -> Dict[str, str]:
    """
    Specification map from a dict or a list of {key, value} rows.

    Rows with an empty key or value are dropped.
    """
    if isinstance(raw, dict):
        pairs = raw.items()
    elif isinstance(raw, (list, tuple)):
        pairs = ((r.get("key"), r.get("value")) for r in raw if isinstance(r, dict))
    else:
        pairs = ()

    specs = {}
    for key, value in pairs:
        key = clean_str(key)
        value = clean_str(value)
        if key and value:
            specs[key] = value
    return specs


# ---------------------------------------------------------------------
# Create
# ---------------------------------------------------------------------
def _intake_payload(data: Dict[str, Any]) -> Dict[str, Any]:
    """Client payload, with cached import fields filled in and locked."""
    form = OrderIntakeForm()
    form.update(data)

    external_id = clean_str(data.get("woocommerce_order_id") or data.get("external_order_id"))
    if external_id:
        cached = WooCommerceImport.query.filter_by(woocommerce_order_id=external_id).first()
        if cached is not None:
            form.apply_import(cached.sanitized_payload)
    return form.to_payload()


def _validate_products(products, errors: List[str]) -> List[Dict[str, Any]]:
    if not isinstance(products, (list, tuple)) or not products:
        errors.append("At least one product is required")
        return []

    cleaned = []
    for n, raw in enumerate(products, start=1):
        raw = raw if isinstance(raw, dict) else {}
        name = clean_str(raw.get("name") or raw.get("product_name"))
        if not name:
            errors.append(f"Product {n} name required")

        quantity = parse_optional_int(raw.get("quantity"))
        if quantity is None or quantity < 1:
            errors.append(f"Product {n} quantity must be at least 1")

        specs = clean_specifications(raw.get("specifications"))
        if not specs:
            errors.append(f"Product {n} needs at least one specification")

        cleaned.append(
            {
                "name": name,
                "quantity": quantity,
                "sku": clean_str(raw.get("sku")),
                "unit_price": parse_decimal(raw.get("unit_price")),
                "specifications": specs,
                "need_design": parse_bool(raw["need_design"]) if "need_design" in raw else True,
            }
        )
    return cleaned


def create_order(data: Dict[str, Any], actor) -> Order:
    payload = _intake_payload(data or {})
    errors: List[str] = []

    order_number = clean_str(payload.get("order_number"))
    if not order_number:
        errors.append("Order number is required")

    customer_name = clean_str(payload.get("customer_name"))
    if not customer_name:
        errors.append("Customer name is required")

    delivery_date = None
    order_date = None
    try:
        delivery_date = parse_date(payload.get("delivery_date"), "delivery date", required=True)
    except ValidationError as exc:
        errors.extend(exc.errors)
    try:
        order_date = parse_date(payload.get("order_date"), "order date")
    except ValidationError as exc:
        errors.extend(exc.errors)

    products = _validate_products(payload.get("products"), errors)

    source = normalize_choice(payload.get("source") or OrderSource.MANUAL, OrderSource.ALL, "source")
    external_id = clean_str(payload.get("woocommerce_order_id") or payload.get("external_order_id"))

    # Department / assignee: admins choose, everybody else starts in sales
    assignee = None
    if actor.is_admin:
        department = normalize_choice(payload.get("department"), Department.ALL, "department", required=False)
        if not department:
            errors.append("Select a department")
        assignee_id = parse_optional_int(payload.get("assigned_to_id"))
        if assignee_id is None:
            errors.append("Select an assignee")
        else:
            assignee = db.session.get(User, assignee_id)
            if assignee is None or not assignee.is_active:
                errors.append("Selected assignee does not exist")
    else:
        department = Department.SALES
        assignee = actor

    sequence = None
    outsource = None
    if department == Department.PRODUCTION and payload.get("production_sequence") is not None:
        try:
            sequence = validate_sequence(payload.get("production_sequence"), production_substages())
        except ValidationError as exc:
            errors.extend(exc.errors)
    if department == Department.OUTSOURCE:
        try:
            outsource = validate_outsource_details(payload.get("outsource"))
        except ValidationError as exc:
            errors.extend(exc.errors)

    if errors:
        raise ValidationError(errors)

    duplicate = check_duplicate(order_number, external_id)
    if duplicate.is_duplicate:
        raise DuplicateOrderError(duplicate.reason)

    # -- primary write -------------------------------------------------------
    order = Order(
        order_number=order_number,
        external_order_id=external_id,
        source=source,
        order_date=order_date,
        customer_name=customer_name,
        customer_phone=clean_str(payload.get("customer_phone")),
        customer_email=clean_str(payload.get("customer_email")),
        customer_address=clean_str(payload.get("customer_address")),
        customer_city=clean_str(payload.get("customer_city")),
        customer_state=clean_str(payload.get("customer_state")),
        customer_pincode=clean_str(payload.get("customer_pincode")),
        delivery_date=delivery_date,
        notes=clean_str(payload.get("notes")),
        created_by_id=actor.id,
        assigned_user_id=actor.id if actor.role == Role.SALES else (
            assignee.id if assignee is not None and assignee.role == Role.SALES else None
        ),
    )
    db.session.add(order)
    flush("create order")

    status = INITIAL_STATUS[department]
    for product in products:
        unit_price = product["unit_price"]
        item = OrderItem(
            order=order,
            product_name=product["name"],
            sku=product["sku"],
            quantity=product["quantity"],
            unit_price=unit_price,
            line_total=(unit_price * product["quantity"]) if unit_price is not None else None,
            specifications=product["specifications"],
            need_design=product["need_design"],
            delivery_date=delivery_date,
            assigned_to_id=assignee.id if assignee is not None else None,
        )
        db.session.add(item)
        item.move_to(stage_for_department(department), status)
        item.refresh_priority()
        if sequence:
            apply_sequence(item, sequence)
        if outsource is not None:
            db.session.add(
                OutsourceJob(
                    item=item,
                    order_id=order.id,
                    vendor_id=outsource.vendor_id,
                    vendor_name=outsource.vendor_name,
                    vendor_company=outsource.vendor_company,
                    contact_person=outsource.contact_person,
                    phone=outsource.phone,
                    email=outsource.email,
                    city=outsource.city,
                    work_type=outsource.work_type,
                    quantity_sent=outsource.quantity_sent,
                    expected_ready_date=outsource.expected_ready_date,
                    special_instructions=outsource.special_instructions,
                    assigned_by_id=actor.id,
                    assigned_by_name=actor.display_name,
                )
            )

    if source == OrderSource.WOOCOMMERCE:
        order.order_total = parse_decimal(payload.get("order_total"))
        order.payment_status = clean_str(payload.get("payment_status"))
        order.currency = clean_str(payload.get("currency")) or "INR"
    elif any(p["unit_price"] is not None for p in products):
        gst = Decimal(str(current_app.config.get("GST_RATE", "0"))) if parse_bool(payload.get("apply_gst")) else None
        order.recalculate_totals(gst)

    flush("create order")
    log_action(order, "CREATE", before=None, after=serialize_model(order), actor=actor)
    commit("create order")

    logger.info("Order %s created by %s (%d items, %s)", order.order_number, actor.username, len(order.items), source)

    # -- side effects ----------------------------------------------------------
    created_note = (
        f"Imported from WC #{order.order_number}" if source == OrderSource.WOOCOMMERCE else "Created manually"
    )
    effects = SideEffects(f"create order {order.order_number}")
    effects.add("timeline", record_timeline, order.id, TimelineAction.CREATED,
                stage=stage_for_department(department), notes=created_note, actor=actor)
    effects.add("activity", record_activity, order.id, TimelineAction.CREATED,
                f"Order {order.order_number} created with {len(order.items)} item(s)",
                department=department, actor=actor, details={"source": source})
    if assignee is not None and assignee.id != actor.id:
        effects.add(
            "notify_assignee",
            notify_user,
            assignee.id,
            title="New Order Assigned",
            message=f"Order {order.order_number} for {order.customer_name} has been assigned to you",
            order_id=order.id,
        )
    effects.run()
    return order


# ---------------------------------------------------------------------
# Update / delete
# ---------------------------------------------------------------------
CUSTOMER_FIELDS = (
    "customer_phone",
    "customer_email",
    "customer_address",
    "customer_city",
    "customer_state",
    "customer_pincode",
    "notes",
)


def update_order(order: Order, data: Dict[str, Any], actor) -> Order:
    data = data or {}

    new_delivery = None
    if "delivery_date" in data:
        _require_admin_or_sales(actor, "change the delivery date")
        new_delivery = parse_date(data.get("delivery_date"), "delivery date", required=True)

    if "customer_name" in data and not clean_str(data.get("customer_name")):
        raise ValidationError("Customer name is required")

    before = serialize_model(order)

    if "customer_name" in data:
        order.customer_name = clean_str(data["customer_name"])
    for name in CUSTOMER_FIELDS:
        if name in data:
            setattr(order, name, clean_str(data[name]))

    escalations = []
    date_changed = new_delivery is not None and new_delivery != order.delivery_date
    if date_changed:
        order.delivery_date = new_delivery
        for item in order.items:
            item.delivery_date = new_delivery
            previous, current = item.refresh_priority()
            if is_escalation(previous, current):
                escalations.append((item, previous))

    log_action(order, "UPDATE", before=before, after=serialize_model(order), actor=actor)
    commit("update order")

    effects = SideEffects(f"update order {order.order_number}")
    if date_changed:
        effects.add("timeline", record_timeline, order.id, TimelineAction.DELIVERY_DATE_UPDATED,
                    notes=f"Delivery date updated to {new_delivery.isoformat()}", actor=actor)
    for item, previous in escalations:
        effects.add(f"escalation:{item.id}", notify_priority_escalation, item, previous)
    effects.run()
    return order


def delete_order(order: Order, actor) -> None:
    _require_admin_or_sales(actor, "delete orders")

    keys = [f.storage_key for f in order.files]
    number = order.order_number
    log_action(order, "DELETE", before=serialize_model(order), after=None, actor=actor)
    db.session.delete(order)
    commit("delete order")
    logger.info("Order %s deleted by %s", number, actor.username)

    for key in keys:
        try:
            object_store.delete(key)
        except OSError as exc:
            logger.warning("Could not remove stored file %s of deleted order %s: %s", key, number, exc)


# ---------------------------------------------------------------------
# Notes / item edits
# ---------------------------------------------------------------------
def add_note(order: Order, note: str, actor, item_id: Optional[int] = None):
    note = clean_str(note)
    if not note:
        raise ValidationError("Note cannot be empty")
    if item_id is not None and item_id not in {i.id for i in order.items}:
        raise ValidationError("Item does not belong to this order")

    entry = record_timeline(order.id, TimelineAction.NOTE_ADDED, item_id=item_id, notes=note,
                            actor=actor, is_public=False)
    commit("add note")
    return entry


def update_item_delivery_date(item: OrderItem, value, actor) -> OrderItem:
    _require_admin_or_sales(actor, "change the delivery date")
    new_date = parse_date(value, "delivery date", required=True)

    item.delivery_date = new_date
    previous, current = item.refresh_priority()
    commit("update delivery date")

    effects = SideEffects(f"delivery date item {item.id}")
    effects.add("timeline", record_timeline, item.order_id, TimelineAction.DELIVERY_DATE_UPDATED,
                item_id=item.id, stage=item.current_stage,
                notes=f"Delivery date updated to {new_date.isoformat()}", actor=actor)
    if is_escalation(previous, current):
        effects.add("escalation", notify_priority_escalation, item, previous)
    effects.run()
    return item


def update_item_specifications(item: OrderItem, raw, actor) -> OrderItem:
    specs = clean_specifications(raw)
    if not specs:
        raise ValidationError("At least one specification is required")

    item.specifications = specs
    commit("update specifications")

    SideEffects(f"specifications item {item.id}").add(
        "timeline", record_timeline, item.order_id, TimelineAction.SPECIFICATIONS_UPDATED,
        item_id=item.id, stage=item.current_stage,
        notes=", ".join(f"{k}: {v}" for k, v in specs.items()), actor=actor,
    ).run()
    return item


def assign_item_to_user(item: OrderItem, user_id, actor) -> OrderItem:
    """Assign (or with user_id None, unassign) an item within its department."""
    user = None
    if user_id is not None:
        user = db.session.get(User, user_id)
        if user is None or not user.is_active:
            raise ValidationError("User not found")
        if not user.is_admin and user.work_department != item.department:
            raise ValidationError(f"{user.display_name} is not a member of {item.department}")

    item.assigned_to_id = user.id if user else None
    commit("assign item")

    effects = SideEffects(f"assign item {item.id}")
    effects.add("timeline", record_timeline, item.order_id, TimelineAction.ASSIGNED,
                item_id=item.id, stage=item.current_stage,
                notes=f"Assigned to {user.display_name}" if user else "Unassigned", actor=actor)
    if user is not None and user.id != getattr(actor, "id", None):
        effects.add(
            "notify_assignee",
            notify_user,
            user.id,
            title="Order Assigned to You",
            message=f"{item.product_name} ({item.order.order_number}) has been assigned to you",
            order_id=item.order_id,
            item_id=item.id,
        )
    effects.run()
    return item


# ---------------------------------------------------------------------
# Files
# ---------------------------------------------------------------------
def attach_file(
    order: Order,
    upload,
    actor,
    *,
    item_id: Optional[int] = None,
    file_type: Optional[str] = None,
    replace_file_id: Optional[int] = None,
) -> OrderFile:
    """Store an uploaded file; replace_file_id swaps out an earlier file (object and row)."""
    if upload is None or not getattr(upload, "filename", None):
        raise ValidationError("Select a file to upload")
    if item_id is not None and item_id not in {i.id for i in order.items}:
        raise ValidationError("Item does not belong to this order")

    previous = None
    if replace_file_id is not None:
        previous = OrderFile.query.filter_by(id=replace_file_id, order_id=order.id).first()
        if previous is None:
            raise ValidationError("File to replace was not found")

    key = object_key(order.id, item_id, upload.filename)
    size = object_store.save(key, upload.stream)

    row = OrderFile(
        order_id=order.id,
        item_id=item_id,
        file_name=upload.filename,
        storage_key=key,
        content_type=getattr(upload, "mimetype", None),
        file_size=size,
        file_type=clean_str(file_type),
        uploaded_by_id=getattr(actor, "id", None),
    )
    db.session.add(row)
    if previous is not None:
        db.session.delete(previous)

    try:
        commit("attach file")
    except Exception:
        object_store.delete(key)
        raise

    if previous is not None:
        try:
            object_store.delete(previous.storage_key)
        except OSError as exc:
            logger.warning("Could not remove replaced file %s: %s", previous.storage_key, exc)

    SideEffects(f"upload order {order.id}").add(
        "timeline", record_timeline, order.id, TimelineAction.FILE_UPLOADED,
        item_id=item_id, notes=f"Uploaded {row.file_name}", actor=actor,
        attachments=[{"file_id": row.id, "file_name": row.file_name}],
    ).run()
    return row
