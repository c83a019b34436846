"""
orderflow/blueprints/orders/routes.py

Order routes.

Provides:
- GET    /orders                      (view=active|mine|completed|urgent, filters, sort, paging)
- GET    /orders/stats                department + priority counts of the visible orders
- POST   /orders                      create (manual or from a cached WooCommerce import)
- POST   /orders/check-duplicate
- GET    /orders/<id>                 detail
- PATCH  /orders/<id>                 customer / delivery fields
- DELETE /orders/<id>                 admin / sales only
- POST   /orders/<id>/notes
- GET    /orders/<id>/timeline
- GET    /orders/<id>/activity
- GET    /orders/<id>/files, POST /orders/<id>/files
- PATCH  /orders/<id>/items/<item_id>/delivery-date
- PUT    /orders/<id>/items/<item_id>/specifications
- POST   /orders/<id>/items/<item_id>/assign

SECURITY:
- Lists are computed on the cached snapshot set and filtered per viewer (visibility.py).
- Detail routes go through order_access_required; financial fields are stripped by
  present_order() for roles that may not see them.
"""

from __future__ import annotations

from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required

from ...cache import ORDERS_KEY, activity_key, order_cache, timeline_key
from ...constants import Role
from ...dashboard import (
    department_counts,
    filter_orders,
    paginate,
    priority_counts,
    sort_orders,
    urgent_orders,
)
from ...models import OrderActivityLog, OrderFile, TimelineEntry
from ...order_numbers import check_duplicate
from ...security import order_access_required, roles_required
from ...serializers import activity_dict, file_dict, order_snapshot, present_order, timeline_dict
from ...services.orders import (
    add_note,
    assign_item_to_user,
    attach_file,
    create_order,
    delete_order,
    get_item,
    get_order,
    load_order_snapshots,
    update_item_delivery_date,
    update_item_specifications,
    update_order,
)
from ...services.workflow import require_can_act
from ...utils import clean_str, json_body, parse_bool, parse_optional_int
from ...visibility import assigned_to_me, completed_orders, visible_orders

orders_bp = Blueprint("orders", __name__, url_prefix="/orders")

VIEWS = ("active", "mine", "completed", "urgent")


def _load_order(order_id, **_):
    return get_order(order_id)


def _actor():
    return current_user._get_current_object()


def _snapshots():
    return order_cache.get(ORDERS_KEY, load_order_snapshots, force=parse_bool(request.args.get("refresh")))


def _view_rows(view: str):
    orders = _snapshots()
    if view == "completed":
        return completed_orders(orders, current_user)
    active = visible_orders(orders, current_user)
    if view == "mine":
        return assigned_to_me(active, current_user)
    if view == "urgent":
        return urgent_orders(active)
    return active


def _present(order) -> dict:
    return present_order(order_snapshot(order), current_user)


# ----------------------------------------------------------------------
# Lists
# ----------------------------------------------------------------------
@orders_bp.route("", methods=["GET"])
@login_required
def list_orders():
    args = request.args
    view = (args.get("view") or "active").strip().lower()
    if view not in VIEWS:
        view = "active"

    rows = filter_orders(
        _view_rows(view),
        stage=clean_str(args.get("stage")),
        department=clean_str(args.get("department")),
        priority=clean_str(args.get("priority")),
        search=clean_str(args.get("search") or args.get("q")),
    )
    rows = sort_orders(rows, args.get("sort") or "priority", parse_bool(args.get("desc")))
    page = paginate(rows, parse_optional_int(args.get("page")) or 1, parse_optional_int(args.get("per_page")) or 20)
    page["items"] = [present_order(o, current_user) for o in page["items"]]
    return jsonify({"status": "success", "view": view, **page})


@orders_bp.route("/stats", methods=["GET"])
@login_required
def order_stats():
    active = visible_orders(_snapshots(), current_user)
    return jsonify(
        {
            "status": "success",
            "active_orders": len(active),
            "urgent_orders": len(urgent_orders(active)),
            "by_department": department_counts(active),
            "by_priority": priority_counts(active),
        }
    )


# ----------------------------------------------------------------------
# Create / duplicate check
# ----------------------------------------------------------------------
@orders_bp.route("", methods=["POST"])
@login_required
@roles_required(Role.SALES)
def create_order_route():
    order = create_order(json_body(), _actor())
    return jsonify({"status": "success", "order": _present(order)}), 201


@orders_bp.route("/check-duplicate", methods=["POST"])
@login_required
@roles_required(Role.SALES)
def check_duplicate_route():
    data = json_body()
    result = check_duplicate(data.get("order_number"), data.get("woocommerce_order_id") or data.get("external_order_id"))
    return jsonify({"status": "success", **result.to_dict()})


# ----------------------------------------------------------------------
# Detail / update / delete
# ----------------------------------------------------------------------
@orders_bp.route("/<int:order_id>", methods=["GET"])
@login_required
@order_access_required(_load_order)
def order_detail(order_id: int):
    return jsonify({"status": "success", "order": _present(get_order(order_id))})


@orders_bp.route("/<int:order_id>", methods=["PATCH"])
@login_required
@roles_required(Role.SALES)
def update_order_route(order_id: int):
    order = update_order(get_order(order_id), json_body(), _actor())
    return jsonify({"status": "success", "order": _present(order)})


@orders_bp.route("/<int:order_id>", methods=["DELETE"])
@login_required
@roles_required(Role.SALES)
def delete_order_route(order_id: int):
    order = get_order(order_id)
    number = order.order_number
    delete_order(order, _actor())
    return jsonify({"status": "success", "message": f"Order {number} deleted"})


# ----------------------------------------------------------------------
# Notes / timeline / activity
# ----------------------------------------------------------------------
@orders_bp.route("/<int:order_id>/notes", methods=["POST"])
@login_required
@order_access_required(_load_order)
def add_note_route(order_id: int):
    data = json_body()
    entry = add_note(get_order(order_id), data.get("note"), _actor(), parse_optional_int(data.get("item_id")))
    return jsonify({"status": "success", "entry": timeline_dict(entry)}), 201


@orders_bp.route("/<int:order_id>/timeline", methods=["GET"])
@login_required
@order_access_required(_load_order)
def order_timeline(order_id: int):
    def load():
        rows = (
            TimelineEntry.query.filter_by(order_id=order_id)
            .order_by(TimelineEntry.created_at.asc(), TimelineEntry.id.asc())
            .all()
        )
        return [timeline_dict(r) for r in rows]

    entries = order_cache.get(timeline_key(order_id), load)
    item_id = parse_optional_int(request.args.get("item_id"))
    if item_id is not None:
        entries = [e for e in entries if e["item_id"] in (None, item_id)]
    return jsonify({"status": "success", "timeline": entries})


@orders_bp.route("/<int:order_id>/activity", methods=["GET"])
@login_required
@order_access_required(_load_order)
def order_activity(order_id: int):
    def load():
        rows = (
            OrderActivityLog.query.filter_by(order_id=order_id)
            .order_by(OrderActivityLog.created_at.desc(), OrderActivityLog.id.desc())
            .all()
        )
        return [activity_dict(r) for r in rows]

    return jsonify({"status": "success", "activity": order_cache.get(activity_key(order_id), load)})


# ----------------------------------------------------------------------
# Files
# ----------------------------------------------------------------------
@orders_bp.route("/<int:order_id>/files", methods=["GET"])
@login_required
@order_access_required(_load_order)
def list_files(order_id: int):
    rows = OrderFile.query.filter_by(order_id=order_id).order_by(OrderFile.created_at.asc()).all()
    return jsonify({"status": "success", "files": [file_dict(f) for f in rows]})


@orders_bp.route("/<int:order_id>/files", methods=["POST"])
@login_required
@order_access_required(_load_order)
def upload_file(order_id: int):
    order = get_order(order_id)
    form = request.form
    row = attach_file(
        order,
        request.files.get("file"),
        _actor(),
        item_id=parse_optional_int(form.get("item_id")),
        file_type=form.get("file_type"),
        replace_file_id=parse_optional_int(form.get("replace_file_id")),
    )
    return jsonify({"status": "success", "file": file_dict(row)}), 201


# ----------------------------------------------------------------------
# Item edits
# ----------------------------------------------------------------------
@orders_bp.route("/<int:order_id>/items/<int:item_id>/delivery-date", methods=["PATCH"])
@login_required
@roles_required(Role.SALES)
def item_delivery_date(order_id: int, item_id: int):
    item = update_item_delivery_date(get_item(order_id, item_id), json_body().get("delivery_date"), _actor())
    return jsonify({"status": "success", "order": _present(item.order)})


@orders_bp.route("/<int:order_id>/items/<int:item_id>/specifications", methods=["PUT"])
@login_required
def item_specifications(order_id: int, item_id: int):
    item = get_item(order_id, item_id)
    require_can_act(item, _actor())
    item = update_item_specifications(item, json_body().get("specifications"), _actor())
    return jsonify({"status": "success", "order": _present(item.order)})


@orders_bp.route("/<int:order_id>/items/<int:item_id>/assign", methods=["POST"])
@login_required
def item_assign(order_id: int, item_id: int):
    item = get_item(order_id, item_id)
    require_can_act(item, _actor())
    item = assign_item_to_user(item, parse_optional_int(json_body().get("user_id")), _actor())
    return jsonify({"status": "success", "order": _present(item.order)})
