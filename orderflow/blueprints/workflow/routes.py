"""
orderflow/blueprints/workflow/routes.py

Item workflow routes (all under /orders/<order_id>/items/<item_id>).

Provides:
- GET  /destinations                where the item may go next
- POST /process                     process / send_for_approval / approve / reject
- POST /substage/start, /substage/complete, PUT /sequence   (production)
- POST /outsource/stage, /outsource/notes, /outsource/vendor-dispatch,
       /outsource/receive, /outsource/quality-check, /outsource/decision

SECURITY:
- require_can_act(): admin / sales act on any item, department staff only on items owned
  by their department. Viewers never reach these handlers (global read-only guard).
"""

from __future__ import annotations

from flask import Blueprint, jsonify
from flask_login import current_user, login_required

from ...serializers import order_snapshot, outsource_dict, present_order
from ...services import outsource as outsource_service
from ...services.orders import get_item
from ...services.workflow import (
    complete_substage,
    destinations,
    process_item,
    require_can_act,
    set_sequence,
    start_substage,
)
from ...utils import json_body

workflow_bp = Blueprint("workflow", __name__, url_prefix="/orders/<int:order_id>/items/<int:item_id>")


def _acting_on(order_id: int, item_id: int):
    """(item, actor) after the department check."""
    item = get_item(order_id, item_id)
    actor = current_user._get_current_object()
    require_can_act(item, actor)
    return item, actor


def _order_response(item, **extra):
    return jsonify({"status": "success", "order": present_order(order_snapshot(item.order), current_user), **extra})


# ----------------------------------------------------------------------
# Generic moves
# ----------------------------------------------------------------------
@workflow_bp.route("/destinations", methods=["GET"])
@login_required
def item_destinations(order_id: int, item_id: int):
    item, _ = _acting_on(order_id, item_id)
    return jsonify({"status": "success", **destinations(item)})


@workflow_bp.route("/process", methods=["POST"])
@login_required
def process(order_id: int, item_id: int):
    item, actor = _acting_on(order_id, item_id)
    process_item(item, json_body(), actor)
    return _order_response(item)


# ----------------------------------------------------------------------
# Production
# ----------------------------------------------------------------------
@workflow_bp.route("/substage/start", methods=["POST"])
@login_required
def substage_start(order_id: int, item_id: int):
    item, actor = _acting_on(order_id, item_id)
    start_substage(item, json_body().get("substage"), actor)
    return _order_response(item)


@workflow_bp.route("/substage/complete", methods=["POST"])
@login_required
def substage_complete(order_id: int, item_id: int):
    item, actor = _acting_on(order_id, item_id)
    outcome = complete_substage(item, actor, json_body().get("note"))
    return _order_response(
        item,
        completed=outcome.completed,
        next_substage=outcome.next_substage,
        ready_for_dispatch=outcome.ready_for_dispatch,
    )


@workflow_bp.route("/sequence", methods=["PUT"])
@login_required
def sequence(order_id: int, item_id: int):
    item, actor = _acting_on(order_id, item_id)
    cleaned = set_sequence(item, json_body().get("production_sequence"), actor)
    return _order_response(item, production_sequence=cleaned)


# ----------------------------------------------------------------------
# Outsource
# ----------------------------------------------------------------------
@workflow_bp.route("/outsource/stage", methods=["POST"])
@login_required
def outsource_stage(order_id: int, item_id: int):
    item, actor = _acting_on(order_id, item_id)
    data = json_body()
    job = outsource_service.update_outsource_stage(item, data.get("stage"), actor, reason=data.get("reason"))
    return jsonify({"status": "success", "outsource": outsource_dict(job)})


@workflow_bp.route("/outsource/notes", methods=["POST"])
@login_required
def outsource_note(order_id: int, item_id: int):
    item, actor = _acting_on(order_id, item_id)
    outsource_service.add_follow_up_note(item, json_body().get("note"), actor)
    return jsonify({"status": "success", "outsource": outsource_dict(item.outsource_job)}), 201


@workflow_bp.route("/outsource/vendor-dispatch", methods=["POST"])
@login_required
def outsource_vendor_dispatch(order_id: int, item_id: int):
    item, actor = _acting_on(order_id, item_id)
    job = outsource_service.record_vendor_dispatch(item, json_body(), actor)
    return jsonify({"status": "success", "outsource": outsource_dict(job)})


@workflow_bp.route("/outsource/receive", methods=["POST"])
@login_required
def outsource_receive(order_id: int, item_id: int):
    item, actor = _acting_on(order_id, item_id)
    job = outsource_service.receive_from_vendor(item, json_body(), actor)
    return jsonify({"status": "success", "outsource": outsource_dict(job)})


@workflow_bp.route("/outsource/quality-check", methods=["POST"])
@login_required
def outsource_quality_check(order_id: int, item_id: int):
    item, actor = _acting_on(order_id, item_id)
    job = outsource_service.record_quality_check(item, json_body(), actor)
    return jsonify({"status": "success", "outsource": outsource_dict(job)})


@workflow_bp.route("/outsource/decision", methods=["POST"])
@login_required
def outsource_decision(order_id: int, item_id: int):
    item, actor = _acting_on(order_id, item_id)
    outsource_service.post_qc_decision(item, json_body(), actor)
    return _order_response(item)
