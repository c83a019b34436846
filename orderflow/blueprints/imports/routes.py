"""
orderflow/blueprints/imports/routes.py

WooCommerce import lookup.

POST /imports/lookup {"order_number": "...", "request_tag": <any>}

- Fetches the order from the WooCommerce fetch endpoint, refuses it when the returned
  number does not match the requested one, caches the sanitized payload once per
  WooCommerce order id and returns the intake form values (those fields are locked
  when the order is created).
- request_tag is echoed back untouched; clients drop responses whose tag is not the
  latest one they sent.

SECURITY:
- Admin / sales only. The bearer token never leaves the server.
"""

from __future__ import annotations

import logging

from flask import Blueprint, current_app, jsonify
from flask_login import current_user, login_required

from ...constants import Role
from ...order_numbers import check_duplicate
from ...security import roles_required
from ...utils import json_body
from ...woocommerce import OrderIntakeForm, WooCommerceClient, cache_import, import_form_values, sanitize_order

logger = logging.getLogger(__name__)

imports_bp = Blueprint("imports", __name__, url_prefix="/imports")


def _client() -> WooCommerceClient:
    return WooCommerceClient.from_config(current_app.config)


@imports_bp.route("/lookup", methods=["POST"])
@login_required
@roles_required(*Role.IMPORTERS)
def lookup():
    data = json_body()
    form = OrderIntakeForm({"order_number": data.get("order_number")})
    ticket = form.begin_import()

    order = _client().fetch_order(ticket.order_number)
    # Raises ORDER_NOT_FOUND / ORDER_NUMBER_MISMATCH
    form.complete_import(ticket, order)

    row, created = cache_import(order, current_user._get_current_object())
    sanitized = sanitize_order(order)
    duplicate = check_duplicate(sanitized.get("order_number"), sanitized.get("id"))

    logger.info(
        "WooCommerce order %s looked up by %s (%s)",
        ticket.order_number,
        current_user.username,
        "cached" if created else "already cached",
    )
    return jsonify(
        {
            "status": "success",
            "request_tag": data.get("request_tag"),
            "import_id": row.id,
            "order": sanitized,
            "form": import_form_values(sanitized),
            "locked_fields": sorted(form.locked),
            "duplicate": duplicate.to_dict(),
        }
    )
