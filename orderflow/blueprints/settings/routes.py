"""
orderflow/blueprints/settings/routes.py

Settings & master data routes.

Scope:
- Vendors CRUD (admin / sales). Deleting a vendor deactivates it; outsource jobs keep
  their own copy of the vendor details.
- Production substage catalogue (read: everyone logged in; write: admin only).

SECURITY:
- All permissions are enforced here server-side; the viewer guard is only a safety net.

AUDIT:
- CREATE / UPDATE / DELETE on vendors is audited via orderflow/audit.py.
"""

from __future__ import annotations

from typing import Dict

from flask import Blueprint, jsonify, request
from flask_login import login_required
from sqlalchemy.exc import IntegrityError

from ...audit import log_action, serialize_model
from ...constants import Role
from ...errors import ValidationError
from ...extensions import db
from ...models import Vendor
from ...security import admin_required, roles_required
from ...serializers import vendor_dict
from ...services import commit
from ...utils import PRODUCTION_SUBSTAGES_KEY, clean_str, json_body, parse_bool, production_substages, set_setting

settings_bp = Blueprint("settings", __name__, url_prefix="/settings")

VENDOR_FIELDS = ("vendor_name", "vendor_company", "contact_person", "phone", "email", "city")


# ----------------------------------------------------------------------
# Helpers
# ----------------------------------------------------------------------
def _vendor_values(data: Dict, current: Vendor | None = None) -> Dict[str, str | None]:
    """Validated vendor fields (partial updates keep the current values)."""
    values = {}
    for field in VENDOR_FIELDS:
        if field in data:
            values[field] = clean_str(data.get(field))
        elif current is not None:
            values[field] = getattr(current, field)
        else:
            values[field] = None

    errors = []
    if not values["vendor_name"]:
        errors.append("Vendor name is required")
    if not values["phone"]:
        errors.append("Vendor phone is required")
    if errors:
        raise ValidationError(errors)
    return values


def _commit_vendor() -> None:
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ValidationError("A vendor with this name and phone already exists")


# ----------------------------------------------------------------------
# Vendors
# ----------------------------------------------------------------------
@settings_bp.route("/vendors", methods=["GET"])
@login_required
@roles_required(Role.SALES)
def vendors():
    query = Vendor.query
    if not parse_bool(request.args.get("include_inactive")):
        query = query.filter_by(is_active=True)
    rows = query.order_by(Vendor.vendor_name.asc()).all()
    return jsonify({"status": "success", "vendors": [vendor_dict(v) for v in rows]})


@settings_bp.route("/vendors", methods=["POST"])
@login_required
@roles_required(Role.SALES)
def create_vendor():
    vendor = Vendor(**_vendor_values(json_body()), is_active=True)
    db.session.add(vendor)
    _commit_vendor()

    log_action(vendor, "CREATE", before=None, after=serialize_model(vendor))
    commit("audit vendor create")
    return jsonify({"status": "success", "vendor": vendor_dict(vendor)}), 201


@settings_bp.route("/vendors/<int:vendor_id>", methods=["PATCH"])
@login_required
@roles_required(Role.SALES)
def update_vendor(vendor_id: int):
    vendor = db.get_or_404(Vendor, vendor_id)
    data = json_body()
    before = serialize_model(vendor)

    for field, value in _vendor_values(data, vendor).items():
        setattr(vendor, field, value)
    if "is_active" in data:
        vendor.is_active = parse_bool(data.get("is_active"))

    log_action(vendor, "UPDATE", before=before, after=serialize_model(vendor))
    _commit_vendor()
    return jsonify({"status": "success", "vendor": vendor_dict(vendor)})


@settings_bp.route("/vendors/<int:vendor_id>", methods=["DELETE"])
@login_required
@roles_required(Role.SALES)
def delete_vendor(vendor_id: int):
    vendor = db.get_or_404(Vendor, vendor_id)
    before = serialize_model(vendor)
    vendor.is_active = False
    log_action(vendor, "DELETE", before=before, after=serialize_model(vendor))
    commit("deactivate vendor")
    return jsonify({"status": "success", "message": f"Vendor {vendor.vendor_name} deactivated"})


# ----------------------------------------------------------------------
# Production substages
# ----------------------------------------------------------------------
@settings_bp.route("/production-substages", methods=["GET"])
@login_required
def get_substages():
    return jsonify({"status": "success", "substages": production_substages()})


@settings_bp.route("/production-substages", methods=["PUT"])
@login_required
@admin_required
def set_substages():
    raw = json_body().get("substages")
    if not isinstance(raw, list):
        raise ValidationError("Substages must be a list")

    cleaned = []
    for value in raw:
        name = (clean_str(value) or "").lower().replace(" ", "_")
        if name and name not in cleaned:
            cleaned.append(name)
    if not cleaned:
        raise ValidationError("At least one production substage is required")

    set_setting(PRODUCTION_SUBSTAGES_KEY, cleaned)
    commit("save production substages")
    return jsonify({"status": "success", "substages": cleaned})
