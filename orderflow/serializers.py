"""
orderflow/serializers.py

JSON shapes returned by the API.

order_snapshot() produces the viewer-independent snapshot that is cached; present_order()
adds per-read values (priority) and strips financial fields for roles that may not see them.
"""

from __future__ import annotations

import copy
from datetime import date, datetime
from decimal import Decimal

from .priority import compute_priority, priority_color
from .visibility import can_view_financials

FINANCIAL_FIELDS = ("subtotal", "tax_amount", "order_total", "payment_status", "currency")
ITEM_FINANCIAL_FIELDS = ("unit_price", "line_total")


def _iso(value):
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return value


def _num(value):
    if isinstance(value, Decimal):
        return str(value)
    return value


def outsource_dict(job) -> dict | None:
    if job is None:
        return None
    return {
        "id": job.id,
        "stage": job.stage,
        "vendor": {
            "vendor_id": job.vendor_id,
            "vendor_name": job.vendor_name,
            "vendor_company": job.vendor_company,
            "contact_person": job.contact_person,
            "phone": job.phone,
            "email": job.email,
            "city": job.city,
        },
        "job_details": {
            "work_type": job.work_type,
            "quantity_sent": job.quantity_sent,
            "expected_ready_date": _iso(job.expected_ready_date),
            "special_instructions": job.special_instructions,
        },
        "courier_name": job.courier_name,
        "tracking_number": job.tracking_number,
        "vendor_dispatch_date": _iso(job.vendor_dispatch_date),
        "receiver_name": job.receiver_name,
        "received_date": _iso(job.received_date),
        "qc_result": job.qc_result,
        "qc_notes": job.qc_notes,
        "decision": job.decision,
        "assigned_by_name": job.assigned_by_name,
        "assigned_at": _iso(job.assigned_at),
        "follow_up_notes": [
            {
                "id": n.id,
                "note": n.note,
                "created_by": n.created_by_id,
                "created_by_name": n.created_by_name,
                "created_at": _iso(n.created_at),
            }
            for n in job.follow_ups
        ],
    }


def dispatch_dict(record) -> dict | None:
    if record is None:
        return None
    return {
        "mode": record.mode,
        "courier_company": record.courier_company,
        "courier_address": record.courier_address,
        "courier_phone": record.courier_phone,
        "courier_notes": record.courier_notes,
        "is_express": record.is_express,
        "tracking_number": record.tracking_number,
        "dispatch_date": _iso(record.dispatch_date),
    }


def item_snapshot(item) -> dict:
    return {
        "id": item.id,
        "order_id": item.order_id,
        "product_name": item.product_name,
        "sku": item.sku,
        "quantity": item.quantity,
        "unit_price": _num(item.unit_price),
        "line_total": _num(item.line_total),
        "specifications": dict(item.specifications or {}),
        "need_design": item.need_design,
        "current_stage": item.current_stage,
        "current_status": item.current_status,
        "assigned_department": item.assigned_department,
        "assigned_to_id": item.assigned_to_id,
        "assigned_to_name": item.assigned_to.display_name if item.assigned_to else None,
        "previous_department": item.previous_department,
        "previous_assigned_to_id": item.previous_assigned_to_id,
        "production_stage_sequence": list(item.production_stage_sequence or []),
        "current_substage": item.current_substage,
        "substage_status": item.substage_status,
        "is_ready_for_production": item.is_ready_for_production,
        "delivery_date": _iso(item.delivery_date),
        "is_dispatched": item.is_dispatched,
        "is_completed": item.is_completed,
        "outsource": outsource_dict(item.outsource_job),
        "dispatch": dispatch_dict(item.dispatch_record),
        "created_at": _iso(item.created_at),
        "updated_at": _iso(item.updated_at),
    }


def order_snapshot(order) -> dict:
    return {
        "id": order.id,
        "order_number": order.order_number,
        "external_order_id": order.external_order_id,
        "source": order.source,
        "order_date": _iso(order.order_date),
        "customer_name": order.customer_name,
        "customer_phone": order.customer_phone,
        "customer_email": order.customer_email,
        "customer_address": order.customer_address,
        "customer_city": order.customer_city,
        "customer_state": order.customer_state,
        "customer_pincode": order.customer_pincode,
        "delivery_date": _iso(order.delivery_date),
        "notes": order.notes,
        "is_completed": order.is_completed,
        "is_archived": order.is_archived,
        "shipping_method": order.shipping_method,
        "subtotal": _num(order.subtotal),
        "tax_amount": _num(order.tax_amount),
        "order_total": _num(order.order_total),
        "payment_status": order.payment_status,
        "currency": order.currency,
        "created_by_id": order.created_by_id,
        "assigned_user_id": order.assigned_user_id,
        "created_at": _iso(order.created_at),
        "updated_at": _iso(order.updated_at),
        "items": [item_snapshot(i) for i in order.items],
    }


def present_order(snapshot: dict, viewer) -> dict:
    """Per-viewer copy of a snapshot: live priority, financials only for admin/sales."""
    data = copy.deepcopy(snapshot)
    show_financials = can_view_financials(viewer)
    if not show_financials:
        for field in FINANCIAL_FIELDS:
            data.pop(field, None)
    for item in data.get("items", []):
        priority = compute_priority(item.get("delivery_date"))
        item["priority"] = priority
        item["priority_color"] = priority_color(priority)
        if not show_financials:
            for field in ITEM_FINANCIAL_FIELDS:
                item.pop(field, None)
    return data


def timeline_dict(entry) -> dict:
    return {
        "id": entry.id,
        "order_id": entry.order_id,
        "item_id": entry.item_id,
        "stage": entry.stage,
        "substage": entry.substage,
        "action": entry.action,
        "performed_by": entry.performed_by_id,
        "performed_by_name": entry.performed_by_name,
        "notes": entry.notes,
        "attachments": entry.attachments,
        "is_public": entry.is_public,
        "created_at": _iso(entry.created_at),
    }


def activity_dict(row) -> dict:
    return {
        "id": row.id,
        "order_id": row.order_id,
        "item_id": row.item_id,
        "department": row.department,
        "action": row.action,
        "message": row.message,
        "created_by": row.created_by_id,
        "created_by_name": row.created_by_name,
        "metadata": row.details,
        "created_at": _iso(row.created_at),
    }


def notification_dict(n) -> dict:
    return {
        "id": n.id,
        "title": n.title,
        "message": n.message,
        "type": n.type,
        "order_id": n.order_id,
        "item_id": n.item_id,
        "is_read": n.is_read,
        "created_at": _iso(n.created_at),
    }


def user_dict(user) -> dict:
    return {
        "id": user.id,
        "username": user.username,
        "full_name": user.full_name,
        "email": user.email,
        "phone": user.phone,
        "role": user.role,
        "department": user.department,
        "production_stage": user.production_stage,
        "is_active": user.is_active,
    }


def vendor_dict(v) -> dict:
    return {
        "id": v.id,
        "vendor_name": v.vendor_name,
        "vendor_company": v.vendor_company,
        "contact_person": v.contact_person,
        "phone": v.phone,
        "email": v.email,
        "city": v.city,
        "is_active": v.is_active,
    }


def file_dict(f) -> dict:
    return {
        "id": f.id,
        "order_id": f.order_id,
        "item_id": f.item_id,
        "file_name": f.file_name,
        "content_type": f.content_type,
        "file_size": f.file_size,
        "file_type": f.file_type,
        "created_at": _iso(f.created_at),
    }


def model_row(instance, fields) -> dict:
    """Generic flat serializer for HR tables."""
    return {name: _num(_iso(getattr(instance, name))) for name in fields}
