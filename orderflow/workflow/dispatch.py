"""
orderflow/workflow/dispatch.py

Dispatch decision and finalization inputs.

decision (sales):  pickup  -> sales / waiting_for_pickup
                   courier -> production / dispatch_pending (courier name required)
finalize:          courier, tracking number and dispatch date are all required
pickup handover:   finalize with courier "Self Pickup" and tracking "HANDOVER"
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Optional, Tuple

from ..constants import Department, DispatchMode, ItemStatus, normalize_choice
from ..errors import ValidationError
from ..utils import clean_str, parse_bool, parse_date

SELF_PICKUP_COURIER = "Self Pickup"
HANDOVER_TRACKING = "HANDOVER"


@dataclass
class DispatchDecision:
    mode: str
    courier_company: Optional[str] = None
    courier_address: Optional[str] = None
    courier_phone: Optional[str] = None
    courier_notes: Optional[str] = None
    is_express: bool = False


@dataclass
class DispatchFinalize:
    courier_company: str
    tracking_number: str
    dispatch_date: date
    is_express: bool = False
    notes: Optional[str] = None


def validate_decision(data: dict) -> DispatchDecision:
    data = data or {}
    mode = normalize_choice(data.get("mode") or data.get("dispatch_mode"), DispatchMode.ALL, "dispatch mode")
    courier = clean_str(data.get("courier_company") or data.get("courier_name"))
    if mode == DispatchMode.COURIER and not courier:
        raise ValidationError("Courier name is required for courier dispatch")
    return DispatchDecision(
        mode=mode,
        courier_company=courier if mode == DispatchMode.COURIER else None,
        courier_address=clean_str(data.get("courier_address") or data.get("address")),
        courier_phone=clean_str(data.get("courier_phone") or data.get("phone")),
        courier_notes=clean_str(data.get("courier_notes") or data.get("instructions")),
        is_express=parse_bool(data.get("is_express")),
    )


def decision_outcome(mode: str) -> Tuple[str, str]:
    """(department, status) after a dispatch decision."""
    if mode == DispatchMode.PICKUP:
        return Department.SALES, ItemStatus.WAITING_FOR_PICKUP
    return Department.PRODUCTION, ItemStatus.DISPATCH_PENDING


def validate_finalize(data: dict) -> DispatchFinalize:
    data = data or {}
    errors = []

    courier = clean_str(data.get("courier_company") or data.get("courier_name"))
    if not courier:
        errors.append("Courier is required")

    tracking = clean_str(data.get("tracking_number"))
    if not tracking:
        errors.append("Tracking number is required")

    dispatch_date = None
    try:
        dispatch_date = parse_date(data.get("dispatch_date"), "dispatch date")
    except ValidationError as exc:
        errors.extend(exc.errors)
    else:
        if dispatch_date is None:
            errors.append("Dispatch date is required")

    if errors:
        raise ValidationError(errors)

    return DispatchFinalize(
        courier_company=courier,
        tracking_number=tracking,
        dispatch_date=dispatch_date,
        is_express=parse_bool(data.get("is_express")),
        notes=clean_str(data.get("notes")),
    )


def pickup_handover(receiver: str | None = None, on: date | None = None) -> DispatchFinalize:
    return DispatchFinalize(
        courier_company=SELF_PICKUP_COURIER,
        tracking_number=HANDOVER_TRACKING,
        dispatch_date=on or date.today(),
        notes=f"Collected by {receiver}" if receiver else None,
    )
