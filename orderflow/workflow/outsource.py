"""
orderflow/workflow/outsource.py

Outsource job validation and its stage machine.

    outsourced -> vendor_in_progress -> vendor_dispatched -> received_from_vendor
               -> quality_check -> decision_pending

Backward edges:
- vendor_in_progress -> outsourced (explicit action, a reason is required)
- quality_check -> vendor_in_progress (QC failed)

Anything else raises InvalidTransition and leaves the job untouched.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Optional, Tuple

from ..constants import ItemStatus, OutsourceStage, Stage, normalize_choice
from ..errors import InvalidTransition, ValidationError
from ..utils import clean_str, parse_bool, parse_date, parse_optional_int

OUTSOURCE_TRANSITIONS = {
    OutsourceStage.OUTSOURCED: (OutsourceStage.VENDOR_IN_PROGRESS,),
    OutsourceStage.VENDOR_IN_PROGRESS: (OutsourceStage.VENDOR_DISPATCHED, OutsourceStage.OUTSOURCED),
    OutsourceStage.VENDOR_DISPATCHED: (OutsourceStage.RECEIVED_FROM_VENDOR,),
    OutsourceStage.RECEIVED_FROM_VENDOR: (OutsourceStage.QUALITY_CHECK,),
    OutsourceStage.QUALITY_CHECK: (OutsourceStage.DECISION_PENDING, OutsourceStage.VENDOR_IN_PROGRESS),
    OutsourceStage.DECISION_PENDING: (),
}

# Edges that need a reason when requested directly
REVERSAL_EDGES = {(OutsourceStage.VENDOR_IN_PROGRESS, OutsourceStage.OUTSOURCED)}

QC_PASS = "pass"
QC_FAIL = "fail"

DECISION_PRODUCTION = "production"
DECISION_DISPATCH = "dispatch"


def allowed_next(stage: str) -> Tuple[str, ...]:
    return OUTSOURCE_TRANSITIONS.get(stage, ())


def check_outsource_transition(current: str, target: str, reason: str | None = None) -> str:
    """Validate one edge of the outsource stage machine; returns the normalized target."""
    target = str(target or "").strip().lower()
    if target not in allowed_next(current):
        raise InvalidTransition.between(current, target)
    if (current, target) in REVERSAL_EDGES and not str(reason or "").strip():
        raise ValidationError("A reason is required to move work back to outsourced")
    return target


def qc_next_stage(result: str) -> str:
    result = normalize_choice(result, (QC_PASS, QC_FAIL), "QC result")
    return OutsourceStage.DECISION_PENDING if result == QC_PASS else OutsourceStage.VENDOR_IN_PROGRESS


def normalize_decision(value) -> str:
    """Post-QC decision from raw input (any JSON type)."""
    return normalize_choice(value, (DECISION_PRODUCTION, DECISION_DISPATCH), "decision")


def decision_outcome(decision: str) -> Tuple[str, str]:
    """(stage, status) the item moves to after a passed QC."""
    decision = normalize_decision(decision)
    if decision == DECISION_PRODUCTION:
        return Stage.PRODUCTION, ItemStatus.PRODUCTION_IN_PROGRESS
    return Stage.PRODUCTION, ItemStatus.READY_FOR_DISPATCH


@dataclass
class OutsourceDetails:
    vendor_name: str
    phone: str
    expected_ready_date: date
    quantity_sent: int
    vendor_id: Optional[int] = None
    vendor_company: Optional[str] = None
    contact_person: Optional[str] = None
    email: Optional[str] = None
    city: Optional[str] = None
    work_type: Optional[str] = None
    special_instructions: Optional[str] = None
    save_vendor: bool = False


def validate_outsource_details(data: dict) -> OutsourceDetails:
    """Vendor name, phone, expected date and a positive quantity are required."""
    data = data or {}
    errors = []

    vendor_name = clean_str(data.get("vendor_name"))
    if not vendor_name:
        errors.append("Vendor name is required")

    phone = clean_str(data.get("phone") or data.get("vendor_phone"))
    if not phone:
        errors.append("Vendor phone is required")

    expected = None
    try:
        expected = parse_date(data.get("expected_ready_date"), "expected ready date")
    except ValidationError as exc:
        errors.extend(exc.errors)
    else:
        if expected is None:
            errors.append("Expected ready date is required")

    quantity = parse_optional_int(data.get("quantity_sent"))
    if quantity is None or quantity <= 0:
        errors.append("Quantity sent must be greater than 0")

    if errors:
        raise ValidationError(errors)

    return OutsourceDetails(
        vendor_name=vendor_name,
        phone=phone,
        expected_ready_date=expected,
        quantity_sent=quantity,
        vendor_id=parse_optional_int(data.get("vendor_id")),
        vendor_company=clean_str(data.get("vendor_company")),
        contact_person=clean_str(data.get("contact_person")),
        email=clean_str(data.get("email")),
        city=clean_str(data.get("city")),
        work_type=clean_str(data.get("work_type")),
        special_instructions=clean_str(data.get("special_instructions")),
        save_vendor=parse_bool(data.get("save_vendor")),
    )
