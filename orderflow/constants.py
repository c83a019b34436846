"""
orderflow/constants.py

Closed value sets for roles, departments, stages and statuses.

Values are stored as plain lowercase strings. Anything coming from a request is passed
through normalize_choice() once, at the boundary, so the rest of the code can compare
strings directly.

department_for_stage() is the only place that maps a stage to the department owning it.
"""

from __future__ import annotations

from typing import Iterable, Optional

from .errors import ValidationError


class Role:
    ADMIN = "admin"
    SALES = "sales"
    DESIGN = "design"
    PREPRESS = "prepress"
    PRODUCTION = "production"
    # Read-only account (accounts team, auditors)
    VIEWER = "viewer"

    ALL = (ADMIN, SALES, DESIGN, PREPRESS, PRODUCTION, VIEWER)
    DEPARTMENT_ROLES = (SALES, DESIGN, PREPRESS, PRODUCTION)
    # Roles allowed to see every order and its financial fields
    FULL_VISIBILITY = (ADMIN, SALES)
    # Roles allowed to call the WooCommerce import endpoint
    IMPORTERS = (ADMIN, SALES)


class Department:
    SALES = "sales"
    DESIGN = "design"
    PREPRESS = "prepress"
    PRODUCTION = "production"
    OUTSOURCE = "outsource"

    ALL = (SALES, DESIGN, PREPRESS, PRODUCTION, OUTSOURCE)


class Stage:
    SALES = "sales"
    DESIGN = "design"
    PREPRESS = "prepress"
    PRODUCTION = "production"
    OUTSOURCE = "outsource"
    DISPATCH = "dispatch"
    COMPLETED = "completed"

    ALL = (SALES, DESIGN, PREPRESS, PRODUCTION, OUTSOURCE, DISPATCH, COMPLETED)


class ItemStatus:
    NEW_ORDER = "new_order"
    DESIGN_IN_PROGRESS = "design_in_progress"
    PENDING_FOR_CUSTOMER_APPROVAL = "pending_for_customer_approval"
    PENDING_CLIENT_APPROVAL = "pending_client_approval"
    APPROVED = "approved"
    REJECTED = "rejected"
    PREPRESS_IN_PROGRESS = "prepress_in_progress"
    PRODUCTION_IN_PROGRESS = "production_in_progress"
    READY_FOR_DISPATCH = "ready_for_dispatch"
    DISPATCH_PENDING = "dispatch_pending"
    WAITING_FOR_PICKUP = "waiting_for_pickup"
    DISPATCHED = "dispatched"
    SENT_TO_VENDOR = "sent_to_vendor"

    ALL = (
        NEW_ORDER,
        DESIGN_IN_PROGRESS,
        PENDING_FOR_CUSTOMER_APPROVAL,
        PENDING_CLIENT_APPROVAL,
        APPROVED,
        REJECTED,
        PREPRESS_IN_PROGRESS,
        PRODUCTION_IN_PROGRESS,
        READY_FOR_DISPATCH,
        DISPATCH_PENDING,
        WAITING_FOR_PICKUP,
        DISPATCHED,
        SENT_TO_VENDOR,
    )
    AWAITING_APPROVAL = (PENDING_FOR_CUSTOMER_APPROVAL, PENDING_CLIENT_APPROVAL)


class SubstageStatus:
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"

    ALL = (PENDING, IN_PROGRESS, COMPLETED)


# Default production sub-step catalogue (admins may override it in app settings)
PRODUCTION_SUBSTAGES = (
    "foiling",
    "printing",
    "pasting",
    "cutting",
    "letterpress",
    "embossing",
    "packing",
)


class OutsourceStage:
    OUTSOURCED = "outsourced"
    VENDOR_IN_PROGRESS = "vendor_in_progress"
    VENDOR_DISPATCHED = "vendor_dispatched"
    RECEIVED_FROM_VENDOR = "received_from_vendor"
    QUALITY_CHECK = "quality_check"
    DECISION_PENDING = "decision_pending"

    ALL = (
        OUTSOURCED,
        VENDOR_IN_PROGRESS,
        VENDOR_DISPATCHED,
        RECEIVED_FROM_VENDOR,
        QUALITY_CHECK,
        DECISION_PENDING,
    )


class Priority:
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    ALL = (LOW, MEDIUM, HIGH)
    COLORS = {LOW: "blue", MEDIUM: "yellow", HIGH: "red"}
    # Sort rank, most urgent first
    RANK = {HIGH: 0, MEDIUM: 1, LOW: 2}


class OrderSource:
    MANUAL = "manual"
    WOOCOMMERCE = "woocommerce"

    ALL = (MANUAL, WOOCOMMERCE)


class DispatchMode:
    PICKUP = "pickup"
    COURIER = "courier"

    ALL = (PICKUP, COURIER)


class LeaveStatus:
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    CANCELLED = "cancelled"

    ALL = (PENDING, APPROVED, REJECTED, CANCELLED)


class TimelineAction:
    CREATED = "created"
    ASSIGNED = "assigned"
    STAGE_CHANGED = "stage_changed"
    STATUS_CHANGED = "status_changed"
    CUSTOMER_APPROVED = "customer_approved"
    CUSTOMER_REJECTED = "customer_rejected"
    SENT_FOR_APPROVAL = "sent_for_approval"
    SUBSTAGE_STARTED = "substage_started"
    SUBSTAGE_COMPLETED = "substage_completed"
    PRODUCTION_SEQUENCE_SET = "production_sequence_set"
    NOTE_ADDED = "note_added"
    FILE_UPLOADED = "file_uploaded"
    DELIVERY_DATE_UPDATED = "delivery_date_updated"
    SPECIFICATIONS_UPDATED = "specifications_updated"
    OUTSOURCE_ASSIGNED = "outsource_assigned"
    OUTSOURCE_STAGE_CHANGED = "outsource_stage_changed"
    OUTSOURCE_FOLLOW_UP = "outsource_follow_up"
    DISPATCH_DECIDED = "dispatch_decided"
    DISPATCHED = "dispatched"


class NotificationType:
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    URGENT = "urgent"


# ---------------------------------------------------------------------
# Boundary normalization
# ---------------------------------------------------------------------
def normalize_choice(
    value,
    allowed: Iterable[str],
    field: str,
    *,
    required: bool = True,
) -> Optional[str]:
    """
    Lower-case / strip a user supplied choice and check it against a closed set.

    Returns None for an empty optional value.
    """
    raw = (str(value) if value is not None else "").strip().lower().replace(" ", "_")
    if not raw:
        if required:
            raise ValidationError(f"{field} is required")
        return None
    allowed = tuple(allowed)
    if raw not in allowed:
        raise ValidationError(f"Invalid {field}: {value!r}")
    return raw


# ---------------------------------------------------------------------
# Stage / department mapping
# ---------------------------------------------------------------------
_STAGE_DEPARTMENT = {
    Stage.SALES: Department.SALES,
    Stage.DESIGN: Department.DESIGN,
    Stage.PREPRESS: Department.PREPRESS,
    Stage.PRODUCTION: Department.PRODUCTION,
    Stage.OUTSOURCE: Department.OUTSOURCE,
    # Dispatch and completed work is handled by production staff
    Stage.DISPATCH: Department.PRODUCTION,
    Stage.COMPLETED: Department.PRODUCTION,
}


def department_for_stage(stage: str | None) -> Optional[str]:
    """Department owning an item at the given stage (None for unknown/empty)."""
    if not stage:
        return None
    return _STAGE_DEPARTMENT.get(str(stage).strip().lower())


def stage_for_department(department: str) -> str:
    """Every department is also a stage of the same name."""
    return department


def audience_department(stage: str | None) -> Optional[str]:
    """Department whose staff is notified when an item enters `stage`."""
    return department_for_stage(stage)
