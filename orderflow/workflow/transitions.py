"""
orderflow/workflow/transitions.py

Order item state machine: (department, status) x action -> plan.

plan_transition() is pure. It validates a request against the item's current state and
returns a TransitionPlan describing the new department / stage / status / assignee, the
breadcrumb to store and the timeline entry to write. services.workflow applies the plan.

Actions:
    process            move along the default route, or to a chosen department / status
    send_for_approval  hand to sales for customer approval
    approve / reject   answer a pending customer approval

Moves to outsource and dispatch finalization are not generic moves; the plan names the
sub-flow (Subflow.*) that must handle them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, List, Optional, Tuple

from ..constants import (
    PRODUCTION_SUBSTAGES,
    Department,
    ItemStatus,
    Stage,
    TimelineAction,
    department_for_stage,
    normalize_choice,
)
from ..errors import InvalidTransition, ValidationError
from ..utils import parse_bool, parse_optional_int
from .dispatch import decision_outcome, validate_decision, validate_finalize
from .outsource import validate_outsource_details
from .production import validate_sequence


class Action:
    PROCESS = "process"
    SEND_FOR_APPROVAL = "send_for_approval"
    APPROVE = "approve"
    REJECT = "reject"

    ALL = (PROCESS, SEND_FOR_APPROVAL, APPROVE, REJECT)


class Subflow:
    OUTSOURCE = "outsource"
    DISPATCH_DECISION = "dispatch_decision"
    DISPATCH_FINALIZE = "dispatch_finalize"
    PICKUP = "pickup"


# Statuses an item may hold inside each department
DEPARTMENT_STATUSES = {
    Department.SALES: (
        ItemStatus.NEW_ORDER,
        ItemStatus.PENDING_FOR_CUSTOMER_APPROVAL,
        ItemStatus.PENDING_CLIENT_APPROVAL,
        ItemStatus.READY_FOR_DISPATCH,
        ItemStatus.WAITING_FOR_PICKUP,
    ),
    Department.DESIGN: (
        ItemStatus.DESIGN_IN_PROGRESS,
        ItemStatus.APPROVED,
        ItemStatus.REJECTED,
    ),
    Department.PREPRESS: (
        ItemStatus.PREPRESS_IN_PROGRESS,
        ItemStatus.APPROVED,
        ItemStatus.REJECTED,
    ),
    Department.PRODUCTION: (
        ItemStatus.PRODUCTION_IN_PROGRESS,
        ItemStatus.APPROVED,
        ItemStatus.REJECTED,
        ItemStatus.READY_FOR_DISPATCH,
        ItemStatus.DISPATCH_PENDING,
    ),
    Department.OUTSOURCE: (ItemStatus.SENT_TO_VENDOR,),
}

# Status an item gets when it is sent to a department without an explicit status
DEPARTMENT_ENTRY_STATUS = {
    Department.SALES: ItemStatus.PENDING_FOR_CUSTOMER_APPROVAL,
    Department.DESIGN: ItemStatus.DESIGN_IN_PROGRESS,
    Department.PREPRESS: ItemStatus.PREPRESS_IN_PROGRESS,
    Department.PRODUCTION: ItemStatus.PRODUCTION_IN_PROGRESS,
    Department.OUTSOURCE: ItemStatus.SENT_TO_VENDOR,
}

# Status of a freshly created item, by the department it starts in
INITIAL_STATUS = {
    Department.SALES: ItemStatus.NEW_ORDER,
    Department.DESIGN: ItemStatus.DESIGN_IN_PROGRESS,
    Department.PREPRESS: ItemStatus.PREPRESS_IN_PROGRESS,
    Department.PRODUCTION: ItemStatus.PRODUCTION_IN_PROGRESS,
    Department.OUTSOURCE: ItemStatus.SENT_TO_VENDOR,
}

# (department, status) -> default (department, status) of a "process" action
DEFAULT_TRANSITIONS = {
    (Department.SALES, ItemStatus.NEW_ORDER): (Department.DESIGN, ItemStatus.DESIGN_IN_PROGRESS),
    (Department.DESIGN, ItemStatus.DESIGN_IN_PROGRESS): (Department.SALES, ItemStatus.PENDING_FOR_CUSTOMER_APPROVAL),
    (Department.DESIGN, ItemStatus.APPROVED): (Department.PREPRESS, ItemStatus.PREPRESS_IN_PROGRESS),
    (Department.DESIGN, ItemStatus.REJECTED): (Department.DESIGN, ItemStatus.DESIGN_IN_PROGRESS),
    (Department.PREPRESS, ItemStatus.PREPRESS_IN_PROGRESS): (Department.PRODUCTION, ItemStatus.PRODUCTION_IN_PROGRESS),
    (Department.PREPRESS, ItemStatus.APPROVED): (Department.PRODUCTION, ItemStatus.PRODUCTION_IN_PROGRESS),
    (Department.PREPRESS, ItemStatus.REJECTED): (Department.PREPRESS, ItemStatus.PREPRESS_IN_PROGRESS),
    (Department.PRODUCTION, ItemStatus.APPROVED): (Department.PRODUCTION, ItemStatus.PRODUCTION_IN_PROGRESS),
    (Department.PRODUCTION, ItemStatus.REJECTED): (Department.PRODUCTION, ItemStatus.PRODUCTION_IN_PROGRESS),
    (Department.PRODUCTION, ItemStatus.PRODUCTION_IN_PROGRESS): (Department.PRODUCTION, ItemStatus.READY_FOR_DISPATCH),
    (Department.PRODUCTION, ItemStatus.READY_FOR_DISPATCH): (Department.PRODUCTION, ItemStatus.DISPATCHED),
    (Department.PRODUCTION, ItemStatus.DISPATCH_PENDING): (Department.PRODUCTION, ItemStatus.DISPATCHED),
}

BLOCKED_ROUTES = {
    (Department.DESIGN, Department.OUTSOURCE): "Design cannot send work to outsource directly",
    (Department.DESIGN, Department.PRODUCTION): "Design work must go through prepress before production",
}

# Where outsourced work may be sent back to
OUTSOURCE_RETURN_DEPARTMENTS = (Department.PREPRESS, Department.PRODUCTION, Department.DESIGN)

# Departments an approval answer may route back to
APPROVAL_RETURN_DEPARTMENTS = (Department.DESIGN, Department.PREPRESS, Department.PRODUCTION)


# ---------------------------------------------------------------------
# Request / plan
# ---------------------------------------------------------------------
@dataclass
class TransitionRequest:
    action: str = Action.PROCESS
    department: Optional[str] = None
    status: Optional[str] = None
    assigned_to_id: Optional[int] = None
    unassign: bool = False
    note: str = ""
    production_sequence: Optional[List[str]] = None
    outsource: Optional[dict] = None
    dispatch: Optional[dict] = None

    @classmethod
    def from_payload(cls, payload: dict) -> "TransitionRequest":
        """Normalize raw request data (casing, aliases) once, here."""
        payload = payload or {}

        action = normalize_choice(payload.get("action") or Action.PROCESS, Action.ALL, "action")
        department = normalize_choice(
            payload.get("department") or payload.get("target_department"),
            Department.ALL,
            "department",
            required=False,
        )
        status = normalize_choice(
            payload.get("status") or payload.get("target_status"),
            ItemStatus.ALL,
            "status",
            required=False,
        )

        raw_assignee = payload.get("assigned_to_id", payload.get("assigned_to"))
        unassign = parse_bool(payload.get("unassign")) or str(raw_assignee or "").strip().lower() in {
            "_unassign",
            "unassigned",
        }
        assigned_to_id = None if unassign else parse_optional_int(raw_assignee)

        sequence = payload.get("production_sequence")
        if sequence is not None and not isinstance(sequence, (list, tuple)):
            raise ValidationError("Production sequence must be a list of stages")

        return cls(
            action=action,
            department=department,
            status=status,
            assigned_to_id=assigned_to_id,
            unassign=unassign,
            note=str(payload.get("note") or payload.get("notes") or ""),
            production_sequence=list(sequence) if sequence is not None else None,
            outsource=payload.get("outsource"),
            dispatch=payload.get("dispatch"),
        )


@dataclass
class TransitionPlan:
    action: str
    department: str
    stage: str
    status: str
    note: str
    timeline_action: str
    assigned_to_id: Optional[int] = None
    keep_assignee: bool = False
    assign_order_owner: bool = False
    record_breadcrumb: bool = False
    previous_department: Optional[str] = None
    previous_assigned_to_id: Optional[int] = None
    production_sequence: Optional[List[str]] = None
    subflow: Optional[str] = None
    details: Any = field(default=None, repr=False)


def current_department(item) -> str:
    """assigned_department, or the department of the stage for legacy rows."""
    return (item.assigned_department or department_for_stage(item.current_stage) or "").strip().lower()


def default_destination(department: str, status: str) -> Optional[Tuple[str, str]]:
    return DEFAULT_TRANSITIONS.get((department, status))


def allowed_destinations(department: str) -> List[str]:
    """Departments offered by the destination picker (never the current one)."""
    if department == Department.OUTSOURCE:
        return list(OUTSOURCE_RETURN_DEPARTMENTS)
    return [
        d for d in Department.ALL
        if d != department and (department, d) not in BLOCKED_ROUTES
    ]


def check_destination(current: str, target: str, current_status: str, target_status: str) -> None:
    if target == current:
        if target_status == current_status:
            raise ValidationError(f"Item is already in {target} with status {target_status}")
        return
    if current == Department.OUTSOURCE and target not in OUTSOURCE_RETURN_DEPARTMENTS:
        raise InvalidTransition(
            f"Outsourced work can only go to {', '.join(OUTSOURCE_RETURN_DEPARTMENTS)}"
        )
    blocked = BLOCKED_ROUTES.get((current, target))
    if blocked:
        raise InvalidTransition(blocked)


def approval_route(item, approve: bool) -> Tuple[str, str, Optional[int]]:
    """
    (department, status, assignee) for an approve / reject answer.

    Goes back to the department that sent the item for approval when one was recorded;
    otherwise design (items needing design) or prepress, unassigned.
    """
    previous = (item.previous_department or "").strip().lower()
    if previous in APPROVAL_RETURN_DEPARTMENTS:
        status = ItemStatus.APPROVED if approve else ItemStatus.REJECTED
        return previous, status, item.previous_assigned_to_id

    if item.need_design:
        return Department.DESIGN, (ItemStatus.APPROVED if approve else ItemStatus.REJECTED), None
    return Department.PREPRESS, ItemStatus.PREPRESS_IN_PROGRESS, None


def _breadcrumb(plan: TransitionPlan, item, current: str) -> None:
    if current != Department.SALES and (
        plan.department == Department.SALES or plan.status in ItemStatus.AWAITING_APPROVAL
    ):
        plan.record_breadcrumb = True
        plan.previous_department = current
        plan.previous_assigned_to_id = item.assigned_to_id


# ---------------------------------------------------------------------
# Planner
# ---------------------------------------------------------------------
def plan_transition(
    item,
    request: TransitionRequest,
    substages: Iterable[str] = PRODUCTION_SUBSTAGES,
) -> TransitionPlan:
    note = (request.note or "").strip()
    if not note:
        raise ValidationError("A note is required for every transition")

    if item.is_completed or item.current_stage == Stage.COMPLETED:
        raise InvalidTransition("Item is already completed")

    current = current_department(item)
    status = item.current_status

    # -- approval answers ------------------------------------------------
    if request.action in (Action.APPROVE, Action.REJECT):
        if status not in ItemStatus.AWAITING_APPROVAL:
            raise InvalidTransition(f"Item is not awaiting approval (status {status})")
        approve = request.action == Action.APPROVE
        department, new_status, assignee = approval_route(item, approve)
        return TransitionPlan(
            action=request.action,
            department=department,
            stage=department,
            status=new_status,
            note=f"[{'APPROVE' if approve else 'REJECT'}] {note}",
            timeline_action=TimelineAction.CUSTOMER_APPROVED if approve else TimelineAction.CUSTOMER_REJECTED,
            assigned_to_id=assignee,
        )

    # -- send for approval -------------------------------------------------
    if request.action == Action.SEND_FOR_APPROVAL:
        if current == Department.SALES and status in ItemStatus.AWAITING_APPROVAL:
            raise InvalidTransition("Item is already awaiting approval")
        plan = TransitionPlan(
            action=request.action,
            department=Department.SALES,
            stage=Stage.SALES,
            status=ItemStatus.PENDING_FOR_CUSTOMER_APPROVAL,
            note=note,
            timeline_action=TimelineAction.SENT_FOR_APPROVAL,
            assigned_to_id=request.assigned_to_id,
            assign_order_owner=request.assigned_to_id is None,
        )
        _breadcrumb(plan, item, current)
        return plan

    # -- dispatch sub-flows driven by the current state ---------------------
    if current == Department.SALES and status == ItemStatus.READY_FOR_DISPATCH:
        decision = validate_decision(request.dispatch)
        department, new_status = decision_outcome(decision.mode)
        return TransitionPlan(
            action=request.action,
            department=department,
            stage=department,
            status=new_status,
            note=note,
            timeline_action=TimelineAction.DISPATCH_DECIDED,
            assigned_to_id=None if department != current else item.assigned_to_id,
            subflow=Subflow.DISPATCH_DECISION,
            details=decision,
        )

    if current == Department.SALES and status == ItemStatus.WAITING_FOR_PICKUP:
        return TransitionPlan(
            action=request.action,
            department=Department.PRODUCTION,
            stage=Stage.COMPLETED,
            status=ItemStatus.DISPATCHED,
            note=note,
            timeline_action=TimelineAction.DISPATCHED,
            keep_assignee=True,
            subflow=Subflow.PICKUP,
        )

    # -- generic move --------------------------------------------------------
    default = default_destination(current, status)
    target = request.department or (default[0] if default else None)
    if target is None:
        raise ValidationError("Select a destination department")

    if request.status:
        target_status = request.status
    elif default and default[0] == target:
        target_status = default[1]
    else:
        target_status = DEPARTMENT_ENTRY_STATUS[target]

    if target_status == ItemStatus.DISPATCHED:
        if current != Department.PRODUCTION or status not in (
            ItemStatus.READY_FOR_DISPATCH,
            ItemStatus.DISPATCH_PENDING,
        ):
            raise InvalidTransition.between(status, ItemStatus.DISPATCHED)
        return TransitionPlan(
            action=request.action,
            department=Department.PRODUCTION,
            stage=Stage.COMPLETED,
            status=ItemStatus.DISPATCHED,
            note=note,
            timeline_action=TimelineAction.DISPATCHED,
            keep_assignee=True,
            subflow=Subflow.DISPATCH_FINALIZE,
            details=validate_finalize(request.dispatch),
        )

    check_destination(current, target, status, target_status)

    if target == Department.OUTSOURCE:
        return TransitionPlan(
            action=request.action,
            department=Department.OUTSOURCE,
            stage=Stage.OUTSOURCE,
            status=ItemStatus.SENT_TO_VENDOR,
            note=note,
            timeline_action=TimelineAction.OUTSOURCE_ASSIGNED,
            subflow=Subflow.OUTSOURCE,
            details=validate_outsource_details(request.outsource),
        )

    if target_status not in DEPARTMENT_STATUSES[target]:
        raise ValidationError(f"Status {target_status} is not valid for {target}")

    plan = TransitionPlan(
        action=request.action,
        department=target,
        stage=target,
        status=target_status,
        note=note,
        timeline_action=TimelineAction.STAGE_CHANGED if target != current else TimelineAction.STATUS_CHANGED,
    )

    # Production setup: entering production needs the substage sequence
    if target == Department.PRODUCTION and current != Department.PRODUCTION:
        sequence = request.production_sequence
        if sequence is None:
            sequence = item.production_stage_sequence or []
        plan.production_sequence = validate_sequence(sequence, substages)

    _breadcrumb(plan, item, current)

    if request.unassign:
        plan.assigned_to_id = None
    elif request.assigned_to_id is not None:
        plan.assigned_to_id = request.assigned_to_id
    elif target != current:
        # Lands in the new department's unassigned pool
        plan.assigned_to_id = None
    else:
        plan.keep_assignee = True
        plan.assigned_to_id = item.assigned_to_id

    return plan
