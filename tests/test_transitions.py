from types import SimpleNamespace

import pytest

from orderflow.constants import Department, ItemStatus, Stage, TimelineAction
from orderflow.errors import InvalidTransition, ValidationError
from orderflow.workflow.transitions import (
    Action,
    Subflow,
    TransitionRequest,
    allowed_destinations,
    plan_transition,
)


def make_item(department, status, **fields):
    values = dict(
        current_stage=department,
        assigned_department=department,
        current_status=status,
        assigned_to_id=7,
        previous_department=None,
        previous_assigned_to_id=None,
        production_stage_sequence=None,
        need_design=True,
        is_completed=False,
    )
    values.update(fields)
    return SimpleNamespace(**values)


def request(**payload):
    payload.setdefault("note", "moving on")
    return TransitionRequest.from_payload(payload)


def test_note_is_required():
    with pytest.raises(ValidationError):
        plan_transition(make_item(Department.SALES, ItemStatus.NEW_ORDER), request(note="  "))


def test_default_route_from_new_order_goes_to_design_unassigned():
    plan = plan_transition(make_item(Department.SALES, ItemStatus.NEW_ORDER), request())
    assert (plan.department, plan.status) == (Department.DESIGN, ItemStatus.DESIGN_IN_PROGRESS)
    assert plan.assigned_to_id is None
    assert not plan.keep_assignee
    assert plan.timeline_action == TimelineAction.STAGE_CHANGED


def test_request_values_are_normalized():
    plan = plan_transition(
        make_item(Department.SALES, ItemStatus.NEW_ORDER),
        request(department=" Prepress ", status="PREPRESS_IN_PROGRESS"),
    )
    assert plan.department == Department.PREPRESS


def test_unknown_department_is_rejected():
    with pytest.raises(ValidationError):
        request(department="accounts")


def test_design_cannot_skip_prepress():
    item = make_item(Department.DESIGN, ItemStatus.APPROVED)
    with pytest.raises(InvalidTransition):
        plan_transition(item, request(department="production", production_sequence=["printing"]))
    assert Department.PRODUCTION not in allowed_destinations(Department.DESIGN)
    assert Department.OUTSOURCE not in allowed_destinations(Department.DESIGN)


def test_entering_production_requires_a_sequence():
    item = make_item(Department.PREPRESS, ItemStatus.PREPRESS_IN_PROGRESS)
    with pytest.raises(ValidationError):
        plan_transition(item, request())

    plan = plan_transition(item, request(production_sequence=["Printing", "cutting"]))
    assert plan.department == Department.PRODUCTION
    assert plan.production_sequence == ["printing", "cutting"]


def test_same_department_status_change_keeps_assignee():
    item = make_item(Department.PRODUCTION, ItemStatus.APPROVED)
    plan = plan_transition(item, request())
    assert plan.status == ItemStatus.PRODUCTION_IN_PROGRESS
    assert plan.keep_assignee and plan.assigned_to_id == 7
    assert plan.timeline_action == TimelineAction.STATUS_CHANGED


def test_same_state_is_rejected():
    item = make_item(Department.DESIGN, ItemStatus.DESIGN_IN_PROGRESS)
    with pytest.raises(ValidationError):
        plan_transition(item, request(department="design", status="design_in_progress"))


def test_send_for_approval_records_breadcrumb():
    item = make_item(Department.DESIGN, ItemStatus.DESIGN_IN_PROGRESS, assigned_to_id=12)
    plan = plan_transition(item, request(action="send_for_approval"))
    assert plan.department == Department.SALES
    assert plan.status == ItemStatus.PENDING_FOR_CUSTOMER_APPROVAL
    assert plan.record_breadcrumb
    assert (plan.previous_department, plan.previous_assigned_to_id) == (Department.DESIGN, 12)
    assert plan.assign_order_owner


def test_approval_returns_to_sender():
    item = make_item(
        Department.SALES,
        ItemStatus.PENDING_FOR_CUSTOMER_APPROVAL,
        previous_department=Department.PREPRESS,
        previous_assigned_to_id=12,
    )
    plan = plan_transition(item, request(action=Action.APPROVE))
    assert (plan.department, plan.status, plan.assigned_to_id) == (Department.PREPRESS, ItemStatus.APPROVED, 12)
    assert plan.note.startswith("[APPROVE]")

    plan = plan_transition(item, request(action=Action.REJECT))
    assert plan.status == ItemStatus.REJECTED


def test_approval_without_breadcrumb_falls_back():
    item = make_item(Department.SALES, ItemStatus.PENDING_CLIENT_APPROVAL, need_design=False)
    plan = plan_transition(item, request(action=Action.APPROVE))
    assert (plan.department, plan.status, plan.assigned_to_id) == (
        Department.PREPRESS,
        ItemStatus.PREPRESS_IN_PROGRESS,
        None,
    )


def test_approve_requires_pending_approval():
    with pytest.raises(InvalidTransition):
        plan_transition(make_item(Department.DESIGN, ItemStatus.DESIGN_IN_PROGRESS), request(action="approve"))


def test_outsource_move_names_subflow():
    item = make_item(Department.PREPRESS, ItemStatus.PREPRESS_IN_PROGRESS)
    plan = plan_transition(
        item,
        request(
            department="outsource",
            outsource={"vendor_name": "Foil House", "phone": "99", "expected_ready_date": "2030-01-10",
                       "quantity_sent": 50},
        ),
    )
    assert plan.subflow == Subflow.OUTSOURCE
    assert plan.details.vendor_name == "Foil House"


def test_outsource_returns_only_to_work_departments():
    item = make_item(Department.OUTSOURCE, ItemStatus.SENT_TO_VENDOR)
    with pytest.raises(InvalidTransition):
        plan_transition(item, request(department="sales"))


def test_ready_for_dispatch_in_sales_needs_a_decision():
    item = make_item(Department.SALES, ItemStatus.READY_FOR_DISPATCH)
    with pytest.raises(ValidationError):
        plan_transition(item, request(dispatch={"mode": "courier"}))

    plan = plan_transition(item, request(dispatch={"mode": "pickup"}))
    assert plan.subflow == Subflow.DISPATCH_DECISION
    assert (plan.department, plan.status) == (Department.SALES, ItemStatus.WAITING_FOR_PICKUP)

    plan = plan_transition(item, request(dispatch={"mode": "courier", "courier_name": "BlueDart"}))
    assert (plan.department, plan.status) == (Department.PRODUCTION, ItemStatus.DISPATCH_PENDING)
    assert plan.assigned_to_id is None


def test_dispatch_requires_finalize_details():
    item = make_item(Department.PRODUCTION, ItemStatus.DISPATCH_PENDING)
    with pytest.raises(ValidationError) as exc:
        plan_transition(item, request(dispatch={"courier_name": "BlueDart"}))
    assert "Tracking number is required" in exc.value.errors

    plan = plan_transition(
        item,
        request(dispatch={"courier_name": "BlueDart", "tracking_number": "BD1", "dispatch_date": "2030-01-01"}),
    )
    assert plan.subflow == Subflow.DISPATCH_FINALIZE
    assert plan.stage == Stage.COMPLETED


def test_dispatched_status_only_from_ready_states():
    item = make_item(Department.PRODUCTION, ItemStatus.PRODUCTION_IN_PROGRESS)
    with pytest.raises(InvalidTransition):
        plan_transition(item, request(status="dispatched"))


def test_completed_items_are_frozen():
    item = make_item(Department.PRODUCTION, ItemStatus.DISPATCHED, current_stage=Stage.COMPLETED, is_completed=True)
    with pytest.raises(InvalidTransition):
        plan_transition(item, request())


def test_legacy_row_uses_stage_department():
    item = make_item(Department.SALES, ItemStatus.NEW_ORDER, assigned_department=None)
    plan = plan_transition(item, request())
    assert plan.department == Department.DESIGN
