from conftest import in_days, order_payload

from orderflow.extensions import db
from orderflow.models import DispatchRecord, Notification, Order, OrderItem, TimelineEntry


def _create(client, login, creator, **overrides):
    login(creator)
    resp = client.post("/orders", json=order_payload(**overrides))
    assert resp.status_code == 201, resp.get_json()
    order = resp.get_json()["order"]
    return order["id"], order["items"][0]["id"]


def _url(order_id, item_id, action):
    return f"/orders/{order_id}/items/{item_id}/{action}"


def _item(order, item_id):
    return next(i for i in order["items"] if i["id"] == item_id)


def _process(client, order_id, item_id, **payload):
    payload.setdefault("note", "moving on")
    resp = client.post(_url(order_id, item_id, "process"), json=payload)
    assert resp.status_code == 200, resp.get_json()
    return _item(resp.get_json()["order"], item_id)


# ----------------------------------------------------------------------
# Full route: sales -> design -> approval -> prepress -> production -> dispatch
# ----------------------------------------------------------------------
def test_item_travels_the_whole_workflow(client, login, sales, make_user):
    designer = make_user("dina", "design")
    prepress = make_user("pete", "prepress")
    printer = make_user("paul", "production")
    order_id, item_id = _create(client, login, sales)

    item = _process(client, order_id, item_id, note="Customer sent artwork")
    assert (item["current_stage"], item["current_status"]) == ("design", "design_in_progress")
    assert item["assigned_to_id"] is None
    assert Notification.query.filter(
        Notification.user_id == designer.id, Notification.title.like("Order moved to%")
    ).count() == 1

    login(designer)
    resp = client.post(_url(order_id, item_id, "assign"), json={"user_id": designer.id})
    assert resp.status_code == 200, resp.get_json()

    item = _process(client, order_id, item_id, action="send_for_approval", note="Proof v1 ready")
    assert (item["current_stage"], item["current_status"]) == ("sales", "pending_for_customer_approval")
    assert item["previous_department"] == "design"
    assert item["previous_assigned_to_id"] == designer.id
    assert item["assigned_to_id"] == sales.id

    login(sales)
    item = _process(client, order_id, item_id, action="approve", note="Customer approved proof")
    assert (item["current_stage"], item["current_status"]) == ("design", "approved")
    assert item["assigned_to_id"] == designer.id
    assert item["previous_department"] is None

    login(designer)
    item = _process(client, order_id, item_id, note="Files handed to prepress")
    assert (item["current_stage"], item["current_status"]) == ("prepress", "prepress_in_progress")

    login(prepress)
    resp = client.post(_url(order_id, item_id, "process"), json={"note": "Plates done"})
    assert resp.status_code == 400
    item = _process(client, order_id, item_id, note="Plates done", production_sequence=["Printing", "cutting"])
    assert (item["current_stage"], item["current_status"]) == ("production", "production_in_progress")
    assert item["production_stage_sequence"] == ["printing", "cutting"]
    assert item["current_substage"] == "printing"

    login(printer)
    assert client.post(_url(order_id, item_id, "substage/start"), json={}).status_code == 200
    body = client.post(_url(order_id, item_id, "substage/complete"), json={"note": "2 colour"}).get_json()
    assert body["completed"] == "printing"
    assert body["next_substage"] == "cutting"
    assert body["ready_for_dispatch"] is False

    body = client.post(_url(order_id, item_id, "substage/complete"), json={}).get_json()
    assert body["ready_for_dispatch"] is True
    assert _item(body["order"], item_id)["current_status"] == "ready_for_dispatch"

    resp = client.post(_url(order_id, item_id, "process"), json={"note": "Shipping", "dispatch": {}})
    assert resp.status_code == 400
    assert "Tracking number is required" in resp.get_json()["errors"]

    item = _process(
        client, order_id, item_id,
        note="Shipping",
        dispatch={"courier_company": "BlueDart", "tracking_number": "BD123", "dispatch_date": in_days(0)},
    )
    assert (item["current_stage"], item["current_status"]) == ("completed", "dispatched")
    assert item["is_dispatched"] is True

    order = db.session.get(Order, order_id)
    db.session.refresh(order)
    assert order.is_completed is True
    record = DispatchRecord.query.filter_by(item_id=item_id).one()
    assert (record.mode, record.tracking_number) == ("courier", "BD123")

    actions = [e.action for e in TimelineEntry.query.filter_by(order_id=order_id).order_by(TimelineEntry.id)]
    assert actions[0] == "created"
    assert actions[-1] == "dispatched"


def test_completed_item_cannot_move(client, login, sales):
    order_id, item_id = _create(client, login, sales)
    item = db.session.get(OrderItem, item_id)
    item.move_to("completed", "dispatched")
    item.is_completed = True
    db.session.commit()

    resp = client.post(_url(order_id, item_id, "process"), json={"note": "again"})
    assert resp.status_code == 409
    assert resp.get_json()["code"] == "INVALID_TRANSITION"


# ----------------------------------------------------------------------
# Guards
# ----------------------------------------------------------------------
def test_other_department_cannot_act(client, login, sales, make_user):
    designer = make_user("dina", "design")
    order_id, item_id = _create(client, login, sales)

    login(designer)
    resp = client.post(_url(order_id, item_id, "process"), json={"note": "not mine"})
    assert resp.status_code == 403
    assert client.get(_url(order_id, item_id, "destinations")).status_code == 403

    item = db.session.get(OrderItem, item_id)
    db.session.refresh(item)
    assert item.current_stage == "sales"


def test_note_is_required(client, login, sales):
    order_id, item_id = _create(client, login, sales)
    resp = client.post(_url(order_id, item_id, "process"), json={"note": "  "})
    assert resp.status_code == 400
    assert resp.get_json()["message"] == "A note is required for every transition"


def test_design_cannot_skip_prepress(client, login, admin, make_user):
    designer = make_user("dina", "design")
    login(admin)
    resp = client.post("/orders", json=order_payload(department="design", assigned_to_id=designer.id))
    order = resp.get_json()["order"]
    item_id = order["items"][0]["id"]

    login(designer)
    destinations = client.get(_url(order["id"], item_id, "destinations")).get_json()
    assert "production" not in destinations["departments"]
    assert "outsource" not in destinations["departments"]
    assert destinations["default"] == {"department": "sales", "status": "pending_for_customer_approval"}

    resp = client.post(
        _url(order["id"], item_id, "process"),
        json={"note": "skip", "department": "production", "production_sequence": ["printing"]},
    )
    assert resp.status_code == 409


# ----------------------------------------------------------------------
# Outsource and pickup
# ----------------------------------------------------------------------
OUTSOURCE = {
    "vendor_name": "Shree Binders",
    "phone": "9000000001",
    "expected_ready_date": in_days(5),
    "quantity_sent": 200,
    "work_type": "Binding",
    "save_vendor": True,
}


def test_outsource_round_trip(client, login, sales, make_user):
    designer = make_user("dina", "design")
    order_id, item_id = _create(client, login, sales)

    resp = client.post(_url(order_id, item_id, "process"), json={"note": "Binding", "department": "outsource"})
    assert resp.status_code == 400
    assert "Vendor name is required" in resp.get_json()["errors"]

    item = _process(client, order_id, item_id, note="Binding", department="outsource", outsource=OUTSOURCE)
    assert (item["current_stage"], item["current_status"]) == ("outsource", "sent_to_vendor")
    assert item["outsource"]["stage"] == "outsourced"
    assert item["outsource"]["vendor"]["vendor_id"] is not None

    login(designer)
    assert client.post(_url(order_id, item_id, "outsource/notes"), json={"note": "x"}).status_code == 403

    login(sales)
    stage_url = _url(order_id, item_id, "outsource/stage")
    assert client.post(stage_url, json={"stage": "vendor_dispatched"}).status_code == 409
    assert client.post(stage_url, json={"stage": "vendor_in_progress"}).status_code == 200
    assert client.post(stage_url, json={"stage": "outsourced"}).status_code == 400
    assert client.post(stage_url, json={"stage": "outsourced", "reason": "Wrong paper"}).status_code == 200
    assert client.post(stage_url, json={"stage": "vendor_in_progress"}).status_code == 200

    resp = client.post(_url(order_id, item_id, "outsource/notes"), json={"note": "Called vendor"})
    assert resp.status_code == 201
    assert resp.get_json()["outsource"]["follow_up_notes"][0]["note"] == "Called vendor"

    resp = client.post(
        _url(order_id, item_id, "outsource/vendor-dispatch"),
        json={"courier_name": "DTDC", "tracking_number": "D1", "vendor_dispatch_date": in_days(0)},
    )
    assert resp.get_json()["outsource"]["stage"] == "vendor_dispatched"

    resp = client.post(
        _url(order_id, item_id, "outsource/receive"),
        json={"receiver_name": "Ravi", "received_date": in_days(0)},
    )
    assert resp.get_json()["outsource"]["stage"] == "received_from_vendor"

    assert client.post(stage_url, json={"stage": "quality_check"}).status_code == 200
    resp = client.post(_url(order_id, item_id, "outsource/quality-check"), json={"result": "fail", "notes": "Smudged"})
    assert resp.get_json()["outsource"]["stage"] == "vendor_in_progress"

    assert client.post(_url(order_id, item_id, "outsource/decision"), json={"decision": "dispatch"}).status_code == 409

    client.post(
        _url(order_id, item_id, "outsource/vendor-dispatch"),
        json={"courier_name": "DTDC", "tracking_number": "D2", "vendor_dispatch_date": in_days(0)},
    )
    client.post(_url(order_id, item_id, "outsource/receive"), json={"receiver_name": "Ravi", "received_date": in_days(0)})
    client.post(stage_url, json={"stage": "quality_check"})
    resp = client.post(_url(order_id, item_id, "outsource/quality-check"), json={"result": "pass"})
    assert resp.get_json()["outsource"]["stage"] == "decision_pending"

    resp = client.post(_url(order_id, item_id, "outsource/decision"), json={"decision": 1})
    assert resp.status_code == 400
    assert resp.get_json()["code"] == "VALIDATION_ERROR"

    resp = client.post(_url(order_id, item_id, "outsource/decision"), json={"decision": "dispatch"})
    assert resp.status_code == 200
    item = _item(resp.get_json()["order"], item_id)
    assert (item["current_stage"], item["current_status"]) == ("production", "ready_for_dispatch")


def test_customer_pickup(client, login, sales):
    order_id, item_id = _create(client, login, sales)
    item = _process(client, order_id, item_id, note="Ready at counter", department="sales", status="ready_for_dispatch")
    assert item["current_status"] == "ready_for_dispatch"

    resp = client.post(_url(order_id, item_id, "process"), json={"note": "Decide", "dispatch": {"mode": "courier"}})
    assert resp.status_code == 400

    item = _process(client, order_id, item_id, note="Customer collects", dispatch={"mode": "pickup"})
    assert (item["current_stage"], item["current_status"]) == ("sales", "waiting_for_pickup")

    item = _process(client, order_id, item_id, note="Collected", dispatch={"receiver_name": "Mr Shah"})
    assert (item["current_stage"], item["current_status"]) == ("completed", "dispatched")
    assert item["dispatch"]["courier_company"] == "Self Pickup"
    assert item["dispatch"]["tracking_number"] == "HANDOVER"
    assert item["dispatch"]["mode"] == "pickup"
