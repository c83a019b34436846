import io
from decimal import Decimal

from conftest import in_days, order_payload

from orderflow.extensions import db
from orderflow.models import AuditLog, Notification, Order, OrderFile, OrderItem, TimelineEntry
from orderflow.order_numbers import DuplicateCheck
from orderflow.services import orders as order_service
from orderflow.woocommerce import cache_import


def _create(client, payload=None):
    resp = client.post("/orders", json=payload or order_payload())
    assert resp.status_code == 201, resp.get_json()
    return resp.get_json()["order"]


# ----------------------------------------------------------------------
# Create
# ----------------------------------------------------------------------
def test_sales_creates_manual_order(client, login, sales):
    login(sales)
    order = _create(client, order_payload(apply_gst=True))

    assert order["source"] == "manual"
    assert len(order["items"]) == 1
    assert OrderItem.query.filter_by(order_id=order["id"]).count() == 1
    item = order["items"][0]
    assert (item["current_stage"], item["current_status"]) == ("sales", "new_order")
    assert item["assigned_department"] == "sales"
    assert item["assigned_to_id"] == sales.id
    assert item["priority"] == "low"
    assert order["subtotal"] == "2500.00"
    assert order["tax_amount"] == "450.00"
    assert order["order_total"] == "2950.00"

    entry = TimelineEntry.query.filter_by(order_id=order["id"]).one()
    assert entry.notes == "Created manually"
    assert AuditLog.query.filter_by(entity_type="Order", action="CREATE").count() == 1


def test_missing_specification_writes_nothing(client, login, sales):
    login(sales)
    payload = order_payload()
    payload["products"][0]["specifications"] = {}
    resp = client.post("/orders", json=payload)

    assert resp.status_code == 400
    body = resp.get_json()
    assert body["code"] == "VALIDATION_ERROR"
    assert "Product 1 needs at least one specification" in body["errors"]
    assert Order.query.count() == 0
    assert OrderItem.query.count() == 0
    assert AuditLog.query.count() == 0


def test_all_validation_errors_reported_together(client, login, sales):
    login(sales)
    resp = client.post("/orders", json={"products": [{"name": "", "quantity": 0, "specifications": []}]})
    errors = resp.get_json()["errors"]
    assert "Order number is required" in errors
    assert "Customer name is required" in errors
    assert "delivery date is required" in errors
    assert "Product 1 name required" in errors
    assert "Product 1 quantity must be at least 1" in errors


def test_duplicate_order_number_is_rejected(client, login, sales):
    login(sales)
    _create(client)
    resp = client.post("/orders", json=order_payload())
    assert resp.status_code == 409
    assert resp.get_json()["code"] == "DUPLICATE_ORDER"
    assert Order.query.count() == 1

    check = client.post("/orders/check-duplicate", json={"order_number": "1001"}).get_json()
    assert check["is_duplicate"] is True


def test_every_product_becomes_a_stored_item(client, login, sales):
    login(sales)
    products = [
        {"name": "Letterhead", "quantity": 500, "specifications": {"paper": "100gsm bond"}},
        {"name": "Envelope", "quantity": 500, "unit_price": "2.00", "specifications": {"size": "DL"}},
    ]
    order = _create(client, order_payload(products=products))

    stored = OrderItem.query.filter_by(order_id=order["id"]).order_by(OrderItem.id).all()
    assert [i.product_name for i in stored] == ["Letterhead", "Envelope"]
    assert all(i.current_stage == "sales" for i in stored)
    assert order["subtotal"] == "1000.00"


def test_database_conflict_is_a_json_error(client, login, sales, monkeypatch):
    login(sales)
    _create(client, order_payload("900"))
    monkeypatch.setattr(order_service, "check_duplicate", lambda *args, **kwargs: DuplicateCheck(False))

    resp = client.post("/orders", json=order_payload("900"))
    assert resp.status_code == 500
    body = resp.get_json()
    assert body["status"] == "error"
    assert body["code"] == "DATABASE_ERROR"
    assert "UNIQUE" in body["message"]
    assert Order.query.count() == 1
    assert OrderItem.query.count() == 1


def test_admin_must_pick_department_and_assignee(client, login, admin, make_user):
    designer = make_user("dina", "design")
    login(admin)

    resp = client.post("/orders", json=order_payload())
    assert set(resp.get_json()["errors"]) >= {"Select a department", "Select an assignee"}

    order = _create(client, order_payload(department="design", assigned_to_id=designer.id))
    item = order["items"][0]
    assert (item["current_stage"], item["current_status"]) == ("design", "design_in_progress")
    assert item["assigned_to_id"] == designer.id
    assert Notification.query.filter_by(user_id=designer.id, title="New Order Assigned").count() == 1


def test_department_staff_cannot_create(client, login, make_user):
    login(make_user("dina", "design"))
    assert client.post("/orders", json=order_payload()).status_code == 403


def test_imported_fields_come_from_cached_import(client, login, sales):
    cache_import(
        {
            "id": 777,
            "order_number": "53534",
            "customer_name": "Imported Customer",
            "shipping_city": "Pune",
            "order_total": "999.00",
            "payment_status": "paid",
            "line_items": [{"name": "Gift Box", "quantity": 3, "specifications": {"Color": "Red"}}],
        }
    )
    login(sales)
    order = _create(
        client,
        {
            "order_number": "53534",
            "woocommerce_order_id": "777",
            "customer_name": "Edited by hand",
            "delivery_date": in_days(8),
        },
    )
    assert order["source"] == "woocommerce"
    assert order["external_order_id"] == "777"
    assert order["customer_name"] == "Imported Customer"
    assert order["customer_city"] == "Pune"
    assert order["order_total"] == "999.00"
    assert order["items"][0]["specifications"] == {"Color": "Red"}

    entry = TimelineEntry.query.filter_by(order_id=order["id"]).one()
    assert entry.notes == "Imported from WC #53534"

    # Same WooCommerce order again under another number
    resp = client.post(
        "/orders",
        json={"order_number": "99", "woocommerce_order_id": "777", "delivery_date": in_days(8)},
    )
    assert resp.status_code == 409


# ----------------------------------------------------------------------
# Lists / visibility
# ----------------------------------------------------------------------
def test_lists_follow_department_visibility(client, login, admin, sales, make_user):
    designer = make_user("dina", "design")
    login(admin)
    _create(client, order_payload("1", department="design", assigned_to_id=designer.id))
    _create(client, order_payload("2", department="sales", assigned_to_id=sales.id))

    login(designer)
    body = client.get("/orders").get_json()
    assert [o["order_number"] for o in body["items"]] == ["1"]
    assert "order_total" not in body["items"][0]
    assert "unit_price" not in body["items"][0]["items"][0]

    mine = client.get("/orders?view=mine").get_json()
    assert mine["total"] == 1

    second = Order.query.filter_by(order_number="2").one()
    assert client.get(f"/orders/{second.id}").status_code == 403

    login(sales)
    body = client.get("/orders?sort=order_number").get_json()
    assert [o["order_number"] for o in body["items"]] == ["1", "2"]
    assert "order_total" in body["items"][0]


def test_stats_and_urgent_view(client, login, sales):
    login(sales)
    _create(client, order_payload("1"))
    _create(client, order_payload("2", delivery_date=in_days(1)))

    stats = client.get("/orders/stats").get_json()
    assert stats["active_orders"] == 2
    assert stats["urgent_orders"] == 1
    assert stats["by_department"]["sales"] == 2
    assert stats["by_priority"]["high"] == 1

    urgent = client.get("/orders?view=urgent").get_json()
    assert [o["order_number"] for o in urgent["items"]] == ["2"]


def test_search_and_paging(client, login, sales):
    login(sales)
    for n in range(1, 4):
        _create(client, order_payload(str(n), customer_name=f"Client {n}"))
    body = client.get("/orders?search=client%202").get_json()
    assert [o["order_number"] for o in body["items"]] == ["2"]

    page = client.get("/orders?per_page=2&page=2&sort=order_number").get_json()
    assert page["pages"] == 2
    assert [o["order_number"] for o in page["items"]] == ["3"]


# ----------------------------------------------------------------------
# Update / delete / notes / files
# ----------------------------------------------------------------------
def test_delivery_date_change_escalates(client, login, admin, sales):
    login(sales)
    order = _create(client)
    resp = client.patch(f"/orders/{order['id']}", json={"delivery_date": in_days(1), "customer_city": "Pune"})
    assert resp.status_code == 200
    body = resp.get_json()["order"]
    assert body["customer_city"] == "Pune"
    assert body["items"][0]["priority"] == "high"

    alerts = Notification.query.filter_by(title="Urgent Order Alert").all()
    assert {n.user_id for n in alerts} == {admin.id, sales.id}


def test_item_delivery_date(client, login, sales):
    login(sales)
    order = _create(client)
    item_id = order["items"][0]["id"]
    resp = client.patch(f"/orders/{order['id']}/items/{item_id}/delivery-date", json={"delivery_date": in_days(4)})
    assert resp.get_json()["order"]["items"][0]["priority"] == "medium"


def test_specifications_update_requires_one_entry(client, login, sales):
    login(sales)
    order = _create(client)
    url = f"/orders/{order['id']}/items/{order['items'][0]['id']}/specifications"
    assert client.put(url, json={"specifications": {}}).status_code == 400
    resp = client.put(url, json={"specifications": [{"key": "Finish", "value": "Gloss"}]})
    assert resp.get_json()["order"]["items"][0]["specifications"] == {"Finish": "Gloss"}


def test_delete_order(client, login, sales):
    login(sales)
    order = _create(client)
    assert client.delete(f"/orders/{order['id']}").status_code == 200
    assert db.session.get(Order, order["id"]) is None
    assert AuditLog.query.filter_by(action="DELETE").count() == 1


def test_notes_show_up_in_timeline(client, login, sales):
    login(sales)
    order = _create(client)
    client.get(f"/orders/{order['id']}/timeline")
    resp = client.post(f"/orders/{order['id']}/notes", json={"note": "Customer called about foil colour"})
    assert resp.status_code == 201
    assert client.post(f"/orders/{order['id']}/notes", json={"note": " "}).status_code == 400

    timeline = client.get(f"/orders/{order['id']}/timeline").get_json()["timeline"]
    assert [e["action"] for e in timeline] == ["created", "note_added"]
    assert timeline[1]["is_public"] is False


def test_file_upload(client, login, sales, app):
    login(sales)
    order = _create(client)
    resp = client.post(
        f"/orders/{order['id']}/files",
        data={"file": (io.BytesIO(b"%PDF-1.4 proof"), "proof v1.pdf"), "file_type": "proof"},
        content_type="multipart/form-data",
    )
    assert resp.status_code == 201, resp.get_json()
    row = OrderFile.query.one()
    assert row.file_size == len(b"%PDF-1.4 proof")
    assert row.storage_key.endswith("_proof_v1.pdf")

    files = client.get(f"/orders/{order['id']}/files").get_json()["files"]
    assert files[0]["file_type"] == "proof"


def test_viewer_is_read_only(client, login, sales, make_user):
    login(sales)
    order = _create(client)
    login(make_user("vic", "viewer"))

    assert client.get(f"/orders/{order['id']}").status_code == 200
    resp = client.post(f"/orders/{order['id']}/notes", json={"note": "hi"})
    assert resp.status_code == 403
    assert resp.get_json()["message"] == "Read-only accounts cannot make changes"
    assert "order_total" not in client.get(f"/orders/{order['id']}").get_json()["order"]


def test_totals_use_decimal(app):
    order = Order(order_number="T", customer_name="T")
    order.items.append(OrderItem(product_name="A", quantity=1, line_total=Decimal("10.10")))
    order.recalculate_totals(Decimal("0.18"))
    assert order.order_total == Decimal("11.92")
