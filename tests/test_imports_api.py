import pytest

from orderflow.blueprints.imports import routes as import_routes
from orderflow.errors import ExternalImportError
from orderflow.models import WooCommerceImport

WC_ORDER = {
    "id": 4242,
    "order_number": "53534",
    "customer_name": "Meera Iyer",
    "customer_email": "meera@example.com",
    "billing_city": "Chennai",
    "payment_status": "paid",
    "order_total": "1800.00",
    "line_items": [
        {
            "id": 1,
            "name": "Visiting Cards",
            "quantity": 2,
            "meta_data": [
                {"key": "_reduced_stock", "value": "2"},
                {"key": "Finish", "value": "Matte"},
            ],
        }
    ],
}


class FakeClient:
    def __init__(self, result=None, error=None):
        self.result = result
        self.error = error
        self.calls = []

    def fetch_order(self, order_number):
        self.calls.append(order_number)
        if self.error is not None:
            raise self.error
        return self.result


@pytest.fixture
def fake_client(monkeypatch):
    def install(**kwargs):
        fake = FakeClient(**kwargs)
        monkeypatch.setattr(import_routes, "_client", lambda: fake)
        return fake

    return install


def test_lookup_returns_locked_form(client, login, sales, fake_client):
    fake = fake_client(result=WC_ORDER)
    login(sales)
    resp = client.post("/imports/lookup", json={"order_number": " 53534 ", "request_tag": 7})
    assert resp.status_code == 200, resp.get_json()
    body = resp.get_json()

    assert fake.calls == ["53534"]
    assert body["request_tag"] == 7
    assert body["form"]["customer_city"] == "Chennai"
    assert body["form"]["products"][0]["specifications"] == {"Finish": "Matte"}
    assert "customer_name" in body["locked_fields"]
    assert body["duplicate"] == {"is_duplicate": False, "reason": None}

    row = WooCommerceImport.query.one()
    assert row.woocommerce_order_id == "4242"
    assert row.imported_by_id == sales.id

    # Looking it up again reuses the cached row
    client.post("/imports/lookup", json={"order_number": "53534"})
    assert WooCommerceImport.query.count() == 1


def test_lookup_by_woocommerce_id_matches(client, login, sales, fake_client):
    fake_client(result=WC_ORDER)
    login(sales)
    assert client.post("/imports/lookup", json={"order_number": "4242"}).status_code == 200


def test_mismatched_order_is_refused(client, login, sales, fake_client):
    fake_client(result=dict(WC_ORDER, order_number="99999", id=1))
    login(sales)
    resp = client.post("/imports/lookup", json={"order_number": "53534"})
    assert resp.status_code == 409
    body = resp.get_json()
    assert body["code"] == "ORDER_NUMBER_MISMATCH"
    assert "Expected 53534" in body["message"]
    assert WooCommerceImport.query.count() == 0


def test_missing_order(client, login, sales, fake_client):
    fake_client(result=None)
    login(sales)
    resp = client.post("/imports/lookup", json={"order_number": "1"})
    assert resp.status_code == 404
    assert resp.get_json()["code"] == "ORDER_NOT_FOUND"


def test_upstream_error_is_reported(client, login, sales, fake_client):
    fake_client(error=ExternalImportError(ExternalImportError.UNAUTHORIZED, "WooCommerce rejected the token"))
    login(sales)
    resp = client.post("/imports/lookup", json={"order_number": "1"})
    assert resp.status_code == 401
    assert resp.get_json()["code"] == "UNAUTHORIZED"


def test_empty_number_and_department_roles(client, login, sales, make_user, fake_client):
    fake = fake_client(result=WC_ORDER)
    login(sales)
    assert client.post("/imports/lookup", json={"order_number": ""}).status_code == 400

    login(make_user("dina", "design"))
    assert client.post("/imports/lookup", json={"order_number": "53534"}).status_code == 403
    assert fake.calls == []
