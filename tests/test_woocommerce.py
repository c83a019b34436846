import pytest
import requests

from orderflow.constants import OrderSource
from orderflow.errors import ExternalImportError, FieldLockedError, ValidationError
from orderflow.models import WooCommerceImport
from orderflow.woocommerce import (
    OrderIntakeForm,
    WooCommerceClient,
    cache_import,
    reconcile,
    sanitize_order,
)

WC_ORDER = {
    "id": 53534,
    "order_number": "53534",
    "customer_name": "Meera Shah",
    "customer_email": "meera@example.test",
    "billing_address": "12 Park Street",
    "billing_city": "Pune",
    "shipping_city": "Mumbai",
    "payment_status": "paid",
    "order_total": "2400.00",
    "currency": "INR",
    "internal_note": "not copied",
    "line_items": [
        {
            "id": 1,
            "name": "Letterpress Card",
            "quantity": 100,
            "sku": "LP-01",
            "meta_data": [
                {"key": "Paper", "value": "Cotton 600gsm"},
                {"key": "_reduced_stock", "value": "100"},
            ],
        }
    ],
}


class FakeResponse:
    def __init__(self, status_code=200, payload=None, bad_json=False):
        self.status_code = status_code
        self._payload = payload
        self._bad_json = bad_json

    def json(self):
        if self._bad_json:
            raise ValueError("no json")
        return self._payload


class FakeSession:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.calls = []

    def post(self, url, json=None, headers=None, timeout=None):
        self.calls.append({"url": url, "json": json, "headers": headers, "timeout": timeout})
        if self.error:
            raise self.error
        return self.response


def _client(response=None, error=None):
    session = FakeSession(response, error)
    return WooCommerceClient("https://shop.test/fetch", "tok", timeout=5, session=session), session


# ----------------------------------------------------------------------
# Client
# ----------------------------------------------------------------------
def test_fetch_sends_order_number_with_bearer_token():
    client, session = _client(FakeResponse(payload={"found": True, "order": WC_ORDER}))
    assert client.fetch_order("53534") == WC_ORDER
    call = session.calls[0]
    assert call["json"] == {"order_number": "53534"}
    assert call["headers"]["Authorization"] == "Bearer tok"
    assert call["timeout"] == 5


def test_fetch_not_found_returns_none():
    client, _ = _client(FakeResponse(payload={"found": False}))
    assert client.fetch_order("1") is None


def test_error_payload_is_raised_with_its_code():
    client, _ = _client(FakeResponse(400, {"error": "ORDER_NUMBER_MISMATCH", "message": "nope"}))
    with pytest.raises(ExternalImportError) as exc:
        client.fetch_order("1")
    assert exc.value.code == "ORDER_NUMBER_MISMATCH"
    assert exc.value.status_code == 409


def test_http_401_is_unauthorized():
    client, _ = _client(FakeResponse(401, bad_json=True))
    with pytest.raises(ExternalImportError) as exc:
        client.fetch_order("1")
    assert exc.value.code == "UNAUTHORIZED"


def test_network_failure_is_woocommerce_error():
    client, _ = _client(error=requests.ConnectionError("refused"))
    with pytest.raises(ExternalImportError) as exc:
        client.fetch_order("1")
    assert exc.value.code == "WOOCOMMERCE_ERROR"
    assert exc.value.status_code == 502


def test_unconfigured_client_refuses():
    with pytest.raises(ExternalImportError):
        WooCommerceClient("", "").fetch_order("1")


# ----------------------------------------------------------------------
# Reconcile / sanitize
# ----------------------------------------------------------------------
def test_reconcile_accepts_prefixed_or_id_match():
    assert reconcile("WC-53534", WC_ORDER) is WC_ORDER
    assert reconcile("53534", {"order_number": "X-1", "id": 53534})


def test_reconcile_rejects_other_order():
    with pytest.raises(ExternalImportError) as exc:
        reconcile("53535", WC_ORDER)
    assert exc.value.code == "ORDER_NUMBER_MISMATCH"
    assert exc.value.message == "Order number mismatch: Expected 53535, but got 53534 (ID: 53534)"


def test_sanitize_keeps_known_fields_and_public_meta():
    clean = sanitize_order(WC_ORDER)
    assert "internal_note" not in clean
    assert clean["line_items"][0]["specifications"] == {"Paper": "Cotton 600gsm"}


def test_cache_import_once_per_order(app):
    row, created = cache_import(WC_ORDER)
    again, created_again = cache_import(WC_ORDER)
    assert created and not created_again
    assert again.id == row.id
    assert WooCommerceImport.query.count() == 1
    assert row.sanitized_payload["order_number"] == "53534"


def test_cache_import_refuses_order_without_id(app):
    cache_import(WC_ORDER)
    anonymous = {k: v for k, v in WC_ORDER.items() if k != "id"}
    with pytest.raises(ExternalImportError) as exc:
        cache_import(anonymous)
    assert exc.value.code == ExternalImportError.WOOCOMMERCE_ERROR
    assert WooCommerceImport.query.count() == 1


# ----------------------------------------------------------------------
# Intake form
# ----------------------------------------------------------------------
def test_import_fills_and_locks_fields():
    form = OrderIntakeForm({"order_number": "53534"})
    ticket = form.begin_import()
    assert form.complete_import(ticket, WC_ORDER)

    payload = form.to_payload()
    assert payload["source"] == OrderSource.WOOCOMMERCE
    assert payload["customer_name"] == "Meera Shah"
    # Shipping wins over billing, billing fills the gaps
    assert payload["customer_city"] == "Mumbai"
    assert payload["customer_address"] == "12 Park Street"
    assert payload["products"][0]["specifications"] == {"Paper": "Cotton 600gsm"}

    with pytest.raises(FieldLockedError):
        form.set_field("customer_name", "Someone else")
    assert form.update({"customer_name": "x", "notes": "rush"}) == ["customer_name"]
    assert form.fields["notes"] == "rush"


def test_stale_response_is_discarded_after_number_change():
    form = OrderIntakeForm({"order_number": "53534"})
    ticket = form.begin_import()
    form.set_order_number("53535")

    assert form.complete_import(ticket, WC_ORDER) is False
    assert not form.is_imported
    assert "customer_name" not in form.fields


def test_only_latest_request_counts():
    form = OrderIntakeForm({"order_number": "53534"})
    first = form.begin_import()
    second = form.begin_import()

    assert form.fail_import(first) is False
    assert form.complete_import(first, WC_ORDER) is False
    assert form.complete_import(second, WC_ORDER) is True


def test_not_found_raises_for_current_request():
    form = OrderIntakeForm({"order_number": "1"})
    ticket = form.begin_import()
    with pytest.raises(ExternalImportError) as exc:
        form.complete_import(ticket, None)
    assert exc.value.code == "ORDER_NOT_FOUND"


def test_changing_order_number_clears_import():
    form = OrderIntakeForm({"order_number": "53534"})
    form.complete_import(form.begin_import(), WC_ORDER)
    form.set_order_number("99")
    assert not form.is_imported
    assert "source" not in form.fields
    form.set_field("customer_name", "Manual")


def test_import_needs_order_number():
    with pytest.raises(ValidationError):
        OrderIntakeForm().begin_import()
