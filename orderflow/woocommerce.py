"""
orderflow/woocommerce.py

WooCommerce order import.

- WooCommerceClient: calls the fetch endpoint ({order_number} + bearer token) with requests.
- reconcile(): refuses a fetched order whose number does not match what was asked for.
- sanitize_order(): keeps only the fields Order Flow uses.
- cache_import(): one woocommerce_imports row per WooCommerce order id.
- OrderIntakeForm: order creation draft. Tracks which import request is current so that
  a late response for an order number the user has since changed is discarded, and
  locks the fields an accepted import filled in.

Response contract of the fetch endpoint:
    {"found": false}
    {"found": true, "order": {...}}
    {"error": "UNAUTHORIZED|ORDER_NOT_FOUND|ORDER_NUMBER_MISMATCH|WOOCOMMERCE_ERROR", "message": "..."}
"""

from __future__ import annotations

import itertools
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import requests
from sqlalchemy.exc import IntegrityError

from .constants import OrderSource
from .errors import ExternalImportError, FieldLockedError, ValidationError
from .extensions import db
from .models import WooCommerceImport
from .order_numbers import normalize_order_number

logger = logging.getLogger(__name__)

ORDER_FIELDS = (
    "id",
    "order_number",
    "order_date",
    "customer_name",
    "customer_email",
    "customer_phone",
    "billing_address",
    "billing_city",
    "billing_state",
    "billing_pincode",
    "shipping_address",
    "shipping_city",
    "shipping_state",
    "shipping_pincode",
    "payment_status",
    "order_total",
    "currency",
)


# ---------------------------------------------------------------------
# HTTP client
# ---------------------------------------------------------------------
class WooCommerceClient:
    def __init__(self, url: str, token: str, timeout: int = 20, session: requests.Session | None = None):
        self.url = url
        self.token = token
        self.timeout = timeout
        self.session = session or requests.Session()

    @classmethod
    def from_config(cls, config) -> "WooCommerceClient":
        return cls(
            url=config.get("WOOCOMMERCE_FETCH_URL", ""),
            token=config.get("WOOCOMMERCE_API_TOKEN", ""),
            timeout=int(config.get("WOOCOMMERCE_TIMEOUT", 20)),
        )

    def fetch_order(self, order_number: str) -> Optional[Dict[str, Any]]:
        """The fetched order, or None when WooCommerce has no such order."""
        if not self.url:
            raise ExternalImportError(ExternalImportError.WOOCOMMERCE_ERROR, "WooCommerce import is not configured")

        headers = {
            "Authorization": f"Bearer {self.token}",
            "Content-Type": "application/json",
        }
        try:
            response = self.session.post(
                self.url,
                json={"order_number": order_number},
                headers=headers,
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            logger.warning("WooCommerce fetch for %r failed: %s", order_number, exc)
            raise ExternalImportError(ExternalImportError.WOOCOMMERCE_ERROR, f"Could not reach WooCommerce: {exc}")

        try:
            data = response.json()
        except ValueError:
            data = {}

        if isinstance(data, dict) and data.get("error"):
            code = str(data["error"])
            raise ExternalImportError(code, data.get("message") or code)

        if response.status_code in (401, 403):
            raise ExternalImportError(ExternalImportError.UNAUTHORIZED, "Not authorized to import WooCommerce orders")
        if response.status_code >= 400:
            raise ExternalImportError(
                ExternalImportError.WOOCOMMERCE_ERROR,
                f"WooCommerce fetch failed (HTTP {response.status_code})",
            )

        if not isinstance(data, dict) or not data.get("found"):
            return None

        order = data.get("order")
        if not isinstance(order, dict):
            raise ExternalImportError(ExternalImportError.WOOCOMMERCE_ERROR, "Malformed WooCommerce response")
        return order


# ---------------------------------------------------------------------
# Reconciliation / sanitizing
# ---------------------------------------------------------------------
def reconcile(requested: str, order: Dict[str, Any]) -> Dict[str, Any]:
    """Accept the order only if its number (or id) matches the requested number."""
    wanted = normalize_order_number(requested)
    got_number = order.get("order_number")
    got_id = order.get("id")

    if wanted and (
        wanted == normalize_order_number(got_number)
        or wanted == str(got_id if got_id is not None else "").strip()
    ):
        return order

    raise ExternalImportError(
        ExternalImportError.ORDER_NUMBER_MISMATCH,
        f"Order number mismatch: Expected {requested}, but got {got_number} (ID: {got_id})",
    )


def _specifications(line_item: Dict[str, Any]) -> Dict[str, str]:
    specs: Dict[str, str] = {}
    raw = line_item.get("specifications")
    if isinstance(raw, dict):
        pairs = raw.items()
    else:
        pairs = (
            (m.get("key") or m.get("display_key"), m.get("value") or m.get("display_value"))
            for m in (line_item.get("meta_data") or raw or [])
            if isinstance(m, dict)
        )
    for key, value in pairs:
        key = str(key or "").strip()
        # Internal WooCommerce meta keys start with "_"
        if not key or key.startswith("_"):
            continue
        specs[key] = "" if value is None else str(value)
    return specs


def sanitize_order(order: Dict[str, Any]) -> Dict[str, Any]:
    clean = {name: order.get(name) for name in ORDER_FIELDS if order.get(name) is not None}
    clean["line_items"] = [
        {
            "id": li.get("id"),
            "name": li.get("name"),
            "quantity": li.get("quantity") or 1,
            "sku": li.get("sku"),
            "specifications": _specifications(li),
        }
        for li in order.get("line_items") or []
        if isinstance(li, dict)
    ]
    return clean


def import_form_values(order: Dict[str, Any]) -> Dict[str, Any]:
    """Intake form values filled in from a sanitized WooCommerce order."""
    values = {
        "woocommerce_order_id": str(order.get("id")) if order.get("id") is not None else None,
        "order_date": order.get("order_date"),
        "customer_name": order.get("customer_name"),
        "customer_email": order.get("customer_email"),
        "customer_phone": order.get("customer_phone"),
        "customer_address": order.get("shipping_address") or order.get("billing_address"),
        "customer_city": order.get("shipping_city") or order.get("billing_city"),
        "customer_state": order.get("shipping_state") or order.get("billing_state"),
        "customer_pincode": order.get("shipping_pincode") or order.get("billing_pincode"),
        "payment_status": order.get("payment_status"),
        "order_total": order.get("order_total"),
        "currency": order.get("currency"),
        "products": [
            {
                "name": li.get("name"),
                "quantity": li.get("quantity") or 1,
                "sku": li.get("sku"),
                "specifications": dict(li.get("specifications") or {}),
            }
            for li in order.get("line_items") or []
        ],
    }
    return {k: v for k, v in values.items() if v not in (None, "", [])}


def cache_import(order: Dict[str, Any], actor=None) -> tuple[WooCommerceImport, bool]:
    """
    Store a sanitized import once per WooCommerce order id.

    Returns (row, created).
    """
    if order.get("id") in (None, ""):
        raise ExternalImportError(ExternalImportError.WOOCOMMERCE_ERROR, "WooCommerce order has no id")
    external_id = str(order.get("id"))
    existing = WooCommerceImport.query.filter_by(woocommerce_order_id=external_id).first()
    if existing is not None:
        return existing, False

    row = WooCommerceImport(
        woocommerce_order_id=external_id,
        order_number=str(order.get("order_number") or ""),
        sanitized_payload=sanitize_order(order),
        imported_by_id=getattr(actor, "id", None),
    )
    db.session.add(row)
    try:
        db.session.commit()
    except IntegrityError:
        # Another request cached it first
        db.session.rollback()
        return WooCommerceImport.query.filter_by(woocommerce_order_id=external_id).first(), False
    return row, True


# ---------------------------------------------------------------------
# Intake form draft
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class ImportTicket:
    tag: int
    order_number: str


class OrderIntakeForm:
    """Server-side model of the order creation form."""

    def __init__(self, data: Dict[str, Any] | None = None):
        self.fields: Dict[str, Any] = {}
        self.locked: set = set()
        self._latest: Optional[ImportTicket] = None
        self._tags = itertools.count(1)
        if data:
            self.update(data)

    @property
    def order_number(self) -> str:
        return str(self.fields.get("order_number") or "").strip()

    @property
    def is_imported(self) -> bool:
        return bool(self.locked)

    def set_order_number(self, value) -> None:
        new = (str(value) if value is not None else "").strip()
        if new != self.order_number and self.locked:
            # A different order number means the imported data no longer applies
            self.clear_import()
        self.fields["order_number"] = new

    def set_field(self, name: str, value) -> None:
        if name == "order_number":
            self.set_order_number(value)
            return
        if name in self.locked:
            raise FieldLockedError(f"{name} was imported from WooCommerce and cannot be edited")
        self.fields[name] = value

    def update(self, data: Dict[str, Any]) -> List[str]:
        """Bulk update; imported (locked) fields are skipped and returned."""
        if "order_number" in data:
            self.set_order_number(data["order_number"])
        skipped = []
        for name, value in data.items():
            if name == "order_number":
                continue
            if name in self.locked:
                skipped.append(name)
                continue
            self.fields[name] = value
        return skipped

    # -- import lifecycle ---------------------------------------------------
    def begin_import(self) -> ImportTicket:
        number = self.order_number
        if not number:
            raise ValidationError("Enter an order number to import")
        ticket = ImportTicket(tag=next(self._tags), order_number=number)
        self._latest = ticket
        return ticket

    def is_current(self, ticket: ImportTicket) -> bool:
        return (
            self._latest is not None
            and ticket.tag == self._latest.tag
            and ticket.order_number == self.order_number
        )

    def complete_import(self, ticket: ImportTicket, order: Optional[Dict[str, Any]]) -> bool:
        """
        Apply a fetch result.

        Returns False (and changes nothing) when the response is stale: a newer import was
        started or the order number input has changed since the request was sent.
        """
        if not self.is_current(ticket):
            logger.debug(
                "Discarding stale import response for %r (input is now %r)",
                ticket.order_number,
                self.order_number,
            )
            return False
        self._latest = None

        if order is None:
            raise ExternalImportError(
                ExternalImportError.ORDER_NOT_FOUND,
                f"Order {ticket.order_number} was not found in WooCommerce",
            )
        reconcile(ticket.order_number, order)
        self.apply_import(sanitize_order(order))
        return True

    def fail_import(self, ticket: ImportTicket) -> bool:
        """True when the failure belongs to the current request and should be shown."""
        if not self.is_current(ticket):
            return False
        self._latest = None
        return True

    def apply_import(self, sanitized_order: Dict[str, Any]) -> None:
        values = import_form_values(sanitized_order)
        self.fields.update(values)
        self.fields["source"] = OrderSource.WOOCOMMERCE
        self.locked = set(values)

    def clear_import(self) -> None:
        for name in self.locked:
            self.fields.pop(name, None)
        self.fields.pop("source", None)
        self.locked = set()

    def to_payload(self) -> Dict[str, Any]:
        return dict(self.fields)
