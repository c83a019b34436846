"""
orderflow/order_numbers.py

Order-number normalization and the duplicate check run before order creation.

POLICY:
- The duplicate check fails OPEN. A database error during the lookup is logged and the
  order is treated as new, so order intake is not blocked by a transient failure.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError

from .extensions import db
from .models import Order

logger = logging.getLogger(__name__)

_PREFIX_RE = re.compile(r"^(WC|MAN)-", re.IGNORECASE)
_NON_DIGIT_RE = re.compile(r"\D")


def normalize_order_number(value) -> str:
    """
    Comparable form of an order number.

    "WC-53534", "man-53534" and " 53534 " all normalize to "53534".
    """
    if value is None:
        return ""
    text = str(value).strip()
    if not text:
        return ""
    text = _PREFIX_RE.sub("", text)
    return _NON_DIGIT_RE.sub("", text)


@dataclass
class DuplicateCheck:
    is_duplicate: bool
    reason: Optional[str] = None

    def to_dict(self) -> dict:
        return {"is_duplicate": self.is_duplicate, "reason": self.reason}


def _find_order(column, value) -> Optional[Order]:
    return Order.query.filter(column == value).first()


def check_duplicate(order_number, external_order_id=None) -> DuplicateCheck:
    """
    Look for an existing order with the same order number or the same WooCommerce id.
    """
    number = (str(order_number) if order_number is not None else "").strip()
    external = (str(external_order_id) if external_order_id is not None else "").strip()

    if not number and not external:
        return DuplicateCheck(False)

    try:
        if number and _find_order(Order.order_number, number) is not None:
            return DuplicateCheck(True, "Order number already exists in Order Flow")

        if external:
            existing = _find_order(Order.external_order_id, external)
            if existing is not None:
                return DuplicateCheck(
                    True,
                    f"This WooCommerce order already exists in Order Flow (Order ID: {existing.order_number})",
                )
    except SQLAlchemyError:
        db.session.rollback()
        logger.warning("Duplicate check failed for order %r; allowing creation", number, exc_info=True)
        return DuplicateCheck(False)

    return DuplicateCheck(False)
