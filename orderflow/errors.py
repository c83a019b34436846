"""
orderflow/errors.py

Domain exceptions.

Services raise these; the app factory turns them into JSON error responses:

    {"status": "error", "message": "...", "code": "..."}

IMPORTANT:
- Raise before touching the session when validating, so a failed validation writes nothing.
- Write failures are re-raised after rollback with the raw message.
"""

from __future__ import annotations

from typing import Iterable, Optional


class OrderFlowError(Exception):
    """Base error for anything the API reports back to the caller."""

    status_code = 400
    code: Optional[str] = None

    def __init__(self, message: str, *, code: str | None = None, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self) -> dict:
        payload = {"status": "error", "message": self.message}
        if self.code:
            payload["code"] = self.code
        return payload


class ValidationError(OrderFlowError):
    """Missing / malformed input. Blocks the action."""

    code = "VALIDATION_ERROR"

    def __init__(self, message: str | Iterable[str], **kwargs):
        if isinstance(message, str):
            errors = [message]
        else:
            errors = [m for m in message if m]
            message = "; ".join(errors)
        super().__init__(message, **kwargs)
        self.errors = errors

    def to_dict(self) -> dict:
        payload = super().to_dict()
        payload["errors"] = self.errors
        return payload


class DuplicateOrderError(ValidationError):
    code = "DUPLICATE_ORDER"
    status_code = 409


class FieldLockedError(ValidationError):
    """A form field was filled by an import and cannot be edited manually."""

    code = "FIELD_LOCKED"


class PermissionDenied(OrderFlowError):
    code = "FORBIDDEN"
    status_code = 403


class InvalidTransition(OrderFlowError):
    """A state machine was asked for an edge it does not have."""

    code = "INVALID_TRANSITION"
    status_code = 409

    @classmethod
    def between(cls, current: str | None, target: str | None) -> "InvalidTransition":
        return cls(f"Cannot transition from {current} to {target}")


class ExternalImportError(OrderFlowError):
    """Failure reported by (or while talking to) the WooCommerce fetch endpoint."""

    UNAUTHORIZED = "UNAUTHORIZED"
    ORDER_NOT_FOUND = "ORDER_NOT_FOUND"
    ORDER_NUMBER_MISMATCH = "ORDER_NUMBER_MISMATCH"
    WOOCOMMERCE_ERROR = "WOOCOMMERCE_ERROR"

    STATUS_BY_CODE = {
        UNAUTHORIZED: 401,
        ORDER_NOT_FOUND: 404,
        ORDER_NUMBER_MISMATCH: 409,
        WOOCOMMERCE_ERROR: 502,
    }

    def __init__(self, code: str, message: str):
        if code not in self.STATUS_BY_CODE:
            code = self.WOOCOMMERCE_ERROR
        super().__init__(message, code=code, status_code=self.STATUS_BY_CODE[code])
