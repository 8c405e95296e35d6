"""
Error taxonomy — one classified error type for the whole cart core.

Every failure that leaves the resilience layer is a CommerceError carrying
a machine-readable kind, a human-facing message, structured context and a
retryability flag.

    match await session.benefits.add_to_cart_with_benefits(...):
        case Ok(enhanced):
            ...
        case Error(err) if err.is_retryable:
            show_retry(err.user_message())
"""

from __future__ import annotations

import asyncio
import dataclasses
import uuid
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any

from combinators import TimeoutError as CombinatorTimeout

from cartsync._types import utc_now

# ═══════════════════════════════════════════════════════════════════════════════
# Kinds
# ═══════════════════════════════════════════════════════════════════════════════


class ErrorKind(Enum):
    """Error kinds. Value is the wire/log code."""

    NOT_FOUND = "NOT_FOUND"
    EXPIRED = "EXPIRED"
    PAYMENT_FAILED = "PAYMENT_FAILED"
    NETWORK_ERROR = "NETWORK_ERROR"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"
    VALIDATION_FAILED = "VALIDATION_FAILED"
    INTERNAL_ERROR = "INTERNAL_ERROR"


RETRYABLE_KINDS = frozenset({
    ErrorKind.PAYMENT_FAILED,
    ErrorKind.NETWORK_ERROR,
    ErrorKind.SERVICE_UNAVAILABLE,
})

_STATUS_CODES: dict[ErrorKind, int] = {
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.EXPIRED: 403,
    ErrorKind.PAYMENT_FAILED: 402,
    ErrorKind.NETWORK_ERROR: 503,
    ErrorKind.SERVICE_UNAVAILABLE: 503,
    ErrorKind.VALIDATION_FAILED: 400,
    ErrorKind.INTERNAL_ERROR: 500,
}

_USER_MESSAGES: dict[ErrorKind, str] = {
    ErrorKind.NOT_FOUND: "No active membership found. Please purchase a membership to access benefits.",
    ErrorKind.EXPIRED: "Your membership has expired. Please renew to continue enjoying benefits.",
    ErrorKind.PAYMENT_FAILED: "Payment processing failed. Please check your payment method and try again.",
    ErrorKind.NETWORK_ERROR: "Connection error. Please check your internet connection and try again.",
    ErrorKind.SERVICE_UNAVAILABLE: "Service temporarily unavailable. Please try again later.",
    ErrorKind.VALIDATION_FAILED: "Please check your information and try again.",
}

_DEFAULT_USER_MESSAGE = "An unexpected error occurred. Please try again or contact support."


class UserAction(Enum):
    """What the calling surface should offer the user."""

    RETRY = "retry"
    FIX_FIELD = "fix_field"
    RENEW_MEMBERSHIP = "renew_membership"
    CONTACT_SUPPORT = "contact_support"


# ═══════════════════════════════════════════════════════════════════════════════
# Context
# ═══════════════════════════════════════════════════════════════════════════════


def new_correlation_id() -> str:
    return f"req_{uuid.uuid4().hex[:12]}"


@dataclass(frozen=True, slots=True)
class ErrorContext:
    """Structured error details. Correlation id and timestamp are always set."""

    field: str | None = None
    value: Any = None
    expected: Any = None
    correlation_id: str = dataclasses.field(default_factory=new_correlation_id)
    timestamp: datetime = dataclasses.field(default_factory=utc_now)
    extra: Mapping[str, Any] = dataclasses.field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "field": self.field,
            "value": self.value,
            "expected": self.expected,
            "correlation_id": self.correlation_id,
            "timestamp": self.timestamp.isoformat(),
            **dict(self.extra),
        }


# ═══════════════════════════════════════════════════════════════════════════════
# CommerceError
# ═══════════════════════════════════════════════════════════════════════════════


class CommerceError(Exception):
    """Classified cart/membership error."""

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        context: ErrorContext | None = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.context = context if context is not None else ErrorContext()

    def __repr__(self) -> str:
        return f"CommerceError({self.kind.value}, {self.message!r})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, CommerceError):
            return NotImplemented
        return (
            self.kind is other.kind
            and self.message == other.message
            and self.context.correlation_id == other.context.correlation_id
        )

    def __hash__(self) -> int:
        return hash((self.kind, self.message, self.context.correlation_id))

    @property
    def is_retryable(self) -> bool:
        return self.kind in RETRYABLE_KINDS

    @property
    def status_code(self) -> int:
        return _STATUS_CODES[self.kind]

    @property
    def action(self) -> UserAction:
        """
        Routing hint for the UI.

        Retryable → retry affordance; validation → inline at the field;
        expired / not found → renewal or signup.
        """
        if self.is_retryable:
            return UserAction.RETRY
        match self.kind:
            case ErrorKind.VALIDATION_FAILED:
                return UserAction.FIX_FIELD
            case ErrorKind.EXPIRED | ErrorKind.NOT_FOUND:
                return UserAction.RENEW_MEMBERSHIP
            case _:
                return UserAction.CONTACT_SUPPORT

    def user_message(self) -> str:
        return _USER_MESSAGES.get(self.kind, _DEFAULT_USER_MESSAGE)

    def to_dict(self) -> dict[str, Any]:
        """Flat representation for structured logs and API responses."""
        return {
            "kind": self.kind.value,
            "message": self.message,
            "is_retryable": self.is_retryable,
            "status_code": self.status_code,
            "context": self.context.to_dict(),
        }


# ═══════════════════════════════════════════════════════════════════════════════
# Factory
# ═══════════════════════════════════════════════════════════════════════════════


class Errors:
    @staticmethod
    def not_found(entity: str, key: str | None = None) -> CommerceError:
        return CommerceError(
            ErrorKind.NOT_FOUND,
            f"{entity} not found",
            ErrorContext(value=key, extra={"entity": entity}),
        )

    @staticmethod
    def membership_not_found(customer_id: str | None = None) -> CommerceError:
        return CommerceError(
            ErrorKind.NOT_FOUND,
            "Membership not found",
            ErrorContext(extra={"customer_id": customer_id}),
        )

    @staticmethod
    def line_not_found(merchandise_id: str, line_id: str | None = None) -> CommerceError:
        return CommerceError(
            ErrorKind.NOT_FOUND,
            "Cart line not found",
            ErrorContext(
                field="merchandise_id",
                value=merchandise_id,
                extra={"line_id": line_id},
            ),
        )

    @staticmethod
    def expired(expires_at: datetime | None = None) -> CommerceError:
        return CommerceError(
            ErrorKind.EXPIRED,
            "Membership has expired",
            ErrorContext(extra={"expires_at": expires_at.isoformat() if expires_at else None}),
        )

    @staticmethod
    def payment_failed(reason: str | None = None) -> CommerceError:
        return CommerceError(
            ErrorKind.PAYMENT_FAILED,
            "Payment processing failed",
            ErrorContext(extra={"reason": reason}),
        )

    @staticmethod
    def network(cause: BaseException | None = None, operation: str | None = None) -> CommerceError:
        return CommerceError(
            ErrorKind.NETWORK_ERROR,
            "Network connection error",
            ErrorContext(extra={
                "operation": operation,
                "original_message": str(cause) if cause is not None else None,
            }),
        )

    @staticmethod
    def service_unavailable(operation: str, cause: BaseException | None = None) -> CommerceError:
        return CommerceError(
            ErrorKind.SERVICE_UNAVAILABLE,
            f"Service temporarily unavailable: {operation}",
            ErrorContext(extra={
                "operation": operation,
                "original_message": str(cause) if cause is not None else None,
            }),
        )

    @staticmethod
    def validation(field_name: str, value: Any, expected: Any = None) -> CommerceError:
        return CommerceError(
            ErrorKind.VALIDATION_FAILED,
            f"Validation failed for field: {field_name}",
            ErrorContext(field=field_name, value=value, expected=expected),
        )

    @staticmethod
    def internal(message: str, cause: BaseException | None = None) -> CommerceError:
        return CommerceError(
            ErrorKind.INTERNAL_ERROR,
            message,
            ErrorContext(extra={"original_message": str(cause) if cause is not None else None}),
        )


# ═══════════════════════════════════════════════════════════════════════════════
# classify() — Exception → CommerceError
# ═══════════════════════════════════════════════════════════════════════════════

_NETWORK_KEYWORDS = ("network", "fetch", "connection", "timeout", "offline", "unreachable")


def classify(exc: BaseException, operation: str = "operation") -> CommerceError:
    """
    Turn any failure into a CommerceError.

    Already-classified errors pass through untouched.
    """
    if isinstance(exc, CommerceError):
        return exc
    if isinstance(exc, (TimeoutError, asyncio.TimeoutError, CombinatorTimeout, OSError)):
        return Errors.network(exc, operation)

    text = str(exc).lower()
    if any(k in text for k in _NETWORK_KEYWORDS):
        return Errors.network(exc, operation)
    return Errors.service_unavailable(operation, exc)


# ═══════════════════════════════════════════════════════════════════════════════
# Exports
# ═══════════════════════════════════════════════════════════════════════════════

__all__ = (
    "ErrorKind",
    "RETRYABLE_KINDS",
    "UserAction",
    "ErrorContext",
    "CommerceError",
    "Errors",
    "classify",
    "new_correlation_id",
)
