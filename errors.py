"""Failure kinds shared by the services and the HTTP layer."""

from typing import Any, Dict, Optional


class ServiceError(Exception):
    """Base error raised inside a transaction scope and reported as a failure result."""

    kind = "internal"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_result(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"kind": self.kind, "message": self.message}
        if self.details:
            result["details"] = self.details
        return result


class DataConstraintError(ServiceError):
    kind = "validation"


class InvalidReferenceError(ServiceError):
    """A user, movie or showtime id that does not exist."""

    kind = "invalid_reference"


class NotFoundError(ServiceError):
    kind = "not_found"


class ConflictError(ServiceError):
    kind = "conflict"


class SeatUnavailableError(ServiceError):
    kind = "seat_unavailable"


class PaymentFailedError(ServiceError):
    kind = "payment_failed"


class GatewayUnavailableError(ServiceError):
    kind = "gateway_unavailable"


class PaymentGatewayError(ServiceError):
    """The remote payment gateway rejected the call or could not be reached."""

    kind = "gateway_error"


def parse_id(name: str, value) -> int:
    """Accept ints and integral values only; 1.9 or True is not an id."""
    if isinstance(value, bool):
        raise DataConstraintError(f"{name} must be an integer")
    if isinstance(value, float) and not value.is_integer():
        raise DataConstraintError(f"{name} must be an integer")
    try:
        return int(value)
    except (TypeError, ValueError, OverflowError):
        raise DataConstraintError(f"{name} must be an integer")


def failure(kind: str, message: str, details: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    result: Dict[str, Any] = {"kind": kind, "message": message}
    if details:
        result["details"] = details
    return result
