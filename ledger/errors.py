"""Typed failures raised by the booking ledger.

Every operation either returns a value or raises one of these. Callers decide
how to present them; ``retryable`` tells them whether running the whole
operation again can succeed without changing the request.
"""
from typing import Any, Dict


class LedgerError(Exception):
    """Base class for all booking ledger failures."""

    kind = "ledger_error"
    retryable = False
    default_message = "Booking operation failed"

    def __init__(self, message: str | None = None, **details: Any) -> None:
        self.message = message or self.default_message
        self.details: Dict[str, Any] = details
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {"detail": self.message, "error": self.kind, **self.details}

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(message={self.message!r}, details={self.details!r})"


class NotFound(LedgerError):
    """A referenced room, hotel or booking does not exist."""

    kind = "not_found"
    default_message = "Not found"


class InvalidRequest(LedgerError):
    """Malformed input, or a request the booking's state does not allow."""

    kind = "invalid_request"
    default_message = "Invalid booking request"


class InvalidDateRange(LedgerError):
    kind = "invalid_date_range"
    default_message = "Invalid date range"


class Forbidden(LedgerError):
    """The caller does not own the booking."""

    kind = "forbidden"
    default_message = "Not allowed to modify this booking"


class Conflict(LedgerError):
    """Not enough free units for the requested range and quantity."""

    kind = "conflict"
    default_message = "no rooms available for the selected dates"

    def __init__(self, message: str | None = None, *, available: int, **details: Any) -> None:
        super().__init__(message, available=available, **details)
        self.available = available


class TransientStoreFailure(LedgerError):
    """Lock timeout, deadlock or lost connection; nothing was written."""

    kind = "transient_store_failure"
    retryable = True
    default_message = "The booking store is busy, please retry"
