"""Error kinds raised by the overtime engine."""
from __future__ import annotations


class OvertimeError(RuntimeError):
    """Base class for failures surfaced by engine operations."""

    code = "overtime_error"


class ValidationError(OvertimeError):
    """Raised for malformed dates, times, months or impossible ranges."""

    code = "validation_error"


class AuthorizationError(OvertimeError):
    """Raised when the actor's role or authority does not permit the action."""

    code = "forbidden"


class ConflictError(OvertimeError):
    """Raised when a write would break a uniqueness or hierarchy invariant."""

    code = "conflict"


class InvalidTransitionError(ConflictError):
    """Raised when an entry status change is not allowed."""

    code = "invalid_transition"

    def __init__(self, current: str, requested: str) -> None:
        super().__init__(f"Cannot change entry status from {current} to {requested}")
        self.current = current
        self.requested = requested


class NotFoundError(OvertimeError):
    """Raised when a record does not exist or is not visible to the actor."""

    code = "not_found"


class PeriodClosedError(OvertimeError):
    """Raised when no open period covers the date of a new entry."""

    code = "period_closed"

    def __init__(self, user_id: int, date: str) -> None:
        super().__init__(f"No open overtime period covers {date} for user {user_id}")
        self.user_id = user_id
        self.date = date


__all__ = [
    "AuthorizationError",
    "ConflictError",
    "InvalidTransitionError",
    "NotFoundError",
    "OvertimeError",
    "PeriodClosedError",
    "ValidationError",
]
