"""Error hierarchy for the absence engine.

Validation and business-rule errors go back to the caller for display and
are never retried. ``ConcurrencyError`` is safe to retry after re-reading the
request.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID


class AbsenceEngineError(Exception):
    """Base class for all engine errors."""

    code = "ABSENCE_ERROR"


class ValidationError(AbsenceEngineError):
    """Malformed input or a request that breaks a submission rule."""

    code = "VALIDATION_ERROR"


class InvalidRangeError(ValidationError):
    """Raised when a date range ends before it starts."""

    code = "INVALID_RANGE"

    def __init__(self, start: date, end: date):
        self.start = start
        self.end = end
        super().__init__(f"End date {end.isoformat()} is before start date {start.isoformat()}")


class AuthorizationError(ValidationError):
    """Actor is not allowed to perform a self-service action."""

    code = "NOT_AUTHORIZED"


class SubstituteUnavailableError(ValidationError):
    """Named substitute has an approved absence in the requested window."""

    code = "SUBSTITUTE_UNAVAILABLE"

    def __init__(self, substitute_id: str, conflicting_ids: list[UUID]):
        self.substitute_id = substitute_id
        self.conflicting_ids = conflicting_ids
        super().__init__(f"Substitute {substitute_id} is absent during the requested period")


class NotFoundError(AbsenceEngineError):
    """Unknown request or quota id."""

    code = "NOT_FOUND"

    def __init__(self, entity: str, entity_id: UUID | str):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} {entity_id} not found")


class QuotaExceededError(AbsenceEngineError):
    """Reservation would overdraw the entitlement."""

    code = "QUOTA_EXCEEDED"

    def __init__(self, employee_id: str, year: int, requested: Decimal, available: Decimal):
        self.employee_id = employee_id
        self.year = year
        self.requested = requested
        self.available = available
        super().__init__(
            f"Requested {requested} day(s) for {employee_id} in {year}, "
            f"only {available} available"
        )


class OverlapError(AbsenceEngineError):
    """Date range conflicts with another request of the same employee."""

    code = "OVERLAP"

    def __init__(self, employee_id: str, conflicting_ids: list[UUID]):
        self.employee_id = employee_id
        self.conflicting_ids = conflicting_ids
        ids = ", ".join(str(i) for i in conflicting_ids)
        super().__init__(f"Absence for {employee_id} overlaps existing request(s): {ids}")


class ConcurrencyError(AbsenceEngineError):
    """Expected-status guard failed because another actor changed the row."""

    code = "CONCURRENT_MODIFICATION"


class InvalidTransitionError(ConcurrencyError):
    """Raised when the stored status does not allow the requested transition."""

    code = "INVALID_TRANSITION"

    def __init__(self, from_status: str, to_status: str, reason: str | None = None):
        self.from_status = from_status
        self.to_status = to_status
        self.reason = reason
        msg = f"Invalid transition from '{from_status}' to '{to_status}'"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class LedgerStateError(AbsenceEngineError):
    """Quota row cannot absorb a commit or release (missing reservation)."""

    code = "LEDGER_STATE"
