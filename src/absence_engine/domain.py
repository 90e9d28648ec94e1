"""Domain types for the absence request lifecycle."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID, uuid4


class AbsenceStatus(str, Enum):
    """Absence request status values."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    WITHDRAWN = "withdrawn"


class AbsenceType(str, Enum):
    """Absence type tags."""

    VACATION = "vacation"
    SPECIAL_VACATION = "special_vacation"
    SICK_LEAVE = "sick_leave"
    HOMEOFFICE = "homeoffice"
    BUSINESS_TRIP = "business_trip"
    PARENTAL = "parental"
    EDUCATIONAL = "educational"
    OTHER = "other"


class ApprovalDecision(str, Enum):
    """Decision recorded on an approval step."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class NotificationType(str, Enum):
    """Notification kinds written to the sink."""

    APPROVAL_REQUEST = "approval_request"
    APPROVED = "approved"
    REJECTED = "rejected"
    WITHDRAWN = "withdrawn"
    QUERY = "query"
    SUBSTITUTE = "substitute"


@dataclass(frozen=True)
class AbsenceRequest:
    """An employee's absence request.

    Instances are immutable; the state machine produces updated copies via
    ``with_changes`` and persists them through conditional writes.
    """

    request_id: UUID
    employee_id: str
    absence_type: AbsenceType
    start_date: date
    end_date: date
    status: AbsenceStatus
    working_days: Decimal
    quota_year: int
    half_day: bool = False
    reason: str = ""
    substitute_id: str | None = None
    created_at: datetime | None = None
    decided_at: datetime | None = None
    decided_by: str | None = None
    rejection_reason: str | None = None

    def overlaps(self, start: date, end: date) -> bool:
        """Inclusive date-range intersection."""
        return self.start_date <= end and self.end_date >= start

    def with_changes(self, **changes: Any) -> AbsenceRequest:
        return replace(self, **changes)


@dataclass(frozen=True)
class AbsenceDraft:
    """Caller input for a new absence request."""

    employee_id: str
    absence_type: AbsenceType
    start_date: date | None
    end_date: date | None
    half_day: bool = False
    reason: str = ""
    substitute_id: str | None = None
    request_id: UUID | None = None  # Client-supplied id makes submit replay-safe


@dataclass(frozen=True)
class AbsenceQuota:
    """Per employee, absence type and calendar year quota."""

    quota_id: UUID
    employee_id: str
    absence_type: AbsenceType
    year: int
    entitlement: Decimal
    used: Decimal = Decimal("0")
    planned: Decimal = Decimal("0")

    @property
    def remaining(self) -> Decimal:
        """Days still available for new reservations."""
        return self.entitlement - self.used - self.planned


@dataclass(frozen=True)
class ApprovalStep:
    """One level of the approval trail."""

    request_id: UUID
    level: int
    approver_id: str
    decision: ApprovalDecision
    decided_at: datetime | None = None
    comment: str | None = None
    step_id: UUID = field(default_factory=uuid4)


@dataclass(frozen=True)
class Notification:
    """Write-only notification record."""

    recipient_id: str
    request_id: UUID
    notification_type: NotificationType
    message: str
    read: bool = False
    notification_id: UUID = field(default_factory=uuid4)
    created_at: datetime | None = None
