"""Absence lifecycle events.

Events are frozen dataclasses created after the transition that produced them
has committed. Each one names the request and its owner, so consumers (the
notification dispatcher, audit writers, calendar sync) need no store lookup.
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, ClassVar
from uuid import UUID, uuid4

from absence_engine.domain import AbsenceType


class EventCategory(str, Enum):
    """Coarse grouping used by category subscriptions."""

    LIFECYCLE = "lifecycle"
    APPROVAL = "approval"
    COMMUNICATION = "communication"


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class EventMetadata:
    """Who caused an event, and when.

    ``correlation_id`` is the request id, so all events of one request can be
    grouped by it.
    """

    correlation_id: UUID
    actor_id: str | None = None
    actor_type: str = "system"  # employee | approver | system
    source_service: str = "absence_engine"
    event_id: UUID = field(default_factory=uuid4)
    timestamp: datetime = field(default_factory=_now)
    version: int = 1

    @classmethod
    def create(
        cls,
        correlation_id: UUID | None = None,
        actor_id: str | None = None,
        actor_type: str = "system",
        source_service: str = "absence_engine",
    ) -> EventMetadata:
        return cls(
            correlation_id=correlation_id or uuid4(),
            actor_id=actor_id,
            actor_type=actor_type,
            source_service=source_service,
        )


@dataclass(frozen=True)
class DomainEvent:
    """Common payload of every absence event."""

    category: ClassVar[EventCategory]

    metadata: EventMetadata
    request_id: UUID
    employee_id: str

    @property
    def event_type(self) -> str:
        return type(self).__name__

    def to_dict(self) -> dict[str, Any]:
        """JSON-ready form, tagged with the event type and category."""
        payload = _jsonable(asdict(self))
        payload["event_type"] = self.event_type
        payload["category"] = self.category.value
        return payload

    def to_json(self) -> str:
        return json.dumps(self.to_dict())


def _jsonable(value: Any) -> Any:
    if isinstance(value, dict):
        return {key: _jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(item) for item in value]
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (UUID, Decimal)):
        return str(value)
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return value


# Request lifecycle


@dataclass(frozen=True)
class AbsenceRequestSubmitted(DomainEvent):
    """A new request was persisted as pending."""

    category = EventCategory.LIFECYCLE

    absence_type: AbsenceType
    start_date: date
    end_date: date
    working_days: Decimal
    substitute_id: str | None
    warnings: tuple[str, ...] = ()


@dataclass(frozen=True)
class AbsenceRequestApproved(DomainEvent):
    """The final approval level accepted the request."""

    category = EventCategory.LIFECYCLE

    approver_id: str
    absence_type: AbsenceType
    start_date: date
    end_date: date
    working_days: Decimal


@dataclass(frozen=True)
class AbsenceRequestRejected(DomainEvent):
    category = EventCategory.LIFECYCLE

    approver_id: str
    reason: str
    start_date: date
    end_date: date


@dataclass(frozen=True)
class AbsenceRequestWithdrawn(DomainEvent):
    category = EventCategory.LIFECYCLE

    start_date: date
    end_date: date


# Approval trail


@dataclass(frozen=True)
class ApprovalStepRecorded(DomainEvent):
    """An intermediate approval level signed; the request is still pending."""

    category = EventCategory.APPROVAL

    level: int
    approver_id: str
    remaining_levels: int


# Communication


@dataclass(frozen=True)
class AbsenceQueryRaised(DomainEvent):
    """An approver asked the employee a question about a pending request."""

    category = EventCategory.COMMUNICATION

    asker_id: str
    question: str


@dataclass(frozen=True)
class SubstituteAssigned(DomainEvent):
    category = EventCategory.COMMUNICATION

    substitute_id: str
    start_date: date
    end_date: date
