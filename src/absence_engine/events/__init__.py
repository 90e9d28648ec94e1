"""Absence domain events.

Events are emitted after a transition commits, through the
``NotificationDispatcher``. Handlers registered on the ``EventEmitter``
receive them in-process; handler failures are logged and never reach the
caller of the transition.
"""

from absence_engine.events.emitter import EventEmitter, EventHandler, HandlerRegistration
from absence_engine.events.types import (
    AbsenceQueryRaised,
    AbsenceRequestApproved,
    AbsenceRequestRejected,
    AbsenceRequestSubmitted,
    AbsenceRequestWithdrawn,
    ApprovalStepRecorded,
    DomainEvent,
    EventCategory,
    EventMetadata,
    SubstituteAssigned,
)

__all__ = [
    # Base types
    "DomainEvent",
    "EventCategory",
    "EventMetadata",
    # Lifecycle
    "AbsenceRequestSubmitted",
    "AbsenceRequestApproved",
    "AbsenceRequestRejected",
    "AbsenceRequestWithdrawn",
    # Approval trail
    "ApprovalStepRecorded",
    # Communication
    "AbsenceQueryRaised",
    "SubstituteAssigned",
    # Emitter
    "EventEmitter",
    "EventHandler",
    "HandlerRegistration",
]
