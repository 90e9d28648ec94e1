"""Best-effort notification dispatch.

The dispatcher runs after a transition has committed. It turns a domain
event into notification records for the sink and hands the event to the
in-process ``EventEmitter``. Nothing here can fail a transition: every
failure is logged and dropped.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from datetime import datetime, timezone
from typing import Protocol

from absence_engine.domain import Notification, NotificationType
from absence_engine.events import (
    AbsenceQueryRaised,
    AbsenceRequestApproved,
    AbsenceRequestRejected,
    AbsenceRequestSubmitted,
    AbsenceRequestWithdrawn,
    ApprovalStepRecorded,
    DomainEvent,
    EventEmitter,
    SubstituteAssigned,
)
from absence_engine.store.base import NotificationSink

logger = logging.getLogger(__name__)


class RecipientResolver(Protocol):
    """Resolves who approves an employee's requests.

    Permission policy lives outside the engine; the resolver only answers
    who should be told.
    """

    def approvers_for(self, employee_id: str) -> list[str]:
        ...


class ManagerRecipientResolver:
    """Resolves approvers from a static employee -> managers mapping."""

    def __init__(self, managers: Mapping[str, Iterable[str]] | None = None):
        self._managers = {emp: list(ids) for emp, ids in (managers or {}).items()}

    def approvers_for(self, employee_id: str) -> list[str]:
        return list(self._managers.get(employee_id, []))


class NotificationDispatcher:
    """Emits lifecycle events to the notification sink and event handlers."""

    def __init__(
        self,
        sink: NotificationSink,
        resolver: RecipientResolver | None = None,
        emitter: EventEmitter | None = None,
    ):
        self.sink = sink
        self.resolver = resolver or ManagerRecipientResolver()
        self.emitter = emitter or EventEmitter()

    def emit(self, event: DomainEvent, notify: bool = True) -> None:
        """Dispatch an event. Never raises.

        Args:
            event: The committed lifecycle event
            notify: If False, only in-process handlers receive the event
        """
        if notify:
            self._enqueue_notifications(event)

        try:
            errors = self.emitter.emit(event)
        except Exception:
            logger.exception("Event emission failed for %s", event.event_type)
            return

        if errors:
            logger.warning(
                "%d handler(s) failed for %s on request %s",
                len(errors),
                event.event_type,
                event.request_id,
            )

    def build_notifications(self, event: DomainEvent) -> list[Notification]:
        """Notification records for an event, addressed per its kind."""
        now = datetime.now(timezone.utc)

        def to(recipients: Iterable[str], kind: NotificationType, message: str) -> list[Notification]:
            return [
                Notification(
                    recipient_id=recipient,
                    request_id=event.request_id,
                    notification_type=kind,
                    message=message,
                    created_at=now,
                )
                for recipient in dict.fromkeys(recipients)
            ]

        if isinstance(event, AbsenceRequestSubmitted):
            notifications = to(
                self.resolver.approvers_for(event.employee_id),
                NotificationType.APPROVAL_REQUEST,
                f"New {event.absence_type.value} request from {event.employee_id}: "
                f"{event.start_date.isoformat()} to {event.end_date.isoformat()} "
                f"({event.working_days} working day(s))",
            )
            if event.substitute_id:
                notifications += to(
                    [event.substitute_id],
                    NotificationType.SUBSTITUTE,
                    f"You were named substitute for {event.employee_id} from "
                    f"{event.start_date.isoformat()} to {event.end_date.isoformat()}",
                )
            return notifications

        if isinstance(event, ApprovalStepRecorded):
            return to(
                self.resolver.approvers_for(event.employee_id),
                NotificationType.APPROVAL_REQUEST,
                f"Approval level {event.level} signed by {event.approver_id}; "
                f"{event.remaining_levels} level(s) remaining",
            )

        if isinstance(event, AbsenceRequestApproved):
            return to(
                [event.employee_id],
                NotificationType.APPROVED,
                f"Your absence from {event.start_date.isoformat()} to "
                f"{event.end_date.isoformat()} was approved",
            )

        if isinstance(event, AbsenceRequestRejected):
            return to(
                [event.employee_id],
                NotificationType.REJECTED,
                f"Your absence from {event.start_date.isoformat()} to "
                f"{event.end_date.isoformat()} was rejected: {event.reason}",
            )

        if isinstance(event, AbsenceRequestWithdrawn):
            return to(
                self.resolver.approvers_for(event.employee_id),
                NotificationType.WITHDRAWN,
                f"{event.employee_id} withdrew the absence from "
                f"{event.start_date.isoformat()} to {event.end_date.isoformat()}",
            )

        if isinstance(event, AbsenceQueryRaised):
            return to(
                [event.employee_id],
                NotificationType.QUERY,
                f"Question from {event.asker_id}: {event.question}",
            )

        if isinstance(event, SubstituteAssigned):
            return to(
                [event.substitute_id],
                NotificationType.SUBSTITUTE,
                f"You were named substitute for {event.employee_id} from "
                f"{event.start_date.isoformat()} to {event.end_date.isoformat()}",
            )

        return []

    def _enqueue_notifications(self, event: DomainEvent) -> None:
        try:
            notifications = self.build_notifications(event)
        except Exception:
            logger.exception("Could not build notifications for %s", event.event_type)
            return

        for notification in notifications:
            try:
                self.sink.enqueue(notification)
            except Exception:
                logger.exception(
                    "Failed to enqueue %s notification for %s on request %s",
                    notification.notification_type.value,
                    notification.recipient_id,
                    notification.request_id,
                )
