"""Tests for event emission and notification dispatch."""

import json
from decimal import Decimal
from uuid import uuid4

from absence_engine.domain import AbsenceType, NotificationType
from absence_engine.events import (
    AbsenceQueryRaised,
    AbsenceRequestApproved,
    AbsenceRequestRejected,
    AbsenceRequestSubmitted,
    ApprovalStepRecorded,
    EventCategory,
    EventEmitter,
    EventMetadata,
)
from absence_engine.services import ManagerRecipientResolver, NotificationDispatcher
from absence_engine.store import InMemoryNotificationSink

from conftest import ALICE, BOB, FRIDAY, MANAGER, MONDAY


def submitted_event(substitute_id=None):
    request_id = uuid4()
    return AbsenceRequestSubmitted(
        metadata=EventMetadata.create(correlation_id=request_id, actor_id=ALICE, actor_type="employee"),
        request_id=request_id,
        employee_id=ALICE,
        absence_type=AbsenceType.VACATION,
        start_date=MONDAY,
        end_date=FRIDAY,
        working_days=Decimal("5"),
        substitute_id=substitute_id,
    )


def rejected_event():
    request_id = uuid4()
    return AbsenceRequestRejected(
        metadata=EventMetadata.create(correlation_id=request_id, actor_id=MANAGER),
        request_id=request_id,
        employee_id=ALICE,
        approver_id=MANAGER,
        reason="coverage",
        start_date=MONDAY,
        end_date=FRIDAY,
    )


class FailingSink:
    """Sink whose backing queue is down."""

    def __init__(self):
        self.attempts = 0

    def enqueue(self, notification):
        self.attempts += 1
        raise ConnectionError("queue unavailable")


class TestEventTypes:
    """Test event metadata and serialization."""

    def test_event_type_and_category(self):
        """Event type is the class name; categories route by concern."""
        event = submitted_event()

        assert event.event_type == "AbsenceRequestSubmitted"
        assert event.category == EventCategory.LIFECYCLE

    def test_to_dict_serializes_values(self):
        """Dates, decimals, enums and UUIDs become JSON-safe values."""
        event = submitted_event()
        data = event.to_dict()

        assert data["event_type"] == "AbsenceRequestSubmitted"
        assert data["category"] == "lifecycle"
        assert data["request_id"] == str(event.request_id)
        assert data["start_date"] == "2025-03-03"
        assert data["working_days"] == "5"
        assert data["absence_type"] == "vacation"
        assert data["metadata"]["correlation_id"] == str(event.request_id)

    def test_to_json_round_trips_through_json(self):
        """to_json output parses back to the dict form."""
        event = rejected_event()

        assert json.loads(event.to_json()) == event.to_dict()

    def test_metadata_defaults(self):
        """Metadata fills in ids and timestamps."""
        metadata = EventMetadata.create()

        assert metadata.actor_type == "system"
        assert metadata.timestamp.tzinfo is not None
        assert metadata.event_id != metadata.correlation_id


class TestEventEmitter:
    """Test handler registration and isolation."""

    def test_type_registration(self):
        """Type handlers only see their event types."""
        emitter = EventEmitter()
        seen = []
        emitter.on(AbsenceRequestRejected, seen.append)

        emitter.emit(submitted_event())
        emitter.emit(rejected_event())

        assert [e.event_type for e in seen] == ["AbsenceRequestRejected"]

    def test_category_registration(self):
        """Category handlers see every event of the category."""
        emitter = EventEmitter()
        seen = []
        emitter.on_category(EventCategory.LIFECYCLE, seen.append)

        emitter.emit(submitted_event())
        emitter.emit(rejected_event())

        assert len(seen) == 2

    def test_failing_handler_isolated(self):
        """A failing handler does not stop the others."""
        emitter = EventEmitter()
        seen = []

        def broken(event):
            raise ValueError("boom")

        emitter.on_all(broken)
        emitter.on_all(seen.append)

        errors = emitter.emit(submitted_event())

        assert len(errors) == 1
        assert isinstance(errors[0], ValueError)
        assert len(seen) == 1

    def test_off_unregisters(self):
        """Unregistered handlers receive nothing."""
        emitter = EventEmitter()
        seen = []

        def handler(event):
            seen.append(event)

        emitter.on_all(handler)
        emitter.off(handler)

        emitter.emit(submitted_event())

        assert seen == []


class TestNotificationDispatcher:
    """Test notification routing."""

    def make_dispatcher(self, sink=None, emitter=None):
        return NotificationDispatcher(
            sink or InMemoryNotificationSink(),
            resolver=ManagerRecipientResolver({ALICE: [MANAGER, MANAGER, "hr-1"]}),
            emitter=emitter,
        )

    def test_submitted_goes_to_approvers(self):
        """Approvers are deduplicated."""
        dispatcher = self.make_dispatcher()

        notifications = dispatcher.build_notifications(submitted_event())

        assert [n.recipient_id for n in notifications] == [MANAGER, "hr-1"]
        assert {n.notification_type for n in notifications} == {NotificationType.APPROVAL_REQUEST}

    def test_submitted_with_substitute(self):
        """The named substitute is told as well."""
        dispatcher = self.make_dispatcher()

        notifications = dispatcher.build_notifications(submitted_event(substitute_id=BOB))

        [substitute] = [n for n in notifications if n.recipient_id == BOB]
        assert substitute.notification_type == NotificationType.SUBSTITUTE

    def test_rejected_goes_to_employee(self):
        """Rejections carry the reason."""
        dispatcher = self.make_dispatcher()

        [notification] = dispatcher.build_notifications(rejected_event())

        assert notification.recipient_id == ALICE
        assert notification.message.endswith(": coverage")

    def test_approved_and_query_go_to_employee(self):
        """Approval and query notices reach the requester."""
        dispatcher = self.make_dispatcher()
        request_id = uuid4()
        approved = AbsenceRequestApproved(
            metadata=EventMetadata.create(correlation_id=request_id),
            request_id=request_id,
            employee_id=ALICE,
            approver_id=MANAGER,
            absence_type=AbsenceType.VACATION,
            start_date=MONDAY,
            end_date=FRIDAY,
            working_days=Decimal("5"),
        )
        query = AbsenceQueryRaised(
            metadata=EventMetadata.create(correlation_id=request_id),
            request_id=request_id,
            employee_id=ALICE,
            asker_id=MANAGER,
            question="Is Friday needed?",
        )

        [approved_notice] = dispatcher.build_notifications(approved)
        [query_notice] = dispatcher.build_notifications(query)

        assert approved_notice.notification_type == NotificationType.APPROVED
        assert query_notice.recipient_id == ALICE
        assert query_notice.message == f"Question from {MANAGER}: Is Friday needed?"

    def test_step_recorded_goes_to_approvers(self):
        """Intermediate levels ping the approvers again."""
        dispatcher = self.make_dispatcher()
        request_id = uuid4()
        event = ApprovalStepRecorded(
            metadata=EventMetadata.create(correlation_id=request_id),
            request_id=request_id,
            employee_id=ALICE,
            level=1,
            approver_id=MANAGER,
            remaining_levels=1,
        )

        notifications = dispatcher.build_notifications(event)

        assert event.category == EventCategory.APPROVAL
        assert [n.recipient_id for n in notifications] == [MANAGER, "hr-1"]

    def test_unknown_employee_has_no_approvers(self):
        """No resolver entry means no approval notices."""
        dispatcher = NotificationDispatcher(InMemoryNotificationSink())

        assert dispatcher.build_notifications(submitted_event()) == []

    def test_sink_failure_never_raises(self):
        """Every enqueue is attempted and the error is swallowed."""
        sink = FailingSink()
        emitter = EventEmitter()
        seen = []
        emitter.on_all(seen.append)
        dispatcher = self.make_dispatcher(sink=sink, emitter=emitter)

        dispatcher.emit(submitted_event())

        assert sink.attempts == 2
        assert len(seen) == 1

    def test_notify_false_skips_sink(self):
        """Handlers run even when notifications are suppressed."""
        sink = InMemoryNotificationSink()
        emitter = EventEmitter()
        seen = []
        emitter.on_all(seen.append)
        dispatcher = self.make_dispatcher(sink=sink, emitter=emitter)

        dispatcher.emit(submitted_event(), notify=False)

        assert sink.notifications == []
        assert len(seen) == 1
