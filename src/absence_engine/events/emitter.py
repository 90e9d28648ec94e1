"""In-process publication of absence events.

Handlers subscribe by event class, by category, or to everything. A failing
handler is logged and skipped; the remaining handlers still run, and the
failures are handed back to the caller of ``emit``.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Protocol, TypeVar, runtime_checkable

from absence_engine.events.types import DomainEvent, EventCategory

logger = logging.getLogger(__name__)

E = TypeVar("E", bound=DomainEvent)


@runtime_checkable
class EventHandler(Protocol):
    """Callable receiving a committed event."""

    def __call__(self, event: DomainEvent) -> None: ...


@dataclass(frozen=True)
class HandlerRegistration:
    """One subscription. Empty filters match every event."""

    handler: EventHandler
    event_types: frozenset[str] = frozenset()
    categories: frozenset[EventCategory] = frozenset()

    def matches(self, event: DomainEvent) -> bool:
        if self.event_types and event.event_type not in self.event_types:
            return False
        if self.categories and event.category not in self.categories:
            return False
        return True


class EventEmitter:
    """Thread-safe registry of handlers.

    Bulk workers emit from pool threads, so subscriptions are copied under a
    lock before delivery.

    Example:
        emitter = EventEmitter()
        emitter.on(AbsenceRequestApproved, sync_team_calendar)
        emitter.on_category(EventCategory.LIFECYCLE, write_audit_entry)
        failures = emitter.emit(event)
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._registrations: list[HandlerRegistration] = []

    def on(self, event_type: type[E] | list[type[E]], handler: EventHandler) -> None:
        """Subscribe to one event class or a list of them."""
        classes = event_type if isinstance(event_type, list) else [event_type]
        self._add(
            HandlerRegistration(handler, event_types=frozenset(c.__name__ for c in classes))
        )

    def on_category(
        self, category: EventCategory | list[EventCategory], handler: EventHandler
    ) -> None:
        """Subscribe to every event of the given categories."""
        wanted = category if isinstance(category, list) else [category]
        self._add(HandlerRegistration(handler, categories=frozenset(wanted)))

    def on_all(self, handler: EventHandler) -> None:
        self._add(HandlerRegistration(handler))

    def off(self, handler: EventHandler) -> None:
        """Drop every subscription of ``handler``."""
        with self._lock:
            self._registrations = [r for r in self._registrations if r.handler is not handler]

    def emit(self, event: DomainEvent) -> list[Exception]:
        """Deliver ``event`` to matching handlers; return the exceptions they raised."""
        with self._lock:
            registrations = tuple(self._registrations)

        failures: list[Exception] = []
        for registration in registrations:
            if not registration.matches(event):
                continue
            try:
                registration.handler(event)
            except Exception as e:
                logger.exception(
                    "Event handler %r raised on %s for request %s",
                    registration.handler,
                    event.event_type,
                    event.request_id,
                )
                failures.append(e)
        return failures

    def _add(self, registration: HandlerRegistration) -> None:
        with self._lock:
            self._registrations.append(registration)
