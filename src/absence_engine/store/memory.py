"""In-process store for embedding, local development and testing.

Transactions are serialized by a re-entrant lock and rolled back from a
snapshot taken when the outermost transaction opens. Domain records are
frozen dataclasses, so snapshots only copy the containers.
"""

from __future__ import annotations

import threading
from collections.abc import Generator, Mapping
from contextlib import contextmanager
from datetime import date
from decimal import Decimal
from typing import Any
from uuid import UUID, uuid4

from absence_engine.domain import (
    AbsenceQuota,
    AbsenceRequest,
    AbsenceStatus,
    AbsenceType,
    ApprovalStep,
    Notification,
)
from absence_engine.errors import ConcurrencyError, NotFoundError
from absence_engine.store.base import TRANSITION_FIELDS

QuotaKey = tuple[str, AbsenceType, int]


class InMemoryAbsenceStore:
    """Thread-safe in-memory implementation of ``AbsenceStore``."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._depth = 0
        self._requests: dict[UUID, AbsenceRequest] = {}
        self._quotas: dict[UUID, AbsenceQuota] = {}
        self._quota_index: dict[QuotaKey, UUID] = {}
        self._steps: dict[UUID, list[ApprovalStep]] = {}

    @contextmanager
    def transaction(self) -> Generator[_MemoryTransaction, None, None]:
        with self._lock:
            if self._depth:
                # Joined transaction; the outermost one owns commit/rollback.
                self._depth += 1
                try:
                    yield _MemoryTransaction(self)
                finally:
                    self._depth -= 1
                return

            snapshot = self._snapshot()
            self._depth = 1
            try:
                yield _MemoryTransaction(self)
            except BaseException:
                self._restore(snapshot)
                raise
            finally:
                self._depth = 0

    def _snapshot(self) -> tuple[Any, ...]:
        return (
            dict(self._requests),
            dict(self._quotas),
            dict(self._quota_index),
            {key: list(steps) for key, steps in self._steps.items()},
        )

    def _restore(self, snapshot: tuple[Any, ...]) -> None:
        self._requests, self._quotas, self._quota_index, self._steps = snapshot


class _MemoryTransaction:
    """Unit of work over an ``InMemoryAbsenceStore``; valid only inside ``transaction()``."""

    def __init__(self, store: InMemoryAbsenceStore):
        self._store = store

    def read_request(self, request_id: UUID) -> AbsenceRequest | None:
        return self._store._requests.get(request_id)

    def insert_request(self, request: AbsenceRequest) -> None:
        if request.request_id in self._store._requests:
            raise ConcurrencyError(f"Absence request {request.request_id} already exists")
        self._store._requests[request.request_id] = request

    def conditional_update_request_status(
        self,
        request_id: UUID,
        expected_status: AbsenceStatus,
        new_status: AbsenceStatus,
        fields: Mapping[str, Any] | None = None,
    ) -> bool:
        changes = dict(fields or {})
        unknown = set(changes) - TRANSITION_FIELDS
        if unknown:
            raise ValueError(f"Cannot update fields on transition: {sorted(unknown)}")

        current = self._store._requests.get(request_id)
        if current is None or current.status != expected_status:
            return False
        self._store._requests[request_id] = current.with_changes(status=new_status, **changes)
        return True

    def list_requests(
        self,
        employee_id: str,
        statuses: frozenset[AbsenceStatus] | None = None,
        start: date | None = None,
        end: date | None = None,
        exclude_request_id: UUID | None = None,
    ) -> list[AbsenceRequest]:
        matches = []
        for request in self._store._requests.values():
            if request.employee_id != employee_id:
                continue
            if statuses is not None and request.status not in statuses:
                continue
            if start is not None and request.end_date < start:
                continue
            if end is not None and request.start_date > end:
                continue
            if exclude_request_id is not None and request.request_id == exclude_request_id:
                continue
            matches.append(request)
        return sorted(matches, key=lambda r: (r.start_date, str(r.request_id)))

    def read_quota(
        self, employee_id: str, absence_type: AbsenceType, year: int
    ) -> AbsenceQuota | None:
        quota_id = self._store._quota_index.get((employee_id, absence_type, year))
        if quota_id is None:
            return None
        return self._store._quotas[quota_id]

    def read_or_create_quota(
        self,
        employee_id: str,
        absence_type: AbsenceType,
        year: int,
        entitlement: Decimal,
    ) -> AbsenceQuota:
        existing = self.read_quota(employee_id, absence_type, year)
        if existing is not None:
            return existing

        quota = AbsenceQuota(
            quota_id=uuid4(),
            employee_id=employee_id,
            absence_type=absence_type,
            year=year,
            entitlement=entitlement,
        )
        self._store._quotas[quota.quota_id] = quota
        self._store._quota_index[(employee_id, absence_type, year)] = quota.quota_id
        return quota

    def update_quota(
        self,
        quota_id: UUID,
        planned_delta: Decimal,
        used_delta: Decimal,
        enforce_entitlement: bool = True,
    ) -> bool:
        quota = self._store._quotas.get(quota_id)
        if quota is None:
            raise NotFoundError("Absence quota", quota_id)

        planned = quota.planned + planned_delta
        used = quota.used + used_delta
        if planned < 0 or used < 0:
            return False
        if enforce_entitlement and used + planned > quota.entitlement:
            return False

        self._store._quotas[quota_id] = AbsenceQuota(
            quota_id=quota.quota_id,
            employee_id=quota.employee_id,
            absence_type=quota.absence_type,
            year=quota.year,
            entitlement=quota.entitlement,
            used=used,
            planned=planned,
        )
        return True

    def get_quota(self, quota_id: UUID) -> AbsenceQuota | None:
        return self._store._quotas.get(quota_id)

    def append_approval_step(self, step: ApprovalStep) -> None:
        steps = self._store._steps.setdefault(step.request_id, [])
        if any(existing.level == step.level for existing in steps):
            raise ConcurrencyError(
                f"Approval level {step.level} already recorded for request {step.request_id}"
            )
        steps.append(step)

    def list_approval_steps(self, request_id: UUID) -> list[ApprovalStep]:
        return sorted(self._store._steps.get(request_id, []), key=lambda s: s.level)


class InMemoryNotificationSink:
    """Collects notifications in a list."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.notifications: list[Notification] = []

    def enqueue(self, notification: Notification) -> None:
        with self._lock:
            self.notifications.append(notification)

    def for_recipient(self, recipient_id: str) -> list[Notification]:
        with self._lock:
            return [n for n in self.notifications if n.recipient_id == recipient_id]
