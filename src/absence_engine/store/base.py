"""Storage port for the absence engine.

The engine keeps no state between calls. Every durable read and write goes
through a ``StoreTransaction`` obtained from ``AbsenceStore.transaction()``;
everything done inside one transaction is applied atomically or not at all.
"""

from __future__ import annotations

from collections.abc import Mapping
from contextlib import AbstractContextManager
from datetime import date
from decimal import Decimal
from typing import Any, Protocol
from uuid import UUID

from absence_engine.domain import (
    AbsenceQuota,
    AbsenceRequest,
    AbsenceStatus,
    AbsenceType,
    ApprovalStep,
    Notification,
)

# Fields a status transition may write alongside the new status.
TRANSITION_FIELDS = frozenset(
    {"decided_at", "decided_by", "rejection_reason", "substitute_id"}
)


class StoreTransaction(Protocol):
    """Operations available inside one atomic unit of work."""

    def read_request(self, request_id: UUID) -> AbsenceRequest | None:
        """Return the stored request or None."""
        ...

    def insert_request(self, request: AbsenceRequest) -> None:
        """Persist a new request.

        Raises:
            ConcurrencyError: If a request with the same id already exists
        """
        ...

    def conditional_update_request_status(
        self,
        request_id: UUID,
        expected_status: AbsenceStatus,
        new_status: AbsenceStatus,
        fields: Mapping[str, Any] | None = None,
    ) -> bool:
        """Set status (and ``fields``) only if the stored status is ``expected_status``.

        Returns False when no row matched.
        """
        ...

    def list_requests(
        self,
        employee_id: str,
        statuses: frozenset[AbsenceStatus] | None = None,
        start: date | None = None,
        end: date | None = None,
        exclude_request_id: UUID | None = None,
    ) -> list[AbsenceRequest]:
        """List an employee's requests, optionally overlapping ``start..end``."""
        ...

    def read_quota(
        self, employee_id: str, absence_type: AbsenceType, year: int
    ) -> AbsenceQuota | None:
        """Return the quota row or None."""
        ...

    def read_or_create_quota(
        self,
        employee_id: str,
        absence_type: AbsenceType,
        year: int,
        entitlement: Decimal,
    ) -> AbsenceQuota:
        """Return the quota row, creating it with ``entitlement`` if missing."""
        ...

    def update_quota(
        self,
        quota_id: UUID,
        planned_delta: Decimal,
        used_delta: Decimal,
        enforce_entitlement: bool = True,
    ) -> bool:
        """Apply deltas atomically.

        The update only applies if ``used`` and ``planned`` stay non-negative
        and, with ``enforce_entitlement``, ``used + planned <= entitlement``.
        Returns False when the guard rejected the update.

        Raises:
            NotFoundError: If the quota does not exist
        """
        ...

    def get_quota(self, quota_id: UUID) -> AbsenceQuota | None:
        ...

    def append_approval_step(self, step: ApprovalStep) -> None:
        """Append a step to a request's trail.

        Raises:
            ConcurrencyError: If the level is already taken
        """
        ...

    def list_approval_steps(self, request_id: UUID) -> list[ApprovalStep]:
        """Return a request's steps ordered by level."""
        ...


class AbsenceStore(Protocol):
    """Key-addressable persistent store with conditional-update semantics."""

    def transaction(self) -> AbstractContextManager[StoreTransaction]:
        """Open an atomic unit of work.

        Commits when the block exits normally, rolls back on any exception.
        """
        ...


class NotificationSink(Protocol):
    """Append-only notification sink. The engine never reads it back."""

    def enqueue(self, notification: Notification) -> None:
        ...
