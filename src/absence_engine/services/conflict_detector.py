"""Overlap and substitute availability checks."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import date
from uuid import UUID

from absence_engine.domain import AbsenceRequest, AbsenceStatus
from absence_engine.errors import InvalidRangeError, OverlapError, SubstituteUnavailableError
from absence_engine.store.base import AbsenceStore, StoreTransaction

logger = logging.getLogger(__name__)


class ConflictDetector:
    """Detects date-range conflicts for an employee and their substitute.

    Pending and approved requests block the employee's own range. Only
    approved absences make a substitute unavailable; a pending request of the
    substitute may still be rejected.
    """

    BLOCKING_STATUSES = frozenset({AbsenceStatus.PENDING, AbsenceStatus.APPROVED})
    SUBSTITUTE_BLOCKING_STATUSES = frozenset({AbsenceStatus.APPROVED})

    def __init__(self, store: AbsenceStore, block_on_substitute_conflict: bool = False):
        self.store = store
        self.block_on_substitute_conflict = block_on_substitute_conflict

    def check(
        self,
        employee_id: str,
        start: date,
        end: date,
        exclude_request_id: UUID | None = None,
        substitute_id: str | None = None,
        tx: StoreTransaction | None = None,
    ) -> list[str]:
        """Check an employee's range and return substitute warnings.

        Raises:
            InvalidRangeError: If end is before start
            OverlapError: If a pending or approved request of the employee
                intersects ``start..end``
            SubstituteUnavailableError: If the substitute is absent and the
                detector blocks on substitute conflicts
        """
        if end < start:
            raise InvalidRangeError(start, end)

        if tx is None:
            with self.store.transaction() as t:
                return self._check(t, employee_id, start, end, exclude_request_id, substitute_id)
        return self._check(tx, employee_id, start, end, exclude_request_id, substitute_id)

    def substitute_warnings(
        self,
        substitute_id: str,
        start: date,
        end: date,
        tx: StoreTransaction,
    ) -> list[str]:
        """Warnings for a substitute with approved absences in ``start..end``.

        Raises:
            SubstituteUnavailableError: If the detector blocks on substitute
                conflicts
        """
        conflicts = tx.list_requests(
            substitute_id,
            statuses=self.SUBSTITUTE_BLOCKING_STATUSES,
            start=start,
            end=end,
        )
        if not conflicts:
            return []

        if self.block_on_substitute_conflict:
            raise SubstituteUnavailableError(substitute_id, [r.request_id for r in conflicts])

        return [
            f"Substitute {substitute_id} is absent from "
            f"{c.start_date.isoformat()} to {c.end_date.isoformat()}"
            for c in conflicts
        ]

    def available_substitutes(
        self,
        candidates: Iterable[str],
        start: date,
        end: date,
    ) -> list[str]:
        """Candidates without an approved absence in ``start..end``, in input order."""
        if end < start:
            raise InvalidRangeError(start, end)

        available = []
        with self.store.transaction() as t:
            for candidate in dict.fromkeys(candidates):
                if not t.list_requests(
                    candidate,
                    statuses=self.SUBSTITUTE_BLOCKING_STATUSES,
                    start=start,
                    end=end,
                ):
                    available.append(candidate)
        return available

    def _check(
        self,
        tx: StoreTransaction,
        employee_id: str,
        start: date,
        end: date,
        exclude_request_id: UUID | None,
        substitute_id: str | None,
    ) -> list[str]:
        overlapping: list[AbsenceRequest] = tx.list_requests(
            employee_id,
            statuses=self.BLOCKING_STATUSES,
            start=start,
            end=end,
            exclude_request_id=exclude_request_id,
        )
        if overlapping:
            logger.info(
                "Overlap for %s on %s..%s with %d request(s)",
                employee_id,
                start,
                end,
                len(overlapping),
            )
            raise OverlapError(employee_id, [r.request_id for r in overlapping])

        if substitute_id is None:
            return []
        return self.substitute_warnings(substitute_id, start, end, tx)
