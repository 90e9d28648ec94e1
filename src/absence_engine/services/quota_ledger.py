"""Quota ledger: entitlement, used and planned days per employee, type and year.

Every mutation is a single guarded update in the store, so the invariant

    0 <= used, 0 <= planned, used + planned <= entitlement

holds under concurrent submissions without reading first and writing later.
"""

from __future__ import annotations

import logging
from collections.abc import Generator
from contextlib import contextmanager
from dataclasses import dataclass
from decimal import Decimal

from absence_engine.config import AbsencePolicy
from absence_engine.domain import AbsenceQuota, AbsenceType
from absence_engine.errors import LedgerStateError, NotFoundError, QuotaExceededError
from absence_engine.store.base import AbsenceStore, StoreTransaction

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class QuotaBalance:
    """Read-only view of a quota for display."""

    employee_id: str
    absence_type: AbsenceType
    year: int
    entitlement: Decimal
    used: Decimal
    planned: Decimal

    @property
    def remaining(self) -> Decimal:
        return self.entitlement - self.used - self.planned


class QuotaLedger:
    """Single source of quota numbers.

    Methods accept an open ``StoreTransaction`` so that a reservation and the
    request insert (or a commit and the status change) land atomically. When
    no transaction is passed the ledger opens its own.
    """

    def __init__(self, store: AbsenceStore, policy: AbsencePolicy):
        self.store = store
        self.policy = policy

    def get_or_create(
        self,
        employee_id: str,
        absence_type: AbsenceType,
        year: int,
        tx: StoreTransaction | None = None,
    ) -> AbsenceQuota:
        """Return the quota, seeding it from the policy entitlement if missing."""
        entitlement = self.policy.entitlement_for(employee_id, absence_type, year)
        with self._transaction(tx) as t:
            return t.read_or_create_quota(employee_id, absence_type, year, entitlement)

    def reserve(
        self,
        quota: AbsenceQuota,
        days: Decimal,
        tx: StoreTransaction | None = None,
    ) -> AbsenceQuota:
        """Add ``days`` to planned.

        Raises:
            QuotaExceededError: If used + planned + days would exceed the
                entitlement. Nothing is changed.
        """
        self._check_days(days)
        with self._transaction(tx) as t:
            if not t.update_quota(quota.quota_id, planned_delta=days, used_delta=Decimal("0")):
                current = self._require(t, quota)
                raise QuotaExceededError(
                    quota.employee_id, quota.year, requested=days, available=current.remaining
                )
            updated = self._require(t, quota)

        logger.debug(
            "Reserved %s day(s) on quota %s (planned=%s)", days, quota.quota_id, updated.planned
        )
        return updated

    def commit(
        self,
        quota: AbsenceQuota,
        days: Decimal,
        tx: StoreTransaction | None = None,
    ) -> AbsenceQuota:
        """Move ``days`` from planned to used.

        Raises:
            LedgerStateError: If planned holds fewer than ``days``
        """
        self._check_days(days)
        with self._transaction(tx) as t:
            # used + planned is unchanged, so the entitlement guard does not apply.
            if not t.update_quota(
                quota.quota_id, planned_delta=-days, used_delta=days, enforce_entitlement=False
            ):
                current = self._require(t, quota)
                raise LedgerStateError(
                    f"Cannot commit {days} day(s) on quota {quota.quota_id}: "
                    f"only {current.planned} planned"
                )
            return self._require(t, quota)

    def release(
        self,
        quota: AbsenceQuota,
        days: Decimal,
        tx: StoreTransaction | None = None,
    ) -> AbsenceQuota:
        """Return ``days`` of planned to the pool.

        Raises:
            LedgerStateError: If planned holds fewer than ``days``
        """
        self._check_days(days)
        with self._transaction(tx) as t:
            if not t.update_quota(
                quota.quota_id,
                planned_delta=-days,
                used_delta=Decimal("0"),
                enforce_entitlement=False,
            ):
                current = self._require(t, quota)
                raise LedgerStateError(
                    f"Cannot release {days} day(s) on quota {quota.quota_id}: "
                    f"only {current.planned} planned"
                )
            return self._require(t, quota)

    def find(
        self,
        employee_id: str,
        absence_type: AbsenceType,
        year: int,
        tx: StoreTransaction | None = None,
    ) -> AbsenceQuota:
        """Return an existing quota.

        Raises:
            LedgerStateError: If no quota row exists
        """
        with self._transaction(tx) as t:
            quota = t.read_quota(employee_id, absence_type, year)
        if quota is None:
            raise LedgerStateError(
                f"No {absence_type.value} quota for {employee_id} in {year}"
            )
        return quota

    def balance(self, employee_id: str, absence_type: AbsenceType, year: int) -> QuotaBalance:
        """Entitlement, used, planned and remaining days.

        A missing quota is reported with the policy entitlement and nothing
        booked; reading a balance never creates a row.
        """
        with self.store.transaction() as t:
            quota = t.read_quota(employee_id, absence_type, year)

        if quota is None:
            return QuotaBalance(
                employee_id=employee_id,
                absence_type=absence_type,
                year=year,
                entitlement=self.policy.entitlement_for(employee_id, absence_type, year),
                used=Decimal("0"),
                planned=Decimal("0"),
            )
        return QuotaBalance(
            employee_id=quota.employee_id,
            absence_type=quota.absence_type,
            year=quota.year,
            entitlement=quota.entitlement,
            used=quota.used,
            planned=quota.planned,
        )

    @contextmanager
    def _transaction(
        self, tx: StoreTransaction | None
    ) -> Generator[StoreTransaction, None, None]:
        if tx is not None:
            yield tx
            return
        with self.store.transaction() as t:
            yield t

    @staticmethod
    def _require(tx: StoreTransaction, quota: AbsenceQuota) -> AbsenceQuota:
        current = tx.get_quota(quota.quota_id)
        if current is None:
            raise NotFoundError("Absence quota", quota.quota_id)
        return current

    @staticmethod
    def _check_days(days: Decimal) -> None:
        if days < 0:
            raise ValueError(f"Day count cannot be negative: {days}")
