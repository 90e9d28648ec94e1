"""Tests for the quota ledger."""

from decimal import Decimal

import pytest

from absence_engine.config import AbsencePolicy
from absence_engine.domain import AbsenceType
from absence_engine.errors import LedgerStateError, QuotaExceededError
from absence_engine.services import QuotaLedger

from conftest import ALICE, BOB


@pytest.fixture
def ledger(store) -> QuotaLedger:
    return QuotaLedger(
        store,
        AbsencePolicy(default_entitlement=Decimal("20"), entitlements={BOB: Decimal("5")}),
    )


class TestGetOrCreate:
    """Test lazy quota creation."""

    def test_creates_with_policy_entitlement(self, ledger):
        """A missing quota is seeded from the policy with nothing booked."""
        quota = ledger.get_or_create(ALICE, AbsenceType.VACATION, 2025)

        assert quota.entitlement == Decimal("20")
        assert quota.used == Decimal("0")
        assert quota.planned == Decimal("0")
        assert quota.remaining == Decimal("20")

    def test_per_employee_entitlement(self, ledger):
        """Per-employee overrides win over the default."""
        assert ledger.get_or_create(BOB, AbsenceType.VACATION, 2025).entitlement == Decimal("5")

    def test_returns_existing(self, ledger):
        """Repeated calls return the same quota row."""
        first = ledger.get_or_create(ALICE, AbsenceType.VACATION, 2025)
        second = ledger.get_or_create(ALICE, AbsenceType.VACATION, 2025)

        assert first.quota_id == second.quota_id

    def test_keyed_by_type_and_year(self, ledger):
        """Different years and types get different quotas."""
        a = ledger.get_or_create(ALICE, AbsenceType.VACATION, 2025)
        b = ledger.get_or_create(ALICE, AbsenceType.VACATION, 2026)
        c = ledger.get_or_create(ALICE, AbsenceType.SPECIAL_VACATION, 2025)

        assert len({a.quota_id, b.quota_id, c.quota_id}) == 3


class TestReserveCommitRelease:
    """Test the reservation lifecycle."""

    def test_reserve_increments_planned(self, ledger):
        """Reserve moves days into planned."""
        quota = ledger.get_or_create(ALICE, AbsenceType.VACATION, 2025)
        updated = ledger.reserve(quota, Decimal("5"))

        assert updated.planned == Decimal("5")
        assert updated.used == Decimal("0")
        assert updated.remaining == Decimal("15")

    def test_reserve_up_to_entitlement(self, ledger):
        """Reserving exactly the remaining days succeeds."""
        quota = ledger.get_or_create(ALICE, AbsenceType.VACATION, 2025)
        updated = ledger.reserve(quota, Decimal("20"))

        assert updated.remaining == Decimal("0")

    def test_reserve_over_entitlement_raises(self, ledger):
        """Overdraft raises and changes nothing."""
        quota = ledger.get_or_create(BOB, AbsenceType.VACATION, 2025)
        ledger.reserve(quota, Decimal("4"))

        with pytest.raises(QuotaExceededError) as exc_info:
            ledger.reserve(quota, Decimal("1.5"))

        assert exc_info.value.requested == Decimal("1.5")
        assert exc_info.value.available == Decimal("1")
        assert ledger.balance(BOB, AbsenceType.VACATION, 2025).planned == Decimal("4")

    def test_commit_moves_planned_to_used(self, ledger):
        """Commit converts a reservation into a deduction."""
        quota = ledger.get_or_create(ALICE, AbsenceType.VACATION, 2025)
        ledger.reserve(quota, Decimal("5"))
        updated = ledger.commit(quota, Decimal("5"))

        assert updated.planned == Decimal("0")
        assert updated.used == Decimal("5")
        assert updated.remaining == Decimal("15")

    def test_release_returns_days(self, ledger):
        """Release decrements planned."""
        quota = ledger.get_or_create(ALICE, AbsenceType.VACATION, 2025)
        ledger.reserve(quota, Decimal("5"))
        updated = ledger.release(quota, Decimal("2"))

        assert updated.planned == Decimal("3")
        assert updated.remaining == Decimal("17")

    def test_commit_without_reservation_raises(self, ledger):
        """Committing more than planned is a ledger error."""
        quota = ledger.get_or_create(ALICE, AbsenceType.VACATION, 2025)

        with pytest.raises(LedgerStateError):
            ledger.commit(quota, Decimal("1"))

    def test_release_without_reservation_raises(self, ledger):
        """Releasing more than planned is a ledger error."""
        quota = ledger.get_or_create(ALICE, AbsenceType.VACATION, 2025)
        ledger.reserve(quota, Decimal("1"))

        with pytest.raises(LedgerStateError):
            ledger.release(quota, Decimal("2"))

        assert ledger.balance(ALICE, AbsenceType.VACATION, 2025).planned == Decimal("1")

    def test_negative_days_rejected(self, ledger):
        """Negative day counts are programming errors."""
        quota = ledger.get_or_create(ALICE, AbsenceType.VACATION, 2025)

        with pytest.raises(ValueError):
            ledger.reserve(quota, Decimal("-1"))

    def test_find_missing_quota_raises(self, ledger):
        """find never creates a quota."""
        with pytest.raises(LedgerStateError):
            ledger.find(ALICE, AbsenceType.VACATION, 2030)


class TestBalance:
    """Test balance reporting."""

    def test_balance_without_quota_row(self, ledger, store):
        """Balance reports the entitlement without creating a row."""
        balance = ledger.balance(ALICE, AbsenceType.VACATION, 2025)

        assert balance.entitlement == Decimal("20")
        assert balance.remaining == Decimal("20")
        with store.transaction() as tx:
            assert tx.read_quota(ALICE, AbsenceType.VACATION, 2025) is None

    def test_balance_remaining(self, ledger):
        """remaining = entitlement - used - planned."""
        quota = ledger.get_or_create(ALICE, AbsenceType.VACATION, 2025)
        ledger.reserve(quota, Decimal("8"))
        ledger.commit(quota, Decimal("3"))

        balance = ledger.balance(ALICE, AbsenceType.VACATION, 2025)

        assert balance.used == Decimal("3")
        assert balance.planned == Decimal("5")
        assert balance.remaining == Decimal("12")


class TestTransactionParticipation:
    """Ledger calls inside an outer transaction roll back with it."""

    def test_reservation_rolled_back_with_outer_transaction(self, ledger, store):
        """A failure after reserving undoes the reservation."""
        with pytest.raises(RuntimeError):
            with store.transaction() as tx:
                quota = ledger.get_or_create(ALICE, AbsenceType.VACATION, 2025, tx=tx)
                ledger.reserve(quota, Decimal("5"), tx=tx)
                raise RuntimeError("insert failed")

        balance = ledger.balance(ALICE, AbsenceType.VACATION, 2025)
        assert balance.planned == Decimal("0")
