"""Tests for bulk approve/reject/withdraw."""

from datetime import timedelta
from decimal import Decimal
from uuid import uuid4

import pytest

from absence_engine.domain import AbsenceStatus
from absence_engine.errors import ValidationError
from absence_engine.services import BulkAction, BulkActionCoordinator

from conftest import ALICE, BOB, MANAGER, MONDAY, make_draft


@pytest.fixture
def five_pending(service):
    """Five one-day pending requests for Alice, Mon-Fri."""
    return [
        service.submit(make_draft(start=day, end=day)).request.request_id
        for day in (MONDAY + timedelta(days=i) for i in range(5))
    ]


class TestBulkApprove:
    """Test bulk approval."""

    def test_partial_failure(self, service, five_pending):
        """An already rejected item fails alone; the rest are approved."""
        service.reject(five_pending[2], MANAGER, "release day")

        result = service.bulk_apply(BulkAction.APPROVE, five_pending, MANAGER)

        assert result.total == 5
        assert len(result.succeeded) == 4
        assert not result.all_succeeded
        [failure] = result.failed
        assert failure.request_id == five_pending[2]
        assert failure.code == "INVALID_TRANSITION"

        quota = service.quota_balance(ALICE, 2025)
        assert quota.used == Decimal("4")
        assert quota.planned == Decimal("0")

    def test_results_in_input_order(self, service, five_pending):
        """Succeeded items follow the order of the input ids."""
        ids = list(reversed(five_pending))

        result = service.bulk_apply(BulkAction.APPROVE, ids, MANAGER)

        assert [r.request_id for r in result.succeeded] == ids
        assert all(r.status == AbsenceStatus.APPROVED for r in result.succeeded)

    def test_duplicates_processed_once(self, service, five_pending):
        """Repeated ids do not double-commit."""
        ids = five_pending[:2] + five_pending[:2]

        result = service.bulk_apply(BulkAction.APPROVE, ids, MANAGER)

        assert result.total == 2
        assert service.quota_balance(ALICE, 2025).used == Decimal("2")

    def test_unknown_ids_fail_individually(self, service, five_pending):
        """Unknown ids are reported as NOT_FOUND."""
        missing = uuid4()

        result = service.bulk_apply(BulkAction.APPROVE, [five_pending[0], missing], MANAGER)

        assert len(result.succeeded) == 1
        assert result.failed[0].request_id == missing
        assert result.failed[0].code == "NOT_FOUND"

    def test_empty_batch(self, service):
        """No ids, no work."""
        result = service.bulk_apply(BulkAction.APPROVE, [], MANAGER)

        assert result.total == 0
        assert result.all_succeeded


class TestBulkRejectAndWithdraw:
    """Test bulk reject and withdraw."""

    def test_reject_requires_reason(self, service, five_pending):
        """A missing reason fails the whole batch before anything runs."""
        with pytest.raises(ValidationError):
            service.bulk_apply(BulkAction.REJECT, five_pending, MANAGER)

        assert len(service.list_requests(ALICE, statuses=[AbsenceStatus.PENDING])) == 5

    def test_reject_releases_all(self, service, five_pending):
        """Bulk rejection releases every reservation."""
        result = service.bulk_apply(BulkAction.REJECT, five_pending, MANAGER, reason="freeze")

        assert result.all_succeeded
        assert service.quota_balance(ALICE, 2025).planned == Decimal("0")

    def test_withdraw_checks_ownership(self, service, five_pending):
        """Bulk withdraw by another employee fails every item."""
        result = service.bulk_apply(BulkAction.WITHDRAW, five_pending, BOB)

        assert len(result.failed) == 5
        assert {f.code for f in result.failed} == {"NOT_AUTHORIZED"}

    def test_action_accepts_string(self, service, five_pending):
        """The action may be given by value."""
        result = service.bulk_apply("withdraw", five_pending[:1], ALICE)

        assert result.action == BulkAction.WITHDRAW
        assert result.all_succeeded


class TestCoordinator:
    """Coordinator configuration and failure isolation."""

    def test_max_workers_validated(self, service):
        """At least one worker is required."""
        with pytest.raises(ValueError):
            BulkActionCoordinator(service.machine, max_workers=0)

    def test_unexpected_error_is_isolated(self, service, five_pending, monkeypatch):
        """A non-engine error on one item becomes an INTERNAL_ERROR failure."""
        original = service.machine.approve
        broken = five_pending[1]

        def flaky_approve(request_id, approver_id, comment=None):
            if request_id == broken:
                raise RuntimeError("connection reset")
            return original(request_id, approver_id, comment=comment)

        monkeypatch.setattr(service.machine, "approve", flaky_approve)

        result = service.bulk_apply(BulkAction.APPROVE, five_pending, MANAGER)

        assert len(result.succeeded) == 4
        assert result.failed[0].code == "INTERNAL_ERROR"
        assert result.failed[0].message == "connection reset"
