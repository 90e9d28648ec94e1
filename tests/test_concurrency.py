"""Races between concurrent actors on the in-memory store."""

import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta
from decimal import Decimal

import pytest

from absence_engine.config import AbsencePolicy
from absence_engine.domain import AbsenceStatus
from absence_engine.errors import ConcurrencyError, QuotaExceededError

from conftest import ALICE, MANAGER, MONDAY, make_draft


def race_after_load(machine, parties=2):
    """Make every caller read the request before any of them writes."""
    barrier = threading.Barrier(parties, timeout=5)
    original = machine._load

    def load_then_wait(request_id):
        request = original(request_id)
        barrier.wait()
        return request

    machine._load = load_then_wait


def run_concurrently(*calls):
    outcomes = []
    with ThreadPoolExecutor(max_workers=len(calls)) as executor:
        futures = [executor.submit(call) for call in calls]
        for future in futures:
            try:
                outcomes.append(future.result())
            except Exception as e:
                outcomes.append(e)
    return outcomes


class TestDecisionRaces:
    """Two decisions on the same pending request."""

    def test_approve_vs_approve(self, service):
        """Exactly one approver wins; the loser gets ConcurrencyError."""
        request = service.submit(make_draft()).request
        race_after_load(service.machine)

        outcomes = run_concurrently(
            lambda: service.approve(request.request_id, MANAGER),
            lambda: service.approve(request.request_id, "mgr-2"),
        )

        errors = [o for o in outcomes if isinstance(o, Exception)]
        approved = [o for o in outcomes if not isinstance(o, Exception)]
        assert len(approved) == 1
        assert len(errors) == 1
        assert isinstance(errors[0], ConcurrencyError)

        quota = service.quota_balance(ALICE, 2025)
        assert quota.used == Decimal("5")
        assert quota.planned == Decimal("0")

    def test_approve_vs_withdraw(self, service):
        """Approval and withdrawal never both apply."""
        request = service.submit(make_draft()).request
        race_after_load(service.machine)

        outcomes = run_concurrently(
            lambda: service.approve(request.request_id, MANAGER),
            lambda: service.withdraw(request.request_id, ALICE),
        )

        assert sum(isinstance(o, ConcurrencyError) for o in outcomes) == 1
        final = service.get_request(request.request_id)
        quota = service.quota_balance(ALICE, 2025)
        if final.status == AbsenceStatus.APPROVED:
            assert (quota.used, quota.planned) == (Decimal("5"), Decimal("0"))
        else:
            assert final.status == AbsenceStatus.WITHDRAWN
            assert (quota.used, quota.planned) == (Decimal("0"), Decimal("0"))

    def test_approve_vs_reject(self, service):
        """The approval trail holds exactly one decision."""
        request = service.submit(make_draft()).request
        race_after_load(service.machine)

        run_concurrently(
            lambda: service.approve(request.request_id, MANAGER),
            lambda: service.reject(request.request_id, "mgr-2", "overlap with release"),
        )

        assert len(service.approval_history(request.request_id)) == 1


class TestSubmissionRaces:
    """Parallel submissions against one quota."""

    @pytest.mark.parametrize("workers", [2, 8])
    def test_quota_never_overdrawn(self, make_service, workers):
        """With 5 days left, only 5 one-day requests are accepted."""
        service = make_service(AbsencePolicy(default_entitlement=Decimal("5")))
        days = [MONDAY + timedelta(days=offset) for offset in range(14)]
        weekdays = [d for d in days if d.weekday() < 5]

        with ThreadPoolExecutor(max_workers=workers) as executor:
            outcomes = list(
                executor.map(
                    lambda day: _submit_or_error(service, day),
                    weekdays,
                )
            )

        accepted = [o for o in outcomes if not isinstance(o, Exception)]
        refused = [o for o in outcomes if isinstance(o, Exception)]
        assert len(accepted) == 5
        assert len(refused) == len(weekdays) - 5
        assert all(isinstance(e, QuotaExceededError) for e in refused)

        quota = service.quota_balance(ALICE, 2025)
        assert quota.planned == Decimal("5")
        assert quota.remaining == Decimal("0")


def _submit_or_error(service, day):
    try:
        return service.submit(make_draft(start=day, end=day))
    except Exception as e:
        return e
