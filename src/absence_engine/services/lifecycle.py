"""Request lifecycle facade.

This is the entry point for callers (the HTTP API, the CLI, embedding
applications). It wires the calculator, ledger, conflict detector, state
machine, dispatcher and bulk coordinator over one store and one policy.

Usage:
    service = RequestLifecycleService(
        store=SqlAbsenceStore(session_factory),
        sink=SqlNotificationSink(session_factory),
        policy=AbsencePolicy(holidays=frozenset(company_holidays)),
        resolver=ManagerRecipientResolver({"emp-1": ["mgr-1"]}),
    )
    result = service.submit(AbsenceDraft(...))
    service.approve(result.request.request_id, approver_id="mgr-1")
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from absence_engine.calculators import WorkingDaysCalculator
from absence_engine.config import AbsencePolicy
from absence_engine.domain import (
    AbsenceDraft,
    AbsenceRequest,
    AbsenceStatus,
    AbsenceType,
    ApprovalStep,
)
from absence_engine.errors import NotFoundError
from absence_engine.events import EventEmitter
from absence_engine.services.bulk import (
    DEFAULT_MAX_WORKERS,
    BulkAction,
    BulkActionCoordinator,
    BulkResult,
)
from absence_engine.services.conflict_detector import ConflictDetector
from absence_engine.services.notifications import NotificationDispatcher, RecipientResolver
from absence_engine.services.quota_ledger import QuotaBalance, QuotaLedger
from absence_engine.services.state_machine import (
    ApprovalStateMachine,
    SubmitResult,
    SubstituteAssignment,
    utcnow,
)
from absence_engine.store.base import AbsenceStore, NotificationSink


class RequestLifecycleService:
    """Synchronous facade over the absence engine.

    Permission decisions (who may approve whom) are made by the caller
    before calling in; the service only enforces that withdrawals come from
    the request owner.
    """

    def __init__(
        self,
        store: AbsenceStore,
        sink: NotificationSink,
        policy: AbsencePolicy | None = None,
        resolver: RecipientResolver | None = None,
        emitter: EventEmitter | None = None,
        clock: Callable[[], datetime] = utcnow,
        max_workers: int = DEFAULT_MAX_WORKERS,
    ):
        self.store = store
        self.policy = policy or AbsencePolicy()

        self.calculator = WorkingDaysCalculator(self.policy.holidays)
        self.ledger = QuotaLedger(store, self.policy)
        self.conflicts = ConflictDetector(
            store, block_on_substitute_conflict=self.policy.block_on_substitute_conflict
        )
        self.dispatcher = NotificationDispatcher(sink, resolver=resolver, emitter=emitter)
        self.machine = ApprovalStateMachine(
            store,
            self.dispatcher,
            policy=self.policy,
            ledger=self.ledger,
            conflicts=self.conflicts,
            calculator=self.calculator,
            clock=clock,
        )
        self.bulk = BulkActionCoordinator(self.machine, max_workers=max_workers)

    @property
    def emitter(self) -> EventEmitter:
        """Register in-process handlers for lifecycle events here."""
        return self.dispatcher.emitter

    # Transitions

    def submit(self, draft: AbsenceDraft) -> SubmitResult:
        return self.machine.submit(draft)

    def approve(
        self, request_id: UUID, approver_id: str, comment: str | None = None
    ) -> AbsenceRequest:
        return self.machine.approve(request_id, approver_id, comment=comment)

    def reject(self, request_id: UUID, approver_id: str, reason: str) -> AbsenceRequest:
        return self.machine.reject(request_id, approver_id, reason)

    def withdraw(self, request_id: UUID, requester_id: str) -> AbsenceRequest:
        return self.machine.withdraw(request_id, requester_id)

    def bulk_apply(
        self,
        action: BulkAction,
        request_ids: Iterable[UUID],
        actor_id: str,
        reason: str | None = None,
    ) -> BulkResult:
        return self.bulk.apply_bulk(action, request_ids, actor_id, reason=reason)

    def raise_query(self, request_id: UUID, asker_id: str, question: str) -> AbsenceRequest:
        return self.machine.raise_query(request_id, asker_id, question)

    def assign_substitute(
        self, request_id: UUID, substitute_id: str, actor_id: str | None = None
    ) -> SubstituteAssignment:
        return self.machine.assign_substitute(request_id, substitute_id, actor_id)

    # Queries

    def get_request(self, request_id: UUID) -> AbsenceRequest:
        """Load a request.

        Raises:
            NotFoundError: Unknown request id
        """
        with self.store.transaction() as tx:
            request = tx.read_request(request_id)
        if request is None:
            raise NotFoundError("Absence request", request_id)
        return request

    def list_requests(
        self,
        employee_id: str,
        statuses: Iterable[AbsenceStatus] | None = None,
        start: date | None = None,
        end: date | None = None,
    ) -> list[AbsenceRequest]:
        """An employee's requests, optionally filtered by status and window."""
        wanted = frozenset(statuses) if statuses is not None else None
        with self.store.transaction() as tx:
            return tx.list_requests(employee_id, statuses=wanted, start=start, end=end)

    def approval_history(self, request_id: UUID) -> list[ApprovalStep]:
        return self.machine.approval_history(request_id)

    def quota_balance(
        self,
        employee_id: str,
        year: int,
        absence_type: AbsenceType = AbsenceType.VACATION,
    ) -> QuotaBalance:
        return self.ledger.balance(employee_id, absence_type, year)

    def working_days(self, start: date, end: date, half_day: bool = False) -> Decimal:
        """Preview the day count a request for ``start..end`` would reserve."""
        return self.calculator.count(start, end, half_day=half_day)

    def available_substitutes(
        self, candidates: Iterable[str], start: date, end: date
    ) -> list[str]:
        return self.conflicts.available_substitutes(candidates, start, end)
