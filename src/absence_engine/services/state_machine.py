"""Absence request state machine with guarded transitions.

Every transition follows the same shape:

1. Read the request. If it already holds the target status, return it
   (replay). If it holds another terminal status, raise
   ``InvalidTransitionError``.
2. In one store transaction, write the new status with a conditional update
   (``WHERE status = 'pending'``) and move the quota alongside it. Zero rows
   matched means another actor won: ``ConcurrencyError``, nothing applied.
3. After commit, dispatch the lifecycle event.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from uuid import UUID, uuid4

from absence_engine.calculators import WorkingDaysCalculator
from absence_engine.config import AbsencePolicy
from absence_engine.domain import (
    AbsenceDraft,
    AbsenceRequest,
    AbsenceStatus,
    ApprovalDecision,
    ApprovalStep,
)
from absence_engine.errors import (
    AuthorizationError,
    ConcurrencyError,
    InvalidRangeError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from absence_engine.events import (
    AbsenceQueryRaised,
    AbsenceRequestApproved,
    AbsenceRequestRejected,
    AbsenceRequestSubmitted,
    AbsenceRequestWithdrawn,
    ApprovalStepRecorded,
    EventMetadata,
    SubstituteAssigned,
)
from absence_engine.services.conflict_detector import ConflictDetector
from absence_engine.services.notifications import NotificationDispatcher
from absence_engine.services.quota_ledger import QuotaLedger
from absence_engine.store.base import AbsenceStore, StoreTransaction

logger = logging.getLogger(__name__)

SOURCE_SERVICE = "absence_engine.state_machine"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class SubmitResult:
    """Result of a submission."""

    request: AbsenceRequest
    warnings: list[str] = field(default_factory=list)
    replayed: bool = False  # Existing request returned for a repeated request_id

    @property
    def working_days(self) -> Decimal:
        return self.request.working_days


@dataclass(frozen=True)
class SubstituteAssignment:
    """Result of naming a substitute on a pending request."""

    request: AbsenceRequest
    warnings: list[str] = field(default_factory=list)


class ApprovalStateMachine:
    """State machine for absence request status transitions.

    Allowed transitions:
    - pending → approved
    - pending → rejected
    - pending → withdrawn

    All three targets are terminal.
    """

    # Define valid transitions: {from_status: [allowed_to_statuses]}
    VALID_TRANSITIONS: dict[AbsenceStatus, list[AbsenceStatus]] = {
        AbsenceStatus.PENDING: [
            AbsenceStatus.APPROVED,
            AbsenceStatus.REJECTED,
            AbsenceStatus.WITHDRAWN,
        ],
        AbsenceStatus.APPROVED: [],
        AbsenceStatus.REJECTED: [],
        AbsenceStatus.WITHDRAWN: [],
    }

    TERMINAL_STATUSES = frozenset(
        {AbsenceStatus.APPROVED, AbsenceStatus.REJECTED, AbsenceStatus.WITHDRAWN}
    )

    def __init__(
        self,
        store: AbsenceStore,
        dispatcher: NotificationDispatcher,
        policy: AbsencePolicy | None = None,
        ledger: QuotaLedger | None = None,
        conflicts: ConflictDetector | None = None,
        calculator: WorkingDaysCalculator | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.dispatcher = dispatcher
        self.policy = policy or AbsencePolicy()
        self.ledger = ledger or QuotaLedger(store, self.policy)
        self.conflicts = conflicts or ConflictDetector(
            store, block_on_substitute_conflict=self.policy.block_on_substitute_conflict
        )
        self.calculator = calculator or WorkingDaysCalculator(self.policy.holidays)
        self.clock = clock

    @classmethod
    def can_transition(cls, from_status: AbsenceStatus, to_status: AbsenceStatus) -> bool:
        """Check if a transition is valid."""
        return to_status in cls.VALID_TRANSITIONS.get(from_status, [])

    @classmethod
    def validate_transition(cls, from_status: AbsenceStatus, to_status: AbsenceStatus) -> None:
        """Validate a transition, raising InvalidTransitionError if invalid."""
        if not cls.can_transition(from_status, to_status):
            raise InvalidTransitionError(
                from_status.value,
                to_status.value,
                f"request is already {from_status.value}",
            )

    @classmethod
    def is_terminal(cls, status: AbsenceStatus) -> bool:
        return status in cls.TERMINAL_STATUSES

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    def submit(self, draft: AbsenceDraft) -> SubmitResult:
        """Create a pending request.

        Validates the draft, rejects overlaps, reserves quota for
        quota-bearing types and inserts the request in one transaction, then
        dispatches "submitted".

        Raises:
            ValidationError: Malformed draft or a policy rule is broken
            OverlapError: Range intersects a pending or approved request
            QuotaExceededError: Not enough quota left
        """
        start, end = self._validate_draft(draft)

        if draft.request_id is not None:
            existing = self._read(draft.request_id)
            if existing is not None:
                return self._replay_submit(draft, existing)

        # Clock-dependent, so a retry of a stored request skips it.
        self._check_notice(start)

        working_days = self.calculator.count(start, end, half_day=draft.half_day)
        if working_days == 0:
            raise ValidationError(
                f"No working days between {start.isoformat()} and {end.isoformat()}"
            )
        max_days = self.policy.max_consecutive_days
        if max_days is not None and working_days > max_days:
            raise ValidationError(
                f"Request spans {working_days} working days, the maximum is {max_days}"
            )

        request = AbsenceRequest(
            request_id=draft.request_id or uuid4(),
            employee_id=draft.employee_id,
            absence_type=draft.absence_type,
            start_date=start,
            end_date=end,
            status=AbsenceStatus.PENDING,
            working_days=working_days,
            quota_year=start.year,
            half_day=draft.half_day,
            reason=draft.reason,
            substitute_id=draft.substitute_id,
            created_at=self.clock(),
        )

        with self.store.transaction() as tx:
            warnings = self.conflicts.check(
                request.employee_id,
                start,
                end,
                substitute_id=request.substitute_id,
                tx=tx,
            )
            if self.policy.is_quota_bearing(request.absence_type):
                quota = self.ledger.get_or_create(
                    request.employee_id, request.absence_type, request.quota_year, tx=tx
                )
                self.ledger.reserve(quota, working_days, tx=tx)
            tx.insert_request(request)

        logger.info(
            "Submitted absence request %s for %s (%s, %s day(s))",
            request.request_id,
            request.employee_id,
            request.absence_type.value,
            working_days,
        )

        self.dispatcher.emit(
            AbsenceRequestSubmitted(
                metadata=self._metadata(request, request.employee_id, "employee"),
                request_id=request.request_id,
                employee_id=request.employee_id,
                absence_type=request.absence_type,
                start_date=start,
                end_date=end,
                working_days=working_days,
                substitute_id=request.substitute_id,
                warnings=tuple(warnings),
            )
        )
        return SubmitResult(request=request, warnings=warnings)

    # ------------------------------------------------------------------
    # Decisions
    # ------------------------------------------------------------------

    def approve(
        self,
        request_id: UUID,
        approver_id: str,
        comment: str | None = None,
    ) -> AbsenceRequest:
        """Record an approval step; the final level moves the request to approved.

        With more than one approval level, earlier levels only append to the
        approval trail and the request stays pending. An approver who already
        signed a level gets the stored request back.

        Raises:
            NotFoundError: Unknown request id
            InvalidTransitionError: Request is rejected or withdrawn
            ConcurrencyError: Another actor decided the request first
        """
        current = self._load(request_id)
        if current.status == AbsenceStatus.APPROVED:
            logger.debug("Approve replay for %s; already approved", request_id)
            return current
        self.validate_transition(current.status, AbsenceStatus.APPROVED)

        levels = self.policy.approval_levels
        replayed = False
        with self.store.transaction() as tx:
            steps = tx.list_approval_steps(request_id)
            if any(
                s.approver_id == approver_id and s.decision == ApprovalDecision.APPROVED
                for s in steps
            ):
                replayed = True
                updated = self._read_in(tx, request_id)
            else:
                level = len(steps) + 1
                now = self.clock()
                final = level >= levels

                if final:
                    self._guarded_update(
                        tx,
                        current,
                        AbsenceStatus.APPROVED,
                        {"decided_at": now, "decided_by": approver_id},
                    )
                    if self.policy.is_quota_bearing(current.absence_type):
                        quota = self.ledger.find(
                            current.employee_id, current.absence_type, current.quota_year, tx=tx
                        )
                        self.ledger.commit(quota, current.working_days, tx=tx)
                else:
                    # Touch the row under the pending guard so a concurrent
                    # decision serializes with this step.
                    self._guarded_update(tx, current, AbsenceStatus.PENDING)

                tx.append_approval_step(
                    ApprovalStep(
                        request_id=request_id,
                        level=level,
                        approver_id=approver_id,
                        decision=ApprovalDecision.APPROVED,
                        decided_at=now,
                        comment=comment,
                    )
                )
                updated = self._read_in(tx, request_id)

        if replayed:
            logger.debug("Approve replay for %s; %s already signed", request_id, approver_id)
            return updated

        if updated.status == AbsenceStatus.APPROVED:
            logger.info(
                "Absence request %s: %s -> %s by %s",
                request_id,
                AbsenceStatus.PENDING.value,
                AbsenceStatus.APPROVED.value,
                approver_id,
            )
            self.dispatcher.emit(
                AbsenceRequestApproved(
                    metadata=self._metadata(updated, approver_id, "approver"),
                    request_id=request_id,
                    employee_id=updated.employee_id,
                    approver_id=approver_id,
                    absence_type=updated.absence_type,
                    start_date=updated.start_date,
                    end_date=updated.end_date,
                    working_days=updated.working_days,
                )
            )
        else:
            level = len(steps) + 1
            logger.info(
                "Absence request %s: approval level %d/%d signed by %s",
                request_id,
                level,
                levels,
                approver_id,
            )
            self.dispatcher.emit(
                ApprovalStepRecorded(
                    metadata=self._metadata(updated, approver_id, "approver"),
                    request_id=request_id,
                    employee_id=updated.employee_id,
                    level=level,
                    approver_id=approver_id,
                    remaining_levels=levels - level,
                )
            )
        return updated

    def reject(self, request_id: UUID, approver_id: str, reason: str) -> AbsenceRequest:
        """Reject a pending request and release its reservation.

        Raises:
            ValidationError: Empty reason
            NotFoundError: Unknown request id
            InvalidTransitionError: Request is approved or withdrawn
            ConcurrencyError: Another actor decided the request first
        """
        if not reason or not reason.strip():
            raise ValidationError("A rejection reason is required")
        reason = reason.strip()

        current = self._load(request_id)
        if current.status == AbsenceStatus.REJECTED:
            logger.debug("Reject replay for %s; already rejected", request_id)
            return current
        self.validate_transition(current.status, AbsenceStatus.REJECTED)

        with self.store.transaction() as tx:
            now = self.clock()
            self._guarded_update(
                tx,
                current,
                AbsenceStatus.REJECTED,
                {"decided_at": now, "decided_by": approver_id, "rejection_reason": reason},
            )
            steps = tx.list_approval_steps(request_id)
            tx.append_approval_step(
                ApprovalStep(
                    request_id=request_id,
                    level=len(steps) + 1,
                    approver_id=approver_id,
                    decision=ApprovalDecision.REJECTED,
                    decided_at=now,
                    comment=reason,
                )
            )
            self._release_quota(tx, current)
            updated = self._read_in(tx, request_id)

        logger.info(
            "Absence request %s: %s -> %s by %s",
            request_id,
            AbsenceStatus.PENDING.value,
            AbsenceStatus.REJECTED.value,
            approver_id,
        )
        self.dispatcher.emit(
            AbsenceRequestRejected(
                metadata=self._metadata(updated, approver_id, "approver"),
                request_id=request_id,
                employee_id=updated.employee_id,
                approver_id=approver_id,
                reason=reason,
                start_date=updated.start_date,
                end_date=updated.end_date,
            )
        )
        return updated

    def withdraw(self, request_id: UUID, requester_id: str) -> AbsenceRequest:
        """Withdraw a pending request on behalf of its owner.

        Raises:
            NotFoundError: Unknown request id
            AuthorizationError: Requester does not own the request
            InvalidTransitionError: Request is already decided
            ConcurrencyError: Another actor decided the request first
        """
        current = self._load(request_id)
        if current.employee_id != requester_id:
            raise AuthorizationError(
                f"{requester_id} cannot withdraw a request owned by {current.employee_id}"
            )
        if current.status == AbsenceStatus.WITHDRAWN:
            logger.debug("Withdraw replay for %s; already withdrawn", request_id)
            return current
        self.validate_transition(current.status, AbsenceStatus.WITHDRAWN)

        with self.store.transaction() as tx:
            self._guarded_update(
                tx,
                current,
                AbsenceStatus.WITHDRAWN,
                {"decided_at": self.clock(), "decided_by": requester_id},
            )
            self._release_quota(tx, current)
            updated = self._read_in(tx, request_id)

        logger.info(
            "Absence request %s: %s -> %s by %s",
            request_id,
            AbsenceStatus.PENDING.value,
            AbsenceStatus.WITHDRAWN.value,
            requester_id,
        )
        self.dispatcher.emit(
            AbsenceRequestWithdrawn(
                metadata=self._metadata(updated, requester_id, "employee"),
                request_id=request_id,
                employee_id=updated.employee_id,
                start_date=updated.start_date,
                end_date=updated.end_date,
            ),
            notify=self.policy.notify_on_withdraw,
        )
        return updated

    # ------------------------------------------------------------------
    # Pending-request collaboration
    # ------------------------------------------------------------------

    def raise_query(self, request_id: UUID, asker_id: str, question: str) -> AbsenceRequest:
        """Send a question about a pending request to its owner.

        The request is not changed.

        Raises:
            ValidationError: Empty question or request no longer pending
            NotFoundError: Unknown request id
        """
        if not question or not question.strip():
            raise ValidationError("A query needs a question")

        current = self._load(request_id)
        if self.is_terminal(current.status):
            raise ValidationError(
                f"Request {request_id} is {current.status.value}; "
                "queries are only possible while pending"
            )

        logger.info("Query raised on absence request %s by %s", request_id, asker_id)
        self.dispatcher.emit(
            AbsenceQueryRaised(
                metadata=self._metadata(current, asker_id, "approver"),
                request_id=request_id,
                employee_id=current.employee_id,
                asker_id=asker_id,
                question=question.strip(),
            )
        )
        return current

    def assign_substitute(
        self,
        request_id: UUID,
        substitute_id: str,
        actor_id: str | None = None,
    ) -> SubstituteAssignment:
        """Name a substitute on a pending request.

        ``actor_id`` is recorded as the acting user; it defaults to the
        requester.

        Raises:
            ValidationError: Substitute is the requester or the request is
                no longer pending
            SubstituteUnavailableError: Substitute is absent and the policy
                blocks on substitute conflicts
            NotFoundError: Unknown request id
            ConcurrencyError: Another actor decided the request first
        """
        current = self._load(request_id)
        if substitute_id == current.employee_id:
            raise ValidationError("An employee cannot substitute for themselves")
        if self.is_terminal(current.status):
            raise ValidationError(
                f"Request {request_id} is {current.status.value}; "
                "a substitute can only be assigned while pending"
            )

        with self.store.transaction() as tx:
            warnings = self.conflicts.substitute_warnings(
                substitute_id, current.start_date, current.end_date, tx
            )
            self._guarded_update(
                tx, current, AbsenceStatus.PENDING, {"substitute_id": substitute_id}
            )
            updated = self._read_in(tx, request_id)

        logger.info("Substitute %s assigned to absence request %s", substitute_id, request_id)
        self.dispatcher.emit(
            SubstituteAssigned(
                metadata=self._metadata(
                    updated,
                    actor_id or updated.employee_id,
                    "employee" if actor_id in (None, updated.employee_id) else "approver",
                ),
                request_id=request_id,
                employee_id=updated.employee_id,
                substitute_id=substitute_id,
                start_date=updated.start_date,
                end_date=updated.end_date,
            )
        )
        return SubstituteAssignment(request=updated, warnings=warnings)

    def approval_history(self, request_id: UUID) -> list[ApprovalStep]:
        """Approval trail ordered by level."""
        with self.store.transaction() as tx:
            if tx.read_request(request_id) is None:
                raise NotFoundError("Absence request", request_id)
            return tx.list_approval_steps(request_id)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _validate_draft(self, draft: AbsenceDraft) -> tuple[date, date]:
        if not draft.employee_id:
            raise ValidationError("employee_id is required")
        if draft.start_date is None or draft.end_date is None:
            raise ValidationError("start_date and end_date are required")
        if draft.end_date < draft.start_date:
            raise InvalidRangeError(draft.start_date, draft.end_date)
        if draft.substitute_id is not None and draft.substitute_id == draft.employee_id:
            raise ValidationError("An employee cannot substitute for themselves")
        return draft.start_date, draft.end_date

    def _check_notice(self, start: date) -> None:
        notice = self.policy.notice_period_days
        if notice is None:
            return
        lead = (start - self.clock().date()).days
        if lead < notice:
            raise ValidationError(
                f"Absences must be requested {notice} day(s) ahead; "
                f"{start.isoformat()} is {lead} day(s) away"
            )

    def _replay_submit(self, draft: AbsenceDraft, existing: AbsenceRequest) -> SubmitResult:
        if (
            existing.employee_id != draft.employee_id
            or existing.absence_type != draft.absence_type
            or existing.start_date != draft.start_date
            or existing.end_date != draft.end_date
        ):
            raise ValidationError(
                f"Request id {existing.request_id} is already used by a different request"
            )
        logger.debug("Submit replay for %s", existing.request_id)
        return SubmitResult(request=existing, replayed=True)

    def _guarded_update(
        self,
        tx: StoreTransaction,
        current: AbsenceRequest,
        new_status: AbsenceStatus,
        fields: dict | None = None,
    ) -> None:
        if not tx.conditional_update_request_status(
            current.request_id, AbsenceStatus.PENDING, new_status, fields
        ):
            raise ConcurrencyError(
                f"Absence request {current.request_id} was modified concurrently; "
                f"expected status '{AbsenceStatus.PENDING.value}'"
            )

    def _release_quota(self, tx: StoreTransaction, request: AbsenceRequest) -> None:
        if not self.policy.is_quota_bearing(request.absence_type):
            return
        quota = self.ledger.find(
            request.employee_id, request.absence_type, request.quota_year, tx=tx
        )
        self.ledger.release(quota, request.working_days, tx=tx)

    def _read(self, request_id: UUID) -> AbsenceRequest | None:
        with self.store.transaction() as tx:
            return tx.read_request(request_id)

    def _load(self, request_id: UUID) -> AbsenceRequest:
        request = self._read(request_id)
        if request is None:
            raise NotFoundError("Absence request", request_id)
        return request

    @staticmethod
    def _read_in(tx: StoreTransaction, request_id: UUID) -> AbsenceRequest:
        request = tx.read_request(request_id)
        if request is None:
            raise NotFoundError("Absence request", request_id)
        return request

    @staticmethod
    def _metadata(request: AbsenceRequest, actor_id: str, actor_type: str) -> EventMetadata:
        return EventMetadata.create(
            correlation_id=request.request_id,
            actor_id=actor_id,
            actor_type=actor_type,
            source_service=SOURCE_SERVICE,
        )
