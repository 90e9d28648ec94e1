"""Bulk approve, reject and withdraw over many requests."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from enum import Enum
from uuid import UUID

from absence_engine.domain import AbsenceRequest
from absence_engine.errors import AbsenceEngineError, ValidationError
from absence_engine.services.state_machine import ApprovalStateMachine

logger = logging.getLogger(__name__)

DEFAULT_MAX_WORKERS = 8


class BulkAction(str, Enum):
    """Transition applied to every request of a batch."""

    APPROVE = "approve"
    REJECT = "reject"
    WITHDRAW = "withdraw"


@dataclass(frozen=True)
class BulkFailure:
    """One item that did not transition."""

    request_id: UUID
    error: Exception

    @property
    def code(self) -> str:
        return getattr(self.error, "code", "INTERNAL_ERROR")

    @property
    def message(self) -> str:
        return str(self.error)


@dataclass
class BulkResult:
    """Per-item outcome of a bulk action, in input order."""

    action: BulkAction
    succeeded: list[AbsenceRequest] = field(default_factory=list)
    failed: list[BulkFailure] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.succeeded) + len(self.failed)

    @property
    def all_succeeded(self) -> bool:
        return not self.failed


class BulkActionCoordinator:
    """Applies one transition to many requests concurrently.

    Items are independent: each runs its own guarded transition, and a
    failing item is recorded without aborting the rest. There is no
    batch-wide lock; the store's conditional updates resolve races.
    """

    def __init__(self, machine: ApprovalStateMachine, max_workers: int = DEFAULT_MAX_WORKERS):
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        self.machine = machine
        self.max_workers = max_workers

    def apply_bulk(
        self,
        action: BulkAction,
        request_ids: Iterable[UUID],
        actor_id: str,
        reason: str | None = None,
    ) -> BulkResult:
        """Apply ``action`` to every id. Duplicate ids are processed once.

        Raises:
            ValidationError: Reject without a reason. Checked before any
                item runs.
        """
        action = BulkAction(action)
        if action == BulkAction.REJECT and (not reason or not reason.strip()):
            raise ValidationError("A rejection reason is required")

        ids = list(dict.fromkeys(request_ids))
        result = BulkResult(action=action)
        if not ids:
            return result

        outcomes: dict[UUID, AbsenceRequest | BulkFailure] = {}
        workers = min(self.max_workers, len(ids))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="absence-bulk") as executor:
            future_to_id = {
                executor.submit(self._apply_one, action, request_id, actor_id, reason): request_id
                for request_id in ids
            }
            for future in as_completed(future_to_id):
                request_id = future_to_id[future]
                outcomes[request_id] = future.result()

        for request_id in ids:
            outcome = outcomes[request_id]
            if isinstance(outcome, BulkFailure):
                result.failed.append(outcome)
            else:
                result.succeeded.append(outcome)

        logger.info(
            "Bulk %s by %s: %d succeeded, %d failed",
            action.value,
            actor_id,
            len(result.succeeded),
            len(result.failed),
        )
        return result

    def _apply_one(
        self,
        action: BulkAction,
        request_id: UUID,
        actor_id: str,
        reason: str | None,
    ) -> AbsenceRequest | BulkFailure:
        try:
            if action == BulkAction.APPROVE:
                return self.machine.approve(request_id, actor_id)
            if action == BulkAction.REJECT:
                return self.machine.reject(request_id, actor_id, reason or "")
            return self.machine.withdraw(request_id, actor_id)
        except AbsenceEngineError as e:
            logger.info("Bulk %s skipped %s: %s", action.value, request_id, e)
            return BulkFailure(request_id=request_id, error=e)
        except Exception as e:
            logger.exception("Bulk %s failed unexpectedly for %s", action.value, request_id)
            return BulkFailure(request_id=request_id, error=e)
