"""Absence engine services."""

from absence_engine.services.bulk import (
    BulkAction,
    BulkActionCoordinator,
    BulkFailure,
    BulkResult,
)
from absence_engine.services.conflict_detector import ConflictDetector
from absence_engine.services.lifecycle import RequestLifecycleService
from absence_engine.services.notifications import (
    ManagerRecipientResolver,
    NotificationDispatcher,
    RecipientResolver,
)
from absence_engine.services.quota_ledger import QuotaBalance, QuotaLedger
from absence_engine.services.state_machine import (
    ApprovalStateMachine,
    SubmitResult,
    SubstituteAssignment,
)

__all__ = [
    "ApprovalStateMachine",
    "SubmitResult",
    "SubstituteAssignment",
    "QuotaLedger",
    "QuotaBalance",
    "ConflictDetector",
    "NotificationDispatcher",
    "RecipientResolver",
    "ManagerRecipientResolver",
    "BulkAction",
    "BulkActionCoordinator",
    "BulkFailure",
    "BulkResult",
    "RequestLifecycleService",
]
