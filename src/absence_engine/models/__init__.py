"""SQLAlchemy ORM models."""

from absence_engine.models.absence import (
    AbsenceQuotaRow,
    AbsenceRequestRow,
    ApprovalStepRow,
    NotificationRow,
)
from absence_engine.models.base import Base, TimestampMixin

__all__ = [
    "Base",
    "TimestampMixin",
    "AbsenceRequestRow",
    "AbsenceQuotaRow",
    "ApprovalStepRow",
    "NotificationRow",
]
