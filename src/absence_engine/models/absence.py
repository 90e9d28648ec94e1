"""Absence request, quota, approval trail and notification models."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column

from absence_engine.models.base import Base, TimestampMixin

# Days are stored with one decimal place; half days are the smallest unit.
DAYS = Numeric(6, 1)


class AbsenceRequestRow(Base, TimestampMixin):
    """Absence request."""

    __tablename__ = "absence_request"

    request_id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    employee_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    absence_type: Mapped[str] = mapped_column(String, nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    half_day: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    reason: Mapped[str] = mapped_column(Text, nullable=False, default="")
    substitute_id: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
    status: Mapped[str] = mapped_column(String, nullable=False, default="pending")
    working_days: Mapped[Decimal] = mapped_column(DAYS, nullable=False)
    quota_year: Mapped[int] = mapped_column(Integer, nullable=False)
    decided_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    decided_by: Mapped[str | None] = mapped_column(String, nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        CheckConstraint("end_date >= start_date", name="absence_request_dates_check"),
        CheckConstraint(
            "status IN ('pending', 'approved', 'rejected', 'withdrawn')",
            name="absence_request_status_check",
        ),
        CheckConstraint("working_days >= 0", name="absence_request_days_check"),
    )


class AbsenceQuotaRow(Base, TimestampMixin):
    """Yearly quota per employee and absence type."""

    __tablename__ = "absence_quota"

    quota_id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    employee_id: Mapped[str] = mapped_column(String, nullable=False)
    absence_type: Mapped[str] = mapped_column(String, nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    entitlement: Mapped[Decimal] = mapped_column(DAYS, nullable=False)
    used: Mapped[Decimal] = mapped_column(DAYS, nullable=False, default=Decimal("0"))
    planned: Mapped[Decimal] = mapped_column(DAYS, nullable=False, default=Decimal("0"))

    __table_args__ = (
        UniqueConstraint(
            "employee_id", "absence_type", "year", name="absence_quota_employee_type_year_unique"
        ),
        CheckConstraint("entitlement >= 0", name="absence_quota_entitlement_check"),
        CheckConstraint("used >= 0", name="absence_quota_used_check"),
        CheckConstraint("planned >= 0", name="absence_quota_planned_check"),
    )


class ApprovalStepRow(Base):
    """One level of a request's approval trail."""

    __tablename__ = "approval_step"

    step_id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    request_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("absence_request.request_id", ondelete="CASCADE"),
        nullable=False,
    )
    level: Mapped[int] = mapped_column(Integer, nullable=False)
    approver_id: Mapped[str] = mapped_column(String, nullable=False)
    decision: Mapped[str] = mapped_column(String, nullable=False)
    decided_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    comment: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        UniqueConstraint("request_id", "level", name="approval_step_request_level_unique"),
        CheckConstraint("level >= 1", name="approval_step_level_check"),
        CheckConstraint(
            "decision IN ('pending', 'approved', 'rejected')",
            name="approval_step_decision_check",
        ),
    )


class NotificationRow(Base, TimestampMixin):
    """Append-only notification written as a side effect of a transition."""

    __tablename__ = "absence_notification"

    notification_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True), primary_key=True, default=uuid4
    )
    recipient_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    request_id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), nullable=False)
    notification_type: Mapped[str] = mapped_column(String, nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
