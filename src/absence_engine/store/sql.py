"""SQLAlchemy-backed store.

Status transitions are conditional updates:

    UPDATE absence_request SET status = :new
    WHERE request_id = :id AND status = :expected

and quota reservations are guarded the same way, so concurrent writers are
detected by ``rowcount == 0`` instead of overwriting each other.
"""

from __future__ import annotations

from collections.abc import Generator, Mapping
from contextlib import contextmanager
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import insert, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from absence_engine.domain import (
    AbsenceQuota,
    AbsenceRequest,
    AbsenceStatus,
    AbsenceType,
    ApprovalDecision,
    ApprovalStep,
    Notification,
)
from absence_engine.errors import ConcurrencyError, NotFoundError
from absence_engine.models import (
    AbsenceQuotaRow,
    AbsenceRequestRow,
    ApprovalStepRow,
    NotificationRow,
)
from absence_engine.store.base import TRANSITION_FIELDS


class SqlAbsenceStore:
    """``AbsenceStore`` over a SQLAlchemy session factory.

    Each ``transaction()`` opens its own session, so one store instance can
    be shared by concurrent callers.
    """

    def __init__(self, session_factory: sessionmaker[Session]):
        self._session_factory = session_factory

    @contextmanager
    def transaction(self) -> Generator[SqlStoreTransaction, None, None]:
        with self._session_factory() as session:
            with session.begin():
                yield SqlStoreTransaction(session)


class SqlStoreTransaction:
    """Unit of work bound to one session."""

    def __init__(self, session: Session):
        self.session = session

    def read_request(self, request_id: UUID) -> AbsenceRequest | None:
        row = self.session.get(AbsenceRequestRow, request_id, populate_existing=True)
        if row is None:
            return None
        return _request_from_row(row)

    def insert_request(self, request: AbsenceRequest) -> None:
        try:
            with self.session.begin_nested():
                self.session.execute(
                    insert(AbsenceRequestRow).values(
                        request_id=request.request_id,
                        employee_id=request.employee_id,
                        absence_type=request.absence_type.value,
                        start_date=request.start_date,
                        end_date=request.end_date,
                        half_day=request.half_day,
                        reason=request.reason,
                        substitute_id=request.substitute_id,
                        status=request.status.value,
                        working_days=request.working_days,
                        quota_year=request.quota_year,
                        created_at=request.created_at or datetime.now(timezone.utc),
                    )
                )
        except IntegrityError as exc:
            raise ConcurrencyError(
                f"Absence request {request.request_id} already exists"
            ) from exc

    def conditional_update_request_status(
        self,
        request_id: UUID,
        expected_status: AbsenceStatus,
        new_status: AbsenceStatus,
        fields: Mapping[str, Any] | None = None,
    ) -> bool:
        values = dict(fields or {})
        unknown = set(values) - TRANSITION_FIELDS
        if unknown:
            raise ValueError(f"Cannot update fields on transition: {sorted(unknown)}")

        result = self.session.execute(
            update(AbsenceRequestRow)
            .where(
                AbsenceRequestRow.request_id == request_id,
                AbsenceRequestRow.status == expected_status.value,
            )
            .values(status=new_status.value, **values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def list_requests(
        self,
        employee_id: str,
        statuses: frozenset[AbsenceStatus] | None = None,
        start: date | None = None,
        end: date | None = None,
        exclude_request_id: UUID | None = None,
    ) -> list[AbsenceRequest]:
        query = select(AbsenceRequestRow).where(AbsenceRequestRow.employee_id == employee_id)

        if statuses is not None:
            query = query.where(AbsenceRequestRow.status.in_([s.value for s in statuses]))
        if start is not None:
            query = query.where(AbsenceRequestRow.end_date >= start)
        if end is not None:
            query = query.where(AbsenceRequestRow.start_date <= end)
        if exclude_request_id is not None:
            query = query.where(AbsenceRequestRow.request_id != exclude_request_id)

        query = query.order_by(AbsenceRequestRow.start_date, AbsenceRequestRow.request_id)
        rows = self.session.execute(query.execution_options(populate_existing=True)).scalars()
        return [_request_from_row(row) for row in rows]

    def read_quota(
        self, employee_id: str, absence_type: AbsenceType, year: int
    ) -> AbsenceQuota | None:
        row = self.session.execute(
            select(AbsenceQuotaRow)
            .where(
                AbsenceQuotaRow.employee_id == employee_id,
                AbsenceQuotaRow.absence_type == absence_type.value,
                AbsenceQuotaRow.year == year,
            )
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if row is None:
            return None
        return _quota_from_row(row)

    def read_or_create_quota(
        self,
        employee_id: str,
        absence_type: AbsenceType,
        year: int,
        entitlement: Decimal,
    ) -> AbsenceQuota:
        existing = self.read_quota(employee_id, absence_type, year)
        if existing is not None:
            return existing

        try:
            with self.session.begin_nested():
                self.session.execute(
                    insert(AbsenceQuotaRow).values(
                        quota_id=uuid4(),
                        employee_id=employee_id,
                        absence_type=absence_type.value,
                        year=year,
                        entitlement=entitlement,
                        used=Decimal("0"),
                        planned=Decimal("0"),
                        created_at=datetime.now(timezone.utc),
                    )
                )
        except IntegrityError:
            # Lost the creation race; the winner's row is what we want.
            pass

        quota = self.read_quota(employee_id, absence_type, year)
        if quota is None:
            raise RuntimeError("Quota creation failed unexpectedly - no row created or found")
        return quota

    def update_quota(
        self,
        quota_id: UUID,
        planned_delta: Decimal,
        used_delta: Decimal,
        enforce_entitlement: bool = True,
    ) -> bool:
        new_planned = AbsenceQuotaRow.planned + planned_delta
        new_used = AbsenceQuotaRow.used + used_delta

        stmt = update(AbsenceQuotaRow).where(
            AbsenceQuotaRow.quota_id == quota_id,
            new_planned >= 0,
            new_used >= 0,
        )
        if enforce_entitlement:
            stmt = stmt.where(new_used + new_planned <= AbsenceQuotaRow.entitlement)

        result = self.session.execute(
            stmt.values(planned=new_planned, used=new_used).execution_options(
                synchronize_session=False
            )
        )
        if result.rowcount == 1:
            return True

        if self.get_quota(quota_id) is None:
            raise NotFoundError("Absence quota", quota_id)
        return False

    def get_quota(self, quota_id: UUID) -> AbsenceQuota | None:
        row = self.session.get(AbsenceQuotaRow, quota_id, populate_existing=True)
        if row is None:
            return None
        return _quota_from_row(row)

    def append_approval_step(self, step: ApprovalStep) -> None:
        try:
            with self.session.begin_nested():
                self.session.execute(
                    insert(ApprovalStepRow).values(
                        step_id=step.step_id,
                        request_id=step.request_id,
                        level=step.level,
                        approver_id=step.approver_id,
                        decision=step.decision.value,
                        decided_at=step.decided_at,
                        comment=step.comment,
                    )
                )
        except IntegrityError as exc:
            raise ConcurrencyError(
                f"Approval level {step.level} already recorded for request {step.request_id}"
            ) from exc

    def list_approval_steps(self, request_id: UUID) -> list[ApprovalStep]:
        rows = self.session.execute(
            select(ApprovalStepRow)
            .where(ApprovalStepRow.request_id == request_id)
            .order_by(ApprovalStepRow.level)
        ).scalars()
        return [
            ApprovalStep(
                step_id=row.step_id,
                request_id=row.request_id,
                level=row.level,
                approver_id=row.approver_id,
                decision=ApprovalDecision(row.decision),
                decided_at=row.decided_at,
                comment=row.comment,
            )
            for row in rows
        ]


class SqlNotificationSink:
    """Writes notifications to ``absence_notification`` in their own transaction."""

    def __init__(self, session_factory: sessionmaker[Session]):
        self._session_factory = session_factory

    def enqueue(self, notification: Notification) -> None:
        with self._session_factory() as session:
            with session.begin():
                session.add(
                    NotificationRow(
                        notification_id=notification.notification_id,
                        recipient_id=notification.recipient_id,
                        request_id=notification.request_id,
                        notification_type=notification.notification_type.value,
                        message=notification.message,
                        read=notification.read,
                        created_at=notification.created_at or datetime.now(timezone.utc),
                    )
                )


def _request_from_row(row: AbsenceRequestRow) -> AbsenceRequest:
    return AbsenceRequest(
        request_id=row.request_id,
        employee_id=row.employee_id,
        absence_type=AbsenceType(row.absence_type),
        start_date=row.start_date,
        end_date=row.end_date,
        status=AbsenceStatus(row.status),
        working_days=Decimal(row.working_days),
        quota_year=row.quota_year,
        half_day=row.half_day,
        reason=row.reason,
        substitute_id=row.substitute_id,
        created_at=row.created_at,
        decided_at=row.decided_at,
        decided_by=row.decided_by,
        rejection_reason=row.rejection_reason,
    )


def _quota_from_row(row: AbsenceQuotaRow) -> AbsenceQuota:
    return AbsenceQuota(
        quota_id=row.quota_id,
        employee_id=row.employee_id,
        absence_type=AbsenceType(row.absence_type),
        year=row.year,
        entitlement=Decimal(row.entitlement),
        used=Decimal(row.used),
        planned=Decimal(row.planned),
    )
