"""Pydantic schemas for API request/response models."""

from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from absence_engine.domain import AbsenceStatus, AbsenceType, ApprovalDecision
from absence_engine.services.bulk import BulkAction


# ============================================================================
# Absence request schemas
# ============================================================================


class AbsenceRequestCreate(BaseModel):
    """Schema for submitting an absence request for the acting employee."""

    absence_type: AbsenceType
    start_date: date
    end_date: date
    half_day: bool = False
    reason: str = ""
    substitute_id: str | None = None
    request_id: UUID | None = Field(
        default=None, description="Client-generated id; repeating it returns the stored request"
    )


class AbsenceRequestResponse(BaseModel):
    """Schema for absence request response."""

    model_config = ConfigDict(from_attributes=True)

    request_id: UUID
    employee_id: str
    absence_type: AbsenceType
    start_date: date
    end_date: date
    status: AbsenceStatus
    working_days: Decimal
    quota_year: int
    half_day: bool
    reason: str
    substitute_id: str | None = None
    created_at: datetime | None = None
    decided_at: datetime | None = None
    decided_by: str | None = None
    rejection_reason: str | None = None


class SubmitResponse(BaseModel):
    """Schema for submit response."""

    request: AbsenceRequestResponse
    working_days: Decimal
    warnings: list[str] = []
    replayed: bool = False


class AbsenceRequestListResponse(BaseModel):
    """Schema for listing absence requests."""

    items: list[AbsenceRequestResponse]
    total: int


# ============================================================================
# Decision schemas
# ============================================================================


class ApprovalRequest(BaseModel):
    """Schema for approval request."""

    comment: str | None = None


class RejectionRequest(BaseModel):
    """Schema for rejection request."""

    reason: str


class QueryRequest(BaseModel):
    """Schema for a question to the requesting employee."""

    question: str


class SubstituteRequest(BaseModel):
    """Schema for naming a substitute."""

    substitute_id: str


class SubstituteResponse(BaseModel):
    """Schema for substitute assignment response."""

    request: AbsenceRequestResponse
    warnings: list[str] = []


class ApprovalStepResponse(BaseModel):
    """Schema for one approval trail entry."""

    model_config = ConfigDict(from_attributes=True)

    step_id: UUID
    request_id: UUID
    level: int
    approver_id: str
    decision: ApprovalDecision
    decided_at: datetime | None = None
    comment: str | None = None


# ============================================================================
# Bulk schemas
# ============================================================================


class BulkActionRequest(BaseModel):
    """Schema for a bulk transition."""

    action: BulkAction
    request_ids: list[UUID] = Field(min_length=1)
    reason: str | None = None


class BulkFailureResponse(BaseModel):
    """Schema for one failed bulk item."""

    request_id: UUID
    code: str
    detail: str


class BulkActionResponse(BaseModel):
    """Schema for bulk transition response."""

    action: BulkAction
    succeeded: list[AbsenceRequestResponse]
    failed: list[BulkFailureResponse]


# ============================================================================
# Quota and calendar schemas
# ============================================================================


class QuotaBalanceResponse(BaseModel):
    """Schema for quota balance response."""

    model_config = ConfigDict(from_attributes=True)

    employee_id: str
    absence_type: AbsenceType
    year: int
    entitlement: Decimal
    used: Decimal
    planned: Decimal
    remaining: Decimal


class WorkingDaysResponse(BaseModel):
    """Schema for a working-day preview."""

    start_date: date
    end_date: date
    half_day: bool
    working_days: Decimal


class AvailableSubstitutesResponse(BaseModel):
    """Schema for substitute availability."""

    start_date: date
    end_date: date
    available: list[str]


# ============================================================================
# Error schemas
# ============================================================================


class ErrorResponse(BaseModel):
    """Schema for error response."""

    detail: str
    code: str | None = None
    context: dict[str, Any] | None = None
