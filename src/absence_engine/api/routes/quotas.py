"""Quota and calendar API endpoints."""

from datetime import date
from typing import Annotated

from fastapi import APIRouter, Path, Query

from absence_engine.api.dependencies import Service
from absence_engine.api.schemas import (
    AvailableSubstitutesResponse,
    ErrorResponse,
    QuotaBalanceResponse,
    WorkingDaysResponse,
)
from absence_engine.domain import AbsenceType

router = APIRouter(tags=["quotas"])


@router.get("/quotas/{employee_id}", response_model=QuotaBalanceResponse)
def get_quota_balance(
    service: Service,
    employee_id: Annotated[str, Path()],
    year: Annotated[int, Query(ge=1900, le=9999)],
    absence_type: Annotated[AbsenceType, Query()] = AbsenceType.VACATION,
) -> QuotaBalanceResponse:
    """Entitlement, used, planned and remaining days for one year."""
    return QuotaBalanceResponse.model_validate(
        service.quota_balance(employee_id, year, absence_type)
    )


@router.get(
    "/working-days",
    response_model=WorkingDaysResponse,
    responses={422: {"model": ErrorResponse}},
)
def preview_working_days(
    service: Service,
    start: Annotated[date, Query()],
    end: Annotated[date, Query()],
    half_day: Annotated[bool, Query()] = False,
) -> WorkingDaysResponse:
    """Working days a request for the range would reserve."""
    return WorkingDaysResponse(
        start_date=start,
        end_date=end,
        half_day=half_day,
        working_days=service.working_days(start, end, half_day=half_day),
    )


@router.get(
    "/substitutes/available",
    response_model=AvailableSubstitutesResponse,
    responses={422: {"model": ErrorResponse}},
)
def available_substitutes(
    service: Service,
    candidates: Annotated[list[str], Query()],
    start: Annotated[date, Query()],
    end: Annotated[date, Query()],
) -> AvailableSubstitutesResponse:
    """Candidates without an approved absence in the range."""
    return AvailableSubstitutesResponse(
        start_date=start,
        end_date=end,
        available=service.available_substitutes(candidates, start, end),
    )
