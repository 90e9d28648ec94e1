"""Absence request API endpoints.

Endpoints are plain ``def`` functions: the engine is synchronous and
FastAPI runs them in its threadpool. Engine errors are mapped to HTTP
status codes by the application's exception handlers.
"""

from datetime import date
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Body, Path, Query, status

from absence_engine.api.dependencies import ActorId, Service
from absence_engine.api.schemas import (
    AbsenceRequestCreate,
    AbsenceRequestListResponse,
    AbsenceRequestResponse,
    ApprovalRequest,
    ApprovalStepResponse,
    BulkActionRequest,
    BulkActionResponse,
    BulkFailureResponse,
    ErrorResponse,
    QueryRequest,
    RejectionRequest,
    SubmitResponse,
    SubstituteRequest,
    SubstituteResponse,
)
from absence_engine.domain import AbsenceDraft, AbsenceStatus

router = APIRouter(prefix="/absence-requests", tags=["absence-requests"])

RequestId = Annotated[UUID, Path()]


# ============================================================================
# Submission and lookup
# ============================================================================


@router.post(
    "",
    response_model=SubmitResponse,
    status_code=status.HTTP_201_CREATED,
    responses={409: {"model": ErrorResponse}, 422: {"model": ErrorResponse}},
)
def submit_absence_request(
    service: Service,
    actor_id: ActorId,
    payload: AbsenceRequestCreate,
) -> SubmitResponse:
    """Submit an absence request for the acting employee."""
    result = service.submit(
        AbsenceDraft(
            employee_id=actor_id,
            absence_type=payload.absence_type,
            start_date=payload.start_date,
            end_date=payload.end_date,
            half_day=payload.half_day,
            reason=payload.reason,
            substitute_id=payload.substitute_id,
            request_id=payload.request_id,
        )
    )
    return SubmitResponse(
        request=AbsenceRequestResponse.model_validate(result.request),
        working_days=result.working_days,
        warnings=result.warnings,
        replayed=result.replayed,
    )


@router.get("", response_model=AbsenceRequestListResponse)
def list_absence_requests(
    service: Service,
    actor_id: ActorId,
    employee_id: Annotated[str | None, Query()] = None,
    status_filter: Annotated[list[AbsenceStatus] | None, Query(alias="status")] = None,
    start: Annotated[date | None, Query()] = None,
    end: Annotated[date | None, Query()] = None,
) -> AbsenceRequestListResponse:
    """List an employee's requests (the acting employee by default)."""
    requests = service.list_requests(
        employee_id or actor_id,
        statuses=status_filter,
        start=start,
        end=end,
    )
    items = [AbsenceRequestResponse.model_validate(r) for r in requests]
    return AbsenceRequestListResponse(items=items, total=len(items))


@router.post(
    "/bulk",
    response_model=BulkActionResponse,
    responses={422: {"model": ErrorResponse}},
)
def bulk_apply(
    service: Service,
    actor_id: ActorId,
    payload: BulkActionRequest,
) -> BulkActionResponse:
    """Apply one transition to many requests; failures are reported per item."""
    result = service.bulk_apply(
        payload.action, payload.request_ids, actor_id, reason=payload.reason
    )
    return BulkActionResponse(
        action=result.action,
        succeeded=[AbsenceRequestResponse.model_validate(r) for r in result.succeeded],
        failed=[
            BulkFailureResponse(request_id=f.request_id, code=f.code, detail=f.message)
            for f in result.failed
        ],
    )


@router.get(
    "/{request_id}",
    response_model=AbsenceRequestResponse,
    responses={404: {"model": ErrorResponse}},
)
def get_absence_request(
    service: Service,
    request_id: RequestId,
) -> AbsenceRequestResponse:
    """Get a specific absence request by ID."""
    return AbsenceRequestResponse.model_validate(service.get_request(request_id))


# ============================================================================
# State transitions
# ============================================================================


@router.post(
    "/{request_id}/approve",
    response_model=AbsenceRequestResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
def approve_absence_request(
    service: Service,
    actor_id: ActorId,
    request_id: RequestId,
    payload: Annotated[ApprovalRequest | None, Body()] = None,
) -> AbsenceRequestResponse:
    """Approve a pending request. Repeating the call returns the stored state."""
    comment = payload.comment if payload else None
    return AbsenceRequestResponse.model_validate(
        service.approve(request_id, actor_id, comment=comment)
    )


@router.post(
    "/{request_id}/reject",
    response_model=AbsenceRequestResponse,
    responses={
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
        422: {"model": ErrorResponse},
    },
)
def reject_absence_request(
    service: Service,
    actor_id: ActorId,
    request_id: RequestId,
    payload: RejectionRequest,
) -> AbsenceRequestResponse:
    """Reject a pending request with a reason."""
    return AbsenceRequestResponse.model_validate(
        service.reject(request_id, actor_id, payload.reason)
    )


@router.post(
    "/{request_id}/withdraw",
    response_model=AbsenceRequestResponse,
    responses={
        403: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
    },
)
def withdraw_absence_request(
    service: Service,
    actor_id: ActorId,
    request_id: RequestId,
) -> AbsenceRequestResponse:
    """Withdraw the acting employee's own pending request."""
    return AbsenceRequestResponse.model_validate(service.withdraw(request_id, actor_id))


# ============================================================================
# Collaboration on pending requests
# ============================================================================


@router.post(
    "/{request_id}/queries",
    response_model=AbsenceRequestResponse,
    status_code=status.HTTP_202_ACCEPTED,
    responses={404: {"model": ErrorResponse}, 422: {"model": ErrorResponse}},
)
def raise_query(
    service: Service,
    actor_id: ActorId,
    request_id: RequestId,
    payload: QueryRequest,
) -> AbsenceRequestResponse:
    """Ask the requesting employee a question."""
    return AbsenceRequestResponse.model_validate(
        service.raise_query(request_id, actor_id, payload.question)
    )


@router.put(
    "/{request_id}/substitute",
    response_model=SubstituteResponse,
    responses={404: {"model": ErrorResponse}, 422: {"model": ErrorResponse}},
)
def assign_substitute(
    service: Service,
    actor_id: ActorId,
    request_id: RequestId,
    payload: SubstituteRequest,
) -> SubstituteResponse:
    """Name a substitute for a pending request."""
    result = service.assign_substitute(request_id, payload.substitute_id, actor_id)
    return SubstituteResponse(
        request=AbsenceRequestResponse.model_validate(result.request),
        warnings=result.warnings,
    )


@router.get(
    "/{request_id}/approval-steps",
    response_model=list[ApprovalStepResponse],
    responses={404: {"model": ErrorResponse}},
)
def list_approval_steps(
    service: Service,
    request_id: RequestId,
) -> list[ApprovalStepResponse]:
    """Approval trail of a request, ordered by level."""
    return [ApprovalStepResponse.model_validate(s) for s in service.approval_history(request_id)]
