"""Liveness, readiness and store health probes."""

import logging
from datetime import datetime, timezone
from uuid import UUID

from fastapi import APIRouter
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError

from absence_engine.api.dependencies import Service

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])

# Never assigned to a real request; reading it only touches the store.
_PROBE_ID = UUID(int=0)


class HealthResponse(BaseModel):
    status: str
    timestamp: datetime
    database: str


def _store_reachable(service) -> bool:
    try:
        with service.store.transaction() as tx:
            tx.read_request(_PROBE_ID)
    except SQLAlchemyError:
        logger.warning("Store probe failed", exc_info=True)
        return False
    return True


@router.get("/health", response_model=HealthResponse)
def health_check(service: Service) -> HealthResponse:
    """Report whether the request store answers a trivial read."""
    reachable = _store_reachable(service)
    return HealthResponse(
        status="healthy" if reachable else "degraded",
        timestamp=datetime.now(timezone.utc),
        database="healthy" if reachable else "unhealthy",
    )


@router.get("/ready")
def readiness_check(service: Service) -> dict[str, str]:
    # Resolving the dependency answers 503 until a service is wired.
    return {"status": "ready"}


@router.get("/live")
def liveness_check() -> dict[str, str]:
    return {"status": "alive"}
