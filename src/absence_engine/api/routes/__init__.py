"""API routes."""

from absence_engine.api.routes.absence_requests import router as absence_requests_router
from absence_engine.api.routes.health import router as health_router
from absence_engine.api.routes.quotas import router as quotas_router

__all__ = ["absence_requests_router", "health_router", "quotas_router"]
