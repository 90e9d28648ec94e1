"""FastAPI application factory."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from absence_engine.api.routes import absence_requests_router, health_router, quotas_router
from absence_engine.config import AbsencePolicy, Settings, configure_logging, get_settings
from absence_engine.database import init_db, is_memory_sqlite
from absence_engine.errors import (
    AbsenceEngineError,
    AuthorizationError,
    ConcurrencyError,
    NotFoundError,
    OverlapError,
    QuotaExceededError,
    ValidationError,
)
from absence_engine.services import RequestLifecycleService
from absence_engine.store import SqlAbsenceStore, SqlNotificationSink

logger = logging.getLogger(__name__)

# Checked in order; subclasses before their bases.
ERROR_STATUS: list[tuple[type[AbsenceEngineError], int]] = [
    (AuthorizationError, 403),
    (ValidationError, 422),
    (NotFoundError, 404),
    (OverlapError, 409),
    (QuotaExceededError, 409),
    (ConcurrencyError, 409),
]


def status_for(exc: AbsenceEngineError) -> int:
    """HTTP status code for an engine error."""
    for error_type, code in ERROR_STATUS:
        if isinstance(exc, error_type):
            return code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def build_service(settings: Settings) -> RequestLifecycleService:
    """Wire the lifecycle service over the configured database."""
    _, session_factory = init_db()
    workers = settings.bulk_max_workers
    if is_memory_sqlite(settings.database_url):
        # A single shared connection cannot serve parallel transactions.
        workers = 1
    return RequestLifecycleService(
        store=SqlAbsenceStore(session_factory),
        sink=SqlNotificationSink(session_factory),
        policy=AbsencePolicy.from_settings(settings),
        max_workers=workers,
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Build the service on startup unless one was injected."""
    if getattr(app.state, "service", None) is None:
        app.state.service = build_service(get_settings())
    yield


def create_app(service: RequestLifecycleService | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        service: Pre-wired lifecycle service. When omitted, one is built
            over the configured database at startup.
    """
    configure_logging()

    app = FastAPI(
        title="Absence Engine API",
        description="Absence request lifecycle and quota engine",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.service = service

    origins = list(get_settings().cors_origins)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        # Browsers refuse credentials with a wildcard origin.
        allow_credentials="*" not in origins,
        allow_methods=["GET", "POST", "PUT"],
        allow_headers=["Content-Type", "X-Actor-ID"],
    )

    @app.exception_handler(AbsenceEngineError)
    async def engine_exception_handler(
        request: Request, exc: AbsenceEngineError
    ) -> JSONResponse:
        """Map engine errors to status codes."""
        code = status_for(exc)
        if code >= 500:
            logger.error("Engine error on %s %s: %s", request.method, request.url.path, exc)
        return JSONResponse(
            status_code=code,
            content={"detail": str(exc), "code": exc.code},
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": "Internal error", "code": "INTERNAL_ERROR"},
        )

    app.include_router(health_router)
    app.include_router(absence_requests_router, prefix="/api/v1")
    app.include_router(quotas_router, prefix="/api/v1")

    return app


# Module-level instance for `uvicorn absence_engine.api.app:app`.
app = create_app()
