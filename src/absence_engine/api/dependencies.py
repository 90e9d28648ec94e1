"""FastAPI dependencies for dependency injection."""

from typing import Annotated

from fastapi import Depends, Header, HTTPException, Request, status

from absence_engine.services import RequestLifecycleService


def get_service(request: Request) -> RequestLifecycleService:
    """Get the lifecycle service wired at startup."""
    service = getattr(request.app.state, "service", None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Absence service is not initialized",
        )
    return service


def get_actor_id(x_actor_id: Annotated[str | None, Header()] = None) -> str:
    """Extract the acting user from header.

    Authentication happens upstream; the header carries the resolved id.
    """
    if not x_actor_id or not x_actor_id.strip():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="X-Actor-ID header is required",
        )
    return x_actor_id.strip()


# Type aliases for cleaner dependency injection
Service = Annotated[RequestLifecycleService, Depends(get_service)]
ActorId = Annotated[str, Depends(get_actor_id)]
