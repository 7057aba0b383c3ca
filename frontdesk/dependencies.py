"""FastAPI dependencies."""

from typing import Annotated

from fastapi import Depends, Header
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import ValidationError

from frontdesk.core.exceptions import BadRequestException
from frontdesk.schemas.actor import ActorContext
from frontdesk.services.queue_session import (
    QueueSession,
    SessionRegistry,
    get_session_registry,
)

# Security
security = HTTPBearer()


async def get_actor_context(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(security)],
    x_latitude: Annotated[float | None, Header()] = None,
    x_longitude: Annotated[float | None, Header()] = None,
) -> ActorContext:
    """
    Build the actor context from the bearer token and location headers.

    The token is not checked here; the appointment service does that on
    every call made on the actor's behalf.

    Raises:
        BadRequestException: If the location headers are missing or out of range
    """
    if x_latitude is None or x_longitude is None:
        raise BadRequestException("Location required: send X-Latitude and X-Longitude headers")

    try:
        return ActorContext(
            token=credentials.credentials,
            latitude=x_latitude,
            longitude=x_longitude,
        )
    except ValidationError:
        raise BadRequestException("Invalid location coordinates")


async def get_queue_session(
    actor: Annotated[ActorContext, Depends(get_actor_context)],
    registry: Annotated[SessionRegistry, Depends(get_session_registry)],
) -> QueueSession:
    """Get the actor's queue session, starting it on first use."""
    return await registry.get_or_create(actor)


# Type aliases for dependency injection
CurrentActor = Annotated[ActorContext, Depends(get_actor_context)]
Registry = Annotated[SessionRegistry, Depends(get_session_registry)]
CurrentSession = Annotated[QueueSession, Depends(get_queue_session)]
