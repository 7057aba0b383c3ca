"""Doctor endpoints."""

from fastapi import APIRouter, status

from frontdesk.dependencies import CurrentSession
from frontdesk.schemas.doctors import Doctor

router = APIRouter()


@router.get(
    "/available",
    response_model=list[Doctor],
    status_code=status.HTTP_200_OK,
    summary="Doctors available for assignment",
)
async def list_available_doctors(session: CurrentSession) -> list[Doctor]:
    """
    List the doctors who can take patients at the actor's campus.

    Args:
        session: Actor's queue session

    Returns:
        Available doctors
    """
    return await session.available_doctors()
