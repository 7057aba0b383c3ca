"""Queue endpoints."""

from fastapi import APIRouter, Query, status

from frontdesk.dependencies import CurrentActor, CurrentSession, Registry
from frontdesk.schemas.appointments import (
    AdHocDivertRequest,
    AppointmentStatus,
    AssignRequest,
    IntakeResult,
    ManualIntakeRequest,
    PatientRequest,
    ReassignRequest,
    TransitionResult,
)
from frontdesk.schemas.queue import QueueSnapshot, QueueSummary, QueueView
from frontdesk.services.queue_aggregator import filter_by_status, search_queue, sort_queue

router = APIRouter()


def _to_view(snapshot: QueueSnapshot, items: list | None = None) -> QueueView:
    selected = list(snapshot.items) if items is None else items
    return QueueView(
        total=len(selected),
        items=selected,
        warnings=list(snapshot.warnings),
        stale=snapshot.stale,
        refreshed_at=snapshot.refreshed_at,
    )


@router.get(
    "",
    response_model=QueueView,
    status_code=status.HTTP_200_OK,
    summary="Current aggregated queue",
)
async def get_queue(
    session: CurrentSession,
    q: str | None = Query(None, max_length=200),
    status_filter: AppointmentStatus | None = Query(None, alias="status"),
    sort_by: str = Query("created_at"),
    descending: bool = Query(False),
) -> QueueView:
    """
    Get the actor's active queue, one row per patient.

    Args:
        session: Actor's queue session
        q: Free-text search over name, email, reason, doctor and token
        status_filter: Only rows in this status
        sort_by: Column to sort by
        descending: Reverse the sort order

    Returns:
        Filtered and sorted queue with freshness information
    """
    snapshot = await session.current()
    items = filter_by_status(snapshot.items, status_filter)
    items = search_queue(items, q)
    items = sort_queue(items, sort_by=sort_by, descending=descending)
    return _to_view(snapshot, items)


@router.get(
    "/summary",
    response_model=QueueSummary,
    status_code=status.HTTP_200_OK,
    summary="Queue counters",
)
async def get_queue_summary(session: CurrentSession) -> QueueSummary:
    """
    Get the dashboard counters for the actor's queue.

    Returns:
        Totals per status
    """
    snapshot = await session.current()
    return QueueSummary(
        total=len(snapshot.items),
        pending=snapshot.count(AppointmentStatus.PENDING),
        assigned=snapshot.count(AppointmentStatus.ASSIGNED),
        appointed=snapshot.count(AppointmentStatus.APPOINTED),
        stale=snapshot.stale,
        refreshed_at=snapshot.refreshed_at,
    )


@router.post(
    "/refresh",
    response_model=QueueView,
    status_code=status.HTTP_200_OK,
    summary="Refresh the queue now",
)
async def refresh_queue(session: CurrentSession) -> QueueView:
    """Run a refresh cycle and return its result."""
    session.touch()
    return _to_view(await session.scheduler.refresh())


@router.delete(
    "/session",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="End the queue session",
)
async def end_session(actor: CurrentActor, registry: Registry) -> None:
    """End the actor's session and abandon any refresh in flight."""
    await registry.close(actor)


@router.post(
    "/assign",
    response_model=TransitionResult,
    status_code=status.HTTP_200_OK,
    summary="Assign a pending patient to a doctor",
)
async def assign(data: AssignRequest, session: CurrentSession) -> TransitionResult:
    """
    Assign a pending patient to a doctor with vitals.

    Args:
        data: Patient email, doctor and vitals
        session: Actor's queue session

    Returns:
        Transition result with the token issued by the appointment service
    """
    return await session.lifecycle.assign(data)


@router.post(
    "/reassign",
    response_model=TransitionResult,
    status_code=status.HTTP_200_OK,
    summary="Move an assigned patient to another doctor",
)
async def reassign(data: ReassignRequest, session: CurrentSession) -> TransitionResult:
    """Move an assigned patient to another doctor."""
    return await session.lifecycle.reassign(data)


@router.post(
    "/reject",
    response_model=TransitionResult,
    status_code=status.HTTP_200_OK,
    summary="Reject an appointment",
)
async def reject(data: PatientRequest, session: CurrentSession) -> TransitionResult:
    """
    Reject an active appointment.

    Rejecting another campus's appointment answers 403.
    """
    return await session.lifecycle.reject(data.email)


@router.post(
    "/complete",
    response_model=TransitionResult,
    status_code=status.HTTP_200_OK,
    summary="Complete a consultation",
)
async def complete(data: PatientRequest, session: CurrentSession) -> TransitionResult:
    """Mark an appointed consultation as completed."""
    return await session.lifecycle.complete(data.email)


@router.post(
    "/divert",
    response_model=TransitionResult,
    status_code=status.HTTP_200_OK,
    summary="Divert a pending request to ad-hoc treatment",
)
async def divert(data: AdHocDivertRequest, session: CurrentSession) -> TransitionResult:
    """Hand a pending request to the ad-hoc treatment flow."""
    return await session.lifecycle.divert(data)


@router.post(
    "/intake",
    response_model=IntakeResult,
    status_code=status.HTTP_201_CREATED,
    summary="Queue a walk-in patient",
)
async def manual_intake(data: ManualIntakeRequest, session: CurrentSession) -> IntakeResult:
    """
    Queue a walk-in patient identified by email.

    Answers 409 if the patient is already queued.
    """
    return await session.intake.create(data)
