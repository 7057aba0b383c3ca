"""Manual intake of walk-in patients."""

import asyncio

import structlog

from frontdesk.core.exceptions import AlreadyQueuedException
from frontdesk.core.identity import normalize_identity
from frontdesk.schemas.actor import ActorContext
from frontdesk.schemas.appointments import IntakeResult, ManualIntakeRequest
from frontdesk.services.appointment_client import AppointmentServiceClient
from frontdesk.services.preference_resolver import PreferenceResolver
from frontdesk.services.refresh_scheduler import RefreshScheduler

logger = structlog.get_logger(__name__)


class ManualIntakeHandler:
    """Queue a patient who walked in without booking."""

    def __init__(
        self,
        client: AppointmentServiceClient,
        scheduler: RefreshScheduler,
        actor: ActorContext,
        preference_resolver: PreferenceResolver | None = None,
    ):
        """Initialize with the session's client, scheduler and actor."""
        self.client = client
        self.scheduler = scheduler
        self.actor = actor
        self.preference_resolver = preference_resolver

    async def create(self, data: ManualIntakeRequest) -> IntakeResult:
        """
        Create a pending appointment for a walk-in patient.

        The current queue is checked first; a patient who is already
        queued is refused without contacting the appointment service.

        Args:
            data: Walk-in details

        Returns:
            Intake result

        Raises:
            AlreadyQueuedException: The patient has an active appointment
            ConflictException: The appointment service reported a duplicate
            TransportException: The service could not be reached
        """
        identity = normalize_identity(str(data.email))

        snapshot = self.scheduler.snapshot
        if snapshot is None:
            # No view yet, build one before deciding
            snapshot = await self.scheduler.refresh()

        existing = snapshot.get(identity)
        if existing is not None and existing.is_active:
            logger.info(
                "manual_intake_already_queued",
                identity=identity,
                status=existing.status.value,
            )
            raise AlreadyQueuedException(identity)

        task = asyncio.ensure_future(self.client.create_manual_intake(self.actor, data))
        try:
            ack = await asyncio.shield(task)
        except asyncio.CancelledError:
            # Already sent; let it land and record how it went
            task.add_done_callback(lambda done: _log_detached_intake(identity, done))
            raise
        logger.info("manual_intake_created", identity=identity)

        if self.preference_resolver is not None:
            await self.preference_resolver.forget(identity)

        refreshed_at = None
        try:
            refreshed_at = (await self.scheduler.refresh()).refreshed_at
        except Exception as e:
            logger.warning("post_intake_refresh_failed", identity=identity, error=str(e))

        appointment_id = ack.get("id") or ack.get("aptId")
        message = ack.get("message")
        return IntakeResult(
            identity=identity,
            appointment_id=str(appointment_id) if appointment_id is not None else None,
            message=str(message) if message is not None else None,
            refreshed_at=refreshed_at,
        )


def _log_detached_intake(identity: str, task: asyncio.Future) -> None:
    if task.cancelled():
        return
    error = task.exception()
    if error is not None:
        logger.warning("detached_intake_failed", identity=identity, error=str(error))
    else:
        logger.info("detached_intake_created", identity=identity)
