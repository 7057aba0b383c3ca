"""Fetch the three queue lists for one actor."""

import asyncio
from collections.abc import Awaitable, Sequence
from dataclasses import dataclass, field

import structlog

from frontdesk.core.exceptions import AppException
from frontdesk.schemas.actor import ActorContext
from frontdesk.schemas.appointments import (
    AppointedRecord,
    Appointment,
    AssignedRecord,
    PendingRecord,
    QueueSource,
)
from frontdesk.schemas.queue import FetchWarning
from frontdesk.services.appointment_client import AppointmentServiceClient

logger = structlog.get_logger(__name__)

SourceRecords = Sequence[PendingRecord] | Sequence[AssignedRecord] | Sequence[AppointedRecord]


@dataclass
class FetchResult:
    """Converted records per source, plus a warning for every source that failed."""

    pending: list[Appointment] = field(default_factory=list)
    assigned: list[Appointment] = field(default_factory=list)
    appointed: list[Appointment] = field(default_factory=list)
    warnings: list[FetchWarning] = field(default_factory=list)

    def succeeded(self, source: QueueSource) -> bool:
        """Whether the given source was read this cycle."""
        return all(warning.source != source for warning in self.warnings)


class QueueFetcher:
    """Fan out the pending, assigned and appointed list calls and join them."""

    def __init__(self, client: AppointmentServiceClient):
        """Initialize fetcher with the appointment service client."""
        self.client = client

    async def fetch_all(self, actor: ActorContext) -> FetchResult:
        """
        Read all three lists concurrently.

        A failing list degrades to an empty collection and a warning; it
        never prevents the other two from being used.

        Args:
            actor: Actor whose campus scopes the lists

        Returns:
            Records per source and warnings for the failed ones
        """
        (pending, pending_warning), (assigned, assigned_warning), (
            appointed,
            appointed_warning,
        ) = await asyncio.gather(
            self._fetch(QueueSource.PENDING, self.client.list_pending(actor)),
            self._fetch(QueueSource.ASSIGNED, self.client.list_assigned(actor)),
            self._fetch(QueueSource.APPOINTED, self.client.list_appointed(actor)),
        )

        warnings = [
            warning
            for warning in (pending_warning, assigned_warning, appointed_warning)
            if warning is not None
        ]
        return FetchResult(
            pending=pending,
            assigned=assigned,
            appointed=appointed,
            warnings=warnings,
        )

    async def _fetch(
        self,
        source: QueueSource,
        call: Awaitable[SourceRecords],
    ) -> tuple[list[Appointment], FetchWarning | None]:
        try:
            records = await call
            return [record.to_appointment() for record in records], None
        except AppException as e:
            message = e.message
        except ValueError as e:
            # A record with neither email nor id cannot be keyed
            message = f"{source.value} queue unavailable: {e}"

        logger.warning("queue_source_fetch_failed", source=source.value, error=message)
        return [], FetchWarning(source=source, message=message)
