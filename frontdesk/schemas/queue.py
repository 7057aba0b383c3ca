"""Queue snapshot schemas."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict

from frontdesk.schemas.appointments import Appointment, AppointmentStatus, QueueSource


class FetchWarning(BaseModel):
    """A queue list that could not be read during a refresh cycle."""

    model_config = ConfigDict(frozen=True)

    source: QueueSource
    message: str


class QueueSnapshot(BaseModel):
    """
    The published active queue for one actor session.

    Snapshots are immutable; the next refresh replaces the whole object.
    """

    model_config = ConfigDict(frozen=True)

    items: tuple[Appointment, ...] = ()
    warnings: tuple[FetchWarning, ...] = ()
    refreshed_at: datetime

    @property
    def stale(self) -> bool:
        """True when at least one source was missing from this cycle."""
        return bool(self.warnings)

    def get(self, identity: str) -> Appointment | None:
        """Find the record for an identity."""
        for item in self.items:
            if item.identity == identity:
                return item
        return None

    def count(self, status: AppointmentStatus) -> int:
        """Number of records in a status."""
        return sum(1 for item in self.items if item.status == status)


class QueueView(BaseModel):
    """Schema for the queue as returned to a client (filtered and sorted)."""

    total: int
    items: list[Appointment]
    warnings: list[FetchWarning]
    stale: bool
    refreshed_at: datetime


class QueueSummary(BaseModel):
    """Schema for the front-desk dashboard counters."""

    total: int
    pending: int
    assigned: int
    appointed: int
    stale: bool
    refreshed_at: datetime
