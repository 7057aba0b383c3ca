"""Status precedence used to pick one record per patient."""

from datetime import UTC, datetime

from frontdesk.schemas.appointments import Appointment, AppointmentStatus

_RANKS = {
    AppointmentStatus.PENDING: 0,
    AppointmentStatus.ASSIGNED: 1,
    AppointmentStatus.APPOINTED: 2,
}

# Records without a timestamp lose every createdAt tie-break
_NO_TIMESTAMP = datetime.min.replace(tzinfo=UTC)


def rank(status: AppointmentStatus) -> int:
    """
    Rank an active status; a higher rank is further along the lifecycle.

    Raises:
        ValueError: For Completed and Rejected, which never enter the active queue
    """
    try:
        return _RANKS[status]
    except KeyError:
        raise ValueError(f"{status.value} is not an active queue status") from None


def precedence_key(appointment: Appointment) -> tuple[int, datetime]:
    """Sort key: rank first, then most recent createdAt."""
    return rank(appointment.status), appointment.created_at or _NO_TIMESTAMP


def outranks(candidate: Appointment, current: Appointment) -> bool:
    """Whether ``candidate`` strictly beats ``current`` for the same identity."""
    return precedence_key(candidate) > precedence_key(current)
