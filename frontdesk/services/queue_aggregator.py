"""Merge the three queue lists into one view without duplicates."""

from collections.abc import Iterable, Sequence
from datetime import UTC, datetime
from itertools import chain
from typing import Any

import structlog

from frontdesk.core.exceptions import BadRequestException
from frontdesk.schemas.appointments import Appointment, AppointmentStatus
from frontdesk.services.precedence import outranks, precedence_key, rank

logger = structlog.get_logger(__name__)

SORTABLE_FIELDS = (
    "created_at",
    "display_name",
    "email",
    "reason",
    "status",
    "assigned_doctor_name",
    "token",
    "waited_seconds",
)

SEARCHABLE_FIELDS = (
    "display_name",
    "email",
    "reason",
    "assigned_doctor_name",
    "preferred_doctor_name",
    "token",
)


def aggregate(
    *collections: Iterable[Appointment],
    now: datetime | None = None,
) -> list[Appointment]:
    """
    Build the active queue from any number of source collections.

    One pass over all records, keyed by identity. On collision the record
    with the higher (rank, createdAt) wins; on a full tie the first one
    seen is kept and the tie is logged, since the sources should never
    produce one.

    Args:
        collections: Converted records, typically pending, assigned, appointed
        now: Reference time for ``waited_seconds``; omitted means not computed

    Returns:
        One record per identity, ordered by createdAt ascending
    """
    merged: dict[str, Appointment] = {}

    for record in chain.from_iterable(collections):
        if record.status.is_terminal:
            continue

        current = merged.get(record.identity)
        if current is None:
            merged[record.identity] = record
        elif outranks(record, current):
            merged[record.identity] = _with_arrival_of(record, current)
        elif precedence_key(record) == precedence_key(current):
            logger.warning(
                "precedence_tie_unresolved",
                identity=record.identity,
                status=record.status.value,
                kept_source=current.source.value,
                dropped_source=record.source.value,
            )
        else:
            merged[record.identity] = _with_arrival_of(current, record)

    items = sorted(merged.values(), key=_arrival_key)

    if now is not None:
        items = [_with_wait_time(item, now) for item in items]

    return items


def sort_queue(
    items: Sequence[Appointment],
    sort_by: str = "created_at",
    descending: bool = False,
) -> list[Appointment]:
    """
    Re-sort a queue by a displayed column.

    Records missing the column always go last.

    Raises:
        BadRequestException: If the column is not sortable
    """
    if sort_by not in SORTABLE_FIELDS:
        raise BadRequestException(f"Cannot sort by {sort_by}")

    present = [item for item in items if getattr(item, sort_by) is not None]
    missing = [item for item in items if getattr(item, sort_by) is None]
    present.sort(key=lambda item: _column_value(item, sort_by), reverse=descending)
    return present + missing


def search_queue(items: Sequence[Appointment], query: str | None) -> list[Appointment]:
    """Case-insensitive substring search over the displayed text columns."""
    if not query or not query.strip():
        return list(items)

    needle = query.strip().lower()
    return [
        item
        for item in items
        if any(
            needle in str(value).lower()
            for value in (getattr(item, field) for field in SEARCHABLE_FIELDS)
            if value is not None
        )
    ]


def filter_by_status(
    items: Sequence[Appointment],
    status: AppointmentStatus | None,
) -> list[Appointment]:
    """Keep only records in the given status."""
    if status is None:
        return list(items)
    return [item for item in items if item.status == status]


def _arrival_key(item: Appointment) -> tuple[bool, datetime]:
    return item.created_at is None, item.created_at or datetime.min.replace(tzinfo=UTC)


def _with_arrival_of(winner: Appointment, replaced: Appointment) -> Appointment:
    # Later stages may not report createdAt; the patient arrived when first booked
    if winner.created_at is not None or replaced.created_at is None:
        return winner
    return winner.model_copy(update={"created_at": replaced.created_at})


def _column_value(item: Appointment, column: str) -> Any:
    value = getattr(item, column)
    if column == "status":
        return rank(value) if not value.is_terminal else len(AppointmentStatus)
    if isinstance(value, str):
        return value.lower()
    return value


def _with_wait_time(item: Appointment, now: datetime) -> Appointment:
    if item.created_at is None:
        return item
    waited = max((now - item.created_at).total_seconds(), 0.0)
    return item.model_copy(update={"waited_seconds": waited})
