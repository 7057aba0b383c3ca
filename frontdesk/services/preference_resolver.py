"""Preferred-doctor enrichment for queue records."""

import asyncio
from collections.abc import Sequence

import structlog
from pydantic import ValidationError

from frontdesk.core.exceptions import EnrichmentFailure
from frontdesk.core.redis_client import CacheManager
from frontdesk.schemas.actor import ActorContext
from frontdesk.schemas.appointments import Appointment, AppointmentStatus
from frontdesk.schemas.doctors import Preference
from frontdesk.services.appointment_client import AppointmentServiceClient

logger = structlog.get_logger(__name__)

# Placeholder shown when the lookup itself failed
PREFERENCE_UNAVAILABLE = "unavailable"

# Assigned records already have their doctor
ENRICHED_STATUSES = frozenset({AppointmentStatus.PENDING, AppointmentStatus.APPOINTED})


class PreferenceResolver:
    """Attach preferred doctor and reason to pending and appointed records."""

    def __init__(
        self,
        client: AppointmentServiceClient,
        concurrency: int = 8,
        cache_manager: CacheManager | None = None,
        cache_ttl: int = 120,
    ):
        """
        Initialize resolver.

        Args:
            client: Appointment service client
            concurrency: Maximum lookups in flight at once
            cache_manager: Optional Redis cache for successful lookups
            cache_ttl: Cache lifetime in seconds
        """
        self.client = client
        self.cache = cache_manager
        self.cache_ttl = cache_ttl
        self._semaphore = asyncio.Semaphore(concurrency)

    @staticmethod
    def _get_cache_key(identity: str) -> str:
        return f"queue:preference:{identity}"

    async def enrich(
        self,
        actor: ActorContext,
        records: Sequence[Appointment],
    ) -> list[Appointment]:
        """
        Enrich records, one independent lookup each.

        Lookups never fail the batch: a failed lookup leaves the record
        with the ``unavailable`` placeholder.

        Args:
            actor: Actor whose token scopes the lookups
            records: Records to enrich; order is preserved

        Returns:
            Enriched copies of the records
        """
        return list(
            await asyncio.gather(*(self._enrich_one(actor, record) for record in records))
        )

    async def forget(self, identity: str) -> None:
        """Drop a cached preference, e.g. after the patient re-booked."""
        if self.cache:
            await self.cache.delete(self._get_cache_key(identity))

    async def _enrich_one(self, actor: ActorContext, record: Appointment) -> Appointment:
        if record.status not in ENRICHED_STATUSES or not record.email:
            return record

        preference = await self._cached(record.identity)
        if preference is None:
            try:
                async with self._semaphore:
                    preference = await self.client.get_preference(actor, record.email)
            except EnrichmentFailure as e:
                logger.info("preference_lookup_failed", identity=record.identity, error=e.message)
                return record.model_copy(
                    update={
                        "preferred_doctor_name": PREFERENCE_UNAVAILABLE,
                        "preference_reason": PREFERENCE_UNAVAILABLE,
                    }
                )
            if self.cache:
                await self.cache.set_json(
                    self._get_cache_key(record.identity),
                    preference.model_dump(),
                    ttl=self.cache_ttl,
                )

        return record.model_copy(update=preference.model_dump())

    async def _cached(self, identity: str) -> Preference | None:
        if not self.cache:
            return None
        cached = await self.cache.get_json(self._get_cache_key(identity))
        if cached is None:
            return None
        try:
            return Preference.model_validate(cached)
        except ValidationError:
            return None
