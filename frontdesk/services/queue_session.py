"""Per-actor queue sessions."""

import asyncio
import time
from datetime import UTC, datetime

import structlog

from frontdesk.config import Settings, settings
from frontdesk.core.http_client import get_http_client
from frontdesk.core.redis_client import CacheManager, get_cache_manager
from frontdesk.schemas.actor import ActorContext
from frontdesk.schemas.doctors import Doctor
from frontdesk.schemas.queue import QueueSnapshot
from frontdesk.services.appointment_client import AppointmentServiceClient
from frontdesk.services.intake_service import ManualIntakeHandler
from frontdesk.services.lifecycle import LifecycleStateMachine
from frontdesk.services.preference_resolver import PreferenceResolver
from frontdesk.services.queue_aggregator import aggregate
from frontdesk.services.queue_fetcher import QueueFetcher
from frontdesk.services.refresh_scheduler import RefreshScheduler

logger = structlog.get_logger(__name__)


class QueueSession:
    """
    Everything one actor needs to watch and act on the queue.

    Sessions share the HTTP client but no mutable state.
    """

    def __init__(
        self,
        actor: ActorContext,
        client: AppointmentServiceClient,
        config: Settings = settings,
        cache_manager: CacheManager | None = None,
    ):
        """Initialize the session's components."""
        self.actor = actor
        self.client = client
        self.fetcher = QueueFetcher(client)
        self.preferences = PreferenceResolver(
            client,
            concurrency=config.preference_lookup_concurrency,
            cache_manager=cache_manager,
            cache_ttl=config.preference_cache_ttl,
        )
        self.scheduler = RefreshScheduler(
            self.build_snapshot,
            interval_seconds=config.queue_refresh_interval_seconds,
        )
        self.lifecycle = LifecycleStateMachine(
            client,
            self.scheduler,
            actor,
            verify_doctor_availability=config.verify_doctor_availability,
        )
        self.intake = ManualIntakeHandler(client, self.scheduler, actor, self.preferences)
        self.last_used = time.monotonic()

    @property
    def closed(self) -> bool:
        """Whether the session has ended."""
        return self.scheduler.stopped

    async def build_snapshot(self) -> QueueSnapshot:
        """Run one fetch, enrich and aggregate cycle."""
        result = await self.fetcher.fetch_all(self.actor)
        pending, appointed = await asyncio.gather(
            self.preferences.enrich(self.actor, result.pending),
            self.preferences.enrich(self.actor, result.appointed),
        )

        now = datetime.now(UTC)
        items = aggregate(pending, result.assigned, appointed, now=now)
        snapshot = QueueSnapshot(
            items=tuple(items),
            warnings=tuple(result.warnings),
            refreshed_at=now,
        )

        logger.info(
            "queue_refreshed",
            location=self.actor.location,
            records=len(items),
            failed_sources=[warning.source.value for warning in result.warnings],
        )
        return snapshot

    async def current(self) -> QueueSnapshot:
        """Latest snapshot, refreshing first if there is none yet."""
        self.touch()
        snapshot = self.scheduler.snapshot
        if snapshot is None:
            snapshot = await self.scheduler.refresh(join_inflight=True)
        return snapshot

    async def available_doctors(self) -> list[Doctor]:
        """Doctors available at the actor's campus."""
        self.touch()
        return await self.client.list_available_doctors(self.actor)

    async def start(self) -> None:
        """Start periodic refreshes."""
        await self.scheduler.start()

    async def close(self) -> None:
        """End the session, abandoning any refresh in flight."""
        await self.scheduler.stop()

    def touch(self) -> None:
        """Mark the session as used now."""
        self.last_used = time.monotonic()

    def idle_for(self) -> float:
        """Seconds since the session was last used."""
        return time.monotonic() - self.last_used


class SessionRegistry:
    """One queue session per actor context (bearer token and location)."""

    def __init__(
        self,
        client: AppointmentServiceClient,
        config: Settings = settings,
        cache_manager: CacheManager | None = None,
    ):
        """Initialize an empty registry."""
        self.client = client
        self.config = config
        self.cache_manager = cache_manager
        self._sessions: dict[tuple[str, str], QueueSession] = {}
        self._lock = asyncio.Lock()

    @staticmethod
    def _key(actor: ActorContext) -> tuple[str, str]:
        return actor.token, actor.location

    def __len__(self) -> int:
        return len(self._sessions)

    async def get_or_create(self, actor: ActorContext) -> QueueSession:
        """
        Get the actor's session, starting a new one if needed.

        Idle sessions of any actor are closed on the way.
        """
        async with self._lock:
            await self._prune_idle()

            key = self._key(actor)
            session = self._sessions.get(key)
            if session is None or session.closed:
                session = QueueSession(actor, self.client, self.config, self.cache_manager)
                await session.start()
                self._sessions[key] = session
                logger.info("queue_session_started", location=actor.location)

            session.touch()
            return session

    async def close(self, actor: ActorContext) -> bool:
        """
        End an actor's session.

        Returns:
            True if a session was open
        """
        async with self._lock:
            session = self._sessions.pop(self._key(actor), None)
        if session is None:
            return False
        await session.close()
        logger.info("queue_session_closed", location=actor.location)
        return True

    async def close_all(self) -> None:
        """End every session."""
        async with self._lock:
            sessions = list(self._sessions.values())
            self._sessions.clear()
        await asyncio.gather(*(session.close() for session in sessions))

    async def _prune_idle(self) -> None:
        timeout = self.config.session_idle_timeout_seconds
        expired = [key for key, session in self._sessions.items() if session.idle_for() > timeout]
        for key in expired:
            session = self._sessions.pop(key)
            await session.close()
            logger.info("queue_session_expired", location=session.actor.location)


# Global registry instance
_session_registry: SessionRegistry | None = None


def get_session_registry() -> SessionRegistry:
    """
    Get or create the session registry.

    Returns:
        Registry bound to the shared HTTP client
    """
    global _session_registry

    if _session_registry is None:
        _session_registry = SessionRegistry(
            AppointmentServiceClient(get_http_client()),
            cache_manager=get_cache_manager(),
        )

    return _session_registry


async def close_session_registry() -> None:
    """Close every session and drop the registry."""
    global _session_registry

    if _session_registry is not None:
        await _session_registry.close_all()
        _session_registry = None
