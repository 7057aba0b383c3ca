"""
Periodic and on-demand queue refresh for one actor session.

At most one refresh cycle runs at a time. Requests that arrive while a
cycle is in flight either join it (scheduled ticks) or share a single
follow-up cycle that starts as soon as it finishes (forced refreshes
after a write, which must observe the write).
"""

import asyncio
from collections.abc import Awaitable, Callable

import structlog

from frontdesk.schemas.queue import QueueSnapshot

logger = structlog.get_logger(__name__)

Pipeline = Callable[[], Awaitable[QueueSnapshot]]
Listener = Callable[[QueueSnapshot], None]


class SchedulerStoppedError(RuntimeError):
    """Refresh requested after the session ended."""


class RefreshScheduler:
    """
    Owns the published snapshot of one session.

    Features:
    - Fixed-interval refresh loop
    - Coalescing of concurrent refresh requests
    - Cancellation of the in-flight cycle on stop
    """

    def __init__(
        self,
        pipeline: Pipeline,
        interval_seconds: float = 60.0,
    ):
        """
        Initialize the scheduler.

        Args:
            pipeline: Coroutine function producing a fresh snapshot
            interval_seconds: Delay between the end of one scheduled cycle and the next
        """
        self.pipeline = pipeline
        self.interval = interval_seconds
        self.cycles_completed = 0

        self._snapshot: QueueSnapshot | None = None
        self._listeners: list[Listener] = []
        self._cycle: asyncio.Task | None = None
        self._cycle_waiter: asyncio.Future | None = None
        self._queued_waiter: asyncio.Future | None = None
        self._ticker: asyncio.Task | None = None
        self._stopped = False

    @property
    def snapshot(self) -> QueueSnapshot | None:
        """Latest published snapshot, None before the first cycle completes."""
        return self._snapshot

    @property
    def refreshing(self) -> bool:
        """Whether a cycle is in flight."""
        return self._cycle is not None

    @property
    def stopped(self) -> bool:
        """Whether the scheduler has been stopped for good."""
        return self._stopped

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """
        Register a callback invoked with every published snapshot.

        Returns:
            Function that removes the listener
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def start(self) -> None:
        """Start the periodic refresh loop."""
        if self._stopped:
            raise SchedulerStoppedError("Refresh scheduler has been stopped")
        if self._ticker is not None:
            logger.warning("refresh_scheduler_already_running")
            return
        self._ticker = asyncio.create_task(self._tick_loop())

    async def stop(self) -> None:
        """
        Stop the loop and abandon any in-flight cycle.

        The abandoned cycle's result is never published.
        """
        if self._stopped:
            return
        self._stopped = True

        tasks = [task for task in (self._ticker, self._cycle) if task is not None]
        waiters = [w for w in (self._cycle_waiter, self._queued_waiter) if w is not None]
        for task in tasks:
            task.cancel()

        await asyncio.gather(*tasks, return_exceptions=True)

        # A cycle cancelled before its first step never reaches its own cleanup
        for waiter in waiters:
            if not waiter.done():
                waiter.cancel()
        self._ticker = None
        self._cycle = None
        self._cycle_waiter = None
        self._queued_waiter = None
        logger.debug("refresh_scheduler_stopped", cycles_completed=self.cycles_completed)

    async def refresh(self, join_inflight: bool = False) -> QueueSnapshot:
        """
        Request a cycle and wait for its snapshot.

        Cancelling the caller does not cancel the shared cycle.

        Args:
            join_inflight: Accept the result of a cycle already in flight
                instead of waiting for one that starts after this call
        """
        return await asyncio.shield(self.request_refresh(join_inflight=join_inflight))

    def request_refresh(self, join_inflight: bool = False) -> asyncio.Future:
        """
        Request a cycle without waiting for it.

        Returns:
            Future resolved with the snapshot of the cycle serving this request
        """
        if self._stopped:
            raise SchedulerStoppedError("Refresh scheduler has been stopped")

        loop = asyncio.get_running_loop()

        if self._cycle is None:
            waiter = loop.create_future()
            self._begin(waiter)
            return waiter

        if join_inflight and self._cycle_waiter is not None:
            return self._cycle_waiter

        if self._queued_waiter is None:
            self._queued_waiter = loop.create_future()
        return self._queued_waiter

    def _begin(self, waiter: asyncio.Future) -> None:
        self._cycle_waiter = waiter
        self._cycle = asyncio.create_task(self._run_cycle(waiter))

    async def _run_cycle(self, waiter: asyncio.Future) -> None:
        try:
            snapshot = await self.pipeline()
        except asyncio.CancelledError:
            waiter.cancel()
            raise
        except Exception as e:
            logger.error("queue_refresh_failed", error=str(e), exc_info=True)
            if not waiter.done():
                waiter.set_exception(e)
        else:
            self._publish(snapshot)
            if not waiter.done():
                waiter.set_result(snapshot)
        finally:
            self._cycle = None
            self._cycle_waiter = None
            queued, self._queued_waiter = self._queued_waiter, None
            if queued is not None and not queued.done():
                if self._stopped:
                    queued.cancel()
                else:
                    self._begin(queued)

    def _publish(self, snapshot: QueueSnapshot) -> None:
        if self._stopped:
            logger.debug("queue_refresh_discarded")
            return

        self._snapshot = snapshot
        self.cycles_completed += 1
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception as e:
                logger.warning("snapshot_listener_failed", error=str(e))

    async def _tick_loop(self) -> None:
        while not self._stopped:
            try:
                await self.refresh(join_inflight=True)
            except SchedulerStoppedError:
                return
            except Exception as e:
                # Already logged by the cycle; the next tick repairs the view
                logger.debug("scheduled_refresh_failed", error=str(e))
            await asyncio.sleep(self.interval)
