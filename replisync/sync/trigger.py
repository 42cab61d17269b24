# Replisync Cycle Trigger
# Decides when cycles run and coalesces overlapping requests

import asyncio
import logging
from typing import Optional

from replisync.sync.collection import WriteEvent
from replisync.sync.retry import DelayedCall, RetryScheduler
from replisync.sync.runner import CycleResult, CycleRunner, ReplicationStatus

logger = logging.getLogger(__name__)


class CycleTrigger:
    """
    Routes run requests to the CycleRunner.

    Sources are explicit run() calls, local write notifications, the live
    interval timer and the retry scheduler. While a cycle is running, any
    number of further requests collapse into a single follow-up cycle.
    """

    def __init__(
        self,
        runner: CycleRunner,
        status: ReplicationStatus,
        *,
        live: bool = True,
        live_interval_ms: int = 10_000,
        retry_time_ms: int = 5_000,
    ):
        self.runner = runner
        self.status = status
        self.live = live
        self.retry = RetryScheduler(retry_time_ms, lambda: self.fire("retry"))
        self.interval = DelayedCall(live_interval_ms, lambda: self.fire("interval"), name="live interval")
        self.last_result: Optional[CycleResult] = None
        self._drain_task: Optional[asyncio.Task] = None
        self._rerun = False
        self._idle = asyncio.Event()
        self._idle.set()

    @property
    def interval_enabled(self) -> bool:
        return self.live and self.interval.delay_ms > 0

    @property
    def running(self) -> bool:
        return self._drain_task is not None and not self._drain_task.done()

    @property
    def rerun_requested(self) -> bool:
        return self._rerun

    @property
    def idle(self) -> bool:
        return self._idle.is_set()

    async def run(self, source: str = "explicit") -> None:
        """
        Request a cycle and wait until it (or the follow-up it joined) finishes.

        A no-op once the replication is stopped.
        """
        if self.status.is_stopped:
            return

        if self.running:
            logger.debug("Cycle already running, queueing follow-up (%s)", source)
            self._rerun = True
            await asyncio.shield(self._drain_task)
            return

        self._idle.clear()
        self._drain_task = asyncio.ensure_future(self._drain(source))
        await asyncio.shield(self._drain_task)

    def fire(self, source: str) -> None:
        """Request a cycle without waiting for it."""
        if self.status.is_stopped:
            return
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            # Pending writes stay queued and go out with the next cycle
            logger.debug("No running event loop, dropping %s trigger", source)
            return
        self._idle.clear()
        if self.running:
            self._rerun = True
            return
        self._drain_task = asyncio.ensure_future(self._drain(source))

    def on_write(self, event: WriteEvent) -> None:
        """Collection write listener."""
        if event.is_local:
            return
        self.fire("write")

    async def _drain(self, source: str) -> None:
        logger.debug("Starting cycle (%s)", source)
        self.interval.cancel()
        result: Optional[CycleResult] = None
        try:
            while not self.status.is_stopped:
                self._rerun = False
                result = await self.runner.run_cycle()
                self.last_result = result

                if result.cancelled or self.status.is_stopped:
                    return
                if result.success:
                    self.retry.cancel()
                else:
                    self.retry.schedule()

                if not self._rerun:
                    break
                logger.debug("Running queued follow-up cycle")

            if result is not None and result.success and self.interval_enabled and not self.status.is_stopped:
                self.interval.schedule()
        finally:
            if not self.retry.pending:
                self._idle.set()

    async def wait_idle(self) -> None:
        """Wait until no cycle is running and no retry is pending."""
        await self._idle.wait()

    def stop(self) -> None:
        """Cancel armed timers. An in-flight cycle notices the stop flag itself."""
        self.retry.cancel()
        self.interval.cancel()
        self._rerun = False
        self._idle.set()
