# Replisync Retry Scheduling
# Delayed re-triggering on the running event loop

import asyncio
import logging
from collections.abc import Callable
from typing import Optional

logger = logging.getLogger(__name__)


class DelayedCall:
    """A cancellable one-shot callback, rescheduling replaces the previous one."""

    def __init__(self, delay_ms: int, callback: Callable[[], None], name: str = "delayed call"):
        self.delay_ms = delay_ms
        self.name = name
        self._callback = callback
        self._handle: Optional[asyncio.TimerHandle] = None

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def schedule(self) -> None:
        """Arm the call delay_ms from now, replacing any armed call."""
        self.cancel()
        loop = asyncio.get_running_loop()
        self._handle = loop.call_later(self.delay_ms / 1000, self._fire)

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _fire(self) -> None:
        self._handle = None
        self._callback()


class RetryScheduler(DelayedCall):
    """
    Re-trigger a failed cycle after a fixed delay.

    Every failure is treated the same: no backoff, no jitter.
    """

    def __init__(self, retry_time_ms: int, trigger: Callable[[], None]):
        super().__init__(retry_time_ms, trigger, name="retry")

    def schedule(self) -> None:
        logger.debug("Retrying in %d ms", self.delay_ms)
        super().schedule()
