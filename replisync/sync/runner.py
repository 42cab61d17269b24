# Replisync Cycle Runner
# One replication cycle: push phase, then pull phase, single-flight

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Optional

from replisync.errors import ReplicationCancelledError, ReplicationError
from replisync.sync.events import EventHub
from replisync.sync.phases import PullPhase, PushPhase

logger = logging.getLogger(__name__)


@dataclass
class ReplicationStatus:
    """Mutable status flags shared by the runner, trigger and lifecycle controller."""

    is_stopped: bool = False
    is_active: bool = False
    initial_replication_complete: bool = False
    cycles: int = 0
    failures: int = 0


@dataclass
class CycleResult:
    """Outcome of one cycle."""

    success: bool
    pushed: int = 0
    checkpoint: Any = None
    error: Optional[Exception] = None
    cancelled: bool = False
    duration: float = 0.0

    @property
    def failed(self) -> bool:
        return not self.success and not self.cancelled


class CycleInProgressError(RuntimeError):
    """run_cycle() was called while another cycle of the same replication was running."""


class CycleRunner:
    """
    Executes cycles for one replication.

    At most one cycle body runs at any time; callers that need to coalesce
    concurrent requests go through CycleTrigger.
    """

    def __init__(
        self,
        *,
        status: ReplicationStatus,
        events: EventHub,
        replication_identifier: str,
        push_phase: Optional[PushPhase] = None,
        pull_phase: Optional[PullPhase] = None,
        on_success: Optional[Callable[[CycleResult], None]] = None,
    ):
        self.status = status
        self.events = events
        self.replication_identifier = replication_identifier
        self.push_phase = push_phase
        self.pull_phase = pull_phase
        self._on_success = on_success

    async def run_cycle(self) -> CycleResult:
        """
        Run push to completion, then pull to completion.

        Failures are emitted on the error stream and returned, never raised.

        Raises:
            CycleInProgressError: If a cycle is already running.
        """
        if self.status.is_active:
            raise CycleInProgressError(f"A cycle of '{self.replication_identifier}' is already running")

        self.status.is_active = True
        self.status.cycles += 1
        self.events.active.emit(True)
        started = time.monotonic()
        result = CycleResult(success=False)

        try:
            if self.push_phase is not None:
                result.pushed = await self.push_phase.run()
            if self.pull_phase is not None:
                result.checkpoint = await self.pull_phase.run()
            result.success = True
        except ReplicationCancelledError:
            result.cancelled = True
        except Exception as e:
            if self.status.is_stopped:
                result.cancelled = True
            elif isinstance(e, ReplicationError):
                result.error = e
            else:
                result.error = ReplicationError(f"Cycle failed: {e}", self.replication_identifier)
                result.error.__cause__ = e
        finally:
            result.duration = time.monotonic() - started
            self.status.is_active = False
            self.events.active.emit(False)

        if result.cancelled:
            logger.info("[%s] cycle abandoned after cancellation", self.replication_identifier)
        elif result.error is not None:
            self.status.failures += 1
            logger.warning("[%s] cycle failed: %s", self.replication_identifier, result.error)
            self.events.errors.emit(result.error)
        else:
            logger.debug(
                "[%s] cycle finished in %.3fs, pushed %d, checkpoint %r",
                self.replication_identifier,
                result.duration,
                result.pushed,
                result.checkpoint,
            )
            first = not self.status.initial_replication_complete
            self.status.initial_replication_complete = True
            if first:
                logger.info("[%s] initial replication complete", self.replication_identifier)
            if self._on_success is not None:
                self._on_success(result)

        return result
