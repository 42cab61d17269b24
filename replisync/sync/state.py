# Replisync Replication State
# Lifecycle of one replication and the replicate() factory

import asyncio
import logging
from collections.abc import Callable, Mapping
from typing import Any, Optional, Union

from replisync.config.schema import PullConfig, PushConfig, ReplicationConfig
from replisync.errors import ReplicationCancelledError
from replisync.sync.checkpoint import CheckpointStore, MemoryCheckpointStore, checkpoint_key
from replisync.sync.collection import ReplicatedCollection
from replisync.sync.events import EventHub, EventStream, ValueStream
from replisync.sync.phases import Modifier, PullHandler, PullPhase, PushHandler, PushPhase
from replisync.sync.runner import CycleResult, CycleRunner, ReplicationStatus
from replisync.sync.trigger import CycleTrigger

logger = logging.getLogger(__name__)


class ReplicationState:
    """
    A running replication of one collection against one remote.

    Owns the status flags, the event hub, the cycle runner and trigger. Once
    cancelled it cannot be restarted; create a new one instead.
    """

    def __init__(
        self,
        collection: ReplicatedCollection,
        config: ReplicationConfig,
        *,
        push_handler: Optional[PushHandler] = None,
        pull_handler: Optional[PullHandler] = None,
        push_modifier: Optional[Modifier] = None,
        pull_modifier: Optional[Modifier] = None,
        checkpoint_store: Optional[CheckpointStore] = None,
    ):
        """
        Initialize replication state.

        Args:
            collection: Local collection to replicate.
            config: Replication settings.
            push_handler: Sends a batch of documents to the remote; None disables pushing.
            pull_handler: Fetches remote changes after a checkpoint; None disables pulling.
            push_modifier: Optional per-document transform before pushing.
            pull_modifier: Optional per-document transform before applying pulled documents.
            checkpoint_store: Where checkpoints persist. Defaults to an in-memory store.
        """
        self.collection = collection
        self.config = config
        self.replication_identifier = config.replication_identifier
        self.checkpoint_key = checkpoint_key(getattr(collection, "name", config.collection), self.replication_identifier)
        self.checkpoint_store = checkpoint_store or MemoryCheckpointStore()
        self.status = ReplicationStatus()
        self.events = EventHub()

        self._started = False
        self._remove_write_listener: Optional[Callable[[], None]] = None
        self._initial_done = asyncio.Event()
        self._cancelled = asyncio.Event()

        push_phase = None
        if push_handler is not None:
            push_config = config.push or PushConfig()
            push_phase = PushPhase(
                collection=collection,
                handler=push_handler,
                events=self.events,
                replication_identifier=self.replication_identifier,
                is_stopped=self.is_stopped,
                batch_size=push_config.batch_size,
                modifier=push_modifier,
            )

        pull_phase = None
        if pull_handler is not None:
            pull_config = config.pull or PullConfig()
            pull_phase = PullPhase(
                collection=collection,
                handler=pull_handler,
                checkpoint_store=self.checkpoint_store,
                checkpoint_key=self.checkpoint_key,
                events=self.events,
                replication_identifier=self.replication_identifier,
                is_stopped=self.is_stopped,
                checkpoint_field=pull_config.checkpoint_field,
                modifier=pull_modifier,
            )

        self.runner = CycleRunner(
            status=self.status,
            events=self.events,
            replication_identifier=self.replication_identifier,
            push_phase=push_phase,
            pull_phase=pull_phase,
            on_success=self._on_cycle_success,
        )
        self.trigger = CycleTrigger(
            self.runner,
            self.status,
            live=config.live,
            live_interval_ms=config.live_interval,
            retry_time_ms=config.retry_time,
        )

    # Event streams

    @property
    def received(self) -> EventStream[dict[str, Any]]:
        """Documents applied locally from the remote."""
        return self.events.received

    @property
    def sent(self) -> EventStream[dict[str, Any]]:
        """Documents accepted by the push handler."""
        return self.events.sent

    @property
    def errors(self) -> EventStream[Exception]:
        """Cycle failures."""
        return self.events.errors

    @property
    def active(self) -> ValueStream[bool]:
        """True while a cycle is running."""
        return self.events.active

    @property
    def canceled(self) -> ValueStream[bool]:
        """Becomes True once, when the replication is cancelled."""
        return self.events.canceled

    # Status

    def is_stopped(self) -> bool:
        return self.status.is_stopped

    @property
    def is_active(self) -> bool:
        return self.status.is_active

    @property
    def initial_replication_complete(self) -> bool:
        return self.status.initial_replication_complete

    @property
    def last_result(self) -> Optional[CycleResult]:
        return self.trigger.last_result

    @property
    def checkpoint(self) -> Any:
        """The persisted pull checkpoint, or None before the first pulled document."""
        return self.checkpoint_store.load(self.checkpoint_key)

    # Lifecycle

    def _activate(self) -> bool:
        if self.status.is_stopped:
            return False
        if not self._started:
            self._started = True
            if self.config.live:
                self._remove_write_listener = self.collection.on_write(self.trigger.on_write)
            logger.debug("[%s] replication started", self.replication_identifier)
        return True

    def start(self) -> None:
        """Start replicating; the first cycle begins on the next loop iteration."""
        if self._started or not self._activate():
            return
        self.trigger.fire("start")

    async def run(self) -> None:
        """Run a cycle now, or join the follow-up if one is running. No-op once cancelled."""
        if not self._activate():
            return
        await self.trigger.run("explicit")

    def notify_remote_change(self) -> None:
        """Back channel: the remote has new data, replicate soon."""
        if self._activate():
            self.trigger.fire("remote")

    async def cancel(self) -> None:
        """Stop replicating. Safe to call more than once."""
        self._cancel()

    def _cancel(self) -> None:
        if self.status.is_stopped:
            return
        self.status.is_stopped = True
        self.trigger.stop()
        if self._remove_write_listener is not None:
            self._remove_write_listener()
            self._remove_write_listener = None
        self._cancelled.set()

        self.events.active.emit(False)
        self.events.canceled.emit(True)
        self.events.close()
        logger.info("[%s] replication cancelled", self.replication_identifier)

    def _on_cycle_success(self, result: CycleResult) -> None:
        self._initial_done.set()
        if not self.config.live:
            self._cancel()

    async def await_initial_replication(self) -> None:
        """
        Wait for the first cycle in which every phase succeeded.

        Raises:
            ReplicationCancelledError: If cancelled before that happens.
        """
        if self.status.initial_replication_complete:
            return
        if self.status.is_stopped:
            raise ReplicationCancelledError(
                "Replication cancelled before initial replication", self.replication_identifier
            )

        done = asyncio.ensure_future(self._initial_done.wait())
        cancelled = asyncio.ensure_future(self._cancelled.wait())
        try:
            await asyncio.wait({done, cancelled}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for waiter in (done, cancelled):
                if not waiter.done():
                    waiter.cancel()

        if not self.status.initial_replication_complete:
            raise ReplicationCancelledError(
                "Replication cancelled before initial replication", self.replication_identifier
            )

    async def await_in_sync(self) -> None:
        """Wait for initial replication, then until no cycle or retry is outstanding."""
        await self.await_initial_replication()
        while not self.status.is_stopped and not self.trigger.idle:
            await self.trigger.wait_idle()


def replicate(
    collection: ReplicatedCollection,
    config: Union[ReplicationConfig, Mapping[str, Any]],
    *,
    push_handler: Optional[PushHandler] = None,
    pull_handler: Optional[PullHandler] = None,
    push_modifier: Optional[Modifier] = None,
    pull_modifier: Optional[Modifier] = None,
    checkpoint_store: Optional[CheckpointStore] = None,
) -> ReplicationState:
    """
    Create a replication and, unless config.auto_start is False, start it.

    Must be called from inside a running event loop when auto-starting.

    Args:
        collection: Local collection to replicate.
        config: ReplicationConfig or a mapping validated into one.
        push_handler: async or plain callable taking a list of documents.
        pull_handler: async or plain callable taking the checkpoint, returning a pull response.
        push_modifier: Optional per-document transform before pushing.
        pull_modifier: Optional per-document transform after pulling.
        checkpoint_store: Where checkpoints persist.

    Returns:
        The ReplicationState.
    """
    if not isinstance(config, ReplicationConfig):
        config = ReplicationConfig.model_validate(config)

    state = ReplicationState(
        collection,
        config,
        push_handler=push_handler,
        pull_handler=pull_handler,
        push_modifier=push_modifier,
        pull_modifier=pull_modifier,
        checkpoint_store=checkpoint_store,
    )
    if config.auto_start:
        state.start()
    return state
