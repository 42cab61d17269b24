# Replisync Phases
# Push and pull loops that make up one replication cycle

import logging
from collections.abc import Callable
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from replisync.errors import (
    MalformedResponseError,
    PullHandlerError,
    PushHandlerError,
    ReplicationCancelledError,
    StorageError,
)
from replisync.sync.checkpoint import CheckpointStore
from replisync.sync.collection import Document, PendingWrite, ReplicatedCollection
from replisync.sync.events import EventHub
from replisync.utils.callables import call_maybe_async

logger = logging.getLogger(__name__)

PushHandler = Callable[[list[Document]], Any]
PullHandler = Callable[[Any], Any]
Modifier = Callable[[Document], Any]


class PullResponse(BaseModel):
    """What a pull handler returns: one batch plus whether more is waiting."""

    model_config = ConfigDict(populate_by_name=True)

    documents: list[dict[str, Any]]
    has_more_documents: bool = Field(alias="hasMoreDocuments", strict=True)


def parse_pull_response(raw: Any, replication_identifier: str = "", checkpoint: Any = None) -> PullResponse:
    """
    Validate a pull handler result.

    Raises:
        MalformedResponseError: If the result is not a valid pull response.
    """
    try:
        return PullResponse.model_validate(raw)
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(part) for part in err['loc']) or 'response'}: {err['msg']}" for err in e.errors()
        )
        raise MalformedResponseError(
            f"Malformed pull response: {problems}",
            replication_identifier,
            checkpoint=checkpoint,
        ) from e


async def _apply_modifier(modifier: Optional[Modifier], documents: list[Document]) -> list[Document]:
    if modifier is None:
        return list(documents)
    modified = []
    for document in documents:
        result = await call_maybe_async(modifier, document)
        if result is not None:
            modified.append(result)
    return modified


class _Phase:
    """Shared plumbing: identity, event hub and cooperative cancellation."""

    def __init__(
        self,
        *,
        collection: ReplicatedCollection,
        events: EventHub,
        replication_identifier: str,
        is_stopped: Callable[[], bool],
    ):
        self.collection = collection
        self.events = events
        self.replication_identifier = replication_identifier
        self._is_stopped = is_stopped

    def _check_cancelled(self) -> None:
        if self._is_stopped():
            raise ReplicationCancelledError("Replication cancelled", self.replication_identifier)


class PushPhase(_Phase):
    """
    Drain pending local writes to the push handler.

    A batch is acknowledged as a whole: it is marked pushed only after the
    handler returns, and a failing handler leaves every write in it pending.
    """

    def __init__(
        self,
        *,
        collection: ReplicatedCollection,
        handler: PushHandler,
        events: EventHub,
        replication_identifier: str,
        is_stopped: Callable[[], bool],
        batch_size: int = 5,
        modifier: Optional[Modifier] = None,
    ):
        super().__init__(
            collection=collection,
            events=events,
            replication_identifier=replication_identifier,
            is_stopped=is_stopped,
        )
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        self.handler = handler
        self.batch_size = batch_size
        self.modifier = modifier

    async def run(self) -> int:
        """
        Push until the pending queue is empty.

        Returns:
            Number of documents handed to the push handler.
        """
        pushed = 0
        while True:
            self._check_cancelled()
            writes = await self._next_batch()
            if not writes:
                return pushed

            try:
                documents = await _apply_modifier(self.modifier, [w.document for w in writes])
            except Exception as e:
                raise PushHandlerError(
                    f"Push modifier failed: {e}", self.replication_identifier, batch_size=len(writes)
                ) from e

            self._check_cancelled()
            if documents:
                logger.debug("[%s] pushing %d documents", self.replication_identifier, len(documents))
                try:
                    await call_maybe_async(self.handler, documents)
                except Exception as e:
                    raise PushHandlerError(
                        f"Push handler failed: {e}", self.replication_identifier, batch_size=len(documents)
                    ) from e

            # Result of an in-flight call is discarded once cancelled
            self._check_cancelled()
            await self._mark_pushed(writes)

            for document in documents:
                self.events.sent.emit(document)
            pushed += len(documents)

    async def _next_batch(self) -> list[PendingWrite]:
        try:
            return await self.collection.pending_writes(self.replication_identifier, self.batch_size)
        except Exception as e:
            raise StorageError(f"Cannot read pending writes: {e}", self.replication_identifier) from e

    async def _mark_pushed(self, writes: list[PendingWrite]) -> None:
        try:
            await self.collection.mark_pushed(self.replication_identifier, writes)
        except Exception as e:
            raise StorageError(f"Cannot mark writes as pushed: {e}", self.replication_identifier) from e


class PullPhase(_Phase):
    """
    Fetch remote changes batch by batch and advance the checkpoint.

    Pulled documents replace local ones unconditionally; the remote has
    already resolved any conflict.
    """

    def __init__(
        self,
        *,
        collection: ReplicatedCollection,
        handler: PullHandler,
        checkpoint_store: CheckpointStore,
        checkpoint_key: str,
        events: EventHub,
        replication_identifier: str,
        is_stopped: Callable[[], bool],
        checkpoint_field: str = "updated_at",
        modifier: Optional[Modifier] = None,
    ):
        super().__init__(
            collection=collection,
            events=events,
            replication_identifier=replication_identifier,
            is_stopped=is_stopped,
        )
        self.handler = handler
        self.checkpoint_store = checkpoint_store
        self.checkpoint_key = checkpoint_key
        self.checkpoint_field = checkpoint_field
        self.modifier = modifier

    async def run(self) -> Any:
        """
        Pull until the handler reports no more documents.

        Returns:
            The checkpoint after the last batch (None if nothing was ever pulled).
        """
        while True:
            self._check_cancelled()
            checkpoint = self._load_checkpoint()

            try:
                raw = await call_maybe_async(self.handler, checkpoint)
            except Exception as e:
                raise PullHandlerError(
                    f"Pull handler failed: {e}", self.replication_identifier, checkpoint=checkpoint
                ) from e

            self._check_cancelled()
            response = parse_pull_response(raw, self.replication_identifier, checkpoint)
            documents = response.documents

            if response.has_more_documents and not documents:
                raise MalformedResponseError(
                    "Pull response reports more documents but returned none",
                    self.replication_identifier,
                    checkpoint=checkpoint,
                )

            new_checkpoint = self._next_checkpoint(checkpoint, documents)

            try:
                to_apply = await _apply_modifier(self.modifier, documents)
            except Exception as e:
                raise PullHandlerError(
                    f"Pull modifier failed: {e}", self.replication_identifier, checkpoint=checkpoint
                ) from e

            self._check_cancelled()
            if to_apply:
                try:
                    await self.collection.apply_remote(to_apply)
                except Exception as e:
                    raise StorageError(f"Cannot apply pulled documents: {e}", self.replication_identifier) from e

            for document in to_apply:
                self.events.received.emit(document)

            if new_checkpoint != checkpoint:
                self._save_checkpoint(new_checkpoint)
                logger.debug("[%s] checkpoint advanced to %r", self.replication_identifier, new_checkpoint)

            if not response.has_more_documents:
                return new_checkpoint

    def _next_checkpoint(self, checkpoint: Any, documents: list[Document]) -> Any:
        """Highest checkpoint field value seen, never lower than the current checkpoint."""
        if not documents:
            return checkpoint
        try:
            values = [doc[self.checkpoint_field] for doc in documents]
            highest = max(values)
            if checkpoint is not None:
                highest = max(highest, checkpoint)
        except KeyError as e:
            raise MalformedResponseError(
                f"Pulled document is missing checkpoint field '{self.checkpoint_field}'",
                self.replication_identifier,
                checkpoint=checkpoint,
            ) from e
        except TypeError as e:
            raise MalformedResponseError(
                f"Checkpoint field '{self.checkpoint_field}' values are not comparable: {e}",
                self.replication_identifier,
                checkpoint=checkpoint,
            ) from e
        return highest

    def _load_checkpoint(self) -> Any:
        try:
            return self.checkpoint_store.load(self.checkpoint_key)
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Cannot load checkpoint: {e}", self.replication_identifier) from e

    def _save_checkpoint(self, value: Any) -> None:
        try:
            self.checkpoint_store.save(self.checkpoint_key, value)
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Cannot save checkpoint: {e}", self.replication_identifier) from e
