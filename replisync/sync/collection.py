# Replisync Collection Capability
# What the engine needs from local storage, plus an in-memory implementation

import abc
import logging
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

logger = logging.getLogger(__name__)

Document = dict[str, Any]
WriteListener = Callable[["WriteEvent"], None]


@dataclass
class PendingWrite:
    """A local write that has not yet been acknowledged by the push handler."""

    sequence: int
    document: Document
    written_at: str = field(default_factory=lambda: datetime.now().isoformat())


@dataclass
class WriteEvent:
    """Notification that a document was written locally."""

    document: Document
    is_local: bool = False  # local-scoped metadata documents are never replicated


class ReplicatedCollection(abc.ABC):
    """
    Local storage as seen by the replication engine.

    The storage layer owns the producer side of the pending-write queue; the
    engine only reads batches and marks them pushed. The queue is tracked per
    replication identifier: a write pushed by one replication is still pending
    for every other replication of the same collection.
    """

    name: str

    @abc.abstractmethod
    async def pending_writes(self, replication_identifier: str, limit: int) -> list[PendingWrite]:
        """Return up to limit writes not yet pushed by this replication, in insertion order."""

    @abc.abstractmethod
    async def mark_pushed(self, replication_identifier: str, writes: list[PendingWrite]) -> None:
        """Record that the remote of this replication accepted writes."""

    @abc.abstractmethod
    async def apply_remote(self, documents: list[Document]) -> None:
        """
        Overwrite local state with documents from the remote.

        Must not create pending writes or write notifications.
        """

    @abc.abstractmethod
    def on_write(self, listener: WriteListener) -> Callable[[], None]:
        """Register a write listener. Returns a function that removes it."""


class MemoryCollection(ReplicatedCollection):
    """
    In-memory collection keyed by a primary-key field.

    The write log lives as long as the collection, so a replication created
    later still pushes writes made before it existed.
    """

    def __init__(self, name: str, primary_key: str = "id"):
        self.name = name
        self.primary_key = primary_key
        self._documents: dict[Any, Document] = {}
        self._local_documents: dict[Any, Document] = {}
        self._writes: OrderedDict[int, PendingWrite] = OrderedDict()
        self._pushed: dict[str, set[int]] = {}
        self._sequence = 0
        self._listeners: list[WriteListener] = []

    def _key(self, document: Document) -> Any:
        try:
            return document[self.primary_key]
        except KeyError:
            raise ValueError(f"Document has no '{self.primary_key}' field: {document!r}") from None

    def upsert(self, document: Document, *, is_local: bool = False) -> Optional[PendingWrite]:
        """
        Write a document as the application would.

        Args:
            document: The document to store.
            is_local: Store as a local-scoped document that is never replicated.

        Returns:
            The queued PendingWrite, or None for local-scoped documents.
        """
        key = self._key(document)
        stored = dict(document)
        pending = None

        if is_local:
            self._local_documents[key] = stored
        else:
            self._documents[key] = stored
            self._sequence += 1
            pending = PendingWrite(sequence=self._sequence, document=dict(stored))
            self._writes[pending.sequence] = pending

        self._notify(WriteEvent(document=dict(stored), is_local=is_local))
        return pending

    def _notify(self, event: WriteEvent) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("Write listener of collection '%s' raised", self.name)

    def get(self, key: Any) -> Optional[Document]:
        """Get a replicated document by primary key."""
        document = self._documents.get(key)
        return dict(document) if document is not None else None

    def get_local(self, key: Any) -> Optional[Document]:
        """Get a local-scoped document by primary key."""
        document = self._local_documents.get(key)
        return dict(document) if document is not None else None

    def documents(self) -> list[Document]:
        """All replicated documents."""
        return [dict(doc) for doc in self._documents.values()]

    def _unpushed(self, replication_identifier: str) -> list[PendingWrite]:
        pushed = self._pushed.get(replication_identifier, set())
        return [write for sequence, write in self._writes.items() if sequence not in pushed]

    def pending_count(self, replication_identifier: str) -> int:
        """Number of writes the given replication has not pushed yet."""
        return len(self._unpushed(replication_identifier))

    async def pending_writes(self, replication_identifier: str, limit: int) -> list[PendingWrite]:
        return self._unpushed(replication_identifier)[:limit]

    async def mark_pushed(self, replication_identifier: str, writes: list[PendingWrite]) -> None:
        self._pushed.setdefault(replication_identifier, set()).update(write.sequence for write in writes)

    async def apply_remote(self, documents: list[Document]) -> None:
        for document in documents:
            self._documents[self._key(document)] = dict(document)

    def on_write(self, listener: WriteListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove
