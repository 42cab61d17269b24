# Replisync Event Hub
# Ordered multi-subscriber event streams for replication outcomes

import asyncio
import inspect
import logging
from collections.abc import AsyncIterator, Callable
from typing import Any, Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

_CLOSED = object()


class Subscription:
    """Handle returned by subscribe(); call unsubscribe() to stop receiving events."""

    def __init__(self, stream: "EventStream[Any]", callback: Callable[[Any], Any]):
        self._stream = stream
        self.callback = callback

    @property
    def active(self) -> bool:
        return self in self._stream._subscriptions

    def unsubscribe(self) -> None:
        if self in self._stream._subscriptions:
            self._stream._subscriptions.remove(self)


class EventStream(Generic[T]):
    """
    Ordered, multi-subscriber event channel.

    Subscribers are called in subscription order with each emitted value.
    A subscriber that raises is logged and skipped; the remaining subscribers
    still receive the value. Coroutine subscribers are scheduled as tasks so a
    slow subscriber never holds up the emitter.
    """

    def __init__(self, name: str):
        self.name = name
        self._subscriptions: list[Subscription] = []
        self._queues: list[asyncio.Queue] = []
        self._tasks: set[asyncio.Task] = set()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions) + len(self._queues)

    def subscribe(self, callback: Callable[[T], Any]) -> Subscription:
        """Register a callback for every future value."""
        subscription = Subscription(self, callback)
        if not self._closed:
            self._subscriptions.append(subscription)
        return subscription

    def emit(self, value: T) -> None:
        """Deliver value to every subscriber and listener."""
        if self._closed:
            return

        for queue in list(self._queues):
            queue.put_nowait(value)

        for subscription in list(self._subscriptions):
            self._deliver(subscription, value)

    def _deliver(self, subscription: Subscription, value: T) -> None:
        try:
            result = subscription.callback(value)
        except Exception:
            logger.exception("Subscriber of '%s' stream raised", self.name)
            return

        if inspect.isawaitable(result):
            task = asyncio.ensure_future(result)
            self._tasks.add(task)
            task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Async subscriber of '%s' stream raised", self.name, exc_info=exc)

    async def listen(self) -> AsyncIterator[T]:
        """
        Iterate over values emitted from now on.

        Iteration ends when the stream is closed.
        """
        queue: asyncio.Queue = asyncio.Queue()
        self._prime(queue)
        if self._closed:
            queue.put_nowait(_CLOSED)
        self._queues.append(queue)
        try:
            while True:
                item = await queue.get()
                if item is _CLOSED:
                    return
                yield item
        finally:
            if queue in self._queues:
                self._queues.remove(queue)

    def _prime(self, queue: asyncio.Queue) -> None:
        """Hook for streams that replay state to new listeners."""

    def close(self) -> None:
        """Stop delivering values and end all listeners."""
        if self._closed:
            return
        self._closed = True
        self._subscriptions.clear()
        for queue in self._queues:
            queue.put_nowait(_CLOSED)


class ValueStream(EventStream[T]):
    """
    Event stream that retains its latest value.

    New subscribers immediately receive the current value, and emitting a value
    equal to the current one is a no-op.
    """

    def __init__(self, name: str, initial: T):
        super().__init__(name)
        self._value = initial

    @property
    def value(self) -> T:
        return self._value

    def subscribe(self, callback: Callable[[T], Any]) -> Subscription:
        subscription = super().subscribe(callback)
        if subscription.active:
            self._deliver(subscription, self._value)
        return subscription

    def emit(self, value: T) -> None:
        if self._closed or value == self._value:
            return
        self._value = value
        super().emit(value)

    def _prime(self, queue: asyncio.Queue) -> None:
        queue.put_nowait(self._value)


class EventHub:
    """
    The observable surface of one replication.

    Streams are independent: ordering holds within a stream, not across them.
    """

    def __init__(self) -> None:
        self.received: EventStream[dict[str, Any]] = EventStream("received")
        self.sent: EventStream[dict[str, Any]] = EventStream("sent")
        self.errors: EventStream[Exception] = EventStream("errors")
        self.active: ValueStream[bool] = ValueStream("active", False)
        self.canceled: ValueStream[bool] = ValueStream("canceled", False)

    def close(self) -> None:
        """Close every stream; the canceled stream keeps its last value readable."""
        for stream in (self.received, self.sent, self.errors, self.active, self.canceled):
            stream.close()
