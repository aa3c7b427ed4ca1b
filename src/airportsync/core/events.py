"""Async in-process event bus with per-topic queues and callback handlers.

Usage example:

    bus = EventBus(default_maxsize=16)
    sub = bus.subscribe("airports.sync")
    bus.add_handler("airports.sync", lambda payload: print(unpack(payload)))

    async def producer():
        await bus.publish("airports.sync", pack({"success": True}))
        await bus.close()

    async def consumer():
        async for env in sub:
            msg = unpack(env.payload)
            # process...

Notes
-----
- Each queue subscriber has its own bounded asyncio.Queue per topic.
- Backpressure policy is drop-oldest on publish if a subscriber queue is full.
- Handlers are scheduled with ``loop.call_soon`` so the publisher never runs
  subscriber code inline; a handler that raises is logged and skipped.
- Shutdown via close() signals all subscriptions to finish by sending a sentinel.
- Serialization helpers (pack/unpack) use msgpack.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from time import monotonic
from typing import Any, AsyncIterator, Callable, Dict, List

import msgpack

__all__ = [
    "EventBus",
    "Subscription",
    "Envelope",
    "BusMetrics",
    "Handler",
    "pack",
    "unpack",
]

logger = logging.getLogger(__name__)

Handler = Callable[[bytes], Any]


@dataclass(slots=True)
class Envelope:
    topic: str
    ts: float
    payload: bytes


@dataclass(slots=True)
class TopicStats:
    queue_len: int
    drops: int
    publishes: int
    deliveries: int
    handlers: int


@dataclass(slots=True)
class BusMetrics:
    topics: Dict[str, TopicStats]


_Sentinel = object()


class _TopicState:
    __slots__ = (
        "maxsize",
        "subscribers",
        "handlers",
        "drops",
        "publishes",
        "deliveries",
    )

    def __init__(self, maxsize: int) -> None:
        self.maxsize: int = max(1, int(maxsize))
        self.subscribers: List[asyncio.Queue[Envelope | object]] = []
        self.handlers: List[Handler] = []
        # metrics
        self.drops: int = 0
        self.publishes: int = 0
        self.deliveries: int = 0


def _force_put(q: asyncio.Queue[Envelope | object], item: object) -> bool:
    """Put *item* dropping the oldest entry if the queue is full.

    Returns True when an older entry was dropped.
    """
    dropped = False
    if q.full():
        try:
            q.get_nowait()
            dropped = True
        except asyncio.QueueEmpty:
            pass
    q.put_nowait(item)
    return dropped


class EventBus:
    """Async event bus with per-topic bounded queues and drop-oldest backpressure.

    Parameters
    ----------
    default_maxsize:
        Default queue size for new subscriptions (min 1).
    """

    def __init__(self, *, default_maxsize: int = 1024) -> None:
        self._default_maxsize = max(1, int(default_maxsize))
        self._topics: Dict[str, _TopicState] = {}
        self._lock = asyncio.Lock()
        self._closed = False

    def _state(self, topic: str) -> _TopicState:
        state = self._topics.get(topic)
        if state is None:
            state = _TopicState(self._default_maxsize)
            self._topics[topic] = state
        return state

    @property
    def closed(self) -> bool:
        return self._closed

    def subscribe(self, topic: str) -> "Subscription":
        """Create a queue subscription to a topic.

        Multiple subscribers per topic are supported; each gets its own queue.
        """
        if self._closed:
            raise RuntimeError("EventBus is closed")
        state = self._state(topic)
        queue: asyncio.Queue[Envelope | object] = asyncio.Queue(maxsize=state.maxsize)
        state.subscribers.append(queue)
        return Subscription(self, topic, queue)

    def add_handler(self, topic: str, handler: Handler) -> None:
        """Register *handler* to be called with each payload published on *topic*.

        Registering the same handler twice has no effect.
        """
        if self._closed:
            raise RuntimeError("EventBus is closed")
        state = self._state(topic)
        if handler not in state.handlers:
            state.handlers.append(handler)

    def remove_handler(self, topic: str, handler: Handler) -> None:
        state = self._topics.get(topic)
        if state is not None and handler in state.handlers:
            state.handlers.remove(handler)

    async def publish(self, topic: str, payload: bytes) -> None:
        """Publish a message to a topic.

        Applies drop-oldest per subscriber queue if full and schedules every
        registered handler on the running loop.
        """
        if self._closed:
            raise RuntimeError("EventBus is closed")

        env = Envelope(topic=topic, ts=monotonic(), payload=payload)
        loop = asyncio.get_running_loop()
        async with self._lock:
            state = self._state(topic)
            state.publishes += 1
            # Snapshot lists to tolerate modifications during iteration.
            for q in list(state.subscribers):
                if _force_put(q, env):
                    state.drops += 1
                state.deliveries += 1
            for handler in list(state.handlers):
                loop.call_soon(self._invoke, topic, handler, payload)
                state.deliveries += 1

    @staticmethod
    def _invoke(topic: str, handler: Handler, payload: bytes) -> None:
        try:
            result = handler(payload)
            if asyncio.iscoroutine(result):
                asyncio.ensure_future(result)
        except Exception:  # noqa: BLE001
            logger.exception("event handler failed (topic=%s)", topic)

    async def close(self) -> None:
        """Gracefully close the bus and signal subscribers to finish."""
        if self._closed:
            return
        self._closed = True
        async with self._lock:
            for state in self._topics.values():
                state.handlers.clear()
                for q in list(state.subscribers):
                    if q.full():
                        # Grow past the bound rather than drop a user message
                        q._queue.append(_Sentinel)  # type: ignore[attr-defined]
                    else:
                        q.put_nowait(_Sentinel)

    def metrics(self) -> BusMetrics:
        """Return per-topic metrics snapshot."""
        out: Dict[str, TopicStats] = {}
        for name, state in self._topics.items():
            # queue_len as max of subscriber queue sizes to reflect worst backlog
            max_qlen = max((q.qsize() for q in state.subscribers), default=0)
            out[name] = TopicStats(
                queue_len=max_qlen,
                drops=state.drops,
                publishes=state.publishes,
                deliveries=state.deliveries,
                handlers=len(state.handlers),
            )
        return BusMetrics(topics=out)

    def list_topics(self) -> Dict[str, int]:
        """Return mapping of topic -> active subscriber and handler count."""
        return {
            name: len(state.subscribers) + len(state.handlers)
            for name, state in self._topics.items()
        }

    async def _remove_subscription(
        self, topic: str, queue: asyncio.Queue[Envelope | object]
    ) -> None:
        async with self._lock:
            state = self._topics.get(topic)
            if not state:
                return
            try:
                state.subscribers.remove(queue)
            except ValueError:
                return


class Subscription:
    """A subscription that yields Envelopes as an async iterator."""

    def __init__(
        self,
        bus: EventBus,
        topic: str,
        queue: asyncio.Queue[Envelope | object],
    ) -> None:
        self._bus = bus
        self._topic = topic
        self._queue: asyncio.Queue[Envelope | object] = queue
        self._closed = False

    def __aiter__(self) -> AsyncIterator[Envelope]:
        return self

    async def __anext__(self) -> Envelope:
        if self._closed:
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is _Sentinel:
            raise StopAsyncIteration
        assert isinstance(item, Envelope)
        return item

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        # Wake an iterator that is awaiting the queue
        if self._queue.full():
            self._queue._queue.append(_Sentinel)  # type: ignore[attr-defined]
        else:
            self._queue.put_nowait(_Sentinel)
        await self._bus._remove_subscription(self._topic, self._queue)


# Serialization helpers -----------------------------------------------------


def pack(obj: Any) -> bytes:
    """Serialize an object to bytes using msgpack."""
    return msgpack.packb(obj, use_bin_type=True)


def unpack(b: bytes) -> Any:
    """Deserialize bytes into an object using msgpack."""
    return msgpack.unpackb(b, raw=False, strict_map_key=False)
