"""Typed completion channel on top of :class:`~airportsync.core.events.EventBus`."""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict

from airportsync.core.events import EventBus, Subscription
from airportsync.core.models import SyncCompleted

__all__ = ["CompletionChannel", "SYNC_TOPIC"]

logger = logging.getLogger(__name__)

SYNC_TOPIC = "airports.sync"

CompletionHandler = Callable[[SyncCompleted], Any]


class CompletionChannel:
    """Delivers :class:`SyncCompleted` events to any number of listeners.

    Handlers receive the decoded event and run on the event loop after the
    publisher has moved on. Consumers that prefer pulling can iterate
    :meth:`stream` and decode envelopes with ``SyncCompleted.from_payload``.
    """

    def __init__(self, bus: EventBus, *, topic: str = SYNC_TOPIC) -> None:
        self._bus = bus
        self._topic = topic
        # handler -> bus-level wrapper, so unsubscribe can find the wrapper
        self._wrappers: Dict[CompletionHandler, Callable[[bytes], Any]] = {}

    @property
    def topic(self) -> str:
        return self._topic

    async def publish(self, event: SyncCompleted) -> None:
        logger.debug("publish %s: %s", self._topic, event)
        await self._bus.publish(self._topic, event.to_payload())

    def subscribe(self, handler: CompletionHandler) -> None:
        if handler in self._wrappers:
            return

        def _wrapper(payload: bytes) -> Any:
            return handler(SyncCompleted.from_payload(payload))

        self._wrappers[handler] = _wrapper
        self._bus.add_handler(self._topic, _wrapper)

    def unsubscribe(self, handler: CompletionHandler) -> None:
        wrapper = self._wrappers.pop(handler, None)
        if wrapper is not None:
            self._bus.remove_handler(self._topic, wrapper)

    def stream(self) -> Subscription:
        return self._bus.subscribe(self._topic)
