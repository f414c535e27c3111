# src/runboard/services/presence.py

"""Live viewer count with fan-out to every connected subscriber."""

from __future__ import annotations

import logging
from typing import Any, Protocol

from starlette.websockets import WebSocketDisconnect

logger = logging.getLogger(__name__)

USER_COUNT_EVENT = "userCount"


class Subscriber(Protocol):
    """Anything that can receive a JSON message, e.g. a Starlette WebSocket."""

    async def send_json(self, data: Any) -> None: ...


class PresenceBroadcaster:
    """Owns the connected-viewer counter and the subscriber registry.

    The counter is only mutated by ``connect`` and ``disconnect``, which run
    on the event loop without awaiting between the mutation and the start of
    the broadcast, so every broadcast carries the value just written.
    """

    def __init__(self) -> None:
        self._count = 0
        self._subscribers: list[Subscriber] = []

    @property
    def count(self) -> int:
        return self._count

    @property
    def subscribers(self) -> tuple[Subscriber, ...]:
        return tuple(self._subscribers)

    async def connect(self, subscriber: Subscriber) -> int:
        """Register a new viewer and push the new count to everyone."""
        self._subscribers.append(subscriber)
        self._count += 1
        count = self._count
        logger.info("Viewer connected. Total users: %d", count)
        await self.broadcast(count)
        return count

    async def disconnect(self, subscriber: Subscriber) -> int:
        """Forget a viewer and push the new count to those remaining.

        The count never drops below zero, even for unknown subscribers.
        """
        self._remove(subscriber)
        self._count = max(0, self._count - 1)
        count = self._count
        logger.info("Viewer disconnected. Total users: %d", count)
        await self.broadcast(count)
        return count

    async def broadcast(self, count: int) -> None:
        """Send ``count`` to every registered subscriber.

        A subscriber that fails to receive is dropped from the registry; its
        own disconnect still adjusts the count.
        """
        message = {"event": USER_COUNT_EVENT, "data": count}
        for subscriber in tuple(self._subscribers):
            try:
                await subscriber.send_json(message)
            except (WebSocketDisconnect, RuntimeError, ConnectionError, OSError) as e:
                logger.warning(
                    "Dropping subscriber after failed send: %s",
                    e,
                    extra={"error_type": type(e).__name__},
                )
                self._remove(subscriber)

    def _remove(self, subscriber: Subscriber) -> None:
        try:
            self._subscribers.remove(subscriber)
        except ValueError:
            pass
