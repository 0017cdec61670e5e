"""Fan-out of server-initiated JSON-RPC notifications to stream subscribers."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

logger = logging.getLogger(__name__)

QUEUE_SIZE = 100


class NotificationHub:
    """
    Each subscriber gets its own bounded queue. A slow subscriber loses its
    oldest messages rather than blocking publishers. ``None`` in a queue
    means the hub closed and the subscriber should stop.
    """

    def __init__(self, queue_size: int = QUEUE_SIZE):
        self.queue_size = queue_size
        self._subscribers: set[asyncio.Queue[dict[str, Any] | None]] = set()

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(self) -> asyncio.Queue[dict[str, Any] | None]:
        queue: asyncio.Queue[dict[str, Any] | None] = asyncio.Queue(maxsize=self.queue_size)
        self._subscribers.add(queue)
        logger.debug(f"Notification subscriber added ({len(self._subscribers)} total)")
        return queue

    def unsubscribe(self, queue: asyncio.Queue[dict[str, Any] | None]) -> None:
        self._subscribers.discard(queue)

    def publish(self, method: str, params: dict[str, Any]) -> None:
        message = {"jsonrpc": "2.0", "method": method, "params": params}
        for queue in list(self._subscribers):
            if queue.full():
                queue.get_nowait()
            queue.put_nowait(message)

    def log(self, level: str, logger_name: str, data: Any) -> None:
        """Publish an MCP ``notifications/message`` log entry."""
        self.publish("notifications/message", {"level": level, "logger": logger_name, "data": data})

    def close(self) -> None:
        """Tell every subscriber to stop and forget them."""
        for queue in list(self._subscribers):
            if queue.full():
                queue.get_nowait()
            queue.put_nowait(None)
        self._subscribers.clear()
