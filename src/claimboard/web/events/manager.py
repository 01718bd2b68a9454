"""EventManager - in-memory fan-out of project events to SSE subscribers."""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict

from .models import Event

logger = logging.getLogger(__name__)


def project_channel(project_id: int) -> str:
    return f"project:{project_id}"


class EventManager:
    """Per-process pub/sub; each subscriber owns a bounded queue."""

    def __init__(self, queue_size: int = 100) -> None:
        self._queue_size = queue_size
        self._channels: dict[str, set[asyncio.Queue[Event]]] = defaultdict(set)

    async def subscribe(self, channel: str) -> asyncio.Queue[Event]:
        queue: asyncio.Queue[Event] = asyncio.Queue(maxsize=self._queue_size)
        self._channels[channel].add(queue)
        return queue

    async def unsubscribe(self, channel: str, queue: asyncio.Queue[Event]) -> None:
        subscribers = self._channels.get(channel)
        if subscribers is None:
            return
        subscribers.discard(queue)
        if not subscribers:
            del self._channels[channel]

    def subscriber_count(self, channel: str) -> int:
        return len(self._channels.get(channel, ()))

    async def publish(self, channel: str, event: Event) -> int:
        """Deliver to every subscriber of ``channel``; returns how many received it."""
        event.channel = channel
        delivered = 0
        for queue in list(self._channels.get(channel, ())):
            try:
                queue.put_nowait(event)
            except asyncio.QueueFull:
                # Slow consumer: drop rather than block the publisher.
                logger.debug("Dropped %s on %s (subscriber queue full)", event.event_type, channel)
                continue
            delivered += 1
        return delivered

    async def publish_to_project(self, project_id: int, event: Event) -> int:
        return await self.publish(project_channel(project_id), event)


# Singleton instance
event_manager = EventManager()
