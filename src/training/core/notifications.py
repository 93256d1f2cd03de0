"""In-process notification channel.

Fans events out to per-audience asyncio queues; the SSE endpoint
subscribes one queue per open connection. A None item marks the end of
the stream.
"""

from __future__ import annotations

import asyncio

import structlog

from training.core.events import SessionEvent

logger = structlog.get_logger(__name__)


class QueueNotificationChannel:
    """Publish/subscribe over asyncio queues, keyed by audience."""

    def __init__(self, max_queue_size: int = 1000):
        self._max_queue_size = max_queue_size
        self._subscribers: dict[str, list[asyncio.Queue[SessionEvent | None]]] = {}

    def subscribe(self, audience: str) -> asyncio.Queue[SessionEvent | None]:
        queue: asyncio.Queue[SessionEvent | None] = asyncio.Queue(maxsize=self._max_queue_size)
        self._subscribers.setdefault(audience, []).append(queue)
        logger.debug("audience_subscribed", audience=audience)
        return queue

    def unsubscribe(self, audience: str, queue: asyncio.Queue[SessionEvent | None]) -> None:
        queues = self._subscribers.get(audience, [])
        if queue in queues:
            queues.remove(queue)
        if not queues:
            self._subscribers.pop(audience, None)

    def subscriber_count(self, audience: str) -> int:
        return len(self._subscribers.get(audience, []))

    async def publish(self, event: SessionEvent) -> None:
        queues = self._subscribers.get(event.audience, [])
        for queue in queues:
            if queue.full():
                # Slow consumer: drop its oldest event
                queue.get_nowait()
                logger.warning("event_dropped", audience=event.audience)
            queue.put_nowait(event)
        logger.debug(
            "event_published",
            event_type=event.event_type.value,
            audience=event.audience,
            session_id=event.session_id,
            subscribers=len(queues),
        )

    async def close(self) -> None:
        """Signal end of stream to every subscriber."""
        for queues in self._subscribers.values():
            for queue in queues:
                if queue.full():
                    queue.get_nowait()
                queue.put_nowait(None)
        self._subscribers.clear()
