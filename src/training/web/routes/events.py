"""Server-Sent Events stream of lifecycle events."""

import asyncio
import json
from typing import AsyncGenerator

from fastapi import APIRouter, HTTPException, status
from fastapi.responses import StreamingResponse

from training.core.events import student_audience, trainer_audience
from training.core.notifications import QueueNotificationChannel
from training.web.sessions import get_notification_channel

router = APIRouter(prefix="/api/events", tags=["events"])

AUDIENCES = {"student": student_audience, "trainer": trainer_audience}

KEEPALIVE_SECONDS = 30.0


async def event_stream(
    channel: QueueNotificationChannel,
    audience: str,
    keepalive: float = KEEPALIVE_SECONDS,
) -> AsyncGenerator[str, None]:
    """Generate SSE frames for one audience until the channel closes."""
    queue = channel.subscribe(audience)
    try:
        while True:
            try:
                event = await asyncio.wait_for(queue.get(), timeout=keepalive)
            except asyncio.TimeoutError:
                yield "event: keepalive\ndata: ping\n\n"
                continue

            if event is None:
                yield "event: close\ndata: Stream closed\n\n"
                return

            yield f"event: {event.event_type.value}\ndata: {json.dumps(event.to_dict())}\n\n"
    finally:
        channel.unsubscribe(audience, queue)


@router.get("/{audience_kind}/{user_id}")
async def stream_events(audience_kind: str, user_id: str) -> StreamingResponse:
    """Stream lifecycle events for a student or trainer.

    Events:
    - <event type>: SessionEvent as JSON (e.g. AnswerSubmitted)
    - keepalive: Sent every 30s to keep connection alive
    - close: The server is shutting down
    """
    audience_for = AUDIENCES.get(audience_kind)
    if audience_for is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Unknown audience '{audience_kind}', expected student or trainer",
        )

    return StreamingResponse(
        event_stream(get_notification_channel(), audience_for(user_id)),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",  # Disable nginx buffering
        },
    )
