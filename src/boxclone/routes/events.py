"""Server-Sent Events transport for change notifications."""

from fastapi import APIRouter, HTTPException, Request, status
from sse_starlette.sse import EventSourceResponse

from boxclone.events.bus import SubscriberLimitError
from boxclone.events.hub import BroadcastHub

router = APIRouter(prefix="/events", tags=["events"])

STREAM_HEADERS = {
    "Cache-Control": "no-cache",
    "X-Accel-Buffering": "no",
}


@router.get("/stream")
async def event_stream(request: Request) -> EventSourceResponse:
    """Stream change events to one client.

    Each change is an SSE message whose event name is the verb (put,
    post or delete) and whose data is the JSON payload the TCP channel
    sends. Idle streams get ``heartbeat`` messages.

    Raises:
        HTTPException: 503 when the subscriber limit is reached.
    """
    hub: BroadcastHub = request.app.state.broadcast_hub
    try:
        stream = await hub.open_stream()
    except SubscriberLimitError as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e)) from e

    return EventSourceResponse(
        stream,
        ping=hub.heartbeat_interval,
        ping_message_factory=hub.heartbeat,
        headers=STREAM_HEADERS,
    )
