"""Liveness and readiness probes for the file service."""
import os
from pathlib import Path
from typing import Literal

from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel

router = APIRouter(prefix="/health", tags=["health"])


class LivenessResponse(BaseModel):
    """Liveness probe body; ``status`` is always ``alive``."""

    status: Literal["alive"]


class ReadinessCheck(BaseModel):
    """Outcome of one component check.

    Attributes:
        name: Component identifier, e.g. ``root:/srv/box`` or ``watcher``.
        status: ``ok`` or ``failed``.
        message: Failure reason, absent when ok.
    """

    name: str
    status: Literal["ok", "failed"]
    message: str | None = None


class PipelineStats(BaseModel):
    """Counters of the change notification pipeline.

    Attributes:
        subscribers: Bus subscriptions across all transports.
        tcp_subscribers: Connected TCP notification clients.
        sse_streams: Open SSE streams.
        dropped_events: Events discarded from full subscriber queues.
        coalesced_events: Watcher events merged by debouncing.
    """

    subscribers: int
    tcp_subscribers: int
    sse_streams: int
    dropped_events: int
    coalesced_events: int


class ReadinessResponse(BaseModel):
    """Readiness probe body."""

    status: Literal["ready", "not_ready"]
    checks: list[ReadinessCheck]
    pipeline: PipelineStats


def check_root(path: Path) -> ReadinessCheck:
    """Check that the managed root is a listable, writable directory."""
    name = f"root:{path}"
    try:
        if not path.is_dir():
            return ReadinessCheck(name=name, status="failed", message="Directory not found")
        next(path.iterdir(), None)
    except OSError as e:
        return ReadinessCheck(name=name, status="failed", message=str(e))

    if not os.access(path, os.W_OK):
        return ReadinessCheck(name=name, status="failed", message="Directory is read-only")
    return ReadinessCheck(name=name, status="ok")


def check_component(name: str, running: bool, message: str) -> ReadinessCheck:
    if running:
        return ReadinessCheck(name=name, status="ok")
    return ReadinessCheck(name=name, status="failed", message=message)


@router.get("/live", response_model=LivenessResponse)
async def liveness() -> LivenessResponse:
    """Report that the process is up."""
    return LivenessResponse(status="alive")


@router.get("/ready", response_model=ReadinessResponse)
async def readiness(request: Request) -> JSONResponse:
    """Report whether files can be served and changes delivered.

    Checks the managed root, the filesystem watcher and the TCP
    notification channel, and reports pipeline counters.

    Returns:
        200 when every check passes, 503 otherwise.
    """
    state = request.app.state
    checks = [
        check_root(state.settings.managed_root),
        check_component("watcher", state.watcher.is_running, "Watcher is not running"),
        check_component(
            "notification_channel",
            state.notification_channel.is_serving,
            "Notification channel is not listening",
        ),
    ]
    pipeline = PipelineStats(
        subscribers=state.event_bus.subscriber_count,
        tcp_subscribers=state.notification_channel.subscriber_count,
        sse_streams=state.broadcast_hub.active_streams,
        dropped_events=state.event_bus.dropped_events,
        coalesced_events=state.watcher.coalesced_events,
    )

    ready = all(check.status == "ok" for check in checks)
    body = ReadinessResponse(
        status="ready" if ready else "not_ready",
        checks=checks,
        pipeline=pipeline,
    )
    code = status.HTTP_200_OK if ready else status.HTTP_503_SERVICE_UNAVAILABLE
    return JSONResponse(content=body.model_dump(), status_code=code)
