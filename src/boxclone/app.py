"""FastAPI application factory and lifespan management."""

import asyncio
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI

from boxclone.config import Settings
from boxclone.events import BroadcastHub, EventBus, FilesystemWatcher, NotificationChannel
from boxclone.middleware.logging import RequestLoggingMiddleware
from boxclone.routes import events, health, resources
from boxclone.storage.executor import FilesystemExecutor

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Manage application lifecycle events.

    Builds the change pipeline on startup: one event bus shared by the
    executor (request-side producer), the broadcast hub (watcher-side
    producer and SSE consumer) and the TCP notification channel. Starts
    the channel and the watcher, and tears both down on shutdown.

    Args:
        app: FastAPI application instance.

    Yields:
        None during application runtime.
    """
    settings: Settings = app.state.settings
    root = settings.managed_root
    logger.info("api_startup", host=settings.host, port=settings.port, root=str(root))

    if not root.exists():
        root.mkdir(parents=True)
        logger.info("managed_root_created", root=str(root))

    event_bus = EventBus(
        queue_size=settings.event_queue_size,
        max_subscribers=settings.event_max_subscribers,
    )
    executor = FilesystemExecutor(root, event_bus)
    broadcast_hub = BroadcastHub(
        event_bus,
        root,
        heartbeat_interval=settings.sse_heartbeat_interval,
    )
    channel = NotificationChannel(
        event_bus,
        host=settings.tcp_host,
        port=settings.tcp_port,
        namespace=settings.namespace,
    )

    loop = asyncio.get_running_loop()
    watcher = FilesystemWatcher(
        root=root,
        loop=loop,
        on_event=broadcast_hub.on_raw_event,
        debounce_ms=settings.event_debounce_ms,
        initial_scan=settings.watch_initial_scan,
    )

    app.state.event_bus = event_bus
    app.state.executor = executor
    app.state.broadcast_hub = broadcast_hub
    app.state.notification_channel = channel
    app.state.watcher = watcher

    await channel.start()
    watcher.start()

    try:
        yield
    finally:
        watcher.stop()
        await channel.stop()
        await broadcast_hub.shutdown()
        logger.info("api_shutdown")


def create_app(settings: Settings | None = None) -> FastAPI:
    """Factory function to create configured FastAPI application.

    Service routes are registered before the catch-all resource routes,
    so they shadow files at the same paths.

    Args:
        settings: Configuration instance. Creates default if None.

    Returns:
        Configured FastAPI application.
    """
    if settings is None:
        settings = Settings()

    app = FastAPI(
        title="box-clone",
        version="0.1.0",
        lifespan=lifespan,
        docs_url="/api/v1/docs" if settings.debug else None,
        redoc_url=None,
        openapi_url="/api/v1/openapi.json" if settings.debug else None,
    )
    app.state.settings = settings

    app.add_middleware(RequestLoggingMiddleware)

    app.include_router(health.router, prefix="/api/v1")
    app.include_router(events.router, prefix="/api/v1")
    app.include_router(resources.router)

    return app
