"""Entry point for the box-clone server."""

import asyncio
import contextlib
import sys

import structlog
import uvicorn

from boxclone.app import create_app
from boxclone.config import Settings
from boxclone.lifecycle import GracefulShutdown
from boxclone.logging import configure_logging

logger = structlog.get_logger()


async def serve(settings: Settings) -> None:
    """Run uvicorn with graceful shutdown support.

    The notification channel and the watcher start and stop with the
    application lifespan; SIGTERM/SIGINT ask uvicorn to exit, which
    runs that teardown.

    Args:
        settings: Server configuration.
    """
    app = create_app(settings)
    shutdown = GracefulShutdown(timeout=settings.shutdown_timeout)

    config = uvicorn.Config(
        app,
        host=settings.host,
        port=settings.port,
        log_level="warning",
        access_log=False,
        timeout_graceful_shutdown=int(settings.shutdown_timeout),
    )
    server = uvicorn.Server(config)

    shutdown.install(asyncio.get_running_loop())

    async def shutdown_server() -> None:
        """Wait for shutdown signal and stop server."""
        await shutdown.wait_for_trigger()
        server.should_exit = True

    stopper = asyncio.create_task(shutdown_server())
    try:
        await server.serve()
    finally:
        stopper.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await stopper

    logger.info("server_exited", reason=shutdown.reason)


def main() -> None:
    """Entry point for python -m boxclone.

    Settings come from BOX_* environment variables, an optional .env
    file, and command-line flags such as ``--root_dir``.
    """
    settings = Settings(_cli_parse_args=True)  # type: ignore[call-arg]
    configure_logging(debug=settings.debug, json_logs=settings.log_json)
    logger.info(
        "settings_loaded",
        root=str(settings.managed_root),
        http=f"{settings.host}:{settings.port}",
        tcp=f"{settings.tcp_host}:{settings.tcp_port}",
    )

    with contextlib.suppress(KeyboardInterrupt):
        asyncio.run(serve(settings))

    sys.exit(0)


if __name__ == "__main__":
    main()
