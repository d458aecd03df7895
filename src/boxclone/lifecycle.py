"""Shutdown coordination for the HTTP server and notification channel."""
import asyncio
import signal

import structlog

logger = structlog.get_logger()

SHUTDOWN_SIGNALS = (signal.SIGTERM, signal.SIGINT)


class GracefulShutdown:
    """Turns process signals into a single awaitable shutdown request.

    Attributes:
        is_triggered: Whether shutdown has been requested.
        timeout: Seconds the server gets to finish in-flight requests.
    """

    def __init__(self, timeout: float = 30.0) -> None:
        """Initialize shutdown coordinator.

        Args:
            timeout: Seconds to wait for in-flight work after a signal.
        """
        self._event = asyncio.Event()
        self._timeout = timeout
        self._reason: str | None = None

    @property
    def is_triggered(self) -> bool:
        """Whether shutdown has been requested."""
        return self._event.is_set()

    @property
    def timeout(self) -> float:
        """Seconds the server gets to finish in-flight requests."""
        return self._timeout

    @property
    def reason(self) -> str | None:
        """What requested the shutdown, if anything has."""
        return self._reason

    def install(self, loop: asyncio.AbstractEventLoop) -> None:
        """Route SIGTERM and SIGINT to :meth:`trigger`.

        Args:
            loop: Running event loop that owns the signal handlers.
        """
        for sig in SHUTDOWN_SIGNALS:
            loop.add_signal_handler(sig, self.trigger, sig.name)

    def trigger(self, reason: str = "requested") -> None:
        """Request shutdown. Idempotent; only the first reason is kept.

        Args:
            reason: Label for the log line, usually a signal name.
        """
        if self._event.is_set():
            return
        self._reason = reason
        logger.info("shutdown_triggered", reason=reason)
        self._event.set()

    async def wait_for_trigger(self) -> None:
        """Block until :meth:`trigger` is called."""
        await self._event.wait()
