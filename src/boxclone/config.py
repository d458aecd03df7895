"""Service configuration loaded from environment variables."""
from pathlib import Path

from pydantic import Field, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Service configuration loaded from environment variables.

    Attributes:
        root_dir: Directory exposed as the managed root.
        host: Bind address for the HTTP server.
        port: Port number for the HTTP server.
        tcp_host: Bind address for the notification channel.
        tcp_port: Port for the notification channel; 0 picks a free one.
        namespace: First element of every notification envelope label.
        debug: Enable debug logging and API documentation.
        log_json: Emit JSON log lines instead of console output.
        shutdown_timeout: Seconds to wait for graceful shutdown.
        event_debounce_ms: Debounce window for filesystem events.
        event_queue_size: Maximum size of each subscriber queue.
        event_max_subscribers: Maximum number of concurrent subscribers.
        watch_initial_scan: Announce pre-existing entries when the watcher starts.
        sse_heartbeat_interval: Seconds between SSE heartbeat events.
    """

    model_config = SettingsConfigDict(
        env_prefix="BOX_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    root_dir: Path = Path("box-clone")
    host: str = "127.0.0.1"
    port: int = Field(default=3000, ge=1, le=65535)
    tcp_host: str = "127.0.0.1"
    tcp_port: int = Field(default=6875, ge=0, le=65535)
    namespace: str = Field(default="box-clone", min_length=1)
    debug: bool = False
    log_json: bool = True
    shutdown_timeout: float = Field(default=30.0, gt=0)

    event_debounce_ms: int = Field(default=50, ge=0)
    event_queue_size: int = Field(default=100, ge=1)
    event_max_subscribers: int = Field(default=100, ge=1)
    watch_initial_scan: bool = True
    sse_heartbeat_interval: float = Field(default=15.0, gt=0)

    @computed_field
    @property
    def managed_root(self) -> Path:
        """Absolute, symlink-free form of the managed root.

        Returns:
            Resolved root directory path.
        """
        return self.root_dir.expanduser().resolve()
