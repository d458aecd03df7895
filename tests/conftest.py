"""Pytest configuration and fixtures."""

import asyncio
import sys
import uuid
from collections.abc import AsyncIterator, Callable, Iterator
from datetime import UTC, datetime
from pathlib import Path

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import pytest
from fastapi.testclient import TestClient

from boxclone.app import create_app
from boxclone.config import Settings
from boxclone.events.types import ChangeEvent, ChangeKind, ChangeSource, TargetKind


@pytest.fixture
def root(tmp_path: Path) -> Path:
    """Create an empty managed root."""
    managed = tmp_path / "box-clone"
    managed.mkdir()
    return managed.resolve()


@pytest.fixture
def settings(root: Path) -> Settings:
    """Create test settings bound to a temporary root and ephemeral TCP port."""
    return Settings(
        root_dir=root,
        host="127.0.0.1",
        port=8000,
        tcp_port=0,
        debug=True,
        event_debounce_ms=10,
        watch_initial_scan=False,
    )


@pytest.fixture
def client(settings: Settings) -> Iterator[TestClient]:
    """Create test client with the lifespan (bus, watcher, channel) running."""
    app = create_app(settings)
    with TestClient(app) as test_client:
        yield test_client


def make_event(
    path: str = "/a.txt",
    kind: ChangeKind = ChangeKind.CREATED,
    target_kind: TargetKind = TargetKind.FILE,
    content: str | None = None,
) -> ChangeEvent:
    """Build a change event for bus and channel tests."""
    return ChangeEvent(
        id=str(uuid.uuid4()),
        kind=kind,
        target_kind=target_kind,
        path=path,
        content=content,
        timestamp=datetime.now(UTC),
        source=ChangeSource.REQUEST,
    )


async def drain(events: AsyncIterator[ChangeEvent], timeout: float = 0.1) -> list[ChangeEvent]:
    """Collect events until none arrives within the timeout.

    The timeout cancels the pending read, which closes the iterator, so
    call this last on a subscription.
    """
    collected: list[ChangeEvent] = []
    while True:
        try:
            collected.append(await asyncio.wait_for(anext(events), timeout))
        except (TimeoutError, StopAsyncIteration):
            return collected


async def wait_until(predicate: Callable[[], bool], timeout: float = 3.0) -> bool:
    """Poll a condition on the event loop until it holds or time runs out."""
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            return False
        await asyncio.sleep(0.02)
    return True
