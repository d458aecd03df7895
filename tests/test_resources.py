"""HTTP resource endpoint tests, including end-to-end notifications."""

import io
import json
import socket
import time
import zipfile
from pathlib import Path

import pytest
from fastapi.testclient import TestClient


def test_put_creates_file_and_get_returns_it(client: TestClient, root: Path) -> None:
    response = client.put("/notes/hello.txt", content=b"hello world")
    assert response.status_code == 200
    assert (root / "notes" / "hello.txt").read_bytes() == b"hello world"

    response = client.get("/notes/hello.txt")
    assert response.status_code == 200
    assert response.content == b"hello world"
    assert response.headers["content-type"].startswith("text/plain")


def test_put_without_extension_creates_directory(client: TestClient, root: Path) -> None:
    assert client.put("/photos").status_code == 200
    assert (root / "photos").is_dir()

    assert client.put("/archive.d/").status_code == 200
    assert (root / "archive.d").is_dir()


def test_put_existing_path_is_rejected(client: TestClient, root: Path) -> None:
    (root / "keep.txt").write_text("original")

    response = client.put("/keep.txt", content=b"replacement")

    assert response.status_code == 405
    assert (root / "keep.txt").read_text() == "original"


def test_post_replaces_existing_file(client: TestClient, root: Path) -> None:
    (root / "file.txt").write_text("a much longer original body")

    response = client.post("/file.txt", content=b"short")

    assert response.status_code == 200
    assert (root / "file.txt").read_text() == "short"


def test_post_missing_or_directory_is_rejected(client: TestClient, root: Path) -> None:
    (root / "folder").mkdir()

    assert client.post("/missing.txt", content=b"x").status_code == 405
    assert not (root / "missing.txt").exists()
    assert client.post("/folder", content=b"x").status_code == 405


def test_delete_removes_file_and_tree(client: TestClient, root: Path) -> None:
    (root / "d" / "sub").mkdir(parents=True)
    (root / "d" / "sub" / "a.txt").write_text("a")
    (root / "top.txt").write_text("t")

    assert client.delete("/top.txt").status_code == 200
    assert client.delete("/d").status_code == 200

    assert not (root / "top.txt").exists()
    assert not (root / "d").exists()


def test_delete_missing_is_bad_request(client: TestClient) -> None:
    assert client.delete("/nothing.txt").status_code == 400


def test_delete_symlink_keeps_its_target(client: TestClient, root: Path) -> None:
    (root / "real").mkdir()
    (root / "real" / "keep.txt").write_text("kept")
    (root / "link").symlink_to(root / "real", target_is_directory=True)

    assert client.delete("/link").status_code == 200

    assert not (root / "link").is_symlink()
    assert (root / "real" / "keep.txt").read_text() == "kept"


def test_put_below_a_file_is_rejected(client: TestClient, root: Path) -> None:
    (root / "a.txt").write_text("x")

    assert client.put("/a.txt/b.txt", content=b"y").status_code == 405
    assert client.put("/a.txt/sub").status_code == 405
    assert (root / "a.txt").read_text() == "x"


def test_get_missing_is_server_error(client: TestClient) -> None:
    response = client.get("/nothing.txt")

    assert response.status_code == 500
    assert response.json()["detail"] == "Something broke!"


def test_get_directory_lists_entries(client: TestClient, root: Path) -> None:
    (root / "b.txt").write_text("b")
    (root / "a.txt").write_text("a")
    (root / "sub").mkdir()

    response = client.get("/")

    assert response.status_code == 200
    assert response.headers["content-type"] == "application/json"
    assert response.json() == ["a.txt", "b.txt", "sub"]


def test_get_directory_as_archive(client: TestClient, root: Path) -> None:
    (root / "d" / "sub").mkdir(parents=True)
    (root / "d" / "a.txt").write_text("a")
    (root / "d" / "sub" / "b.txt").write_text("b")
    (root / "d" / ".secret").write_text("hidden")

    response = client.get("/d", headers={"Accept": "application/x-gtar"})

    assert response.status_code == 200
    assert response.headers["content-type"] == "application/zip"
    assert "archive.zip" in response.headers["content-disposition"]
    with zipfile.ZipFile(io.BytesIO(response.content)) as zf:
        assert set(zf.namelist()) == {"a.txt", "sub/", "sub/b.txt"}
        assert zf.read("a.txt") == b"a"


def test_head_matches_get_headers(client: TestClient, root: Path) -> None:
    (root / "page.html").write_text("<p>hi</p>")

    response = client.head("/page.html")

    assert response.status_code == 200
    assert response.content == b""
    assert response.headers["content-type"].startswith("text/html")
    assert response.headers["content-length"] == str(len("<p>hi</p>"))

    assert client.head("/missing.txt").status_code == 500


@pytest.mark.parametrize("method", ["get", "put", "post", "delete"])
def test_traversal_is_forbidden(client: TestClient, method: str) -> None:
    response = client.request(method.upper(), "/..%2F..%2Fetc%2Fpasswd")
    assert response.status_code == 403


def test_root_cannot_be_deleted(client: TestClient, root: Path) -> None:
    assert client.delete("/").status_code == 403
    assert root.is_dir()


def test_service_routes_shadow_files(client: TestClient, root: Path) -> None:
    (root / "api" / "v1" / "health").mkdir(parents=True)
    (root / "api" / "v1" / "health" / "live").write_text("not json")

    response = client.get("/api/v1/health/live")

    assert response.json() == {"status": "alive"}


class Subscriber:
    """Blocking TCP client for the notification channel."""

    def __init__(self, client: TestClient) -> None:
        channel = client.app.state.notification_channel
        self._socket = socket.create_connection((channel.host, channel.port), timeout=3.0)
        self._lines = self._socket.makefile("rb")
        deadline = time.monotonic() + 3.0
        while channel.subscriber_count < 1:
            assert time.monotonic() < deadline, "subscriber never registered"
            time.sleep(0.02)

    def wait_for(self, verbs: tuple[str, ...], file_path: str, body: str | None = None) -> dict:
        """Read envelopes until one matches a verb, the path and, if given, the body."""
        while True:
            line = self._lines.readline()
            assert line, "channel closed"
            label, payload = json.loads(line)
            if label[2] not in verbs or payload["filePath"] != file_path:
                continue
            if body is None or payload.get("bodyText") == body:
                return payload

    def close(self) -> None:
        self._lines.close()
        self._socket.close()


def test_request_mutations_reach_tcp_subscribers(client: TestClient) -> None:
    subscriber = Subscriber(client)
    try:
        client.put("/live.txt", content=b"first")
        created = subscriber.wait_for(("put",), "/live.txt", body="first")
        assert created["bodyText"] == "first"
        assert created["isPathDir"] is False

        client.post("/live.txt", content=b"second")
        assert subscriber.wait_for(("post",), "/live.txt", body="second")["isPathDir"] is False

        client.delete("/live.txt")
        deleted = subscriber.wait_for(("delete",), "/live.txt")
        assert "bodyText" not in deleted
    finally:
        subscriber.close()


def test_external_writes_reach_tcp_subscribers(client: TestClient, root: Path) -> None:
    """Changes made directly on disk are pushed like request-driven ones."""
    subscriber = Subscriber(client)
    try:
        (root / "outside").mkdir()
        assert subscriber.wait_for(("put",), "/outside")["isPathDir"] is True

        (root / "outside" / "note.md").write_text("# note")
        payload = subscriber.wait_for(("put", "post"), "/outside/note.md", body="# note")
        assert payload["bodyText"] == "# note"
    finally:
        subscriber.close()
