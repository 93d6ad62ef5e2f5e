import socket
import threading
import time

import httpx
import pytest

from livewatch.core.errors import AuthError
from livewatch.core.oauth_server import BOUNCE_PAGE, CONFIRMATION, CaptureServer, gen_url


class Running:
    """Runs CaptureServer.serve in a background thread."""

    def __init__(self, server: CaptureServer) -> None:
        self.server = server
        self.persisted: list[str] = []
        self.result = None
        self.error: BaseException | None = None
        server.bind()
        self.base = f"http://127.0.0.1:{server.address[1]}"
        self.thread = threading.Thread(target=self._serve, daemon=True)
        self.thread.start()

    def _serve(self) -> None:
        try:
            self.result = self.server.serve(self.persisted.append)
        except BaseException as e:
            self.error = e

    def get(self, path: str) -> httpx.Response:
        return httpx.get(self.base + path, timeout=5, trust_env=False)

    def join(self) -> None:
        self.thread.join(timeout=5)
        assert not self.thread.is_alive()


@pytest.fixture
def running():
    instances = []

    def start(**kwargs) -> Running:
        kwargs.setdefault("state", "s1")
        instance = Running(CaptureServer("127.0.0.1", 0, **kwargs))
        instances.append(instance)
        return instance

    yield start
    for instance in instances:
        instance.server.close()


def test_redirect_serves_bounce_page(running):
    r = running()

    plain = r.get("/redirect")
    with_query = r.get("/redirect?access_token=ignored&scope=x")

    for response in (plain, with_query):
        assert response.status_code == 200
        assert response.content == BOUNCE_PAGE
        assert response.headers["content-length"] == str(len(BOUNCE_PAGE))
    assert r.thread.is_alive()
    assert r.persisted == []

    r.get("/capture?access_token=done&state=s1")
    r.join()


def test_capture_persists_token_and_stops(running):
    r = running()

    response = r.get("/capture?access_token=XYZ&scope=user%3Aread%3Afollows&state=s1")
    r.join()

    assert response.status_code == 200
    assert response.content == CONFIRMATION
    assert r.error is None
    assert r.persisted == ["XYZ"]
    assert r.result.access_token == "XYZ"
    assert r.result.scopes == {"user:read:follows"}


def test_request_without_token_keeps_waiting(running):
    r = running()

    assert r.get("/favicon.ico").status_code == 404
    assert r.get("/capture?scope=x").status_code == 404
    assert r.thread.is_alive()

    r.get("/capture?access_token=abc&state=s1")
    r.join()
    assert r.persisted == ["abc"]


def test_state_mismatch_is_ignored(running):
    r = running()

    assert r.get("/capture?access_token=evil&state=other").status_code == 400
    assert r.thread.is_alive()

    r.get("/capture?access_token=good&state=s1")
    r.join()
    assert r.persisted == ["good"]


def test_malformed_request_does_not_stop_loop(running):
    r = running()

    with socket.create_connection(("127.0.0.1", r.server.address[1]), timeout=5) as sock:
        sock.sendall(b"garbage\r\n\r\n")
        sock.recv(1024)
    assert r.thread.is_alive()

    r.get("/capture?access_token=ok&state=s1")
    r.join()
    assert r.persisted == ["ok"]


def test_denied_authorization_raises(running):
    r = running()

    r.get("/capture?error=access_denied&error_description=The+user+denied+you+access&state=s1")
    r.join()

    assert isinstance(r.error, AuthError)
    assert "denied" in str(r.error)
    assert r.persisted == []


def test_timeout_raises():
    server = CaptureServer("127.0.0.1", 0, timeout=0.2)
    persisted: list[str] = []

    with pytest.raises(AuthError, match="No redirect"):
        server.serve(persisted.append)
    assert persisted == []


def test_bind_failure_is_auth_error():
    first = CaptureServer("127.0.0.1", 0)
    first.bind()
    try:
        second = CaptureServer("127.0.0.1", first.address[1])
        with pytest.raises(AuthError, match="Cannot listen"):
            second.bind()
    finally:
        first.close()


def test_gen_url():
    url = gen_url("cid", "http://localhost:5454/redirect", ["user:read:follows"], "st")

    assert url.startswith("https://id.twitch.tv/oauth2/authorize?client_id=cid")
    assert "response_type=token" in url
    assert "redirect_uri=http%3A%2F%2Flocalhost%3A5454%2Fredirect" in url
    assert "scope=user%3Aread%3Afollows" in url
    assert url.endswith("&state=st")


def test_idle_connection_does_not_block_capture(running):
    r = running(request_timeout=0.5)

    with socket.create_connection(("127.0.0.1", r.server.address[1]), timeout=5):
        response = r.get("/capture?access_token=late&state=s1")
        r.join()

    assert response.status_code == 200
    assert r.persisted == ["late"]


def test_idle_connection_does_not_outlive_timeout():
    server = CaptureServer("127.0.0.1", 0, timeout=1.0)
    server.bind()

    with socket.create_connection(("127.0.0.1", server.address[1]), timeout=5):
        started = time.monotonic()
        with pytest.raises(AuthError, match="No redirect"):
            server.serve(lambda token: None)
        elapsed = time.monotonic() - started

    assert elapsed < 3


def test_persist_failure_is_auth_error():
    server = CaptureServer("127.0.0.1", 0)
    server.bind()
    url = f"http://127.0.0.1:{server.address[1]}/capture?access_token=abc"

    def persist(token: str) -> None:
        raise PermissionError("read-only cache dir")

    client = threading.Thread(
        target=lambda: httpx.get(url, timeout=5, trust_env=False), daemon=True
    )
    client.start()
    with pytest.raises(AuthError, match="Cannot save the access token"):
        server.serve(persist)
    client.join(timeout=5)
