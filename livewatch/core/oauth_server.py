"""Local capture server for the Twitch implicit grant flow.

Twitch redirects the browser to ``http://localhost:<port>/redirect#access_token=...``.
The fragment never reaches a server, so ``/redirect`` serves a bounce page
that re-requests ``/capture?access_token=...`` and the token is read from
the query string of that second request.
"""

from __future__ import annotations

import logging
import secrets
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from http.server import BaseHTTPRequestHandler, HTTPServer
from pathlib import Path
from urllib.parse import parse_qs, quote, urlparse

from livewatch.core.errors import AuthError

logger = logging.getLogger("livewatch.OAuth")

REDIRECT_PATH = "/redirect"
BOUNCE_PAGE = (Path(__file__).parent / "redirect.html").read_bytes()
CONFIRMATION = b"You can now close this page"
REQUEST_TIMEOUT = 5.0

AUTHORIZE_URL = "https://id.twitch.tv/oauth2/authorize"


def gen_url(client_id: str, redirect_uri: str, scopes: list[str], state: str | None = None) -> str:
    """Build the implicit grant authorization URL."""
    scope_str = "+".join(s.replace(":", "%3A") for s in scopes)
    url = (
        f"{AUTHORIZE_URL}"
        f"?client_id={client_id}"
        f"&redirect_uri={quote(redirect_uri, safe='')}"
        f"&response_type=token"
        f"&scope={scope_str}"
        f"&force_verify=true"
    )
    if state:
        url += f"&state={quote(state, safe='')}"
    return url


def new_state() -> str:
    return secrets.token_urlsafe(16)


@dataclass(frozen=True)
class CaptureResult:
    """Token and scopes taken from the redirect."""

    access_token: str
    scopes: frozenset[str] = field(default_factory=frozenset)


class _CaptureHandler(BaseHTTPRequestHandler):
    server: _CaptureHTTPServer
    protocol_version = "HTTP/1.1"

    def setup(self) -> None:
        # Socket timeout for reads, so an idle preconnect cannot stall the loop
        self.timeout = self.server.request_timeout
        super().setup()

    def do_GET(self) -> None:
        parsed = urlparse(self.path)

        if parsed.path == REDIRECT_PATH:
            self._reply(200, BOUNCE_PAGE, "text/html; charset=utf-8")
            return

        params = parse_qs(parsed.query)

        if "error" in params:
            description = params.get("error_description", params["error"])[0]
            self.server.error = AuthError(f"Authorization denied: {description}")
            self._reply(200, f"Authorization failed: {description}".encode())
            return

        token = params.get("access_token", [""])[0]
        if not token:
            logger.debug(f"Ignoring request without access_token: {parsed.path}")
            self._reply(404, b"Waiting for authorization")
            return

        expected_state = self.server.expected_state
        if expected_state is not None and params.get("state", [""])[0] != expected_state:
            logger.warning("Ignoring redirect with mismatched state")
            self._reply(400, b"State mismatch")
            return

        scopes = frozenset(params.get("scope", [""])[0].split())
        self.server.result = CaptureResult(access_token=token, scopes=scopes)
        self._reply(200, CONFIRMATION)

    def _reply(self, status: int, body: bytes, content_type: str = "text/plain; charset=utf-8") -> None:
        self.send_response(status)
        self.send_header("Content-Type", content_type)
        self.send_header("Content-Length", str(len(body)))
        self.send_header("Connection", "close")
        self.end_headers()
        self.wfile.write(body)
        self.wfile.flush()

    def log_message(self, format: str, *args) -> None:
        # request lines carry the token
        pass


class _CaptureHTTPServer(HTTPServer):
    result: CaptureResult | None = None
    error: AuthError | None = None
    expected_state: str | None = None
    request_timeout: float = REQUEST_TIMEOUT

    def handle_error(self, request, client_address) -> None:
        logger.exception(f"Error handling capture request from {client_address[0]}")


class CaptureServer:
    """Blocking accept loop that waits for exactly one token redirect.

    ``serve()`` returns only after a token was captured and persisted with
    *persist*, or raises AuthError (denied, timed out).
    """

    def __init__(
        self,
        host: str = "localhost",
        port: int = 5454,
        *,
        state: str | None = None,
        timeout: float | None = None,
        request_timeout: float = REQUEST_TIMEOUT,
    ) -> None:
        self.host = host
        self.port = port
        self.state = state
        self.timeout = timeout
        self.request_timeout = request_timeout
        self._server: _CaptureHTTPServer | None = None

    @property
    def address(self) -> tuple[str, int]:
        if self._server is None:
            return self.host, self.port
        host, port = self._server.server_address[:2]
        return str(host), int(port)

    def bind(self) -> None:
        """Bind the listener. Failure is fatal: another instance owns the port."""
        try:
            self._server = _CaptureHTTPServer((self.host, self.port), _CaptureHandler)
        except OSError as e:
            raise AuthError(f"Cannot listen on {self.host}:{self.port}: {e}") from e
        self._server.expected_state = self.state
        self._server.request_timeout = self.request_timeout
        logger.info(f"Waiting for the Twitch redirect on http://{self.host}:{self.address[1]}")

    def serve(self, persist: Callable[[str], None]) -> CaptureResult:
        if self._server is None:
            self.bind()
        server = self._server
        assert server is not None

        deadline = time.monotonic() + self.timeout if self.timeout else None
        try:
            while server.result is None:
                if server.error is not None:
                    raise server.error
                if deadline is not None:
                    remaining = deadline - time.monotonic()
                    if remaining <= 0:
                        raise AuthError(f"No redirect received within {self.timeout:g}s")
                    server.timeout = remaining
                    server.request_timeout = min(self.request_timeout, remaining)
                server.handle_request()
        finally:
            self.close()

        try:
            persist(server.result.access_token)
        except OSError as e:
            raise AuthError(f"Cannot save the access token: {e}") from e
        logger.info("Access token captured")
        return server.result

    def close(self) -> None:
        if self._server is not None:
            self._server.server_close()


def capture_token(
    persist: Callable[[str], None],
    *,
    host: str = "localhost",
    port: int = 5454,
    state: str | None = None,
    timeout: float | None = None,
    on_ready: Callable[[], object] | None = None,
) -> CaptureResult:
    """Bind, run *on_ready* (usually opening the browser), then block until captured."""
    server = CaptureServer(host, port, state=state, timeout=timeout)
    server.bind()
    if on_ready is not None:
        on_ready()
    return server.serve(persist)
