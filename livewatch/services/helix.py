"""Twitch API client service.

Token types:
- User Access Token: obtained through the implicit grant flow on the local
  capture server, validated once at bootstrap, never refreshed.
"""

import logging
from collections.abc import Sequence
from datetime import datetime

import httpx
from cachetools import TTLCache  # type: ignore[import-untyped]

from livewatch.core.errors import AuthError, FetchError, InvalidTokenError
from livewatch.models import LiveChannel, UserToken

logger = logging.getLogger(__name__)

HELIX_BASE = "https://api.twitch.tv/helix"
OAUTH_BASE = "https://id.twitch.tv/oauth2"

PAGE_SIZE = 100


def _parse_started_at(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


def _stream_to_channel(item: dict) -> LiveChannel:
    return LiveChannel(
        login=item["user_login"],
        display_name=item.get("user_name") or item["user_login"],
        title=item.get("title", ""),
        game_name=item.get("game_name", ""),
        thumbnail_url=item.get("thumbnail_url", ""),
        user_id=item.get("user_id", ""),
        viewer_count=int(item.get("viewer_count") or 0),
        started_at=_parse_started_at(item.get("started_at")),
    )


class HelixClient:
    """Client for the Helix endpoints livewatch needs.

    Manages a shared httpx client for connection reuse and keeps fetched
    thumbnails in a short-lived cache.
    """

    def __init__(
        self,
        client_id: str,
        *,
        http: httpx.AsyncClient | None = None,
        thumbnail_size: tuple[int, int] = (320, 180),
        thumbnail_ttl: float = 300.0,
    ) -> None:
        if not client_id:
            raise ValueError("Twitch client_id is required")

        self.client_id = client_id
        self.thumbnail_size = thumbnail_size

        # Shared HTTP client, reused across requests
        self._http = http or httpx.AsyncClient(timeout=10.0)
        self._thumbnails: TTLCache = TTLCache(maxsize=256, ttl=thumbnail_ttl)

    async def close(self) -> None:
        """Close the shared HTTP client. Call on shutdown."""
        await self._http.aclose()

    def _headers(self, token: UserToken) -> dict[str, str]:
        return {"Authorization": f"Bearer {token.access_token}", "Client-Id": self.client_id}

    # ------------------------------------------------------------------
    # OAuth
    # ------------------------------------------------------------------

    async def validate_token(self, access_token: str) -> UserToken:
        """Validate *access_token* and return the user it belongs to."""
        try:
            response = await self._http.get(
                f"{OAUTH_BASE}/validate",
                headers={"Authorization": f"OAuth {access_token}"},
            )
        except httpx.HTTPError as e:
            raise AuthError(f"Token validation request failed: {e}") from e

        if response.status_code == 401:
            raise InvalidTokenError("Access token is invalid or expired")
        if response.status_code != 200:
            raise AuthError(f"Token validation failed: {response.status_code} {response.text}")

        data = response.json()
        return UserToken(
            access_token=access_token,
            login=data.get("login", ""),
            user_id=data.get("user_id", ""),
            client_id=data.get("client_id", self.client_id),
            scopes=frozenset(data.get("scopes") or []),
            expires_in=data.get("expires_in"),
        )

    # ------------------------------------------------------------------
    # Streams
    # ------------------------------------------------------------------

    async def get_followed_streams(self, token: UserToken) -> list[LiveChannel]:
        """Return live streams of channels *token*'s user follows, following pagination."""
        channels: list[LiveChannel] = []
        params: dict[str, str | int] = {"user_id": token.user_id, "first": PAGE_SIZE}

        while True:
            try:
                response = await self._http.get(
                    f"{HELIX_BASE}/streams/followed",
                    params=params,
                    headers=self._headers(token),
                )
            except httpx.HTTPError as e:
                raise FetchError(f"Helix GET /streams/followed error: {e}") from e

            if response.status_code != 200:
                raise FetchError(
                    f"Helix GET /streams/followed failed: {response.status_code} {response.text}"
                )

            try:
                payload = response.json()
                if not isinstance(payload, dict):
                    raise TypeError(f"expected an object, got {type(payload).__name__}")
                channels.extend(_stream_to_channel(item) for item in payload.get("data") or [])
                cursor = (payload.get("pagination") or {}).get("cursor")
            except (AttributeError, KeyError, TypeError, ValueError) as e:
                raise FetchError(f"Unexpected /streams/followed payload: {e}") from e

            if not cursor:
                break
            params["after"] = cursor

        logger.debug(f"Fetched {len(channels)} live followed channels")
        return channels

    # ------------------------------------------------------------------
    # Thumbnails
    # ------------------------------------------------------------------

    def thumbnail_url(self, template: str) -> str:
        width, height = self.thumbnail_size
        return template.replace("{width}", str(width)).replace("{height}", str(height))

    async def get_thumbnail(self, template: str) -> bytes:
        """Return image bytes for a Helix ``thumbnail_url`` template."""
        url = self.thumbnail_url(template)
        cached = self._thumbnails.get(url)
        if cached is not None:
            return cached

        try:
            response = await self._http.get(url)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise FetchError(f"Thumbnail fetch failed for {url}: {e}") from e

        self._thumbnails[url] = response.content
        return response.content

    async def get_thumbnails(self, channels: Sequence[LiveChannel]) -> dict[str, bytes]:
        """Return login → thumbnail bytes, skipping channels whose fetch failed."""
        thumbnails: dict[str, bytes] = {}
        for channel in channels:
            if not channel.thumbnail_url:
                continue
            try:
                thumbnails[channel.login] = await self.get_thumbnail(channel.thumbnail_url)
            except FetchError as e:
                logger.warning(f"{e}")
        return thumbnails
