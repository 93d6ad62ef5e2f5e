"""Bootstrap: load or capture the user token, then validate it."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

from livewatch.core.config import USER_SCOPES, Settings
from livewatch.core.errors import InvalidTokenError
from livewatch.core.oauth_server import capture_token, gen_url, new_state
from livewatch.core.storage import CacheStore
from livewatch.models import UserToken
from livewatch.services.helix import HelixClient

logger = logging.getLogger("livewatch.Auth")


async def bootstrap(
    settings: Settings,
    store: CacheStore,
    helix: HelixClient,
    *,
    force: bool = False,
    open_browser: Callable[[str], object] | None = None,
) -> UserToken:
    """Return a validated user token.

    A cached token is tried first. When Twitch reports it invalid the cache
    file is removed and the capture flow runs in a worker thread until the
    browser completes the redirect.
    """
    cached = None if force else store.read_token()
    if cached:
        try:
            token = await helix.validate_token(cached)
            logger.info(f"Authenticated as {token.login}")
            return token
        except InvalidTokenError:
            logger.warning("Cached access token is no longer valid, signing in again")
            store.clear_token()

    state = new_state()
    url = gen_url(settings.client_id, settings.redirect_uri, USER_SCOPES, state)

    def announce() -> None:
        logger.info("Opening the Twitch sign-in page in your browser")
        opened = open_browser(url) if open_browser else False
        if not opened:
            logger.info(f"Open this URL to sign in: {url}")

    result = await asyncio.to_thread(
        capture_token,
        store.write_token,
        host=settings.redirect_host,
        port=settings.redirect_port,
        state=state,
        timeout=settings.oauth_timeout,
        on_ready=announce,
    )

    token = await helix.validate_token(result.access_token)
    missing = set(USER_SCOPES) - set(token.scopes)
    if missing:
        logger.warning(f"Token is missing scopes: {', '.join(sorted(missing))}")
    logger.info(f"Authenticated as {token.login}")
    return token
