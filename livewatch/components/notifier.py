"""Desktop notifications and browser links."""

from __future__ import annotations

import asyncio
import logging
import webbrowser

from plyer import notification

LOGGER = logging.getLogger("Notifier")

APP_NAME = "livewatch"


class DesktopNotifier:
    """Delivers notifications through plyer's platform backend."""

    def __init__(self, app_name: str = APP_NAME, timeout: int = 10) -> None:
        self.app_name = app_name
        self.timeout = timeout

    def notify_sync(self, summary: str, body: str) -> bool:
        try:
            notification.notify(
                title=summary,
                message=body,
                app_name=self.app_name,
                timeout=self.timeout,
            )
            return True
        except Exception as e:
            # plyer raises NotImplementedError on platforms without a backend
            LOGGER.warning(f"Notification not delivered ({summary}): {e}")
            return False

    async def notify(self, summary: str, body: str) -> None:
        await asyncio.to_thread(self.notify_sync, summary, body)


def open_url(url: str) -> bool:
    """Open *url* in the default browser."""
    opened = webbrowser.open(url)
    if not opened:
        LOGGER.warning(f"No browser available to open {url}")
    return opened
