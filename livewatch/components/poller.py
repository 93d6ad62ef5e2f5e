"""Live-set poller: detects followed channels that just went live."""

from __future__ import annotations

import logging
from collections.abc import Sequence

from livewatch.models import LiveChannel

LOGGER = logging.getLogger("Poller")


def format_notification(logins: Sequence[str]) -> tuple[str, str]:
    """Return (summary, body) for a batch of newly-live logins."""
    if len(logins) == 1:
        return f"{logins[0]} is live", logins[0]
    return f"{len(logins)} channels went live", "\n".join(logins)


class LivePoller:
    """Keeps the live set from the previous tick and diffs it against the next one.

    Only one prior tick is remembered. ``previous`` is None until the first
    seed or reconcile, in which case everything currently live counts as new.
    """

    def __init__(self) -> None:
        self.previous: frozenset[str] | None = None

    def seed(self, channels: Sequence[LiveChannel]) -> None:
        """Record *channels* as already known, without notifying."""
        self.previous = frozenset(c.login for c in channels)
        LOGGER.debug(f"Seeded live set with {len(self.previous)} channels")

    def reconcile(self, channels: Sequence[LiveChannel]) -> list[str]:
        """Return logins live now but not on the previous tick, in fetch order.

        ``previous`` is replaced with the current set even when nothing is new,
        so channels that went offline can notify again when they come back.
        """
        previous = self.previous or frozenset()
        new: list[str] = []
        seen: set[str] = set()
        for channel in channels:
            if channel.login not in previous and channel.login not in seen:
                new.append(channel.login)
            seen.add(channel.login)
        self.previous = frozenset(seen)
        return new
