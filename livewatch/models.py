"""Data models for tokens and live channels."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime


@dataclass(frozen=True)
class UserToken:
    """Validated user access token."""

    access_token: str
    login: str
    user_id: str
    client_id: str
    scopes: frozenset[str] = field(default_factory=frozenset)
    expires_in: int | None = None

    def __repr__(self) -> str:
        # never leak the bearer credential into logs
        return f"UserToken(login={self.login!r}, user_id={self.user_id!r}, scopes={sorted(self.scopes)!r})"


@dataclass(frozen=True)
class LiveChannel:
    """A followed channel that is currently broadcasting."""

    login: str
    display_name: str
    title: str
    game_name: str
    thumbnail_url: str
    user_id: str = ""
    viewer_count: int = 0
    started_at: datetime | None = None
