"""Error taxonomy shared by every livewatch component."""

from __future__ import annotations


class LivewatchError(Exception):
    """Base class for all livewatch errors."""


class AuthError(LivewatchError):
    """Bootstrap authentication failed (bind, capture, validation)."""


class InvalidTokenError(AuthError):
    """Twitch rejected the access token."""


class ConfigError(LivewatchError):
    """A command template or setting cannot be used."""


class SpawnError(LivewatchError):
    """A child process could not be started."""

    def __init__(self, executable: str, reason: str) -> None:
        super().__init__(f"{executable}: {reason}")
        self.executable = executable
        self.reason = reason


class PipeError(LivewatchError):
    """Copying bytes from the stream process to the player failed."""


class FetchError(LivewatchError):
    """A Twitch API request failed during refresh or poll."""
