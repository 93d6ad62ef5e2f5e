"""Flat-file cache: one UTF-8 text file per concern."""

from __future__ import annotations

import logging
from pathlib import Path

logger = logging.getLogger(__name__)

ACCESS_TOKEN_FILE = "access_token.txt"
STREAM_COMMAND_FILE = "stream_command.txt"
PLAYER_COMMAND_FILE = "player_command.txt"
OAUTH_TOKEN_FILE = "oauth_token.txt"


class CacheStore:
    """Reads and writes the livewatch cache directory.

    Missing stream/player files fall back to the configured defaults.
    A player file that exists but is empty means "no player stage".
    """

    def __init__(
        self,
        cache_dir: Path,
        *,
        default_stream_command: str = "",
        default_player_command: str = "",
    ) -> None:
        self.cache_dir = Path(cache_dir)
        self.default_stream_command = default_stream_command
        self.default_player_command = default_player_command

    def _path(self, name: str) -> Path:
        return self.cache_dir / name

    def _read(self, name: str) -> str | None:
        path = self._path(name)
        if not path.is_file():
            return None
        return path.read_text(encoding="utf-8").strip()

    def _write(self, name: str, value: str) -> None:
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        self._path(name).write_text(value, encoding="utf-8")
        logger.debug(f"Wrote {name}")

    # --- session token ---

    @property
    def token_path(self) -> Path:
        return self._path(ACCESS_TOKEN_FILE)

    def read_token(self) -> str | None:
        token = self._read(ACCESS_TOKEN_FILE)
        return token or None

    def write_token(self, token: str) -> None:
        self._write(ACCESS_TOKEN_FILE, token)

    def clear_token(self) -> None:
        self.token_path.unlink(missing_ok=True)

    # --- command templates ---

    def read_stream_command(self) -> str:
        value = self._read(STREAM_COMMAND_FILE)
        return self.default_stream_command if value is None else value

    def write_stream_command(self, template: str) -> None:
        self._write(STREAM_COMMAND_FILE, template)

    def read_player_command(self) -> str:
        value = self._read(PLAYER_COMMAND_FILE)
        return self.default_player_command if value is None else value

    def write_player_command(self, template: str) -> None:
        self._write(PLAYER_COMMAND_FILE, template)

    # --- $oauth_token value (not the session token) ---

    def read_oauth_token(self) -> str:
        return self._read(OAUTH_TOKEN_FILE) or ""

    def write_oauth_token(self, token: str) -> None:
        self._write(OAUTH_TOKEN_FILE, token)
