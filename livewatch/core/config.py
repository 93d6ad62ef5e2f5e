"""livewatch configuration"""

import logging
from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

# === Path Configuration ===
DEFAULT_CACHE_DIR = Path.home() / ".cache" / "livewatch"

# Public client id of the livewatch application (implicit grant, no secret)
DEFAULT_CLIENT_ID = "reh9rt391dkrperi4b7cqelryifsej"

USER_SCOPES = [
    "user:read:follows",  # Followed live streams
]


class Settings(BaseSettings):
    """livewatch settings"""

    model_config = SettingsConfigDict(
        env_prefix="LIVEWATCH_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Twitch OAuth
    client_id: str = Field(default=DEFAULT_CLIENT_ID, description="Twitch OAuth Client ID")
    redirect_host: str = Field(default="localhost", description="Capture listener host")
    redirect_port: int = Field(default=5454, description="Capture listener port")
    oauth_timeout: float | None = Field(
        default=None, description="Seconds to wait for the browser redirect (unset = forever)"
    )

    # Storage
    cache_dir: Path = Field(default=DEFAULT_CACHE_DIR, description="Flat-file cache directory")

    # Poller
    poll_interval: float = Field(default=60.0, description="Seconds between live checks")

    # Launcher
    default_stream_command: str = Field(
        default="streamlink --stdout twitch.tv/$broadcaster_username best",
        description="Stream command used when no stream_command.txt exists",
    )
    default_player_command: str = Field(
        default='mpv --force-media-title="$title" -',
        description="Player command used when no player_command.txt exists",
    )

    # Thumbnails
    thumbnail_width: int = Field(default=320, description="Thumbnail width in pixels")
    thumbnail_height: int = Field(default=180, description="Thumbnail height in pixels")

    # Environment
    log_level: str = Field(default="INFO", description="Logging level")

    @property
    def redirect_uri(self) -> str:
        return f"http://{self.redirect_host}:{self.redirect_port}/redirect"

    @field_validator("poll_interval")
    @classmethod
    def validate_poll_interval(cls, v: float) -> float:
        """Poll interval must be positive"""
        if v <= 0:
            raise ValueError("poll_interval must be greater than 0")
        return v

    @field_validator("oauth_timeout")
    @classmethod
    def validate_oauth_timeout(cls, v: float | None) -> float | None:
        """Non-positive timeout means wait forever"""
        if v is not None and v <= 0:
            return None
        return v

    @field_validator("cache_dir")
    @classmethod
    def expand_cache_dir(cls, v: Path) -> Path:
        return v.expanduser()

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is valid"""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v_upper = v.upper()
        if v_upper not in valid_levels:
            logger.warning(f"Invalid log level '{v}', defaulting to INFO")
            return "INFO"
        return v_upper


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()
