"""Core modules for livewatch."""

from .config import DEFAULT_CACHE_DIR, USER_SCOPES, Settings, get_settings
from .errors import (
    AuthError,
    ConfigError,
    FetchError,
    InvalidTokenError,
    LivewatchError,
    PipeError,
    SpawnError,
)
from .logging import setup_logging
from .storage import CacheStore

__all__ = [
    # Settings
    "Settings",
    "get_settings",
    # Path Constants
    "DEFAULT_CACHE_DIR",
    # Scope Constants
    "USER_SCOPES",
    # Setup functions
    "setup_logging",
    # Storage
    "CacheStore",
    # Errors
    "LivewatchError",
    "AuthError",
    "InvalidTokenError",
    "ConfigError",
    "SpawnError",
    "PipeError",
    "FetchError",
]
