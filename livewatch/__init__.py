"""livewatch: watch live followed Twitch channels from the terminal."""

__version__ = "0.3.0"
