"""Command template engine: turns configured command strings into argv lists."""

from __future__ import annotations

import re
from dataclasses import dataclass

from livewatch.core.errors import ConfigError
from livewatch.models import LiveChannel

PLACEHOLDERS = (
    "$title",
    "$oauth_token",
    "$broadcaster_username",
    "$broadcaster_displayname",
)

# Single pass over the token: inserted values are never scanned again
_PLACEHOLDER_PATTERN = re.compile("|".join(re.escape(p) for p in PLACEHOLDERS))


@dataclass(frozen=True)
class TemplateValues:
    """Runtime values for the supported placeholders."""

    title: str = ""
    oauth_token: str = ""
    broadcaster_username: str = ""
    broadcaster_displayname: str = ""

    @classmethod
    def for_channel(cls, channel: LiveChannel, oauth_token: str = "") -> TemplateValues:
        return cls(
            title=channel.title,
            oauth_token=oauth_token,
            broadcaster_username=channel.login,
            broadcaster_displayname=channel.display_name,
        )

    def lookup(self) -> dict[str, str]:
        return {
            "$title": self.title,
            "$oauth_token": self.oauth_token,
            "$broadcaster_username": self.broadcaster_username,
            "$broadcaster_displayname": self.broadcaster_displayname,
        }


@dataclass(frozen=True)
class LaunchRequest:
    """Resolved argv pair for one launch. ``player`` is None when no player stage runs."""

    stream: list[str]
    player: list[str] | None = None


def tokenize(template: str) -> list[str]:
    """Split *template* on whitespace, honouring double-quoted segments.

    Quote characters are removed from the result. ``a"b c"d`` is one token
    ``ab cd``; ``""`` is an empty token.
    """
    tokens: list[str] = []
    current: list[str] = []
    in_token = False
    in_quote = False

    for ch in template:
        if ch == '"':
            in_quote = not in_quote
            in_token = True
        elif ch.isspace() and not in_quote:
            if in_token:
                tokens.append("".join(current))
                current = []
                in_token = False
        else:
            current.append(ch)
            in_token = True

    if in_quote:
        raise ConfigError(f"Unterminated quote in command template: {template!r}")
    if in_token:
        tokens.append("".join(current))
    return tokens


def substitute(token: str, values: TemplateValues) -> str:
    """Replace every placeholder occurrence in *token* with its value."""
    lookup = values.lookup()
    return _PLACEHOLDER_PATTERN.sub(lambda m: lookup[m.group(0)], token)


def render(template: str, values: TemplateValues) -> list[str]:
    """Tokenize then substitute. Returns an empty list for an empty template."""
    return [substitute(token, values) for token in tokenize(template)]


def build_launch(
    stream_template: str, player_template: str, values: TemplateValues
) -> LaunchRequest:
    """Resolve both command templates for one launch.

    Raises ConfigError for an empty stream command. An empty player
    command yields ``player=None``.
    """
    stream = render(stream_template, values)
    if not stream:
        raise ConfigError("Stream command is empty; set one with `livewatch config --stream-command`")
    if not stream[0]:
        raise ConfigError(f"Stream command has no executable: {stream_template!r}")

    player = render(player_template, values)
    if player and not player[0]:
        raise ConfigError(f"Player command has no executable: {player_template!r}")
    return LaunchRequest(stream=stream, player=player or None)
