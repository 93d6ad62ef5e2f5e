import socket

import pytest

from livewatch.core.storage import CacheStore
from livewatch.models import LiveChannel, UserToken


def make_channel(login: str, **overrides) -> LiveChannel:
    fields = {
        "login": login,
        "display_name": login.capitalize(),
        "title": f"{login} stream",
        "game_name": "Just Chatting",
        "thumbnail_url": f"https://static-cdn.jtvnw.net/previews-ttv/live_user_{login}-{{width}}x{{height}}.jpg",
        "user_id": f"id-{login}",
    }
    fields.update(overrides)
    return LiveChannel(**fields)


def free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


@pytest.fixture
def token() -> UserToken:
    return UserToken(
        access_token="tok123",
        login="viewer",
        user_id="42",
        client_id="client",
        scopes=frozenset({"user:read:follows"}),
    )


@pytest.fixture
def store(tmp_path) -> CacheStore:
    return CacheStore(
        tmp_path / "cache",
        default_stream_command="streamlink --stdout twitch.tv/$broadcaster_username best",
        default_player_command='mpv --force-media-title="$title" -',
    )
