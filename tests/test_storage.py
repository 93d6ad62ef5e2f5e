from livewatch.core.storage import CacheStore


def test_token_round_trip(store):
    assert store.read_token() is None

    store.write_token("XYZ")

    assert store.token_path.read_text(encoding="utf-8") == "XYZ"
    assert store.read_token() == "XYZ"


def test_clear_token(store):
    store.write_token("XYZ")
    store.clear_token()
    store.clear_token()

    assert store.read_token() is None


def test_missing_command_files_use_defaults(store):
    assert store.read_stream_command().startswith("streamlink")
    assert store.read_player_command().startswith("mpv")


def test_empty_player_file_means_no_player(store):
    store.write_player_command("")

    assert store.read_player_command() == ""


def test_values_are_stripped(store):
    store.write_stream_command("  cmd $title \n")
    store.write_oauth_token("abc\n")

    assert store.read_stream_command() == "cmd $title"
    assert store.read_oauth_token() == "abc"


def test_creates_cache_dir(tmp_path):
    store = CacheStore(tmp_path / "a" / "b")
    store.write_oauth_token("t")

    assert (tmp_path / "a" / "b" / "oauth_token.txt").is_file()
    assert store.read_stream_command() == ""
