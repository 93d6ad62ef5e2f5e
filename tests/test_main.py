from livewatch import main as cli
from livewatch.core.config import Settings


def run_cli(monkeypatch, tmp_path, *argv):
    settings = Settings(_env_file=None, cache_dir=tmp_path / "cache")
    monkeypatch.setattr(cli, "get_settings", lambda: settings)
    monkeypatch.setattr(cli, "setup_logging", lambda level: None)
    monkeypatch.setattr(cli, "load_dotenv", lambda: None)
    return cli.main(list(argv))


def test_config_writes_templates(monkeypatch, tmp_path):
    code = run_cli(
        monkeypatch, tmp_path, "config", "--stream-command", "cmd $broadcaster_username", "--player-command", ""
    )

    assert code == 0
    assert (tmp_path / "cache" / "stream_command.txt").read_text() == "cmd $broadcaster_username"
    assert (tmp_path / "cache" / "player_command.txt").read_text() == ""


def test_chat_opens_browser(monkeypatch, tmp_path):
    opened = []
    monkeypatch.setattr(cli, "open_url", opened.append)

    assert run_cli(monkeypatch, tmp_path, "chat", "abc") == 0
    assert opened == ["https://www.twitch.tv/popout/abc/chat"]


def test_auth_failure_exit_code(monkeypatch, tmp_path):
    from livewatch.core.errors import AuthError

    async def failing_bootstrap(*args, **kwargs):
        raise AuthError("Cannot listen on localhost:5454")

    monkeypatch.setattr(cli, "bootstrap", failing_bootstrap)

    assert run_cli(monkeypatch, tmp_path, "list") == cli.EXIT_AUTH
