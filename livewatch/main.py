"""livewatch command line.

Usage:
    livewatch auth [--force]
    livewatch list [--thumbnails DIR]
    livewatch watch LOGIN
    livewatch chat LOGIN | channel LOGIN
    livewatch run
    livewatch config [--stream-command S] [--player-command S] [--oauth-token T]
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from dotenv import load_dotenv
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from livewatch import __version__
from livewatch.components.launcher import PipelineLauncher
from livewatch.components.notifier import DesktopNotifier, open_url
from livewatch.core.app import (
    App,
    ApplySettings,
    LaunchFailed,
    Launched,
    OpenChannel,
    OpenChat,
    Play,
    Refresh,
    Refreshed,
    RefreshFailed,
    Services,
    Session,
    SettingsApplied,
)
from livewatch.core.auth import bootstrap
from livewatch.core.config import Settings, get_settings
from livewatch.core.errors import AuthError, ConfigError, LivewatchError
from livewatch.core.logging import setup_logging
from livewatch.core.storage import CacheStore
from livewatch.services.helix import HelixClient

LOGGER: logging.Logger = logging.getLogger("livewatch")

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_CONFIG = 2
EXIT_AUTH = 3

console = Console()


def parsing_arguments(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="livewatch", description="Watch live followed Twitch channels")
    parser.add_argument("-v", "--version", action="version", version=f"livewatch {__version__}")
    parser.add_argument("-d", "--debug", action="store_true", help="Enable debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    auth = sub.add_parser("auth", help="Sign in and show the authenticated account")
    auth.add_argument("--force", action="store_true", help="Ignore the cached token")

    list_ = sub.add_parser("list", help="List live followed channels")
    list_.add_argument("--thumbnails", type=Path, help="Save thumbnails into this directory")

    watch = sub.add_parser("watch", help="Play a live channel")
    watch.add_argument("login", help="Channel login name")

    chat = sub.add_parser("chat", help="Open a channel's chat in the browser")
    chat.add_argument("login", help="Channel login name")

    channel = sub.add_parser("channel", help="Open a channel page in the browser")
    channel.add_argument("login", help="Channel login name")

    sub.add_parser("run", help="Poll followed channels and notify when they go live")

    config = sub.add_parser("config", help="Show or change command templates")
    config.add_argument("--stream-command", help="Command that writes the stream to stdout")
    config.add_argument("--player-command", help="Command that reads the stream from stdin ('' for none)")
    config.add_argument("--oauth-token", help="Value substituted for $oauth_token")

    return parser.parse_args(argv)


def _mask(value: str) -> str:
    if not value:
        return "[dim](not set)[/dim]"
    return value[:4] + "…" if len(value) > 4 else "****"


def _print_channels(session: Session) -> None:
    table = Table(title=f"Live followed channels ({len(session.channels)})")
    table.add_column("Channel", style="bold cyan", no_wrap=True)
    table.add_column("Category", style="magenta")
    table.add_column("Viewers", justify="right")
    table.add_column("Title")
    for channel in session.channels:
        table.add_row(
            f"@{channel.login}", escape(channel.game_name), str(channel.viewer_count), escape(channel.title)
        )
    console.print(table)


def _save_thumbnails(session: Session, directory: Path) -> None:
    directory.mkdir(parents=True, exist_ok=True)
    for login, data in session.thumbnails.items():
        (directory / f"{login}.jpg").write_bytes(data)
    LOGGER.info(f"Saved {len(session.thumbnails)} thumbnails to {directory}")


class Runtime:
    """Builds the session and services for one CLI invocation."""

    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self.store = CacheStore(
            settings.cache_dir,
            default_stream_command=settings.default_stream_command,
            default_player_command=settings.default_player_command,
        )
        self.helix = HelixClient(
            settings.client_id,
            thumbnail_size=(settings.thumbnail_width, settings.thumbnail_height),
        )
        self.notifier = DesktopNotifier()
        self.launcher = PipelineLauncher()

    def services(self) -> Services:
        return Services(
            fetch_live=self.helix.get_followed_streams,
            fetch_thumbnails=self.helix.get_thumbnails,
            notify=self.notifier.notify,
            open_url=open_url,
            launcher=self.launcher,
            store=self.store,
        )

    async def app(self, *, force_auth: bool = False, signed_in: bool = True) -> App:
        token = None
        if signed_in:
            token = await bootstrap(
                self.settings, self.store, self.helix, force=force_auth, open_browser=open_url
            )
        session = Session.load(self.store, token)
        return App(session, self.services(), poll_interval=self.settings.poll_interval)

    async def close(self) -> None:
        await self.helix.close()


async def _refresh(app: App) -> bool:
    event = await app.run([Refresh()], until=lambda e: isinstance(e, (Refreshed, RefreshFailed)))
    return isinstance(event, Refreshed)


async def run_command(args: argparse.Namespace, runtime: Runtime) -> int:
    command = args.command

    if command in ("chat", "channel"):
        app = await runtime.app(signed_in=False)
        event = OpenChat(args.login) if command == "chat" else OpenChannel(args.login)
        app.post(event)
        await app.run(until=lambda e: e is event)
        return EXIT_OK

    if command == "config":
        app = await runtime.app(signed_in=False)
        changes = ApplySettings(args.stream_command, args.player_command, args.oauth_token)
        if any(v is not None for v in (changes.stream_command, changes.player_command, changes.oauth_token)):
            await app.run([changes], until=lambda e: isinstance(e, SettingsApplied))
        session = app.session
        console.print(f"[bold]stream command[/bold]  {escape(session.stream_command) or '[red](empty)[/red]'}")
        console.print(f"[bold]player command[/bold]  {escape(session.player_command) or '[dim](none)[/dim]'}")
        console.print(f"[bold]oauth token[/bold]     {_mask(session.oauth_token)}")
        console.print(f"[dim]cache directory: {runtime.store.cache_dir}[/dim]")
        return EXIT_OK

    app = await runtime.app(force_auth=getattr(args, "force", False))
    try:
        if command == "auth":
            token = app.session.token
            assert token is not None
            console.print(f"[green]✓[/green] Signed in as [bold]{token.login}[/bold] (ID: {token.user_id})")
            return EXIT_OK

        if command == "list":
            if not await _refresh(app):
                return EXIT_FAILURE
            _print_channels(app.session)
            if args.thumbnails:
                _save_thumbnails(app.session, args.thumbnails)
            return EXIT_OK

        if command == "watch":
            if not await _refresh(app):
                return EXIT_FAILURE
            event = await app.run(
                [Play(args.login)], until=lambda e: isinstance(e, (Launched, LaunchFailed))
            )
            if isinstance(event, LaunchFailed):
                return EXIT_CONFIG if isinstance(event.error, ConfigError) else EXIT_FAILURE
            await runtime.launcher.wait()
            return EXIT_OK

        if command == "run":
            await _refresh(app)
            _print_channels(app.session)
            LOGGER.info(f"Checking followed channels every {runtime.settings.poll_interval:g}s")
            await app.run(ticker=True)
            return EXIT_OK
    finally:
        await app.close()

    return EXIT_FAILURE


async def main_async(args: argparse.Namespace, settings: Settings) -> int:
    runtime = Runtime(settings)
    try:
        return await run_command(args, runtime)
    finally:
        await runtime.close()


def main(argv: list[str] | None = None) -> int:
    load_dotenv()
    args = parsing_arguments(argv)
    settings = get_settings()
    setup_logging("DEBUG" if args.debug else settings.log_level)

    try:
        return asyncio.run(main_async(args, settings))
    except AuthError as e:
        LOGGER.error(f"Authentication failed: {e}")
        return EXIT_AUTH
    except ConfigError as e:
        LOGGER.error(f"Configuration error: {e}")
        return EXIT_CONFIG
    except LivewatchError as e:
        LOGGER.error(f"{e}")
        return EXIT_FAILURE
    except KeyboardInterrupt:
        return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
