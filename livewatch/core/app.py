"""Event dispatcher and runner.

Every input is one of the event types below. ``dispatch`` updates the session and returns follow-up tasks;
``App`` runs those tasks and feeds their result events back in.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable, Sequence
from dataclasses import dataclass, field
from typing import Union

from livewatch.components.launcher import PipelineLauncher
from livewatch.components.poller import LivePoller, format_notification
from livewatch.components.templates import LaunchRequest, TemplateValues, build_launch
from livewatch.core.errors import ConfigError, FetchError, LivewatchError
from livewatch.core.storage import CacheStore
from livewatch.models import LiveChannel, UserToken

LOGGER = logging.getLogger("livewatch.App")


# === Events ===


@dataclass(frozen=True)
class Refresh:
    pass


@dataclass(frozen=True)
class Refreshed:
    channels: tuple[LiveChannel, ...]
    thumbnails: dict[str, bytes] = field(default_factory=dict)


@dataclass(frozen=True)
class RefreshFailed:
    error: FetchError


@dataclass(frozen=True)
class Tick:
    pass


@dataclass(frozen=True)
class Polled:
    channels: tuple[LiveChannel, ...]


@dataclass(frozen=True)
class PollFailed:
    error: FetchError


@dataclass(frozen=True)
class Notified:
    logins: tuple[str, ...]


@dataclass(frozen=True)
class Play:
    login: str


@dataclass(frozen=True)
class Launched:
    login: str
    pid: int | None


@dataclass(frozen=True)
class LaunchFailed:
    login: str
    error: LivewatchError


@dataclass(frozen=True)
class OpenChat:
    login: str


@dataclass(frozen=True)
class OpenChannel:
    login: str


@dataclass(frozen=True)
class ApplySettings:
    stream_command: str | None = None
    player_command: str | None = None
    oauth_token: str | None = None


@dataclass(frozen=True)
class SettingsApplied:
    pass


Event = Union[
    Refresh,
    Refreshed,
    RefreshFailed,
    Tick,
    Polled,
    PollFailed,
    Notified,
    Play,
    Launched,
    LaunchFailed,
    OpenChat,
    OpenChannel,
    ApplySettings,
    SettingsApplied,
]

Task = Callable[[], Awaitable["Event | None"]]


# === State and capabilities ===


@dataclass
class Session:
    """Mutable state owned by the dispatcher."""

    stream_command: str
    player_command: str
    token: UserToken | None = None
    oauth_token: str = ""
    channels: tuple[LiveChannel, ...] = ()
    thumbnails: dict[str, bytes] = field(default_factory=dict)
    poller: LivePoller = field(default_factory=LivePoller)
    reconciling: bool = False

    @classmethod
    def load(cls, store: CacheStore, token: UserToken | None = None) -> Session:
        return cls(
            stream_command=store.read_stream_command(),
            player_command=store.read_player_command(),
            token=token,
            oauth_token=store.read_oauth_token(),
        )

    def find_channel(self, login: str) -> LiveChannel | None:
        login = login.lower()
        for channel in self.channels:
            if channel.login.lower() == login:
                return channel
        return None


@dataclass
class Services:
    """Capabilities the dispatcher hands to tasks."""

    fetch_live: Callable[[UserToken], Awaitable[Sequence[LiveChannel]]]
    fetch_thumbnails: Callable[[Sequence[LiveChannel]], Awaitable[dict[str, bytes]]]
    notify: Callable[[str, str], Awaitable[None]]
    open_url: Callable[[str], object]
    launcher: PipelineLauncher
    store: CacheStore


# === Dispatcher ===


def dispatch(session: Session, services: Services, event: Event) -> list[Task]:
    """Apply *event* to *session* and return the tasks it triggers."""
    if isinstance(event, Refresh):
        if session.token is None:
            return [_immediate(RefreshFailed(FetchError("Not signed in")))]
        return [_refresh_task(session.token, services)]

    if isinstance(event, Refreshed):
        session.channels = event.channels
        session.thumbnails = dict(event.thumbnails)
        session.poller.seed(event.channels)
        LOGGER.info(f"{len(event.channels)} followed channels live")
        return []

    if isinstance(event, RefreshFailed):
        LOGGER.warning(f"Refresh failed: {event.error}")
        return []

    if isinstance(event, Tick):
        if session.reconciling:
            LOGGER.debug("Previous live check still running, skipping tick")
            return []
        if session.token is None:
            return []
        session.reconciling = True
        return [_poll_task(session.token, services)]

    if isinstance(event, Polled):
        session.channels = event.channels
        new = session.poller.reconcile(event.channels)
        if not new:
            session.reconciling = False
            return []
        LOGGER.info(f"Now live: {', '.join(new)}")
        return [_notify_task(tuple(new), services)]

    if isinstance(event, PollFailed):
        session.reconciling = False
        LOGGER.warning(f"Live check skipped: {event.error}")
        return []

    if isinstance(event, Notified):
        session.reconciling = False
        return []

    if isinstance(event, Play):
        channel = session.find_channel(event.login)
        if channel is None:
            error = ConfigError(f"{event.login} is not live")
            return [_immediate(LaunchFailed(event.login, error))]
        values = TemplateValues.for_channel(channel, session.oauth_token)
        try:
            request = build_launch(session.stream_command, session.player_command, values)
        except ConfigError as e:
            return [_immediate(LaunchFailed(channel.login, e))]
        return [_launch_task(channel.login, request, services)]

    if isinstance(event, Launched):
        if event.pid is not None:
            LOGGER.info(f"Playing {event.login} (pid {event.pid})")
        else:
            LOGGER.info(f"Playback of {event.login} finished")
        return []

    if isinstance(event, LaunchFailed):
        LOGGER.error(f"Could not play {event.login}: {event.error}")
        return []

    if isinstance(event, OpenChat):
        services.open_url(f"https://www.twitch.tv/popout/{event.login}/chat")
        return []

    if isinstance(event, OpenChannel):
        services.open_url(f"https://www.twitch.tv/{event.login}")
        return []

    if isinstance(event, ApplySettings):
        _apply_settings(session, services.store, event)
        return [_immediate(SettingsApplied())]

    if isinstance(event, SettingsApplied):
        return []

    raise TypeError(f"Unhandled event: {event!r}")


def _apply_settings(session: Session, store: CacheStore, event: ApplySettings) -> None:
    if event.stream_command is not None:
        store.write_stream_command(event.stream_command)
        session.stream_command = event.stream_command
    if event.player_command is not None:
        store.write_player_command(event.player_command)
        session.player_command = event.player_command
    if event.oauth_token is not None:
        store.write_oauth_token(event.oauth_token)
        session.oauth_token = event.oauth_token
    LOGGER.info("Settings saved")


def _immediate(event: Event) -> Task:
    async def run() -> Event:
        return event

    return run


def _refresh_task(token: UserToken, services: Services) -> Task:
    async def run() -> Event:
        try:
            channels = tuple(await services.fetch_live(token))
        except FetchError as e:
            return RefreshFailed(e)
        except Exception as e:
            LOGGER.exception(f"Unexpected refresh failure: {e}")
            return RefreshFailed(FetchError(str(e)))
        thumbnails = await services.fetch_thumbnails(channels)
        return Refreshed(channels, thumbnails)

    return run


def _poll_task(token: UserToken, services: Services) -> Task:
    async def run() -> Event:
        try:
            return Polled(tuple(await services.fetch_live(token)))
        except FetchError as e:
            return PollFailed(e)
        except Exception as e:
            # Always answer the tick so reconciling is cleared
            LOGGER.exception(f"Unexpected live check failure: {e}")
            return PollFailed(FetchError(str(e)))

    return run


def _notify_task(logins: tuple[str, ...], services: Services) -> Task:
    async def run() -> Event:
        summary, body = format_notification(logins)
        try:
            await services.notify(summary, body)
        except Exception as e:
            LOGGER.warning(f"Notification failed: {e}")
        return Notified(logins)

    return run


def _launch_task(login: str, request: LaunchRequest, services: Services) -> Task:
    async def run() -> Event:
        try:
            pid = await services.launcher.launch(request)
        except LivewatchError as e:
            return LaunchFailed(login, e)
        return Launched(login, pid)

    return run


# === Runner ===


class App:
    """Single-threaded event loop around ``dispatch``."""

    def __init__(self, session: Session, services: Services, poll_interval: float = 60.0) -> None:
        self.session = session
        self.services = services
        self.poll_interval = poll_interval
        self._queue: asyncio.Queue[Event] = asyncio.Queue()
        self._tasks: set[asyncio.Task] = set()

    def post(self, event: Event) -> None:
        self._queue.put_nowait(event)

    async def _ticker(self) -> None:
        """Post a Tick every poll interval."""
        while True:
            await asyncio.sleep(self.poll_interval)
            self.post(Tick())

    async def _run_task(self, task: Task) -> None:
        try:
            event = await task()
        except Exception as e:
            LOGGER.exception(f"Task failed: {e}")
            return
        if event is not None:
            self.post(event)

    def _start(self, tasks: Iterable[Task]) -> None:
        for task in tasks:
            running = asyncio.create_task(self._run_task(task))
            self._tasks.add(running)
            running.add_done_callback(self._tasks.discard)

    async def run(
        self,
        initial: Sequence[Event] = (),
        *,
        ticker: bool = False,
        until: Callable[[Event], bool] | None = None,
    ) -> Event | None:
        """Process events until *until* accepts one (returned) or forever."""
        for event in initial:
            self.post(event)

        ticker_task = asyncio.create_task(self._ticker()) if ticker else None
        try:
            while True:
                event = await self._queue.get()
                self._start(dispatch(self.session, self.services, event))
                if until is not None and until(event):
                    return event
        finally:
            if ticker_task is not None:
                ticker_task.cancel()

    async def close(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        await self.services.launcher.shutdown()
