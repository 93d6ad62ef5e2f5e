"""Process pipeline launcher: runs the stream command, optionally piped into a player."""

from __future__ import annotations

import asyncio
import logging
from asyncio.subprocess import DEVNULL, PIPE, Process

from livewatch.components.templates import LaunchRequest
from livewatch.core.errors import PipeError, SpawnError

LOGGER = logging.getLogger("Launcher")

CHUNK_SIZE = 64 * 1024


class PipelineLauncher:
    """Spawns viewer pipelines and keeps track of the children it started.

    Every child is reaped in the background once it exits, so nothing is
    left as a zombie. ``shutdown()`` terminates children still running.
    """

    def __init__(self, chunk_size: int = CHUNK_SIZE) -> None:
        self.chunk_size = chunk_size
        self._children: dict[int, Process] = {}
        self._reapers: set[asyncio.Task] = set()

    @property
    def running(self) -> list[int]:
        """PIDs of children that have not exited yet."""
        return [pid for pid, proc in self._children.items() if proc.returncode is None]

    async def launch(self, request: LaunchRequest) -> int | None:
        """Start *request*.

        Without a player the stream process PID is returned as soon as it
        has started. With a player the call returns None once the stream
        output has been copied into the player completely.
        """
        if request.player is None:
            proc = await self._spawn(request.stream, stdin=DEVNULL, stdout=DEVNULL, stderr=DEVNULL)
            LOGGER.info(f"Started {request.stream[0]} (pid {proc.pid})")
            return proc.pid

        await self._run_pipeline(request.stream, request.player)
        return None

    async def _run_pipeline(self, stream_argv: list[str], player_argv: list[str]) -> None:
        stream = await self._spawn(stream_argv, stdin=DEVNULL, stdout=PIPE, stderr=DEVNULL)
        try:
            player = await self._spawn(player_argv, stdin=PIPE, stdout=DEVNULL, stderr=DEVNULL)
        except SpawnError:
            _terminate(stream)
            raise

        LOGGER.info(
            f"Piping {stream_argv[0]} (pid {stream.pid}) into {player_argv[0]} (pid {player.pid})"
        )
        try:
            copied = await self._copy(stream, player)
        except PipeError:
            _terminate(player)
            _terminate(stream)
            try:
                await asyncio.wait_for(_drain(stream.stdout), timeout=5)
            except asyncio.TimeoutError:
                if stream.returncode is None:
                    stream.kill()
            raise
        LOGGER.info(f"Stream finished after {copied} bytes")

    async def _copy(self, source: Process, sink: Process) -> int:
        """Copy source stdout into sink stdin until EOF. Returns the byte count."""
        assert source.stdout is not None and sink.stdin is not None
        total = 0
        try:
            while True:
                chunk = await source.stdout.read(self.chunk_size)
                if not chunk:
                    break
                sink.stdin.write(chunk)
                await sink.stdin.drain()
                total += len(chunk)
        except (BrokenPipeError, ConnectionResetError) as e:
            raise PipeError(f"Player closed its input after {total} bytes: {e}") from e
        except OSError as e:
            raise PipeError(f"Pipe copy failed after {total} bytes: {e}") from e
        finally:
            if not sink.stdin.is_closing():
                sink.stdin.close()
        try:
            await sink.stdin.wait_closed()
        except (BrokenPipeError, ConnectionResetError):
            pass
        return total

    async def _spawn(self, argv: list[str], **streams) -> Process:
        executable = argv[0]
        try:
            proc = await asyncio.create_subprocess_exec(*argv, **streams)
        except FileNotFoundError as e:
            raise SpawnError(executable, "executable not found") from e
        except PermissionError as e:
            raise SpawnError(executable, "permission denied") from e
        except OSError as e:
            raise SpawnError(executable, e.strerror or str(e)) from e

        self._children[proc.pid] = proc
        reaper = asyncio.create_task(self._reap(proc, executable))
        self._reapers.add(reaper)
        reaper.add_done_callback(self._reapers.discard)
        return proc

    async def _reap(self, proc: Process, executable: str) -> None:
        code = await proc.wait()
        self._children.pop(proc.pid, None)
        LOGGER.debug(f"{executable} (pid {proc.pid}) exited with {code}")

    async def wait(self) -> None:
        """Wait until every child has exited."""
        while self._reapers:
            await asyncio.wait(set(self._reapers))

    async def shutdown(self, timeout: float = 5.0) -> None:
        """Terminate every child still running and wait for it to exit."""
        for proc in list(self._children.values()):
            _terminate(proc)
        if self._reapers:
            _, pending = await asyncio.wait(set(self._reapers), timeout=timeout)
            for proc in list(self._children.values()):
                if proc.returncode is None:
                    proc.kill()
            if pending:
                await asyncio.wait(pending, timeout=timeout)


async def _drain(reader: asyncio.StreamReader | None) -> None:
    """Read *reader* to EOF so the transport of a stopped process can close."""
    if reader is None:
        return
    while await reader.read(CHUNK_SIZE):
        pass


def _terminate(proc: Process) -> None:
    if proc.returncode is not None:
        return
    try:
        proc.terminate()
    except ProcessLookupError:
        pass
