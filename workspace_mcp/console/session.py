"""
Persistent interactive shell session.

One long-lived shell child with stdout and stderr merged into a single
pipe. A background reader decodes the stream and feeds it through the
marker parser, queueing events for whoever is running a command.
"""

from __future__ import annotations

import asyncio
import codecs
import contextlib
import logging
import os
from pathlib import Path
import signal as sigmod
import uuid

from workspace_mcp.console.events import (
    CommandFinished,
    ConsoleEvent,
    MarkerParser,
    finish_marker_command,
    start_marker_command,
)
from workspace_mcp.errors import ConsoleError

logger = logging.getLogger(__name__)

READ_CHUNK = 4096


def new_token() -> str:
    return uuid.uuid4().hex[:12]


class ConsoleSession:
    """A named shell process plus its decoded event stream."""

    def __init__(self, name: str, shell: str, cwd: Path, env: dict[str, str] | None = None):
        self.name = name
        self.shell = shell
        self.cwd = str(cwd)
        self.shell_integration = False
        self._env = env
        self._proc: asyncio.subprocess.Process | None = None
        self._reader: asyncio.Task | None = None
        self._events: asyncio.Queue[ConsoleEvent | None] = asyncio.Queue()
        self._parser = MarkerParser()
        self._closed = asyncio.Event()

    @property
    def pid(self) -> int | None:
        return self._proc.pid if self._proc else None

    @property
    def exited(self) -> bool:
        """True once the shell is gone (EOF seen or exit status reaped)."""
        if self._proc is None:
            return True
        return self._closed.is_set() or self._proc.returncode is not None

    def _argv(self) -> list[str]:
        if Path(self.shell).name == "bash":
            return [self.shell, "--noprofile", "--norc"]
        return [self.shell]

    def _child_env(self) -> dict[str, str]:
        env = dict(os.environ)
        env.update(self._env or {})
        env.update(
            {
                "PWD": self.cwd,
                "PS1": "",
                "PS2": "",
                "PROMPT_COMMAND": "",
                "TERM": "dumb",
                "HISTFILE": "/dev/null",
            }
        )
        return env

    async def start(self) -> None:
        """Spawn the shell."""
        try:
            self._proc = await asyncio.create_subprocess_exec(
                *self._argv(),
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
                cwd=self.cwd,
                env=self._child_env(),
                start_new_session=True,
            )
        except OSError as exc:
            raise ConsoleError(f"Failed to start console shell {self.shell!r}: {exc}") from exc

        self._reader = asyncio.create_task(self._read_loop(), name=f"console-reader-{self.name}")
        logger.info(f"Console '{self.name}' started (pid={self._proc.pid}, shell={self.shell})")

    async def _read_loop(self) -> None:
        assert self._proc is not None and self._proc.stdout is not None
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        try:
            while True:
                data = await self._proc.stdout.read(READ_CHUNK)
                if not data:
                    break
                for event in self._parser.feed(decoder.decode(data)):
                    self._events.put_nowait(event)
        finally:
            tail = decoder.decode(b"", final=True)
            for event in self._parser.feed(tail) + self._parser.flush():
                self._events.put_nowait(event)
            self._closed.set()
            self._events.put_nowait(None)
            logger.info(f"Console '{self.name}' output stream closed")

    async def probe_shell_integration(self, timeout: float = 3.0) -> bool:
        """Handshake: ask the shell to echo a finish marker and wait for it."""
        token = new_token()
        await self.send(
            f"{start_marker_command(token)}; __wmcp_rc=0; {finish_marker_command(token, '__wmcp_rc')}"
        )
        deadline = asyncio.get_running_loop().time() + timeout
        while True:
            remaining = deadline - asyncio.get_running_loop().time()
            if remaining <= 0:
                break
            event = await self.next_event(remaining)
            if event is None and self.exited:
                break
            if isinstance(event, CommandFinished) and event.token == token:
                self.shell_integration = True
                self.cwd = event.cwd or self.cwd
                break
        logger.info(f"Console '{self.name}' shell integration: {self.shell_integration}")
        return self.shell_integration

    async def send(self, line: str) -> None:
        """Write one line of input to the shell."""
        if self.exited or self._proc is None or self._proc.stdin is None:
            raise ConsoleError(f"Console '{self.name}' has exited")
        try:
            self._proc.stdin.write(line.encode("utf-8") + b"\n")
            await self._proc.stdin.drain()
        except (BrokenPipeError, ConnectionResetError) as exc:
            raise ConsoleError(f"Console '{self.name}' has exited: {exc}") from exc

    async def next_event(self, timeout: float) -> ConsoleEvent | None:
        """
        Next event from the stream.

        Returns None on timeout or once the stream has ended; check
        ``exited`` to tell the two apart.
        """
        if self._closed.is_set() and self._events.empty():
            return None
        try:
            return await asyncio.wait_for(self._events.get(), timeout=max(timeout, 0))
        except asyncio.TimeoutError:
            return None

    def drain(self) -> list[ConsoleEvent]:
        """Take every event queued so far without waiting."""
        events: list[ConsoleEvent] = []
        while True:
            try:
                event = self._events.get_nowait()
            except asyncio.QueueEmpty:
                break
            if event is None:
                # Keep the end-of-stream sentinel for later readers
                self._events.put_nowait(None)
                break
            events.append(event)
        return events

    async def wait_closed(self) -> None:
        await self._closed.wait()

    async def dispose(self, timeout: float = 2.0) -> None:
        """Terminate the shell and its process group, then reap it."""
        proc = self._proc
        if proc is not None and proc.returncode is None:
            with contextlib.suppress(ProcessLookupError):
                os.killpg(proc.pid, sigmod.SIGTERM)
            try:
                await asyncio.wait_for(proc.wait(), timeout=timeout)
            except asyncio.TimeoutError:
                with contextlib.suppress(ProcessLookupError):
                    os.killpg(proc.pid, sigmod.SIGKILL)
                await proc.wait()
        if self._reader is not None:
            with contextlib.suppress(asyncio.TimeoutError):
                await asyncio.wait_for(asyncio.shield(self._reader), timeout=timeout)
            if not self._reader.done():
                self._reader.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await self._reader
        logger.info(f"Console '{self.name}' disposed")
