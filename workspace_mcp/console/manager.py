"""
Console manager.

Owns the single reusable console session and serializes commands against
it. Concurrent ``run`` calls queue on one asyncio lock, so captured output
always belongs to exactly one command.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass
import logging
from pathlib import Path
import shlex
import time

from workspace_mcp.config import ConsoleConfig
from workspace_mcp.console.events import (
    CommandFinished,
    CommandStarted,
    OutputChunk,
    finish_marker_command,
    start_marker_command,
)
from workspace_mcp.console.session import ConsoleSession, new_token
from workspace_mcp.errors import ConsoleError, NotFoundError, ToolValidationError
from workspace_mcp.paths import relative_display, validate_path

logger = logging.getLogger(__name__)

SessionFactory = Callable[[str, str, Path], ConsoleSession]

DEGRADED_NOTICE = (
    "Shell integration is not available for this console: the command was sent "
    "and output collected after a fixed wait. The exit code is unknown and the "
    "command may still be running."
)


@dataclass
class ConsoleRunResult:
    """Outcome of one command. A nonzero exit code is data, not an error."""

    command: str
    output: str
    exit_code: int | None
    cwd: str
    degraded: bool = False
    truncated: bool = False
    duration_ms: float = 0.0

    @property
    def succeeded(self) -> bool | None:
        if self.exit_code is None:
            return None
        return self.exit_code == 0

    def render(self) -> str:
        lines = [f"$ {self.command}", f"cwd: {self.cwd}"]
        if self.degraded:
            lines.append(f"Notice: {DEGRADED_NOTICE}")
        else:
            lines.append(f"Exit code: {self.exit_code}")
        if self.truncated:
            lines.append("(output truncated, showing the end)")
        lines.append("")
        lines.append(self.output if self.output else "(no output)")
        return "\n".join(lines)


class _CommandNotStarted(ConsoleError):
    """The session died before the command began; safe to retry on a fresh session."""


class ConsoleManager:
    """Lazily creates, reuses and recycles the gateway's console session."""

    def __init__(
        self,
        config: ConsoleConfig,
        workspace_root: Path,
        session_factory: SessionFactory | None = None,
    ):
        self.config = config
        self.workspace_root = Path(workspace_root).resolve()
        self._session_factory = session_factory or ConsoleSession
        self._session: ConsoleSession | None = None
        self._lock = asyncio.Lock()
        self._claimed = False

    # -------------------------------------------------------------------------
    # Ownership
    # -------------------------------------------------------------------------

    @property
    def session(self) -> ConsoleSession | None:
        return self._session

    @property
    def claimed(self) -> bool:
        return self._claimed

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    def claim(self) -> None:
        """Give the gateway exclusive use of the console."""
        self._claimed = True

    async def release(self) -> None:
        """Drop the gateway's claim; the session is kept unless configured otherwise."""
        self._claimed = False
        if self.config.dispose_on_disable:
            await self.dispose()

    async def dispose(self) -> None:
        """Kill the session. Waits for any running command to finish first."""
        async with self._lock:
            await self._dispose_locked()

    async def _dispose_locked(self) -> None:
        if self._session is not None:
            session, self._session = self._session, None
            await session.dispose()

    # -------------------------------------------------------------------------
    # Session
    # -------------------------------------------------------------------------

    async def ensure_session(self) -> ConsoleSession:
        """Return the live session, replacing it if it has exited."""
        async with self._lock:
            return await self._ensure_session_locked()

    async def _ensure_session_locked(self) -> ConsoleSession:
        if self._session is not None and not self._session.exited:
            return self._session

        if self._session is not None:
            logger.warning(f"Console '{self.config.name}' exited; starting a new session")
            await self._dispose_locked()

        session = self._session_factory(self.config.name, self.config.shell, self.workspace_root)
        await session.start()
        if self.config.shell_integration:
            await session.probe_shell_integration()
        self._session = session
        return session

    # -------------------------------------------------------------------------
    # Commands
    # -------------------------------------------------------------------------

    def resolve_cwd(self, cwd: str) -> Path | None:
        """Resolve an explicit working directory; "." or empty means stay where the shell is."""
        if cwd in ("", "."):
            return None
        target = validate_path(cwd, self.workspace_root)
        if not target.exists():
            raise NotFoundError(f"Working directory not found: {cwd}")
        if not target.is_dir():
            raise ToolValidationError(f"Working directory is not a directory: {cwd}")
        return target

    async def run(self, command: str, cwd: str = ".") -> ConsoleRunResult:
        """
        Run one command in the shared console.

        Args:
            command: Shell command line
            cwd: Working directory, relative to the workspace root. "." keeps
                the session's current directory

        Returns:
            ConsoleRunResult with output and exit code (None in degraded mode)

        Raises:
            ConsoleError: console not claimed, died mid-command, or timed out
        """
        if not self._claimed:
            raise ConsoleError("Console is not available: the gateway is disabled")
        if not command.strip():
            raise ToolValidationError("Command must not be empty")
        target = self.resolve_cwd(cwd)

        async with self._lock:
            start = time.monotonic()
            for attempt in (1, 2):
                session = await self._ensure_session_locked()
                try:
                    if session.shell_integration:
                        result = await self._run_structured(session, command, target)
                    else:
                        result = await self._run_degraded(session, command, target)
                    break
                except _CommandNotStarted as exc:
                    if attempt == 2:
                        raise ConsoleError(exc.message) from exc
                    logger.warning(f"{exc.message}; retrying on a new session")
                    await self._dispose_locked()

        result.duration_ms = (time.monotonic() - start) * 1000
        return result

    async def _run_structured(
        self, session: ConsoleSession, command: str, target: Path | None
    ) -> ConsoleRunResult:
        session.drain()  # Discard output written since the last command

        if target is not None and str(target) != session.cwd:
            cd = await self._exec_marked(session, f"cd {shlex.quote(str(target))}")
            if cd.exit_code != 0:
                raise ConsoleError(f"Failed to change directory to {target}: {cd.output.strip()}")

        finished = await self._exec_marked(session, command)
        output, truncated = self._truncate(finished.output)
        return ConsoleRunResult(
            command=command,
            output=output,
            exit_code=finished.exit_code,
            cwd=relative_display(Path(session.cwd), self.workspace_root),
            truncated=truncated,
        )

    async def _exec_marked(self, session: ConsoleSession, command: str) -> ConsoleRunResult:
        """Send a marker-wrapped command and collect its output until the finish marker."""
        token = new_token()
        line = (
            f"{start_marker_command(token)}; eval {shlex.quote(command)} </dev/null; "
            f"__wmcp_rc=$?; {finish_marker_command(token, '__wmcp_rc')}"
        )
        try:
            await session.send(line)
        except ConsoleError as exc:
            raise _CommandNotStarted(exc.message) from exc

        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.config.command_timeout
        chunks: list[str] = []
        started = False

        while True:
            remaining = deadline - loop.time()
            if remaining <= 0:
                await self._dispose_locked()
                raise ConsoleError(
                    f"Command timed out after {self.config.command_timeout:g}s; console was reset"
                )
            event = await session.next_event(remaining)
            if event is None:
                if not session.exited:
                    continue
                if not started:
                    raise _CommandNotStarted(f"Console '{session.name}' exited before the command started")
                raise ConsoleError(
                    f"Console '{session.name}' exited while running the command"
                    + (f". Output so far:\n{''.join(chunks)}" if chunks else "")
                )
            if isinstance(event, CommandStarted):
                if event.token == token:
                    started = True
                    chunks.clear()
            elif isinstance(event, OutputChunk):
                if started:
                    chunks.append(event.text)
            elif isinstance(event, CommandFinished) and event.token == token:
                session.cwd = event.cwd or session.cwd
                return ConsoleRunResult(
                    command=command, output="".join(chunks), exit_code=event.exit_code, cwd=session.cwd
                )

    async def _run_degraded(
        self, session: ConsoleSession, command: str, target: Path | None
    ) -> ConsoleRunResult:
        session.drain()
        try:
            if target is not None and str(target) != session.cwd:
                await session.send(f"cd {shlex.quote(str(target))}")
                session.cwd = str(target)
            await session.send(command)
        except ConsoleError as exc:
            raise _CommandNotStarted(exc.message) from exc

        await asyncio.sleep(self.config.settle_seconds)

        text = "".join(e.text for e in session.drain() if isinstance(e, OutputChunk))
        if session.exited:
            raise ConsoleError(f"Console '{session.name}' exited while running the command")
        output, truncated = self._truncate(text)
        return ConsoleRunResult(
            command=command,
            output=output,
            exit_code=None,
            cwd=relative_display(Path(session.cwd), self.workspace_root),
            degraded=True,
            truncated=truncated,
        )

    def _truncate(self, output: str) -> tuple[str, bool]:
        limit = self.config.max_output_chars
        if len(output) <= limit:
            return output, False
        return output[-limit:], True
