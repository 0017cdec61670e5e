"""Host command palette: named async commands the agent can list and run."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
import logging
from typing import Any

from workspace_mcp.errors import DuplicateToolNameError, NotFoundError
from workspace_mcp.host import HostCommand

logger = logging.getLogger(__name__)

CommandCallback = Callable[..., Awaitable[Any]]


class HostCommandRegistry:
    """Command id -> callback. Ids starting with ``_`` are internal."""

    def __init__(self):
        self._commands: dict[str, tuple[HostCommand, CommandCallback]] = {}

    def register(self, command_id: str, callback: CommandCallback, description: str = "") -> None:
        if command_id in self._commands:
            raise DuplicateToolNameError(f"Command already registered: {command_id}")
        self._commands[command_id] = (HostCommand(id=command_id, description=description), callback)

    def unregister(self, command_id: str) -> None:
        self._commands.pop(command_id, None)

    def list(self) -> list[HostCommand]:
        return sorted((cmd for cmd, _ in self._commands.values()), key=lambda c: c.id)

    async def execute(self, command_id: str, args: list[Any]) -> Any:
        """
        Run a command with positional arguments.

        Raises:
            NotFoundError: no command with this id
        """
        entry = self._commands.get(command_id)
        if entry is None:
            raise NotFoundError(f"Command not found: {command_id}")
        _, callback = entry
        logger.info(f"Executing host command {command_id} with {len(args)} arg(s)")
        return await callback(*args)
