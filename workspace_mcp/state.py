"""Process-wide gateway state and its durable subset."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
import logging
import os
from pathlib import Path
import socket
import tomllib
from typing import TYPE_CHECKING, Any

import tomli_w

if TYPE_CHECKING:
    from workspace_mcp.console.manager import ConsoleManager

logger = logging.getLogger(__name__)


class GatewayPhase(str, Enum):
    DISABLED = "disabled"
    ENABLING = "enabling"
    ENABLED = "enabled"
    DISABLING = "disabling"


@dataclass
class GatewayState:
    """
    Owned by the lifecycle controller; tool handlers never mutate it.

    Only ``enabled`` and ``port`` survive a restart (see StateStore).
    """

    phase: GatewayPhase = GatewayPhase.DISABLED
    enabled: bool = False
    port: int = 8345
    listening_socket: socket.socket | None = None
    console: ConsoleManager | None = None


@dataclass
class PersistedState:
    enabled: bool
    port: int


class StateStore:
    """Reads and writes the enabled flag and port to a small TOML file."""

    def __init__(self, path: Path, default_enabled: bool, default_port: int):
        self.path = Path(path)
        self.default_enabled = default_enabled
        self.default_port = default_port

    def load(self) -> PersistedState:
        """Load persisted state, falling back to configured defaults."""
        state = PersistedState(enabled=self.default_enabled, port=self.default_port)
        if not self.path.exists():
            return state

        try:
            with open(self.path, "rb") as f:
                data: dict[str, Any] = tomllib.load(f)
        except (OSError, tomllib.TOMLDecodeError) as exc:
            logger.warning(f"Ignoring unreadable state file {self.path}: {exc}")
            return state

        enabled = data.get("enabled", state.enabled)
        port = data.get("port", state.port)
        if isinstance(enabled, bool):
            state.enabled = enabled
        if isinstance(port, int) and not isinstance(port, bool):
            state.port = port
        return state

    def save(self, state: PersistedState) -> None:
        """Atomically write the state file."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(".toml.tmp")
        with open(tmp_path, "wb") as f:
            tomli_w.dump({"enabled": state.enabled, "port": state.port}, f)
        os.replace(tmp_path, self.path)
        logger.debug(f"Persisted gateway state to {self.path}: {state}")
