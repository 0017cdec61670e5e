"""Gateway tools, grouped the way they can be switched on and off."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from workspace_mcp.config import GatewayConfig
    from workspace_mcp.console.manager import ConsoleManager
    from workspace_mcp.host import WorkspaceHost


@dataclass
class ToolContext:
    """Collaborators a tool handler may use."""

    host: WorkspaceHost
    console: ConsoleManager
    config: GatewayConfig
