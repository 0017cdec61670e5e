"""
Workspace gateway server: tool catalog plus observed tool invocation.

Transport-agnostic. The HTTP adapter in ``workspace_mcp.transport`` calls
``list_tools`` / ``call_tool``; the lifecycle controller owns the instance.
"""

from __future__ import annotations

from collections.abc import Callable
import logging
import time
from typing import Any

from mcp.types import CallToolResult, Tool

from workspace_mcp import __version__
from workspace_mcp.commands import HostCommandRegistry
from workspace_mcp.config import TOOL_GROUPS, GatewayConfig
from workspace_mcp.console.manager import ConsoleManager
from workspace_mcp.errors import GatewayError
from workspace_mcp.host import WorkspaceHost
from workspace_mcp.notifications import NotificationHub
from workspace_mcp.observability import OUTCOME_FAILED, OUTCOME_OK, OUTCOME_REJECTED, ObservabilityContext
from workspace_mcp.registry import ToolFailure, ToolRegistry, to_call_tool_result
from workspace_mcp.tools import ToolContext, commands, diagnostics, edit, fs, shell, symbols

logger = logging.getLogger(__name__)

SERVER_NAME = "workspace-mcp"


def build_registry(ctx: ToolContext, groups: set[str]) -> ToolRegistry:
    """Register every tool whose group is enabled."""
    registry = ToolRegistry()
    for module in (fs, edit, shell, diagnostics, symbols, commands):
        module.register(registry, ctx, groups)
    return registry


class WorkspaceMcpServer:
    """Workspace gateway server implementation."""

    def __init__(
        self,
        config: GatewayConfig,
        host: WorkspaceHost,
        console: ConsoleManager,
        notifications: NotificationHub | None = None,
    ):
        self.config = config
        self.host = host
        self.console = console
        self.notifications = notifications or NotificationHub()
        self.obs = ObservabilityContext(config.observability)
        self.status_provider: Callable[[], dict[str, Any]] = lambda: {}

        groups = set(config.tools.enabled_groups) & set(TOOL_GROUPS)
        self.registry = build_registry(ToolContext(host=host, console=console, config=config), groups)
        self._register_gateway_commands()

        logger.info(
            f"Workspace MCP server initialized ({len(self.registry)} tools, groups={sorted(groups)})"
        )

    def _register_gateway_commands(self) -> None:
        registry = getattr(self.host, "commands", None)
        if not isinstance(registry, HostCommandRegistry):
            return
        for command_id in ("console.reset", "gateway.showServerInfo"):
            registry.unregister(command_id)
        registry.register("console.reset", self._cmd_console_reset, "Kill and forget the shared console session")
        registry.register("gateway.showServerInfo", self._cmd_server_info, "Show gateway status and address")

    async def _cmd_console_reset(self) -> str:
        await self.console.dispose()
        return "console reset"

    async def _cmd_server_info(self) -> dict[str, Any]:
        return self.server_info()

    def server_info(self) -> dict[str, Any]:
        info: dict[str, Any] = {
            "server": SERVER_NAME,
            "version": __version__,
            "workspace": str(self.config.workspace.root_path),
            "tools": self.registry.names(),
        }
        info.update(self.status_provider())
        return info

    def list_tools(self) -> list[Tool]:
        return self.registry.list_tools()

    async def call_tool(self, name: str, arguments: Any) -> CallToolResult:
        """
        Invoke a tool with observability.

        Raises:
            UnknownToolError: no such tool (the transport answers with a
                protocol error rather than a tool result)
        """
        cid = self.obs.correlation_id()
        start_time = time.monotonic()
        logger.info(f"call_tool: {name}", extra={"correlation_id": cid, "tool": name})

        try:
            result = await self.registry.invoke(name, arguments)
        except GatewayError as exc:
            latency_ms = (time.monotonic() - start_time) * 1000
            self.obs.record(cid, name, latency_ms, OUTCOME_REJECTED, exc.code)
            logger.warning(
                f"call_tool rejected: {name}",
                extra={"correlation_id": cid, "tool": name, "error_code": exc.code, "error": exc.message},
            )
            raise

        latency_ms = (time.monotonic() - start_time) * 1000
        if isinstance(result, ToolFailure):
            outcome, code, error_msg = OUTCOME_FAILED, result.code, result.message
        else:
            outcome, code, error_msg = OUTCOME_OK, None, None
        self.obs.record(cid, name, latency_ms, outcome, code)

        logger.info(
            f"call_tool done: {name}",
            extra={
                "correlation_id": cid,
                "tool": name,
                "latency_ms": round(latency_ms, 2),
                "status": outcome,
                "error_code": code,
                "error": error_msg,
            },
        )
        self.notifications.log(
            "info" if outcome == OUTCOME_OK else "warning",
            SERVER_NAME,
            {"tool": name, "cid": cid, "status": outcome, "code": code, "latency_ms": round(latency_ms, 2)},
        )
        return to_call_tool_result(result)
