"""Host command tools: list_commands and execute_command."""

from __future__ import annotations

import json
import logging
from typing import Any

from workspace_mcp.host import WorkspaceHost
from workspace_mcp.registry import ToolRegistry, ToolResult, text_result
from workspace_mcp.tools import ToolContext

logger = logging.getLogger(__name__)


async def list_commands(host: WorkspaceHost, filter: str | None = None, include_internal: bool = False) -> str:
    commands = [
        c
        for c in await host.list_commands()
        if (include_internal or not c.internal)
        and (not filter or filter.lower() in c.id.lower())
    ]
    if not commands:
        return "No commands found."
    lines = [f"{len(commands)} command(s):"]
    for c in commands:
        lines.append(f"- {c.id}: {c.description}" if c.description else f"- {c.id}")
    return "\n".join(lines)


async def execute_command(host: WorkspaceHost, command: str, args: list[Any]) -> str:
    result = await host.execute_command(command, args)
    text = f"command {command} executed successfully"
    if result is not None:
        text += f"\nResult: {json.dumps(result, indent=2, default=str)}"
    return text


def register(registry: ToolRegistry, ctx: ToolContext, groups: set[str]) -> None:
    if "command" not in groups:
        return

    async def handle_list_commands(args: dict[str, Any]) -> ToolResult:
        return text_result(
            await list_commands(ctx.host, args.get("filter"), args["includeInternal"])
        )

    async def handle_execute_command(args: dict[str, Any]) -> ToolResult:
        return text_result(await execute_command(ctx.host, args["command"], args["args"]))

    registry.register(
        "list_commands",
        "Lists host commands that execute_command can run.",
        {
            "filter": {"type": "string", "description": "Only commands whose id contains this text"},
            "includeInternal": {
                "type": "boolean",
                "default": False,
                "description": "Include internal commands (ids starting with '_')",
            },
        },
        handle_list_commands,
        group="command",
    )
    registry.register(
        "execute_command",
        "Executes a host command by id, with optional positional arguments.",
        {
            "command": {"type": "string", "required": True, "description": "The command id to execute"},
            "args": {"type": "array", "default": [], "description": "Positional arguments for the command"},
        },
        handle_execute_command,
        group="command",
    )
