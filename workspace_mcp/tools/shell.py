"""execute_shell_command: run a command in the shared console."""

from __future__ import annotations

from typing import Any

from workspace_mcp.registry import ToolRegistry, ToolResult, text_result
from workspace_mcp.tools import ToolContext


def register(registry: ToolRegistry, ctx: ToolContext, groups: set[str]) -> None:
    if "shell" not in groups:
        return

    async def handle_execute_shell_command(args: dict[str, Any]) -> ToolResult:
        result = await ctx.console.run(args["command"], args["cwd"])
        return text_result(result.render())

    registry.register(
        "execute_shell_command",
        "Runs a shell command in the workspace's persistent console and returns its output and "
        "exit code. The console keeps state between calls (working directory, exported "
        "variables). Commands run one at a time; a nonzero exit code is reported, not raised. "
        "Avoid interactive commands: stdin is not connected.",
        {
            "command": {"type": "string", "required": True, "description": "The command to execute"},
            "cwd": {
                "type": "string",
                "default": ".",
                "description": (
                    "Working directory, relative to the workspace root; \".\" stays in the "
                    "console's current directory"
                ),
            },
        },
        handle_execute_shell_command,
        group="shell",
    )
