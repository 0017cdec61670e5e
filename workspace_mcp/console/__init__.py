"""Shared interactive console: session, event parser and command serialization."""

from workspace_mcp.console.manager import ConsoleManager, ConsoleRunResult
from workspace_mcp.console.session import ConsoleSession

__all__ = ["ConsoleManager", "ConsoleRunResult", "ConsoleSession"]
