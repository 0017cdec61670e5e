"""Workspace MCP gateway: editor workspace tools for AI agents over HTTP."""

__version__ = "0.1.0"
