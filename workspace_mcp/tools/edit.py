"""
replace_lines: partial edits guarded by an optimistic-concurrency check.

The caller states what it believes lines [startLine, endLine] currently
contain. The edit is applied only if that matches the document exactly,
byte for byte, with no line-ending normalization. Anything else fails
without touching the file.
"""

from __future__ import annotations

import asyncio
from collections import defaultdict
import logging
from pathlib import Path
from typing import Any

from workspace_mcp.errors import (
    EditRejectedError,
    RangeOutOfBoundsError,
    SaveFailedError,
    StaleContentError,
)
from workspace_mcp.host import WorkspaceHost
from workspace_mcp.registry import ToolRegistry, ToolResult, text_result
from workspace_mcp.tools import ToolContext

logger = logging.getLogger(__name__)

STALE_PREVIEW_CHARS = 2000


class LineEditor:
    """Validates and applies line-range replacements, one at a time per file."""

    def __init__(self, host: WorkspaceHost):
        self.host = host
        self._locks: defaultdict[Path, asyncio.Lock] = defaultdict(asyncio.Lock)

    async def replace_lines(
        self,
        path: str,
        start_line: int,
        end_line: int,
        content: str,
        original_code: str,
    ) -> str:
        """
        Replace lines [start_line, end_line] if they still read ``original_code``.

        Raises:
            RangeOutOfBoundsError: line numbers outside the document
            StaleContentError: current text differs from ``original_code``
            EditRejectedError: host refused to apply the edit
            SaveFailedError: applied but could not be persisted
        """
        resolved = self.host.resolve(path)

        async with self._locks[resolved]:
            document = await self.host.open_document(path)
            last = document.line_count - 1

            if start_line < 0 or start_line > last:
                raise RangeOutOfBoundsError(f"Start line {start_line} is out of range (0-{last})")
            if end_line < start_line or end_line > last:
                raise RangeOutOfBoundsError(
                    f"End line {end_line} is out of range ({start_line}-{last})"
                )

            current = document.text_in_lines(start_line, end_line)
            if current != original_code:
                preview = current
                if len(preview) > STALE_PREVIEW_CHARS:
                    preview = preview[:STALE_PREVIEW_CHARS] + "\n..."
                raise StaleContentError(
                    "Original code validation failed. The current content does not match "
                    f"the provided original code.\nCurrent content of lines {start_line}-{end_line}:\n"
                    f"{preview}"
                )

            if not await self.host.apply_line_edit(document, start_line, end_line, content):
                raise EditRejectedError(f"Failed to replace lines in file: {path}")

            if not await self.host.save_document(path):
                raise SaveFailedError(
                    f"Lines {start_line}-{end_line} in {path} were replaced but the file could not "
                    "be saved; the change is held as an unsaved edit"
                )

        logger.info(f"Replaced lines {start_line}-{end_line} in {path}")
        return f"Lines {start_line}-{end_line} in file {path} replaced successfully"


def register(registry: ToolRegistry, ctx: ToolContext, groups: set[str]) -> None:
    if "edit" not in groups:
        return
    editor = LineEditor(ctx.host)

    async def handle_replace_lines(args: dict[str, Any]) -> ToolResult:
        message = await editor.replace_lines(
            args["path"],
            args["startLine"],
            args["endLine"],
            args["content"],
            args["originalCode"],
        )
        return text_result(message)

    registry.register(
        "replace_lines",
        "Replaces lines startLine..endLine (0-based, inclusive) of a file with new content. "
        "originalCode must match the current text of those lines exactly (lines joined with "
        "the file's line separator); otherwise nothing is changed. Read the file first if "
        "unsure. Prefer create_file for complete rewrites.",
        {
            "path": {"type": "string", "required": True, "description": "The path to the file to modify"},
            "startLine": {"type": "integer", "required": True, "description": "The start line number (0-based, inclusive)"},
            "endLine": {"type": "integer", "required": True, "description": "The end line number (0-based, inclusive)"},
            "content": {"type": "string", "required": True, "description": "The new content to replace the lines with"},
            "originalCode": {
                "type": "string",
                "required": True,
                "description": "The original code for validation - must match exactly",
            },
        },
        handle_replace_lines,
        group="edit",
    )
