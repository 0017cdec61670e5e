"""
File tools: list_files, read_file, create_file.

Paths are workspace-relative. Access control (traversal, symlink escape,
device files) is enforced by the host's path resolution.
"""

from __future__ import annotations

import base64
import codecs
import json
import logging
from pathlib import PurePosixPath
from typing import Any

from workspace_mcp.errors import RangeOutOfBoundsError, ToolValidationError
from workspace_mcp.host import FileType, TextDocument, WorkspaceHost
from workspace_mcp.registry import ToolRegistry, ToolResult, text_result
from workspace_mcp.tools import ToolContext

logger = logging.getLogger(__name__)

BASE64 = "base64"


async def list_files(
    host: WorkspaceHost,
    path: str,
    recursive: bool = False,
    skip_dirs: frozenset[str] = frozenset(),
) -> list[dict[str, str]]:
    """
    List directory entries as ``{path, type}`` records.

    Entry paths are relative to ``path``. A recursive listing reports
    directories in ``skip_dirs`` but does not descend into them.
    """
    result: list[dict[str, str]] = []

    async def walk(dir_path: str, prefix: str) -> None:
        for entry in await host.list_directory(dir_path):
            entry_path = f"{prefix}/{entry.name}" if prefix else entry.name
            result.append({"path": entry_path, "type": entry.type.value})
            if recursive and entry.type == FileType.DIRECTORY and entry.name not in skip_dirs:
                await walk(str(PurePosixPath(dir_path) / entry.name), entry_path)

    await walk(path, "")
    return result


async def read_file(
    host: WorkspaceHost,
    path: str,
    encoding: str = "utf-8",
    max_characters: int = 100000,
    start_line: int = -1,
    end_line: int = -1,
) -> str:
    """
    Read a file as text, a line range of it, or base64.

    Args:
        host: Workspace host
        path: Workspace-relative file path
        encoding: Text codec name, or "base64" for binary content
        max_characters: Budget for the returned text
        start_line: First line (0-based), -1 for the start of the file
        end_line: Last line (0-based, inclusive), -1 for the end of the file

    Returns:
        The text, or a ``data:`` URI for base64

    Raises:
        ToolValidationError: unknown codec, undecodable content, bad range,
            or content over the budget
    """
    raw = await host.read_file(path)
    ranged = start_line != -1 or end_line != -1

    if encoding.lower() == BASE64:
        if ranged:
            raise ToolValidationError("startLine/endLine cannot be combined with base64 encoding")
        encoded = base64.b64encode(raw).decode("ascii")
        _check_budget(path, len(encoded), max_characters)
        return f"data:application/octet-stream;base64,{encoded}"

    try:
        codecs.lookup(encoding)
    except LookupError:
        raise ToolValidationError(f"Unknown encoding: {encoding}") from None
    try:
        text = raw.decode(encoding)
    except UnicodeDecodeError as exc:
        raise ToolValidationError(
            f"File {path} is not valid {encoding} text ({exc.reason} at byte {exc.start}); "
            "use encoding=base64 for binary files"
        ) from exc

    if ranged:
        document = TextDocument(path=host.resolve(path), text=text)
        last = document.line_count - 1
        first_line = 0 if start_line == -1 else start_line
        last_line = last if end_line == -1 else end_line
        if not 0 <= first_line <= last:
            raise RangeOutOfBoundsError(f"Start line {first_line} is out of range (0-{last})")
        if not first_line <= last_line <= last:
            raise RangeOutOfBoundsError(f"End line {last_line} is out of range ({first_line}-{last})")
        text = document.text_in_lines(first_line, last_line)

    _check_budget(path, len(text), max_characters)
    return text


def _check_budget(path: str, size: int, max_characters: int) -> None:
    if size > max_characters:
        raise ToolValidationError(
            f"File {path} is {size} characters, over the maxCharacters limit of {max_characters}. "
            "Read a smaller range with startLine/endLine or raise maxCharacters."
        )


async def create_file(
    host: WorkspaceHost,
    path: str,
    content: str,
    overwrite: bool = False,
    ignore_if_exists: bool = False,
) -> str:
    """Write ``content`` verbatim (UTF-8) and return a confirmation line."""
    written = await host.write_file(
        path, content.encode("utf-8"), overwrite=overwrite, ignore_if_exists=ignore_if_exists
    )
    if not written:
        return f"File {path} already exists; left unchanged (ignoreIfExists)"
    logger.info(f"Created {path} ({len(content)} chars, overwrite={overwrite})")
    return f"File {path} created successfully"


def register(registry: ToolRegistry, ctx: ToolContext, groups: set[str]) -> None:
    """Register the file and edit-group file tools."""
    skip_dirs = frozenset(ctx.config.tools.exclude_dirs)

    async def handle_list_files(args: dict[str, Any]) -> ToolResult:
        entries = await list_files(ctx.host, args["path"], args["recursive"], skip_dirs)
        return text_result(json.dumps(entries, indent=2))

    async def handle_read_file(args: dict[str, Any]) -> ToolResult:
        text = await read_file(
            ctx.host,
            args["path"],
            encoding=args["encoding"],
            max_characters=args["maxCharacters"],
            start_line=args["startLine"],
            end_line=args["endLine"],
        )
        return text_result(text)

    async def handle_create_file(args: dict[str, Any]) -> ToolResult:
        message = await create_file(
            ctx.host,
            args["path"],
            args["content"],
            overwrite=args["overwrite"],
            ignore_if_exists=args["ignoreIfExists"],
        )
        return text_result(message)

    if "file" in groups:
        registry.register(
            "list_files",
            "Lists files and directories in the workspace. Returns a JSON array of "
            "{path, type} entries, where type is 'file' or 'directory'.",
            {
                "path": {"type": "string", "required": True, "description": "Directory to list, relative to the workspace root"},
                "recursive": {"type": "boolean", "default": False, "description": "Whether to list files recursively"},
            },
            handle_list_files,
            group="file",
        )
        registry.register(
            "read_file",
            "Reads a file from the workspace. Use startLine/endLine (0-based, inclusive) to read "
            "part of a large file, or encoding='base64' for binary content. Fails rather than "
            "truncating when the content exceeds maxCharacters.",
            {
                "path": {"type": "string", "required": True, "description": "File to read"},
                "encoding": {"type": "string", "default": "utf-8", "description": "Text encoding, or 'base64' for binary files"},
                "maxCharacters": {
                    "type": "integer",
                    "minimum": 1,
                    "default": ctx.config.tools.read_max_characters,
                    "description": "Maximum characters to return",
                },
                "startLine": {"type": "integer", "default": -1, "description": "First line to read (0-based), -1 for the start"},
                "endLine": {"type": "integer", "default": -1, "description": "Last line to read (0-based, inclusive), -1 for the end"},
            },
            handle_read_file,
            group="file",
        )

    if "edit" in groups:
        registry.register(
            "create_file",
            "Creates a file in the workspace with the given content. Fails if the file exists "
            "unless 'overwrite' (replace it) or 'ignoreIfExists' (leave it untouched) is set. "
            "Prefer this for new files or complete rewrites.",
            {
                "path": {"type": "string", "required": True, "description": "The path to the file to create"},
                "content": {"type": "string", "required": True, "description": "The content to write to the file"},
                "overwrite": {"type": "boolean", "default": False, "description": "Whether to overwrite if the file exists"},
                "ignoreIfExists": {"type": "boolean", "default": False, "description": "Whether to ignore if the file exists"},
            },
            handle_create_file,
            group="edit",
        )
