"""
Workspace path resolution.

Security features:
- Relative paths resolve against the workspace root, never the process cwd
- Path normalization (resolves .., symlinks)
- Traversal protection (must stay within the workspace root)
- Device file rejection
"""

from __future__ import annotations

import os
from pathlib import Path
import stat as stat_module

from workspace_mcp.errors import GatewayError


class PathSecurityError(GatewayError):
    """Raised when path access is denied for security reasons."""

    code = "PATH_DENIED"


def normalize_path(path: str | Path, root: Path) -> Path:
    """
    Normalize and resolve a path against the workspace root.

    Raises:
        PathSecurityError: If path contains null bytes
    """
    path_str = str(path)

    if "\x00" in path_str:
        raise PathSecurityError("Path contains null bytes")

    expanded = Path(os.path.expanduser(path_str))
    if not expanded.is_absolute():
        expanded = root / expanded
    return expanded.resolve()


def is_within(path: Path, root: Path) -> bool:
    try:
        path.relative_to(root)
        return True
    except ValueError:
        return False


def _is_device_file(path: Path) -> bool:
    """Check if path is a device file (block/char special)."""
    try:
        mode = path.stat().st_mode
        return stat_module.S_ISBLK(mode) or stat_module.S_ISCHR(mode)
    except OSError:
        return False


def validate_path(path: str | Path, root: Path) -> Path:
    """
    Validate and normalize a path for safe access.

    Symlinks are resolved before the containment check, so a link that
    points outside the root is rejected like any other escape.

    Args:
        path: Raw path from the caller, absolute or workspace-relative
        root: Resolved workspace root

    Returns:
        Validated, resolved Path

    Raises:
        PathSecurityError: If path is not safe to access
    """
    resolved = normalize_path(path, root)

    if not is_within(resolved, root):
        raise PathSecurityError(f"Path {path} is outside the workspace root {root}")

    if resolved.exists() and _is_device_file(resolved):
        raise PathSecurityError(f"Cannot access device file: {resolved}")

    return resolved


def relative_display(path: Path, root: Path) -> str:
    """Workspace-relative POSIX form used in tool output."""
    try:
        rel = path.relative_to(root)
    except ValueError:
        return str(path)
    return rel.as_posix()
