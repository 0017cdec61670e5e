"""
Workspace host backed by a local directory.

Edits land in an in-memory buffer per file and are persisted by
``save_document``, mirroring an editor's dirty-document model. Disk writes
are atomic (temp file + replace).
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterator, Sequence
from dataclasses import dataclass
import logging
import os
from pathlib import Path
from typing import Any

from workspace_mcp.commands import HostCommandRegistry
from workspace_mcp.errors import HostRejectedError, NotFoundError, ToolValidationError
from workspace_mcp.host import (
    DiagnosticRecord,
    DocumentSymbol,
    FileEntry,
    FileType,
    HostCommand,
    SymbolInformation,
    TextDocument,
)
from workspace_mcp.paths import relative_display, validate_path
from workspace_mcp.providers.python_symbols import python_document_symbols
from workspace_mcp.providers.syntax import CHECKERS

logger = logging.getLogger(__name__)

MAX_SCAN_BYTES = 1_048_576  # Larger files are skipped by workspace-wide scans


@dataclass
class _Buffer:
    text: str
    version: int


class DiagnosticsCollection:
    """Problems published by external producers, keyed by workspace-relative path."""

    def __init__(self):
        self._entries: dict[str, list[DiagnosticRecord]] = {}

    def publish(self, rel_path: str, records: list[DiagnosticRecord]) -> None:
        if records:
            self._entries[rel_path] = list(records)
        else:
            self._entries.pop(rel_path, None)

    def clear(self, rel_path: str | None = None) -> None:
        if rel_path is None:
            self._entries.clear()
        else:
            self._entries.pop(rel_path, None)

    def get(self, rel_path: str) -> list[DiagnosticRecord]:
        return list(self._entries.get(rel_path, []))

    def items(self) -> list[tuple[str, list[DiagnosticRecord]]]:
        return [(path, list(records)) for path, records in self._entries.items()]


def fuzzy_match(query: str, name: str) -> bool:
    """Case-insensitive subsequence match; an empty query matches everything."""
    if not query:
        return True
    it = iter(name.lower())
    return all(ch in it for ch in query.lower())


class LocalWorkspaceHost:
    """WorkspaceHost over a directory on the local filesystem."""

    def __init__(
        self,
        root: str | Path,
        exclude_dirs: Sequence[str] = (),
        commands: HostCommandRegistry | None = None,
    ):
        self._root = Path(root).expanduser().resolve()
        self.exclude_dirs = frozenset(exclude_dirs)
        self.commands = commands or HostCommandRegistry()
        self.diagnostics = DiagnosticsCollection()
        self._buffers: dict[Path, _Buffer] = {}
        self._disk_versions: dict[Path, tuple[tuple[int, int], int]] = {}
        self._register_builtin_commands()

    # -------------------------------------------------------------------------
    # Paths
    # -------------------------------------------------------------------------

    @property
    def root(self) -> Path:
        if not self._root.is_dir():
            raise NotFoundError("No workspace folder is open")
        return self._root

    def resolve(self, path: str) -> Path:
        return validate_path(path, self.root)

    def display_path(self, path: Path) -> str:
        return relative_display(path, self.root)

    # -------------------------------------------------------------------------
    # Files
    # -------------------------------------------------------------------------

    async def read_file(self, path: str) -> bytes:
        """File bytes, taken from the unsaved buffer when an edit has not reached disk."""
        resolved = self.resolve(path)
        buffer = self._buffers.get(resolved)
        if buffer is not None:
            return buffer.text.encode("utf-8")
        if not resolved.exists():
            raise NotFoundError(f"File not found: {path}")
        if resolved.is_dir():
            raise ToolValidationError(f"Path is a directory, not a file: {path}")
        return resolved.read_bytes()

    async def write_file(
        self, path: str, data: bytes, overwrite: bool = False, ignore_if_exists: bool = False
    ) -> bool:
        """
        Create or replace a file.

        Returns:
            True if written, False if skipped because it exists and
            ``ignore_if_exists`` was set.

        Raises:
            HostRejectedError: file exists and neither flag allows proceeding,
                or the write itself failed
        """
        resolved = self.resolve(path)
        if resolved.is_dir():
            raise HostRejectedError(f"Path is a directory: {path}")
        if resolved.exists() and not overwrite:
            if ignore_if_exists:
                logger.info(f"Skipping existing file {path}")
                return False
            raise HostRejectedError(
                f"File already exists: {path} (set overwrite or ignoreIfExists)"
            )

        try:
            resolved.parent.mkdir(parents=True, exist_ok=True)
            _atomic_write(resolved, data)
        except OSError as exc:
            raise HostRejectedError(f"Failed to write {path}: {exc}") from exc

        self._buffers.pop(resolved, None)
        self._bump_disk_version(resolved)
        return True

    async def list_directory(self, path: str) -> list[FileEntry]:
        resolved = self.resolve(path)
        if not resolved.exists():
            raise NotFoundError(f"Directory not found: {path}")
        if not resolved.is_dir():
            raise ToolValidationError(f"Not a directory: {path}")
        entries = []
        for child in sorted(resolved.iterdir(), key=lambda p: p.name):
            kind = FileType.DIRECTORY if child.is_dir() else FileType.FILE
            entries.append(FileEntry(name=child.name, type=kind))
        return entries

    # -------------------------------------------------------------------------
    # Documents
    # -------------------------------------------------------------------------

    async def open_document(self, path: str) -> TextDocument:
        resolved = self.resolve(path)
        buffer = self._buffers.get(resolved)
        if buffer is not None:
            return TextDocument(path=resolved, text=buffer.text, version=buffer.version)

        if not resolved.is_file():
            raise NotFoundError(f"File not found: {path}")
        raw = resolved.read_bytes()
        try:
            text = raw.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise ToolValidationError(f"{path} is not a UTF-8 text file") from exc
        return TextDocument(path=resolved, text=text, version=self._disk_version(resolved))

    async def apply_line_edit(
        self, document: TextDocument, start_line: int, end_line: int, text: str
    ) -> bool:
        """Replace lines in the buffer; False if the snapshot is outdated or the file is read-only."""
        resolved = document.path
        current = self._current_version(resolved)
        if current != document.version:
            logger.warning(
                f"Refusing edit to {resolved}: document version {document.version} != {current}"
            )
            return False
        if not os.access(resolved, os.W_OK):
            logger.warning(f"Refusing edit to read-only file {resolved}")
            return False

        start = document.offset_at_line_start(start_line)
        end = document.offset_at_line_end(end_line)
        new_text = document.text[:start] + text + document.text[end:]
        self._buffers[resolved] = _Buffer(text=new_text, version=document.version + 1)
        return True

    async def save_document(self, path: str) -> bool:
        resolved = self.resolve(path)
        buffer = self._buffers.get(resolved)
        if buffer is None:
            return True
        try:
            _atomic_write(resolved, buffer.text.encode("utf-8"))
        except OSError as exc:
            logger.error(f"Failed to save {resolved}: {exc}")
            return False
        del self._buffers[resolved]
        self._disk_versions[resolved] = (_signature(resolved), buffer.version)
        return True

    def dirty_paths(self) -> list[Path]:
        return list(self._buffers)

    async def save_all(self) -> int:
        saved = 0
        for resolved in list(self._buffers):
            if await self.save_document(str(resolved)):
                saved += 1
        return saved

    async def revert_all(self) -> int:
        count = len(self._buffers)
        for resolved, buffer in self._buffers.items():
            self._disk_versions[resolved] = (_signature(resolved), buffer.version + 1)
        self._buffers.clear()
        return count

    def _current_version(self, resolved: Path) -> int:
        buffer = self._buffers.get(resolved)
        if buffer is not None:
            return buffer.version
        return self._disk_version(resolved)

    def _disk_version(self, resolved: Path) -> int:
        """Version number that changes whenever the file changes on disk."""
        signature = _signature(resolved)
        known = self._disk_versions.get(resolved)
        if known is None:
            self._disk_versions[resolved] = (signature, 1)
            return 1
        if known[0] != signature:
            self._disk_versions[resolved] = (signature, known[1] + 1)
            return known[1] + 1
        return known[1]

    def _bump_disk_version(self, resolved: Path) -> None:
        known = self._disk_versions.get(resolved)
        version = known[1] + 1 if known else 1
        self._disk_versions[resolved] = (_signature(resolved), version)

    def _current_text(self, resolved: Path) -> str | None:
        buffer = self._buffers.get(resolved)
        if buffer is not None:
            return buffer.text
        try:
            if resolved.stat().st_size > MAX_SCAN_BYTES:
                return None
            return resolved.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError):
            return None

    # -------------------------------------------------------------------------
    # Diagnostics and symbols
    # -------------------------------------------------------------------------

    async def query_diagnostics(self, path: str | None = None) -> dict[str, list[DiagnosticRecord]]:
        if path is not None:
            resolved = self.resolve(path)
            if not resolved.exists():
                raise NotFoundError(f"File not found: {path}")
            targets = [resolved] if resolved.is_file() else list(self._walk(resolved))
        else:
            targets = list(self._walk(self.root))

        found = await asyncio.to_thread(self._check_files, targets)

        scope = None if path is None else self.resolve(path)
        for rel_path, records in self.diagnostics.items():
            if scope is not None and not _is_under(self.root / rel_path, scope):
                continue
            found.setdefault(rel_path, []).extend(records)
        return {k: v for k, v in found.items() if v}

    def _check_files(self, targets: list[Path]) -> dict[str, list[DiagnosticRecord]]:
        found: dict[str, list[DiagnosticRecord]] = {}
        for resolved in targets:
            checker = CHECKERS.get(resolved.suffix.lower())
            if checker is None:
                continue
            text = self._current_text(resolved)
            if text is None:
                continue
            rel_path = self.display_path(resolved)
            records = checker(rel_path, text)
            if records:
                found[rel_path] = records
        return found

    async def query_workspace_symbols(self, query: str) -> list[SymbolInformation]:
        return await asyncio.to_thread(self._search_symbols, query)

    def _search_symbols(self, query: str) -> list[SymbolInformation]:
        results: list[SymbolInformation] = []
        for resolved in self._walk(self.root):
            if resolved.suffix != ".py":
                continue
            text = self._current_text(resolved)
            if text is None:
                continue
            rel_path = self.display_path(resolved)
            for symbol, container in _flatten(python_document_symbols(text), None):
                if fuzzy_match(query, symbol.name):
                    results.append(
                        SymbolInformation(
                            name=symbol.name,
                            kind=symbol.kind,
                            path=rel_path,
                            range=symbol.selection_range,
                            container_name=container,
                        )
                    )
        return results

    async def query_document_symbols(self, path: str) -> list[DocumentSymbol]:
        resolved = self.resolve(path)
        if not resolved.is_file():
            raise NotFoundError(f"File not found: {path}")
        if resolved.suffix != ".py":
            return []
        text = self._current_text(resolved)
        return python_document_symbols(text) if text is not None else []

    def _walk(self, start: Path) -> Iterator[Path]:
        for dirpath, dirnames, filenames in os.walk(start):
            dirnames[:] = sorted(d for d in dirnames if d not in self.exclude_dirs)
            for name in sorted(filenames):
                yield Path(dirpath) / name

    # -------------------------------------------------------------------------
    # Commands
    # -------------------------------------------------------------------------

    async def list_commands(self) -> Sequence[HostCommand]:
        return self.commands.list()

    async def execute_command(self, command: str, args: list[Any]) -> Any:
        return await self.commands.execute(command, args)

    def _register_builtin_commands(self) -> None:
        self.commands.register(
            "workspace.info", self._cmd_info, "Describe the open workspace folder"
        )
        self.commands.register(
            "workspace.saveAll", self.save_all, "Save all documents with unsaved edits"
        )
        self.commands.register(
            "workspace.revertAll", self.revert_all, "Discard all unsaved edits"
        )
        self.commands.register(
            "diagnostics.clear", self._cmd_clear_diagnostics, "Clear published diagnostics"
        )
        self.commands.register(
            "_workspace.dirtyFiles", self._cmd_dirty_files, "List documents with unsaved edits"
        )

    async def _cmd_info(self) -> dict[str, Any]:
        return {
            "root": str(self.root),
            "dirty": len(self._buffers),
            "excludeDirs": sorted(self.exclude_dirs),
        }

    async def _cmd_clear_diagnostics(self, path: str | None = None) -> str:
        self.diagnostics.clear(path)
        return "cleared"

    async def _cmd_dirty_files(self) -> list[str]:
        return [self.display_path(p) for p in self._buffers]


def _atomic_write(path: Path, data: bytes) -> None:
    tmp_path = path.with_name(f".{path.name}.tmp")
    try:
        tmp_path.write_bytes(data)
        if path.exists():
            os.chmod(tmp_path, path.stat().st_mode & 0o7777)
        tmp_path.replace(path)
    except OSError:
        tmp_path.unlink(missing_ok=True)
        raise


def _signature(path: Path) -> tuple[int, int]:
    try:
        st = path.stat()
    except OSError:
        return (0, -1)
    return (st.st_mtime_ns, st.st_size)


def _is_under(path: Path, scope: Path) -> bool:
    return path == scope or scope in path.parents


def _flatten(
    symbols: list[DocumentSymbol], container: str | None
) -> Iterator[tuple[DocumentSymbol, str | None]]:
    for symbol in symbols:
        yield symbol, container
        yield from _flatten(symbol.children, symbol.name)

