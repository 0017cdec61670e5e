"""
Host capability interface.

The gateway never talks to an editor object model directly. Everything a
tool needs from its host is one of the async capabilities on
:class:`WorkspaceHost`, so tool logic can be exercised against fakes.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from functools import cached_property
from pathlib import Path
import re
from typing import Any, Protocol

_LINE_BREAK = re.compile(r"\r\n|\r|\n")


# =============================================================================
# Data types
# =============================================================================


class FileType(str, Enum):
    FILE = "file"
    DIRECTORY = "directory"


class Severity(IntEnum):
    """Diagnostic severity, ordered most to least severe."""

    ERROR = 0
    WARNING = 1
    INFORMATION = 2
    HINT = 3

    @property
    def label(self) -> str:
        return self.name.capitalize()

    @classmethod
    def parse(cls, value: str) -> Severity:
        try:
            return cls[value.strip().upper()]
        except KeyError:
            raise ValueError(f"Unknown severity: {value}") from None


class SymbolKind(IntEnum):
    """Symbol kinds, numbered as editors number them."""

    File = 0
    Module = 1
    Namespace = 2
    Package = 3
    Class = 4
    Method = 5
    Property = 6
    Field = 7
    Constructor = 8
    Enum = 9
    Interface = 10
    Function = 11
    Variable = 12
    Constant = 13
    String = 14
    Number = 15
    Boolean = 16
    Array = 17
    Object = 18
    Key = 19
    Null = 20
    EnumMember = 21
    Struct = 22
    Event = 23
    Operator = 24
    TypeParameter = 25


@dataclass(frozen=True)
class Position:
    line: int
    character: int

    def to_dict(self) -> dict[str, int]:
        return {"line": self.line, "character": self.character}


@dataclass(frozen=True)
class Range:
    start: Position
    end: Position

    @classmethod
    def of(cls, start_line: int, start_char: int, end_line: int, end_char: int) -> Range:
        return cls(Position(start_line, start_char), Position(end_line, end_char))

    def to_dict(self) -> dict[str, Any]:
        return {"start": self.start.to_dict(), "end": self.end.to_dict()}


@dataclass(frozen=True)
class FileEntry:
    name: str
    type: FileType


@dataclass(frozen=True)
class DiagnosticRecord:
    """One problem reported for a file. ``file_path`` is workspace-relative."""

    file_path: str
    severity: Severity
    message: str
    range: Range
    source: str | None = None
    code: str | None = None

    def to_dict(self, include_source: bool = True) -> dict[str, Any]:
        data: dict[str, Any] = {
            "filePath": self.file_path,
            "severity": self.severity.label,
            "message": self.message,
            "range": self.range.to_dict(),
        }
        if include_source and self.source:
            data["source"] = self.source
        if self.code:
            data["code"] = self.code
        return data


@dataclass(frozen=True)
class SymbolInformation:
    """A flat workspace symbol hit."""

    name: str
    kind: SymbolKind
    path: str
    range: Range
    container_name: str | None = None


@dataclass
class DocumentSymbol:
    """A node in a file's symbol outline."""

    name: str
    kind: SymbolKind
    range: Range
    selection_range: Range
    detail: str | None = None
    children: list[DocumentSymbol] = field(default_factory=list)


@dataclass(frozen=True)
class HostCommand:
    id: str
    description: str = ""

    @property
    def internal(self) -> bool:
        return self.id.startswith("_")


# =============================================================================
# Text documents
# =============================================================================


@dataclass(frozen=True)
class TextDocument:
    """
    Immutable snapshot of a document's text.

    Lines follow editor semantics: ``\\r\\n``, ``\\n`` and ``\\r`` all end a
    line, line text never includes its terminator, and a text ending in a
    line break has a final empty line. ``version`` identifies the snapshot
    so an edit computed against it can be refused if the document moved on.
    """

    path: Path
    text: str
    version: int = 0

    @cached_property
    def _spans(self) -> list[tuple[int, int]]:
        spans: list[tuple[int, int]] = []
        start = 0
        for match in _LINE_BREAK.finditer(self.text):
            spans.append((start, match.start()))
            start = match.end()
        spans.append((start, len(self.text)))
        return spans

    @cached_property
    def eol(self) -> str:
        """Dominant line terminator, ``\\n`` for single-line documents."""
        counts: dict[str, int] = {}
        for match in _LINE_BREAK.finditer(self.text):
            counts[match.group()] = counts.get(match.group(), 0) + 1
        if not counts:
            return "\n"
        return max(counts, key=lambda k: counts[k])

    @property
    def line_count(self) -> int:
        return len(self._spans)

    def line_text(self, line: int) -> str:
        start, end = self._spans[line]
        return self.text[start:end]

    def offset_at_line_start(self, line: int) -> int:
        return self._spans[line][0]

    def offset_at_line_end(self, line: int) -> int:
        """Offset just past the last character of ``line``, before its terminator."""
        return self._spans[line][1]

    def text_in_lines(self, start_line: int, end_line: int) -> str:
        """Exact text from the start of ``start_line`` to the end of ``end_line``."""
        return self.text[self.offset_at_line_start(start_line) : self.offset_at_line_end(end_line)]

    def lines(self) -> list[str]:
        return [self.line_text(i) for i in range(self.line_count)]


# =============================================================================
# Capability interface
# =============================================================================


class WorkspaceHost(Protocol):
    """Everything the gateway's tools need from the editor host."""

    @property
    def root(self) -> Path: ...

    def resolve(self, path: str) -> Path: ...

    def display_path(self, path: Path) -> str: ...

    async def read_file(self, path: str) -> bytes: ...

    async def write_file(
        self, path: str, data: bytes, overwrite: bool = False, ignore_if_exists: bool = False
    ) -> bool: ...

    async def list_directory(self, path: str) -> list[FileEntry]: ...

    async def open_document(self, path: str) -> TextDocument: ...

    async def apply_line_edit(
        self, document: TextDocument, start_line: int, end_line: int, text: str
    ) -> bool: ...

    async def save_document(self, path: str) -> bool: ...

    async def query_diagnostics(self, path: str | None = None) -> dict[str, list[DiagnosticRecord]]: ...

    async def query_workspace_symbols(self, query: str) -> list[SymbolInformation]: ...

    async def query_document_symbols(self, path: str) -> list[DocumentSymbol]: ...

    async def list_commands(self) -> Sequence[HostCommand]: ...

    async def execute_command(self, command: str, args: list[Any]) -> Any: ...
