"""Syntax checkers that turn parse failures into diagnostics."""

from __future__ import annotations

from collections.abc import Callable
import json
import re
import tomllib
import warnings

from workspace_mcp.host import DiagnosticRecord, Range, Severity

Checker = Callable[[str, str], list[DiagnosticRecord]]

_TOML_POSITION = re.compile(r"\(at line (\d+), column (\d+)\)")


def check_python(rel_path: str, source: str) -> list[DiagnosticRecord]:
    """Compile the module; syntax errors are Errors, compiler warnings are Warnings."""
    records: list[DiagnosticRecord] = []
    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always")
        try:
            compile(source, rel_path, "exec", dont_inherit=True)
        except SyntaxError as exc:
            line = max((exc.lineno or 1) - 1, 0)
            col = max((exc.offset or 1) - 1, 0)
            end_line = max((exc.end_lineno or exc.lineno or 1) - 1, line)
            end_col = max((exc.end_offset or exc.offset or 1) - 1, col)
            records.append(
                DiagnosticRecord(
                    file_path=rel_path,
                    severity=Severity.ERROR,
                    message=exc.msg,
                    range=Range.of(line, col, end_line, end_col),
                    source="python",
                    code=type(exc).__name__,
                )
            )
        except ValueError as exc:
            records.append(
                DiagnosticRecord(
                    file_path=rel_path,
                    severity=Severity.ERROR,
                    message=str(exc),
                    range=Range.of(0, 0, 0, 0),
                    source="python",
                )
            )

    for warning in caught:
        if not issubclass(warning.category, (SyntaxWarning, DeprecationWarning)):
            continue
        line = max(warning.lineno - 1, 0)
        records.append(
            DiagnosticRecord(
                file_path=rel_path,
                severity=Severity.WARNING,
                message=str(warning.message),
                range=Range.of(line, 0, line, 0),
                source="python",
                code=warning.category.__name__,
            )
        )
    return records


def check_json(rel_path: str, source: str) -> list[DiagnosticRecord]:
    try:
        json.loads(source)
    except json.JSONDecodeError as exc:
        line, col = exc.lineno - 1, exc.colno - 1
        return [
            DiagnosticRecord(
                file_path=rel_path,
                severity=Severity.ERROR,
                message=exc.msg,
                range=Range.of(line, col, line, col + 1),
                source="json",
            )
        ]
    return []


def check_toml(rel_path: str, source: str) -> list[DiagnosticRecord]:
    try:
        tomllib.loads(source)
    except tomllib.TOMLDecodeError as exc:
        message = str(exc)
        line = col = 0
        match = _TOML_POSITION.search(message)
        if match:
            line, col = int(match.group(1)) - 1, int(match.group(2)) - 1
            message = message[: match.start()].strip()
        return [
            DiagnosticRecord(
                file_path=rel_path,
                severity=Severity.ERROR,
                message=message,
                range=Range.of(line, col, line, col + 1),
                source="toml",
            )
        ]
    return []


CHECKERS: dict[str, Checker] = {
    ".py": check_python,
    ".json": check_json,
    ".toml": check_toml,
}
