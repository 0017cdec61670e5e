"""
Diagnostics aggregator and the get_diagnostics tool.

The filtered record set is computed once per query and then rendered as
either grouped text or JSON, so both formats always agree.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
import json
from typing import Any

from workspace_mcp.errors import ToolValidationError
from workspace_mcp.host import DiagnosticRecord, Severity, WorkspaceHost
from workspace_mcp.registry import ToolRegistry, ToolResult, text_result
from workspace_mcp.tools import ToolContext

DEFAULT_SEVERITIES = (Severity.ERROR, Severity.WARNING)


@dataclass
class DiagnosticsReport:
    records: list[DiagnosticRecord]
    include_source: bool = True

    @property
    def count(self) -> int:
        return len(self.records)

    def counts_by_severity(self) -> dict[Severity, int]:
        counts: dict[Severity, int] = {}
        for record in self.records:
            counts[record.severity] = counts.get(record.severity, 0) + 1
        return counts

    def to_json(self) -> str:
        return json.dumps(
            {
                "count": self.count,
                "diagnostics": [r.to_dict(self.include_source) for r in self.records],
            },
            indent=2,
        )

    def to_text(self) -> str:
        if not self.records:
            return "No problems found."

        files: dict[str, list[DiagnosticRecord]] = {}
        for record in self.records:
            files.setdefault(record.file_path, []).append(record)

        counts = self.counts_by_severity()
        summary = ", ".join(
            f"{counts[s]} {s.label.lower()}{'' if counts[s] == 1 else 's'}"
            for s in Severity
            if s in counts
        )
        noun = "problem" if self.count == 1 else "problems"
        lines = [f"Found {self.count} {noun} ({summary}) in {len(files)} file(s):"]

        for file_path, records in files.items():
            lines.append("")
            lines.append(f"{file_path}:")
            for r in records:
                where = f"{r.range.start.line}:{r.range.start.character}"
                entry = f"  [{r.severity.label}] {where} {r.message}"
                if self.include_source and r.source:
                    entry += f" ({r.source}{f' {r.code}' if r.code else ''})"
                lines.append(entry)
        return "\n".join(lines)


class DiagnosticsAggregator:
    """Queries the host's problem collections and flattens them."""

    def __init__(self, host: WorkspaceHost):
        self.host = host

    async def collect(
        self,
        path: str | None = None,
        severities: Iterable[Severity] = DEFAULT_SEVERITIES,
        include_source: bool = True,
    ) -> DiagnosticsReport:
        wanted = set(severities)
        by_file = await self.host.query_diagnostics(path)
        records = [
            record
            for file_records in by_file.values()
            for record in file_records
            if record.severity in wanted
        ]
        records.sort(
            key=lambda r: (r.file_path, r.range.start.line, r.range.start.character, r.severity)
        )
        return DiagnosticsReport(records=records, include_source=include_source)


def parse_severities(values: Iterable[str]) -> list[Severity]:
    try:
        return [Severity.parse(v) for v in values]
    except ValueError as exc:
        raise ToolValidationError(str(exc)) from None


def register(registry: ToolRegistry, ctx: ToolContext, groups: set[str]) -> None:
    if "diagnostics" not in groups:
        return
    aggregator = DiagnosticsAggregator(ctx.host)

    async def handle_get_diagnostics(args: dict[str, Any]) -> ToolResult:
        report = await aggregator.collect(
            path=args.get("path"),
            severities=parse_severities(args["severities"]),
            include_source=args["includeSource"],
        )
        if args["format"] == "json":
            return text_result(report.to_json())
        return text_result(report.to_text())

    registry.register(
        "get_diagnostics",
        "Reports problems (errors, warnings, ...) for one file or, without a path, for the "
        "whole workspace. Positions are 0-based line:character. An empty result means no "
        "problems, not a failure.",
        {
            "path": {"type": "string", "description": "File or directory to check; omit for the whole workspace"},
            "severities": {
                "type": "array",
                "items": {"type": "string", "enum": [s.label for s in Severity]},
                "default": [s.label for s in DEFAULT_SEVERITIES],
                "description": "Severities to include",
            },
            "format": {"type": "string", "enum": ["text", "json"], "default": "text", "description": "Output format"},
            "includeSource": {"type": "boolean", "default": True, "description": "Include the producing tool's name"},
        },
        handle_get_diagnostics,
        group="diagnostics",
    )
