"""Diagnostics aggregation, filtering and rendering."""

import json

import pytest

from workspace_mcp.errors import ToolValidationError
from workspace_mcp.host import DiagnosticRecord, Range, Severity
from workspace_mcp.tools.diagnostics import DiagnosticsAggregator, DiagnosticsReport, parse_severities


def _record(path, severity, line, message, source="lint", code=None):
    return DiagnosticRecord(
        file_path=path,
        severity=severity,
        message=message,
        range=Range.of(line, 2, line, 5),
        source=source,
        code=code,
    )


class FakeHost:
    def __init__(self, by_file):
        self.by_file = by_file
        self.queried = []

    async def query_diagnostics(self, path=None):
        self.queried.append(path)
        if path is None:
            return self.by_file
        return {k: v for k, v in self.by_file.items() if k == path}


@pytest.fixture
def fake_host():
    return FakeHost(
        {
            "b.py": [
                _record("b.py", Severity.WARNING, 4, "unused import", code="W0611"),
                _record("b.py", Severity.HINT, 1, "could be simpler"),
            ],
            "a.py": [
                _record("a.py", Severity.ERROR, 9, "undefined name"),
                _record("a.py", Severity.ERROR, 3, "bad syntax"),
                _record("a.py", Severity.INFORMATION, 0, "fyi"),
            ],
        }
    )


@pytest.mark.asyncio
async def test_default_filter_keeps_errors_and_warnings(fake_host):
    report = await DiagnosticsAggregator(fake_host).collect()

    assert report.count == 3
    assert [(r.file_path, r.range.start.line) for r in report.records] == [
        ("a.py", 3),
        ("a.py", 9),
        ("b.py", 4),
    ]
    assert report.counts_by_severity() == {Severity.ERROR: 2, Severity.WARNING: 1}


@pytest.mark.asyncio
async def test_single_severity_and_path_scope(fake_host):
    report = await DiagnosticsAggregator(fake_host).collect("b.py", severities=[Severity.HINT])
    assert fake_host.queried == ["b.py"]
    assert [r.message for r in report.records] == ["could be simpler"]


@pytest.mark.asyncio
async def test_text_and_json_agree(fake_host):
    report = await DiagnosticsAggregator(fake_host).collect()

    text = report.to_text()
    assert text.splitlines()[0] == "Found 3 problems (2 errors, 1 warning) in 2 file(s):"
    assert "  [Error] 3:2 bad syntax (lint)" in text
    assert "  [Warning] 4:2 unused import (lint W0611)" in text

    data = json.loads(report.to_json())
    assert data["count"] == 3
    assert data["diagnostics"][0] == {
        "filePath": "a.py",
        "severity": "Error",
        "message": "bad syntax",
        "range": {"start": {"line": 3, "character": 2}, "end": {"line": 3, "character": 5}},
        "source": "lint",
    }


def test_source_can_be_left_out():
    report = DiagnosticsReport([_record("a.py", Severity.ERROR, 0, "x")], include_source=False)
    assert "(lint)" not in report.to_text()
    assert "source" not in json.loads(report.to_json())["diagnostics"][0]


def test_empty_report_is_not_an_error():
    report = DiagnosticsReport([])
    assert report.to_text() == "No problems found."
    assert json.loads(report.to_json()) == {"count": 0, "diagnostics": []}


def test_parse_severities():
    assert parse_severities(["error", "Hint"]) == [Severity.ERROR, Severity.HINT]
    with pytest.raises(ToolValidationError):
        parse_severities(["fatal"])


@pytest.mark.asyncio
async def test_local_host_reports_syntax_errors(host, workspace):
    (workspace / "ok.py").write_text("x = 1\n")
    (workspace / "broken.py").write_text("def f(:\n    pass\n")
    (workspace / "conf.json").write_text('{"a": }')

    report = await DiagnosticsAggregator(host).collect()

    files = {r.file_path for r in report.records}
    assert files == {"broken.py", "conf.json"}
    assert all(r.severity == Severity.ERROR for r in report.records)


@pytest.mark.asyncio
async def test_published_diagnostics_are_merged(host, workspace):
    (workspace / "a.txt").write_text("text")
    host.diagnostics.publish("a.txt", [_record("a.txt", Severity.WARNING, 0, "spelling")])

    report = await DiagnosticsAggregator(host).collect()
    assert [r.message for r in report.records] == ["spelling"]

    host.diagnostics.clear()
    report = await DiagnosticsAggregator(host).collect()
    assert report.count == 0


@pytest.mark.asyncio
async def test_get_diagnostics_tool(server, workspace):
    (workspace / "clean.py").write_text("print('hi')\n")

    result = await server.call_tool("get_diagnostics", {})
    assert result.isError is False
    assert result.content[0].text == "No problems found."

    bad = await server.call_tool("get_diagnostics", {"severities": ["Fatal"]})
    assert bad.isError is True


@pytest.mark.asyncio
async def test_error_only_filter_count_matches(fake_host):
    report = await DiagnosticsAggregator(fake_host).collect(severities=[Severity.ERROR])
    assert {r.severity for r in report.records} == {Severity.ERROR}
    assert report.count == len(report.records) == 2
