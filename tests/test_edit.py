"""replace_lines: range checks, stale-content guard and host refusals."""

import asyncio

import pytest

from workspace_mcp.errors import (
    EditRejectedError,
    RangeOutOfBoundsError,
    SaveFailedError,
    StaleContentError,
)
from workspace_mcp.local_host import LocalWorkspaceHost
from workspace_mcp.tools.edit import LineEditor
from workspace_mcp.tools.fs import read_file


class RefusingHost(LocalWorkspaceHost):
    async def apply_line_edit(self, document, start_line, end_line, text):
        return False


class UnsavableHost(LocalWorkspaceHost):
    async def save_document(self, path):
        return False


@pytest.fixture
def abc_file(workspace):
    target = workspace / "f.txt"
    target.write_text("a\nb\nc")
    return target


@pytest.mark.asyncio
async def test_replace_middle_line(host, abc_file):
    editor = LineEditor(host)

    message = await editor.replace_lines("f.txt", 1, 1, "B", "b")

    assert message == "Lines 1-1 in file f.txt replaced successfully"
    assert abc_file.read_text() == "a\nB\nc"
    assert host.dirty_paths() == []


@pytest.mark.asyncio
async def test_repeating_an_edit_is_stale(host, abc_file):
    editor = LineEditor(host)
    await editor.replace_lines("f.txt", 1, 1, "B", "b")

    with pytest.raises(StaleContentError) as exc_info:
        await editor.replace_lines("f.txt", 1, 1, "B", "b")

    assert "Original code validation failed" in exc_info.value.message
    assert "B" in exc_info.value.message
    assert abc_file.read_text() == "a\nB\nc"


@pytest.mark.asyncio
async def test_start_line_out_of_range(host, abc_file):
    with pytest.raises(RangeOutOfBoundsError) as exc_info:
        await LineEditor(host).replace_lines("f.txt", 5, 5, "x", "")
    assert exc_info.value.message == "Start line 5 is out of range (0-2)"
    assert abc_file.read_text() == "a\nb\nc"


@pytest.mark.asyncio
async def test_end_before_start_is_out_of_range(host, abc_file):
    with pytest.raises(RangeOutOfBoundsError) as exc_info:
        await LineEditor(host).replace_lines("f.txt", 2, 1, "x", "")
    assert exc_info.value.message == "End line 1 is out of range (2-2)"


@pytest.mark.asyncio
async def test_multi_line_replacement_can_grow_and_shrink(host, abc_file):
    editor = LineEditor(host)
    await editor.replace_lines("f.txt", 0, 1, "one", "a\nb")
    assert abc_file.read_text() == "one\nc"
    await editor.replace_lines("f.txt", 1, 1, "x\ny\nz", "c")
    assert abc_file.read_text() == "one\nx\ny\nz"


@pytest.mark.asyncio
async def test_crlf_original_must_match_exactly(host, workspace):
    target = workspace / "win.txt"
    target.write_bytes(b"a\r\nb\r\nc\r\n")
    editor = LineEditor(host)

    with pytest.raises(StaleContentError):
        await editor.replace_lines("win.txt", 0, 1, "A", "a\nb")

    await editor.replace_lines("win.txt", 0, 1, "A", "a\r\nb")
    assert target.read_bytes() == b"A\r\nc\r\n"


@pytest.mark.asyncio
async def test_rejected_edit_leaves_file_untouched(workspace, abc_file):
    editor = LineEditor(RefusingHost(workspace))
    with pytest.raises(EditRejectedError):
        await editor.replace_lines("f.txt", 1, 1, "B", "b")
    assert abc_file.read_text() == "a\nb\nc"


@pytest.mark.asyncio
async def test_save_failure_is_distinct_from_rejection(workspace, abc_file):
    host = UnsavableHost(workspace)
    with pytest.raises(SaveFailedError) as exc_info:
        await LineEditor(host).replace_lines("f.txt", 1, 1, "B", "b")

    assert "could not be saved" in exc_info.value.message
    assert abc_file.read_text() == "a\nb\nc"
    assert host.dirty_paths() == [abc_file.resolve()]
    document = await host.open_document("f.txt")
    assert document.text == "a\nB\nc"


@pytest.mark.asyncio
async def test_read_file_sees_unsaved_edit(workspace, abc_file):
    host = UnsavableHost(workspace)
    with pytest.raises(SaveFailedError):
        await LineEditor(host).replace_lines("f.txt", 1, 1, "B", "b")

    assert await host.read_file("f.txt") == b"a\nB\nc"
    assert await read_file(host, "f.txt", start_line=1, end_line=1) == "B"

    # What read_file showed is what the next edit is checked against
    with pytest.raises(SaveFailedError):
        await LineEditor(host).replace_lines("f.txt", 1, 1, "BB", "B")
    assert await host.read_file("f.txt") == b"a\nBB\nc"

    await host.revert_all()
    assert await host.read_file("f.txt") == b"a\nb\nc"


@pytest.mark.asyncio
async def test_host_refuses_edit_against_outdated_snapshot(host, abc_file):
    document = await host.open_document("f.txt")
    abc_file.write_text("changed on disk\n")

    applied = await host.apply_line_edit(document, 0, 0, "x")

    assert applied is False
    assert abc_file.read_text() == "changed on disk\n"


@pytest.mark.asyncio
async def test_concurrent_edits_to_one_file_serialize(host, abc_file):
    editor = LineEditor(host)
    results = await asyncio.gather(
        editor.replace_lines("f.txt", 0, 0, "A", "a"),
        editor.replace_lines("f.txt", 0, 0, "Z", "a"),
        return_exceptions=True,
    )
    assert sum(isinstance(r, StaleContentError) for r in results) == 1
    assert abc_file.read_text() in ("A\nb\nc", "Z\nb\nc")


@pytest.mark.asyncio
async def test_tool_reports_failure_as_result(server, abc_file):
    result = await server.call_tool(
        "replace_lines",
        {"path": "f.txt", "startLine": 0, "endLine": 0, "content": "x", "originalCode": "nope"},
    )
    assert result.isError is True
    assert "Original code validation failed" in result.content[0].text
