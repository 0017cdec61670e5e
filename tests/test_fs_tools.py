"""File tools: list_files, read_file and create_file against a local workspace."""

import json

import pytest

from workspace_mcp.errors import HostRejectedError, RangeOutOfBoundsError, ToolValidationError
from workspace_mcp.paths import PathSecurityError
from workspace_mcp.tools.fs import create_file, list_files, read_file


@pytest.mark.asyncio
async def test_create_then_read_round_trip(host, workspace):
    content = "héllo\nwörld\n"
    assert await create_file(host, "pkg/new.txt", content) == "File pkg/new.txt created successfully"
    assert (workspace / "pkg" / "new.txt").read_bytes() == content.encode("utf-8")
    assert await read_file(host, "pkg/new.txt") == content


@pytest.mark.asyncio
async def test_create_existing_file_requires_a_flag(host, workspace):
    (workspace / "x.txt").write_text("old")

    with pytest.raises(HostRejectedError, match="File already exists"):
        await create_file(host, "x.txt", "new")

    message = await create_file(host, "x.txt", "new", ignore_if_exists=True)
    assert "left unchanged" in message
    assert (workspace / "x.txt").read_text() == "old"

    await create_file(host, "x.txt", "new", overwrite=True)
    assert (workspace / "x.txt").read_text() == "new"


@pytest.mark.asyncio
async def test_read_over_budget_fails_without_truncating(host, workspace):
    (workspace / "big.txt").write_text("x" * 50)

    with pytest.raises(ToolValidationError) as exc_info:
        await read_file(host, "big.txt", max_characters=10)

    assert "50 characters" in exc_info.value.message
    assert "maxCharacters limit of 10" in exc_info.value.message


@pytest.mark.asyncio
async def test_read_line_range(host, workspace):
    (workspace / "lines.txt").write_text("zero\none\ntwo\nthree\n")
    assert await read_file(host, "lines.txt", start_line=1, end_line=2) == "one\ntwo"
    assert await read_file(host, "lines.txt", start_line=3) == "three\n"
    assert await read_file(host, "lines.txt", end_line=0) == "zero"
    with pytest.raises(RangeOutOfBoundsError):
        await read_file(host, "lines.txt", start_line=9)


@pytest.mark.asyncio
async def test_read_binary_as_base64(host, workspace):
    (workspace / "blob.bin").write_bytes(b"\xff\x00\x01")

    with pytest.raises(ToolValidationError, match="base64"):
        await read_file(host, "blob.bin")

    data = await read_file(host, "blob.bin", encoding="base64")
    assert data == "data:application/octet-stream;base64,/wAB"


@pytest.mark.asyncio
async def test_unknown_encoding(host, workspace):
    (workspace / "a.txt").write_text("a")
    with pytest.raises(ToolValidationError, match="Unknown encoding"):
        await read_file(host, "a.txt", encoding="klingon")


@pytest.mark.asyncio
async def test_paths_cannot_escape_the_workspace(host, tmp_path):
    (tmp_path / "secret.txt").write_text("secret")
    with pytest.raises(PathSecurityError):
        await read_file(host, "../secret.txt")
    with pytest.raises(PathSecurityError):
        await create_file(host, str(tmp_path / "evil.txt"), "x")


@pytest.mark.asyncio
async def test_list_files_recursive_skips_excluded_dirs(host, workspace):
    (workspace / "src").mkdir()
    (workspace / "src" / "main.py").write_text("")
    (workspace / "node_modules").mkdir()
    (workspace / "node_modules" / "dep.js").write_text("")
    (workspace / "README.md").write_text("")

    flat = await list_files(host, ".")
    assert flat == [
        {"path": "README.md", "type": "file"},
        {"path": "node_modules", "type": "directory"},
        {"path": "src", "type": "directory"},
    ]

    deep = await list_files(host, ".", recursive=True, skip_dirs=frozenset({"node_modules"}))
    paths = [e["path"] for e in deep]
    assert "src/main.py" in paths
    assert "node_modules" in paths
    assert "node_modules/dep.js" not in paths


@pytest.mark.asyncio
async def test_list_files_tool_returns_json(server, workspace):
    (workspace / "a.txt").write_text("")
    result = await server.call_tool("list_files", {"path": "."})
    assert result.isError is False
    assert json.loads(result.content[0].text) == [{"path": "a.txt", "type": "file"}]


@pytest.mark.asyncio
async def test_read_missing_file_is_a_tool_failure(server):
    result = await server.call_tool("read_file", {"path": "missing.txt"})
    assert result.isError is True
    assert "File not found" in result.content[0].text
