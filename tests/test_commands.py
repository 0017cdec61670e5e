"""Host command registry and the list/execute command tools."""

import pytest

from workspace_mcp.commands import HostCommandRegistry
from workspace_mcp.errors import DuplicateToolNameError, NotFoundError
from workspace_mcp.tools.commands import execute_command, list_commands


@pytest.mark.asyncio
async def test_registry_executes_with_positional_args():
    registry = HostCommandRegistry()

    async def add(a, b):
        return a + b

    registry.register("math.add", add, "Add two numbers")
    assert await registry.execute("math.add", [2, 3]) == 5

    with pytest.raises(DuplicateToolNameError):
        registry.register("math.add", add)

    with pytest.raises(NotFoundError, match="Command not found: math.sub"):
        await registry.execute("math.sub", [])


@pytest.mark.asyncio
async def test_list_hides_internal_commands_by_default(host):
    text = await list_commands(host)
    assert "- workspace.info: Describe the open workspace folder" in text
    assert "_workspace.dirtyFiles" not in text

    text = await list_commands(host, include_internal=True)
    assert "_workspace.dirtyFiles" in text


@pytest.mark.asyncio
async def test_list_filter(host):
    text = await list_commands(host, filter="SAVE")
    assert text.splitlines() == ["1 command(s):", "- workspace.saveAll: Save all documents with unsaved edits"]
    assert await list_commands(host, filter="no-such") == "No commands found."


@pytest.mark.asyncio
async def test_execute_reports_result(host, workspace):
    text = await execute_command(host, "workspace.info", [])
    assert text.startswith("command workspace.info executed successfully\nResult: ")
    assert str(workspace.resolve()) in text


@pytest.mark.asyncio
async def test_execute_without_result(host):
    async def noop():
        return None

    host.commands.register("demo.noop", noop)
    assert await execute_command(host, "demo.noop", []) == "command demo.noop executed successfully"


@pytest.mark.asyncio
async def test_unknown_command_is_a_tool_failure(server):
    result = await server.call_tool("execute_command", {"command": "does.not.exist"})
    assert result.isError is True
    assert result.content[0].text == "Command not found: does.not.exist"


@pytest.mark.asyncio
async def test_server_adds_gateway_commands(server):
    result = await server.call_tool("list_commands", {"filter": "gateway"})
    assert "gateway.showServerInfo" in result.content[0].text

    info = await server.call_tool("execute_command", {"command": "gateway.showServerInfo"})
    assert '"server": "workspace-mcp"' in info.content[0].text
