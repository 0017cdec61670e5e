"""Console marker protocol and the shared console manager."""

import asyncio
import os
import shutil
import signal

import pytest
import pytest_asyncio

from workspace_mcp.console.events import CommandFinished, CommandStarted, MarkerParser, OutputChunk
from workspace_mcp.console.manager import DEGRADED_NOTICE, ConsoleManager, ConsoleRunResult
from workspace_mcp.errors import ConsoleError, NotFoundError, ToolValidationError
from workspace_mcp.server import WorkspaceMcpServer

requires_bash = pytest.mark.skipif(shutil.which("bash") is None, reason="bash not available")


def _text(events):
    return "".join(e.text for e in events if isinstance(e, OutputChunk))


def test_parser_splits_output_and_markers():
    parser = MarkerParser()
    events = parser.feed("noise\x1b]633;C;tok\x07hello\n\x1b]633;D;tok;3;/tmp/x\x07after")
    assert events == [
        OutputChunk("noise"),
        CommandStarted("tok"),
        OutputChunk("hello\n"),
        CommandFinished("tok", 3, "/tmp/x"),
        OutputChunk("after"),
    ]


def test_parser_handles_markers_split_across_reads():
    parser = MarkerParser()
    stream = "out\x1b]633;C;abc\x07line1\nline2\n\x1b]633;D;abc;0;/w\x07"
    events = []
    for ch in stream:
        events.extend(parser.feed(ch))
    events.extend(parser.flush())

    assert CommandStarted("abc") in events
    assert CommandFinished("abc", 0, "/w") in events
    assert _text(events) == "outline1\nline2\n"
    assert "\x1b" not in _text(events)


def test_parser_keeps_cwd_with_semicolons():
    [event] = MarkerParser().feed("\x1b]633;D;t;1;/a;b\x07")
    assert event == CommandFinished("t", 1, "/a;b")


def test_flush_returns_incomplete_marker_as_text():
    parser = MarkerParser()
    assert parser.feed("x\x1b]63") == [OutputChunk("x")]
    assert parser.flush() == [OutputChunk("\x1b]63")]


def test_render_structured_and_degraded():
    ok = ConsoleRunResult(command="false", output="", exit_code=1, cwd=".")
    assert ok.render().splitlines()[:3] == ["$ false", "cwd: .", "Exit code: 1"]
    assert ok.render().endswith("(no output)")
    assert ok.succeeded is False

    degraded = ConsoleRunResult(command="ls", output="a\n", exit_code=None, cwd=".", degraded=True)
    assert f"Notice: {DEGRADED_NOTICE}" in degraded.render()
    assert degraded.succeeded is None


@pytest.mark.asyncio
async def test_run_requires_claim(console_manager):
    with pytest.raises(ConsoleError, match="gateway is disabled"):
        await console_manager.run("echo hi")


@pytest.mark.asyncio
async def test_empty_command_rejected(console_manager):
    console_manager.claim()
    with pytest.raises(ToolValidationError):
        await console_manager.run("   ")


@pytest_asyncio.fixture
async def claimed(console_manager):
    console_manager.claim()
    yield console_manager
    await console_manager.dispose()


@requires_bash
@pytest.mark.asyncio
async def test_output_and_exit_code(claimed):
    result = await claimed.run("echo hello; echo oops >&2; exit_code() { return 3; }; exit_code")
    assert result.degraded is False
    assert result.exit_code == 3
    assert result.output == "hello\noops\n"
    assert result.cwd == "."


@requires_bash
@pytest.mark.asyncio
async def test_nonzero_exit_is_a_successful_tool_call(config, host, console_manager):
    server = WorkspaceMcpServer(config, host, console_manager)
    console_manager.claim()
    try:
        result = await server.call_tool("execute_shell_command", {"command": "(exit 7)"})
    finally:
        await console_manager.dispose()
    assert result.isError is False
    assert "Exit code: 7" in result.content[0].text


@requires_bash
@pytest.mark.asyncio
async def test_session_state_persists_between_commands(claimed, workspace):
    (workspace / "sub").mkdir()
    await claimed.run("export GREETING=hi")
    result = await claimed.run("echo $GREETING; pwd", cwd="sub")
    assert result.output == f"hi\n{(workspace / 'sub').resolve()}\n"
    assert result.cwd == "sub"


@requires_bash
@pytest.mark.asyncio
async def test_cd_carries_over_to_default_cwd(claimed, workspace):
    (workspace / "sub").mkdir()
    await claimed.run("cd sub")

    result = await claimed.run("pwd")

    assert result.output == f"{(workspace / 'sub').resolve()}\n"
    assert result.cwd == "sub"


@requires_bash
@pytest.mark.asyncio
async def test_explicit_cwd_moves_back_to_root(claimed, workspace):
    (workspace / "sub").mkdir()
    await claimed.run("cd sub")

    result = await claimed.run("pwd", cwd="./")

    assert result.output == f"{workspace.resolve()}\n"
    assert result.cwd == "."


def test_dot_cwd_means_stay(console_manager):
    assert console_manager.resolve_cwd(".") is None
    assert console_manager.resolve_cwd("") is None


@requires_bash
@pytest.mark.asyncio
async def test_concurrent_runs_do_not_interleave(claimed):
    commands = [f"for i in 1 2 3; do echo cmd{n}-$i; sleep 0.01; done" for n in range(4)]

    results = await asyncio.gather(*(claimed.run(c) for c in commands))

    for n, result in enumerate(results):
        assert result.exit_code == 0
        assert result.output == "".join(f"cmd{n}-{i}\n" for i in (1, 2, 3))


@requires_bash
@pytest.mark.asyncio
async def test_second_run_waits_while_console_is_busy(claimed):
    first = asyncio.create_task(claimed.run("sleep 0.3; echo first"))
    for _ in range(100):
        if claimed.busy:
            break
        await asyncio.sleep(0.01)
    assert claimed.busy

    second = await claimed.run("echo second")

    assert first.done()
    assert (await first).output == "first\n"
    assert second.output == "second\n"


@requires_bash
@pytest.mark.asyncio
async def test_recovers_after_session_is_killed(claimed):
    first = await claimed.run("echo one")
    assert first.output == "one\n"
    old_pid = claimed.session.pid

    os.kill(old_pid, signal.SIGKILL)
    await claimed.session.wait_closed()

    second = await claimed.run("echo two")
    assert second.output == "two\n"
    assert claimed.session.pid != old_pid


@requires_bash
@pytest.mark.asyncio
async def test_timeout_resets_console(claimed):
    claimed.config.command_timeout = 0.5
    with pytest.raises(ConsoleError, match="timed out"):
        await claimed.run("sleep 5")
    assert claimed.session is None

    claimed.config.command_timeout = 20.0
    result = await claimed.run("echo back")
    assert result.output == "back\n"


@requires_bash
@pytest.mark.asyncio
async def test_degraded_mode_without_shell_integration(config, workspace):
    config.console.shell_integration = False
    manager = ConsoleManager(config.console, workspace)
    manager.claim()
    try:
        result = await manager.run("echo degraded")
    finally:
        await manager.dispose()

    assert result.degraded is True
    assert result.exit_code is None
    assert "degraded" in result.output
    assert "Notice:" in result.render()


@requires_bash
@pytest.mark.asyncio
async def test_output_is_truncated_to_the_tail(claimed):
    claimed.config.max_output_chars = 10
    result = await claimed.run("printf '%s' 0123456789abcdef")
    assert result.truncated is True
    assert result.output == "6789abcdef"


@pytest.mark.asyncio
async def test_missing_cwd_is_reported(claimed):
    with pytest.raises(NotFoundError):
        await claimed.run("ls", cwd="nope")
