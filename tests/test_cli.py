"""CLI commands that do not need a running host process."""

import pytest
from typer.testing import CliRunner

from workspace_mcp.cli import app
from workspace_mcp.config import load_config
from workspace_mcp.state import StateStore


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def config_file(tmp_path, workspace):
    path = tmp_path / "workspace-mcp.toml"
    path.write_text(
        f'[gateway.workspace]\nroot = "{workspace}"\n'
        f'[gateway.state]\nstate_dir = "{tmp_path / "state"}"\n'
    )
    return path


def test_enable_then_disable_persists(runner, config_file):
    result = runner.invoke(app, ["enable", "--config", str(config_file)])
    assert result.exit_code == 0, result.output
    assert "takes effect when the host starts" in result.output

    cfg = load_config(config_file)
    store = StateStore(cfg.state.state_path, cfg.server.default_enabled, cfg.server.port)
    assert store.load().enabled is True

    runner.invoke(app, ["disable", "--config", str(config_file)])
    assert store.load().enabled is False


def test_status_when_stopped(runner, config_file):
    result = runner.invoke(app, ["status", "--config", str(config_file)])
    assert result.exit_code == 0, result.output
    assert "stopped" in result.output
    assert "8345" in result.output


def test_toggle_without_host_fails(runner, config_file):
    result = runner.invoke(app, ["toggle", "--config", str(config_file)])
    assert result.exit_code == 1
    assert "No gateway host is running" in result.output


def test_tools_table(runner, config_file):
    result = runner.invoke(app, ["tools", "--config", str(config_file)])
    assert result.exit_code == 0, result.output
    assert "replace_lines" in result.output
    assert "10 tools" in result.output


def test_invalid_config_exits_2(runner, tmp_path):
    path = tmp_path / "bad.toml"
    path.write_text('[gateway.server]\nhost = "0.0.0.0"\n')
    result = runner.invoke(app, ["status", "--config", str(path)])
    assert result.exit_code == 2
    assert "Invalid configuration" in result.output


def test_serve_rejects_privileged_port_before_starting(runner, config_file):
    result = runner.invoke(app, ["serve", "--config", str(config_file), "--port", "80"])
    assert result.exit_code == 2
    assert "Invalid port: 80" in result.output

    cfg = load_config(config_file)
    assert not cfg.state.state_path.exists()
