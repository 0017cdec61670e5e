import os
from pathlib import Path

import pytest

from workspace_mcp.config import GatewayConfig
from workspace_mcp.console.manager import ConsoleManager
from workspace_mcp.local_host import LocalWorkspaceHost
from workspace_mcp.server import WorkspaceMcpServer


@pytest.fixture(autouse=True)
def hermetic_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """
    Autouse: each test runs in its own tmp cwd with HOME inside tmp and no
    WORKSPACE_MCP_* variables leaking in from the caller.
    """
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    for key in list(os.environ):
        if key.startswith("WORKSPACE_MCP_"):
            monkeypatch.delenv(key)
    return tmp_path


@pytest.fixture
def workspace(tmp_path: Path) -> Path:
    root = tmp_path / "ws"
    root.mkdir()
    return root


@pytest.fixture
def config(workspace: Path, tmp_path: Path) -> GatewayConfig:
    cfg = GatewayConfig()
    cfg.workspace.root = str(workspace)
    cfg.state.state_dir = str(tmp_path / "state")
    cfg.server.port = 0
    cfg.server.allow_ephemeral_port = True
    cfg.console.settle_seconds = 0.3
    cfg.console.command_timeout = 20.0
    return cfg


@pytest.fixture
def host(workspace: Path, config: GatewayConfig) -> LocalWorkspaceHost:
    return LocalWorkspaceHost(workspace, exclude_dirs=config.tools.exclude_dirs)


@pytest.fixture
def console_manager(workspace: Path, config: GatewayConfig) -> ConsoleManager:
    return ConsoleManager(config.console, workspace)


@pytest.fixture
def server(config: GatewayConfig, host: LocalWorkspaceHost, console_manager: ConsoleManager) -> WorkspaceMcpServer:
    return WorkspaceMcpServer(config, host, console_manager)
