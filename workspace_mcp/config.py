"""Gateway configuration loader - reads from workspace-mcp.toml with ENV overrides."""  # noqa: I001

from __future__ import annotations

from dataclasses import dataclass, field
import os
from pathlib import Path
import tomllib
from typing import Any, cast

from workspace_mcp.transport.utils import is_loopback

TOOL_GROUPS = ("file", "edit", "shell", "diagnostics", "symbol", "command")

_TRUTHY = ("1", "true", "yes", "on")


@dataclass
class ServerConfig:
    """Transport settings."""

    host: str = "127.0.0.1"
    port: int = 8345
    default_enabled: bool = False
    allow_ephemeral_port: bool = False

    def validate(self) -> None:
        if not is_loopback(self.host):
            raise ValueError(f"Refusing to bind non-loopback host: {self.host}")
        if self.port == 0 and self.allow_ephemeral_port:
            return
        if not (1024 <= self.port <= 65535):
            raise ValueError(f"Invalid port: {self.port} (expected 1024-65535)")


@dataclass
class WorkspaceConfig:
    """Workspace root the tools operate on."""

    root: str = "."

    @property
    def root_path(self) -> Path:
        return Path(self.root).expanduser().resolve()

    def validate(self) -> None:
        if not self.root:
            raise ValueError("workspace root must not be empty")


@dataclass
class ToolsConfig:
    """Tool access settings."""

    enabled_groups: list[str] = field(default_factory=lambda: list(TOOL_GROUPS))
    read_max_characters: int = 100000
    exclude_dirs: list[str] = field(
        default_factory=lambda: [
            ".git",
            "node_modules",
            "__pycache__",
            ".venv",
            "venv",
            ".mypy_cache",
            ".pytest_cache",
        ]
    )

    def validate(self) -> None:
        unknown = [g for g in self.enabled_groups if g not in TOOL_GROUPS]
        if unknown:
            raise ValueError(f"Unknown tool groups: {', '.join(unknown)}")
        if self.read_max_characters <= 0:
            raise ValueError("read_max_characters must be positive")


@dataclass
class ConsoleConfig:
    """Interactive console settings."""

    name: str = "workspace-mcp"
    shell: str = "bash"
    shell_integration: bool = True
    settle_seconds: float = 1.0
    command_timeout: float = 600.0
    max_output_chars: int = 100000
    dispose_on_disable: bool = False

    def validate(self) -> None:
        if not self.shell:
            raise ValueError("console shell must not be empty")
        if self.settle_seconds < 0:
            raise ValueError("settle_seconds must not be negative")
        if self.command_timeout <= 0:
            raise ValueError("command_timeout must be positive")
        if self.max_output_chars <= 0:
            raise ValueError("max_output_chars must be positive")


@dataclass
class ObservabilityConfig:
    """Logging and metrics settings."""

    enabled: bool = True
    log_format: str = "text"  # "json" | "text"
    log_level: str = "info"
    include_correlation_id: bool = True

    def validate(self) -> None:
        if self.log_format not in ("json", "text"):
            raise ValueError(f"Invalid log_format: {self.log_format}")


@dataclass
class StateConfig:
    """Where the enabled flag and port are persisted."""

    state_dir: str = "~/.workspace-mcp"

    @property
    def state_path(self) -> Path:
        return Path(self.state_dir).expanduser() / "state.toml"

    def validate(self) -> None:
        path = Path(self.state_dir).expanduser()
        if path.exists() and not path.is_dir():
            raise ValueError(f"state_dir '{self.state_dir}' exists but is not a directory")


@dataclass
class GatewayConfig:
    """Root gateway configuration."""

    server: ServerConfig = field(default_factory=ServerConfig)
    workspace: WorkspaceConfig = field(default_factory=WorkspaceConfig)
    tools: ToolsConfig = field(default_factory=ToolsConfig)
    console: ConsoleConfig = field(default_factory=ConsoleConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)
    state: StateConfig = field(default_factory=StateConfig)

    def validate(self) -> None:
        self.server.validate()
        self.workspace.validate()
        self.tools.validate()
        self.console.validate()
        self.observability.validate()
        self.state.validate()


def _truthy(value: str) -> bool:
    return value.strip().lower() in _TRUTHY


def _apply_section(section: Any, data: dict[str, Any]) -> None:
    """Copy known keys from a TOML table onto a config dataclass."""
    for key, value in data.items():
        if hasattr(section, key):
            setattr(section, key, value)


def _apply_env_overrides(cfg: GatewayConfig) -> GatewayConfig:
    """Apply environment variable overrides. ENV beats TOML."""
    if os.getenv("WORKSPACE_MCP_PORT"):
        cfg.server.port = int(cast(str, os.getenv("WORKSPACE_MCP_PORT")))

    if os.getenv("WORKSPACE_MCP_HOST"):
        cfg.server.host = os.getenv("WORKSPACE_MCP_HOST", cfg.server.host)

    if os.getenv("WORKSPACE_MCP_ENABLED"):
        cfg.server.default_enabled = _truthy(os.getenv("WORKSPACE_MCP_ENABLED", ""))

    if os.getenv("WORKSPACE_MCP_LOG_LEVEL"):
        cfg.observability.log_level = os.getenv("WORKSPACE_MCP_LOG_LEVEL", cfg.observability.log_level)

    if os.getenv("WORKSPACE_MCP_ROOT"):
        cfg.workspace.root = os.getenv("WORKSPACE_MCP_ROOT", cfg.workspace.root)

    if os.getenv("WORKSPACE_MCP_SHELL"):
        cfg.console.shell = os.getenv("WORKSPACE_MCP_SHELL", cfg.console.shell)

    if os.getenv("WORKSPACE_MCP_STATE_DIR"):
        cfg.state.state_dir = os.getenv("WORKSPACE_MCP_STATE_DIR", cfg.state.state_dir)

    return cfg


def load_config(config_path: str | Path | None = None) -> GatewayConfig:
    """
    Load gateway config from workspace-mcp.toml with ENV overrides.

    Precedence: ENV → TOML → defaults

    Args:
        config_path: Path to the TOML file. If None, searches:
            1. WORKSPACE_MCP_CONFIG env var
            2. ./workspace-mcp.toml

    Returns:
        GatewayConfig dataclass with merged settings.
    """
    if config_path is None:
        if os.getenv("WORKSPACE_MCP_CONFIG"):
            config_path = Path(cast(str, os.getenv("WORKSPACE_MCP_CONFIG")))
        else:
            config_path = Path("workspace-mcp.toml")
    else:
        config_path = Path(config_path)

    cfg = GatewayConfig()

    if config_path.exists():
        with open(config_path, "rb") as f:
            data = tomllib.load(f)

        gateway_data = data.get("gateway", {})
        _apply_section(cfg.server, gateway_data.get("server", {}))
        _apply_section(cfg.workspace, gateway_data.get("workspace", {}))
        _apply_section(cfg.tools, gateway_data.get("tools", {}))
        _apply_section(cfg.console, gateway_data.get("console", {}))
        _apply_section(cfg.observability, gateway_data.get("observability", {}))
        _apply_section(cfg.state, gateway_data.get("state", {}))

    cfg = _apply_env_overrides(cfg)

    cfg.validate()

    return cfg
