"""CLI for running and managing the workspace gateway."""

from __future__ import annotations

import asyncio
import contextlib
import dataclasses
import os
from pathlib import Path
import signal as sigmod

from rich.console import Console
from rich.table import Table
import typer

app = typer.Typer(
    name="workspace-mcp",
    help="Workspace MCP gateway management CLI",
    add_completion=False,
)
console = Console()

ConfigOption = typer.Option(None, "--config", "-c", help="Path to workspace-mcp.toml")


def _load(config_path: Path | None):
    from workspace_mcp.config import load_config

    try:
        return load_config(config_path)
    except ValueError as exc:
        console.print(f"[red]✗[/] Invalid configuration: {exc}")
        raise typer.Exit(2) from None


def _pidfile(config) -> Path:
    return config.state.state_path.with_name("gateway.pid")


def _running_pid(config) -> int | None:
    """PID of a live `serve` process for this state dir, if any."""
    pidfile = _pidfile(config)
    try:
        pid = int(pidfile.read_text().strip())
    except (OSError, ValueError):
        return None
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return None
    except PermissionError:
        return pid
    return pid


def _store(config):
    from workspace_mcp.state import StateStore

    return StateStore(config.state.state_path, config.server.default_enabled, config.server.port)


async def _serve(controller, enable: bool, pidfile: Path) -> None:
    from workspace_mcp.errors import GatewayBindError

    loop = asyncio.get_running_loop()
    stop = asyncio.Event()
    pending: set[asyncio.Task] = set()

    async def guarded(action) -> None:
        try:
            await action()
        except GatewayBindError:
            pass  # Already reported through the status indicator

    def schedule(action) -> None:
        task = loop.create_task(guarded(action))
        pending.add(task)
        task.add_done_callback(pending.discard)

    async def reconcile() -> None:
        wanted = controller.store.load().enabled
        if wanted:
            await controller.enable()
        else:
            await controller.disable()

    loop.add_signal_handler(sigmod.SIGINT, stop.set)
    loop.add_signal_handler(sigmod.SIGTERM, stop.set)
    loop.add_signal_handler(sigmod.SIGUSR1, schedule, controller.toggle)
    loop.add_signal_handler(sigmod.SIGHUP, schedule, reconcile)

    pidfile.parent.mkdir(parents=True, exist_ok=True)
    pidfile.write_text(str(os.getpid()))
    try:
        await controller.startup()
        if enable and not controller.enabled:
            await guarded(controller.enable)
        console.print(f"[dim]{controller.status.text}[/dim]")
        console.print("  Ctrl+C to stop, SIGUSR1 to toggle the gateway")
        await stop.wait()
    finally:
        for task in list(pending):
            task.cancel()
        await controller.shutdown()
        with contextlib.suppress(OSError):
            pidfile.unlink()


@app.command()
def serve(
    config_path: Path | None = ConfigOption,
    port: int | None = typer.Option(None, "--port", "-p", help="Port to listen on (persisted)"),
    enable: bool = typer.Option(False, "--enable", "-e", help="Enable the gateway right away"),
    log_level: str | None = typer.Option(None, "--log-level", "-l", help="Override log level"),
) -> None:
    """Run the gateway host process (foreground)."""
    from workspace_mcp.lifecycle import GatewayController, StatusIndicator
    from workspace_mcp.observability import setup_logging

    config = _load(config_path)
    if port is not None:
        try:
            dataclasses.replace(config.server, port=port).validate()
        except ValueError as exc:
            console.print(f"[red]✗[/] {exc}")
            raise typer.Exit(2) from None

    if log_level:
        config.observability.log_level = log_level
    setup_logging(config.observability)

    if _running_pid(config):
        console.print("[yellow]![/] A gateway is already running for this state directory")
        raise typer.Exit(1)

    def on_notify(message: str, error: bool) -> None:
        console.print(f"[red]✗[/] {message}" if error else f"[green]✓[/] {message}")

    async def main() -> None:
        controller = GatewayController(config, status=StatusIndicator(on_notify=on_notify))
        if port is not None:
            await controller.set_port(port)
        await _serve(controller, enable, _pidfile(config))

    asyncio.run(main())


@app.command()
def status(config_path: Path | None = ConfigOption) -> None:
    """Show persisted gateway state and whether a host process is running."""
    config = _load(config_path)
    persisted = _store(config).load()
    pid = _running_pid(config)

    if pid:
        console.print(f"[green]●[/] Gateway host is [bold]running[/] (PID {pid})")
    else:
        console.print("[red]●[/] Gateway host is [bold]stopped[/]")

    table = Table(show_header=False)
    table.add_row("Enabled:", "yes" if persisted.enabled else "no")
    table.add_row("Endpoint:", f"http://{config.server.host}:{persisted.port}/mcp")
    table.add_row("Workspace:", str(config.workspace.root_path))
    table.add_row("State file:", str(config.state.state_path))
    console.print(table)


def _set_enabled(config_path: Path | None, enabled: bool) -> None:
    from workspace_mcp.state import PersistedState

    config = _load(config_path)
    store = _store(config)
    current = store.load()
    store.save(PersistedState(enabled=enabled, port=current.port))
    word = "enabled" if enabled else "disabled"
    pid = _running_pid(config)
    if pid:
        os.kill(pid, sigmod.SIGHUP)
        console.print(f"[green]✓[/] Gateway {word} (signalled PID {pid})")
    else:
        console.print(f"[green]✓[/] Gateway {word}; takes effect when the host starts")


@app.command(name="enable")
def enable_cmd(config_path: Path | None = ConfigOption) -> None:
    """Enable the gateway (persisted)."""
    _set_enabled(config_path, True)


@app.command(name="disable")
def disable_cmd(config_path: Path | None = ConfigOption) -> None:
    """Disable the gateway (persisted)."""
    _set_enabled(config_path, False)


@app.command()
def toggle(config_path: Path | None = ConfigOption) -> None:
    """Toggle the gateway in a running host process."""
    config = _load(config_path)
    pid = _running_pid(config)
    if not pid:
        console.print("[yellow]![/] No gateway host is running")
        raise typer.Exit(1)
    os.kill(pid, sigmod.SIGUSR1)
    console.print(f"[green]✓[/] Toggle sent to PID {pid}")


@app.command()
def tools(config_path: Path | None = ConfigOption) -> None:
    """List the tools the gateway would expose."""
    from workspace_mcp.console.manager import ConsoleManager
    from workspace_mcp.local_host import LocalWorkspaceHost
    from workspace_mcp.server import WorkspaceMcpServer

    config = _load(config_path)
    root = config.workspace.root_path
    host = LocalWorkspaceHost(root, exclude_dirs=config.tools.exclude_dirs)
    server = WorkspaceMcpServer(config, host, ConsoleManager(config.console, root))

    table = Table(title=f"{len(server.registry)} tools")
    table.add_column("Tool", style="cyan")
    table.add_column("Group")
    table.add_column("Description")
    for name in server.registry.names():
        tool = server.registry.get(name)
        assert tool is not None
        table.add_row(name, tool.group, tool.description.split(". ")[0])
    console.print(table)


@app.command()
def health(config_path: Path | None = ConfigOption) -> None:
    """Quick health check (for scripts, exit code 0 = healthy)."""
    import httpx

    config = _load(config_path)
    persisted = _store(config).load()
    url = f"http://{config.server.host}:{persisted.port}/health"

    try:
        r = httpx.get(url, timeout=5)
    except httpx.HTTPError as e:
        console.print(f"[red]✗[/] Health check failed: {e}")
        raise typer.Exit(1) from None

    if r.status_code != 200:
        console.print(f"[red]✗[/] Health check failed (HTTP {r.status_code})")
        raise typer.Exit(1)
    data = r.json()
    console.print(f"[green]✓[/] Gateway healthy ({data.get('tools', 0)} tools)")


def main() -> None:
    """Entry point for the workspace-mcp CLI."""
    app()


if __name__ == "__main__":
    main()
