"""
Lifecycle / toggle controller.

State machine::

    DISABLED -> ENABLING -> ENABLED -> DISABLING -> DISABLED

All transitions run under one asyncio lock, so at most one enable/disable
is in flight. The transport socket is bound before the phase becomes
ENABLED, and a bind failure leaves the gateway DISABLED without retrying.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
import dataclasses
import logging
from typing import Any

from workspace_mcp.config import GatewayConfig
from workspace_mcp.console.manager import ConsoleManager
from workspace_mcp.errors import GatewayBindError
from workspace_mcp.host import WorkspaceHost
from workspace_mcp.local_host import LocalWorkspaceHost
from workspace_mcp.notifications import NotificationHub
from workspace_mcp.server import WorkspaceMcpServer
from workspace_mcp.state import GatewayPhase, GatewayState, PersistedState, StateStore
from workspace_mcp.transport.http_server import GatewayHttpServer

logger = logging.getLogger(__name__)


class StatusIndicator:
    """One-line status text plus one-line operator notifications."""

    def __init__(self, on_notify: Callable[[str, bool], None] | None = None):
        self.text = "MCP Server: off"
        self.messages: list[str] = []
        self._on_notify = on_notify

    def update(self, state: GatewayState, port: int | None = None) -> None:
        if state.phase == GatewayPhase.ENABLED:
            self.text = f"MCP Server: {port if port is not None else state.port}"
        else:
            self.text = "MCP Server: off"

    def notify(self, message: str, error: bool = False) -> None:
        if error:
            logger.error(message)
        else:
            logger.info(message)
        self.messages.append(message)
        if self._on_notify is not None:
            self._on_notify(message, error)


class GatewayController:
    """Owns GatewayState and turns the gateway on and off at runtime."""

    def __init__(
        self,
        config: GatewayConfig,
        host: WorkspaceHost | None = None,
        store: StateStore | None = None,
        status: StatusIndicator | None = None,
        console: ConsoleManager | None = None,
    ):
        self.config = config
        root = config.workspace.root_path
        self.host = host or LocalWorkspaceHost(root, exclude_dirs=config.tools.exclude_dirs)
        self.store = store or StateStore(
            config.state.state_path, config.server.default_enabled, config.server.port
        )
        self.status = status or StatusIndicator()

        persisted = self.store.load()
        self.desired_enabled = persisted.enabled
        self.state = GatewayState(
            port=persisted.port,
            console=console or ConsoleManager(config.console, root),
        )
        self.server: WorkspaceMcpServer | None = None
        self.http: GatewayHttpServer | None = None
        self._transition = asyncio.Lock()

    @property
    def console(self) -> ConsoleManager:
        assert self.state.console is not None
        return self.state.console

    @property
    def phase(self) -> GatewayPhase:
        return self.state.phase

    @property
    def enabled(self) -> bool:
        return self.state.phase == GatewayPhase.ENABLED

    def describe(self) -> dict[str, Any]:
        port = self.http.bound_port if self.http is not None else None
        info: dict[str, Any] = {
            "phase": self.state.phase.value,
            "enabled": self.state.enabled,
            "host": self.config.server.host,
            "port": port if port is not None else self.state.port,
            "status": self.status.text,
        }
        if port is not None:
            info["url"] = f"http://{self.config.server.host}:{port}/mcp"
        return info

    def _persist(self) -> None:
        try:
            self.store.save(PersistedState(enabled=self.state.enabled, port=self.state.port))
        except OSError as exc:
            logger.warning(f"Could not persist gateway state: {exc}")

    async def startup(self) -> None:
        """Restore the persisted enabled flag. A bind failure is reported, not raised."""
        if not self.desired_enabled:
            self.status.update(self.state)
            return
        try:
            await self.enable()
        except GatewayBindError:
            pass

    async def enable(self) -> bool:
        """
        Start the gateway. No-op if already enabled.

        Returns:
            True if this call changed the state

        Raises:
            GatewayBindError: the port could not be bound; state stays DISABLED
        """
        async with self._transition:
            if self.state.phase == GatewayPhase.ENABLED:
                return False
            self.state.phase = GatewayPhase.ENABLING

            try:
                server = WorkspaceMcpServer(
                    self.config, self.host, self.console, notifications=NotificationHub()
                )
                server.status_provider = self.describe
                http = GatewayHttpServer(server, host=self.config.server.host, port=self.state.port)
                await http.start()
            except OSError as exc:
                self.state.phase = GatewayPhase.DISABLED
                self.state.enabled = False
                self.status.update(self.state)
                reason = exc.strerror or str(exc)
                message = f"MCP Server failed to start on port {self.state.port}: {reason}"
                self.status.notify(message, error=True)
                raise GatewayBindError(message) from exc
            except BaseException:
                self.state.phase = GatewayPhase.DISABLED
                self.status.update(self.state)
                raise

            self.server = server
            self.http = http
            self.state.listening_socket = http.listening_socket
            self.console.claim()
            self.state.enabled = True
            self.state.phase = GatewayPhase.ENABLED
            self._persist()
            self.status.update(self.state, http.bound_port)
            self.status.notify(f"MCP Server enabled on port {http.bound_port}")
            return True

    async def disable(self, persist: bool = True) -> bool:
        """
        Stop the gateway. No-op if already disabled.

        The console claim is released; the session itself survives unless
        configured to be disposed.
        """
        async with self._transition:
            if self.state.phase == GatewayPhase.DISABLED:
                return False
            self.state.phase = GatewayPhase.DISABLING
            try:
                if self.http is not None:
                    await self.http.stop()
            finally:
                self.http = None
                self.server = None
                self.state.listening_socket = None
                await self.console.release()
                self.state.enabled = False
                self.state.phase = GatewayPhase.DISABLED
                if persist:
                    self._persist()
                self.status.update(self.state)
                self.status.notify("MCP Server disabled")
            return True

    async def toggle(self) -> bool:
        """Flip the gateway; returns the new enabled flag."""
        if self.enabled:
            await self.disable()
        else:
            await self.enable()
        return self.enabled

    async def set_port(self, port: int) -> None:
        """
        Change and persist the port, restarting the transport if it is running.

        Raises:
            ValueError: the port fails the same checks as ``[gateway.server] port``;
                nothing is persisted
        """
        dataclasses.replace(self.config.server, port=port).validate()
        was_enabled = self.enabled
        if was_enabled:
            await self.disable(persist=False)
        self.state.port = port
        self._persist()
        if was_enabled:
            await self.enable()

    async def shutdown(self) -> None:
        """Host is going away: stop without changing the persisted flag, kill the console."""
        await self.disable(persist=False)
        await self.console.dispose()
        logger.info("Gateway shut down")
