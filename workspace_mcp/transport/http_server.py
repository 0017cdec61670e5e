"""HTTP transport: stateless JSON-RPC on /mcp plus an SSE notification stream."""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import socket
from typing import TYPE_CHECKING, Any

from mcp.types import INTERNAL_ERROR, PARSE_ERROR
from starlette.applications import Starlette
from starlette.responses import JSONResponse, Response, StreamingResponse
from starlette.routing import Route
import uvicorn

from workspace_mcp.transport.jsonrpc import METHOD_NOT_ALLOWED, JsonRpcDispatcher, error_envelope
from workspace_mcp.transport.utils import bind_loopback_socket, get_client_ip

if TYPE_CHECKING:
    from starlette.requests import Request

    from workspace_mcp.server import WorkspaceMcpServer

logger = logging.getLogger(__name__)

SSE_KEEPALIVE_SECONDS = 15.0
STARTUP_TIMEOUT_SECONDS = 10.0
SHUTDOWN_TIMEOUT_SECONDS = 5.0

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type, Accept",
}


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Last-resort handler for errors escaping an endpoint.

    Only reached while no response has started, so the client always gets
    a JSON-RPC envelope instead of a hung connection.
    """
    logger.error(f"Unhandled exception on {request.method} {request.url.path}: {exc}", exc_info=True)
    return JSONResponse(error_envelope(INTERNAL_ERROR, "Internal server error"), status_code=500)


class _EmbeddedServer(uvicorn.Server):
    """uvicorn server that leaves process signals to its owner."""

    def install_signal_handlers(self) -> None:
        pass

    @contextlib.contextmanager
    def capture_signals(self):
        yield


class GatewayHttpServer:
    """
    HTTP transport for the gateway.

    Routes:
        POST    /mcp       JSON-RPC request or batch
        GET     /mcp       405 with a JSON-RPC error (not session-oriented)
        DELETE  /mcp       405 with a JSON-RPC error
        OPTIONS /mcp       CORS preflight
        GET     /mcp/sse   server-initiated notifications (Server-Sent Events)
        GET     /health    status, tool count and metrics

    Example:
        http = GatewayHttpServer(server, host="127.0.0.1", port=8345)
        await http.start()   # binds before returning
        ...
        await http.stop()
    """

    def __init__(self, mcp_server: WorkspaceMcpServer, host: str = "127.0.0.1", port: int = 8345):
        self.mcp_server = mcp_server
        self.host = host
        self.port = port
        self.dispatcher = JsonRpcDispatcher(mcp_server)
        self.app = self._create_app()
        self._socket: socket.socket | None = None
        self._uvicorn: _EmbeddedServer | None = None
        self._task: asyncio.Task | None = None

    def _create_app(self) -> Starlette:
        """Create the Starlette ASGI application."""
        routes = [
            Route("/mcp", endpoint=self._handle_mcp, methods=["POST", "GET", "DELETE", "OPTIONS"]),
            Route("/mcp/sse", endpoint=self._handle_sse, methods=["GET"]),
            Route("/health", endpoint=self._health, methods=["GET"]),
        ]
        return Starlette(
            routes=routes,
            lifespan=self._lifespan,
            exception_handlers={Exception: global_exception_handler},
        )

    @contextlib.asynccontextmanager
    async def _lifespan(self, app: Starlette):
        logger.info("HTTP transport starting up")
        yield
        logger.info("HTTP transport shutting down")

    # -------------------------------------------------------------------------
    # Endpoints
    # -------------------------------------------------------------------------

    async def _handle_mcp(self, request: Request) -> Response:
        if request.method == "OPTIONS":
            return Response(status_code=204, headers=CORS_HEADERS)
        if request.method in ("GET", "DELETE"):
            return JSONResponse(
                error_envelope(METHOD_NOT_ALLOWED, "Method not allowed."), status_code=405
            )

        body = await request.body()
        try:
            payload = json.loads(body)
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            logger.warning(f"Unparseable request from {get_client_ip(request)}: {exc}")
            return JSONResponse(
                error_envelope(PARSE_ERROR, f"Parse error: {exc}"),
                status_code=400,
                headers=CORS_HEADERS,
            )

        response = await self.dispatcher.handle_payload(payload)
        if response is None:
            return Response(status_code=202, headers=CORS_HEADERS)
        return JSONResponse(response, headers=CORS_HEADERS)

    async def _handle_sse(self, request: Request) -> Response:
        hub = self.mcp_server.notifications
        queue = hub.subscribe()
        client = get_client_ip(request)
        logger.info(f"SSE connection from {client}")

        async def stream():
            try:
                yield ": connected\n\n"
                while True:
                    try:
                        message = await asyncio.wait_for(queue.get(), timeout=SSE_KEEPALIVE_SECONDS)
                    except asyncio.TimeoutError:
                        yield ": keepalive\n\n"
                        continue
                    if message is None:
                        break
                    yield f"event: message\ndata: {json.dumps(message)}\n\n"
            finally:
                hub.unsubscribe(queue)
                logger.info(f"SSE connection closed from {client}")

        return StreamingResponse(
            stream(),
            media_type="text/event-stream",
            headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
        )

    async def _health(self, request: Request) -> JSONResponse:
        return JSONResponse(
            {
                "status": "ok",
                "tools": len(self.mcp_server.registry),
                "transport": "http",
                "server": "workspace-mcp",
                "metrics": self.mcp_server.obs.snapshot(),
            }
        )

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    @property
    def listening_socket(self) -> socket.socket | None:
        return self._socket

    @property
    def bound_port(self) -> int | None:
        if self._socket is None:
            return None
        return self._socket.getsockname()[1]

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        """
        Bind the loopback socket and start serving in the background.

        Raises:
            OSError: the port is taken or cannot be bound
            RuntimeError: the server task failed during startup
        """
        if self.running:
            return
        self._socket = bind_loopback_socket(self.host, self.port)
        config = uvicorn.Config(
            self.app,
            log_config=None,
            log_level=logger.getEffectiveLevel(),
            lifespan="on",
            access_log=False,
        )
        self._uvicorn = _EmbeddedServer(config)
        self._task = asyncio.create_task(
            self._uvicorn.serve(sockets=[self._socket]), name="gateway-http"
        )

        loop = asyncio.get_running_loop()
        deadline = loop.time() + STARTUP_TIMEOUT_SECONDS
        while not self._uvicorn.started:
            if self._task.done() or loop.time() > deadline:
                await self._abort_start()
                raise RuntimeError("HTTP transport failed to start")
            await asyncio.sleep(0.01)

        logger.info(f"HTTP transport listening on {self.host}:{self.bound_port}")

    async def _abort_start(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        if self._task is not None:
            with contextlib.suppress(asyncio.CancelledError, Exception):
                await self._task
        self._close_socket()
        self._task = None
        self._uvicorn = None

    async def stop(self) -> None:
        """Stop serving and release the socket."""
        self.mcp_server.notifications.close()
        if self._uvicorn is not None and self._task is not None:
            self._uvicorn.should_exit = True
            try:
                await asyncio.wait_for(asyncio.shield(self._task), timeout=SHUTDOWN_TIMEOUT_SECONDS)
            except asyncio.TimeoutError:
                logger.warning("HTTP transport did not stop in time; forcing exit")
                self._uvicorn.force_exit = True
                with contextlib.suppress(asyncio.TimeoutError, asyncio.CancelledError):
                    await asyncio.wait_for(self._task, timeout=SHUTDOWN_TIMEOUT_SECONDS)
        self._close_socket()
        self._task = None
        self._uvicorn = None
        logger.info("HTTP transport stopped")

    def _close_socket(self) -> None:
        if self._socket is not None:
            with contextlib.suppress(OSError):
                self._socket.close()
            self._socket = None

    def describe(self) -> dict[str, Any]:
        return {"host": self.host, "port": self.bound_port, "running": self.running}
