"""
JSON-RPC 2.0 dispatch for the MCP methods the gateway serves.

Every request gets a well-formed envelope back: a result, or an error with
a stable numeric code. Tool-level failures are not protocol errors; they
come back as ``CallToolResult`` objects with ``isError`` set.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from mcp.types import (
    INTERNAL_ERROR,
    INVALID_PARAMS,
    INVALID_REQUEST,
    LATEST_PROTOCOL_VERSION,
    METHOD_NOT_FOUND,
    ErrorData,
    Implementation,
    InitializeResult,
    ListToolsResult,
    LoggingCapability,
    ServerCapabilities,
    ToolsCapability,
)

from workspace_mcp import __version__
from workspace_mcp.errors import TransportError, UnknownToolError

if TYPE_CHECKING:
    from workspace_mcp.server import WorkspaceMcpServer

logger = logging.getLogger(__name__)

METHOD_NOT_ALLOWED = -32000

INSTRUCTIONS = (
    "Tools operate on one editor workspace. Paths are relative to the workspace root and "
    "line numbers are 0-based. Read a file before editing it with replace_lines."
)


def error_envelope(code: int, message: str, request_id: Any = None, data: Any = None) -> dict[str, Any]:
    """Build a JSON-RPC error response; ``id`` is null when the request id is unknown."""
    error = ErrorData(code=code, message=message, data=data)
    return {
        "jsonrpc": "2.0",
        "error": error.model_dump(exclude_none=True),
        "id": request_id,
    }


def _dump(model: Any) -> dict[str, Any]:
    return model.model_dump(by_alias=True, exclude_none=True, mode="json")


def _valid_id(value: Any) -> bool:
    return value is None or (isinstance(value, (str, int)) and not isinstance(value, bool))


class JsonRpcDispatcher:
    """Routes JSON-RPC messages to the gateway server."""

    def __init__(self, server: WorkspaceMcpServer):
        self.server = server

    async def handle_payload(self, payload: Any) -> Any:
        """
        Handle a single message or a batch.

        Returns:
            A response dict, a list of them for batches, or None when
            nothing needs answering (notifications only).
        """
        if isinstance(payload, list):
            if not payload:
                return error_envelope(INVALID_REQUEST, "Invalid Request: empty batch")
            responses = [r for r in [await self.handle_message(m) for m in payload] if r is not None]
            return responses or None
        return await self.handle_message(payload)

    async def handle_message(self, message: Any) -> dict[str, Any] | None:
        if not isinstance(message, dict):
            return error_envelope(INVALID_REQUEST, "Invalid Request: expected an object")

        request_id = message.get("id")
        if message.get("jsonrpc") != "2.0" or not isinstance(message.get("method"), str):
            return error_envelope(
                INVALID_REQUEST, "Invalid Request", request_id if _valid_id(request_id) else None
            )
        if not _valid_id(request_id):
            return error_envelope(INVALID_REQUEST, "Invalid Request: bad id")

        method = message["method"]
        params = message.get("params")
        is_notification = "id" not in message

        if is_notification:
            await self._handle_notification(method, params)
            return None

        try:
            result = await self._dispatch(method, params)
        except TransportError as exc:
            return error_envelope(exc.rpc_code, exc.message, request_id)
        except UnknownToolError as exc:
            return error_envelope(INVALID_PARAMS, exc.message, request_id)
        except Exception as exc:
            logger.exception(f"Unhandled error in {method}: {exc}")
            return error_envelope(INTERNAL_ERROR, "Internal server error", request_id)

        return {"jsonrpc": "2.0", "id": request_id, "result": result}

    async def _handle_notification(self, method: str, params: Any) -> None:
        if method.startswith("notifications/"):
            logger.debug(f"Notification received: {method}")
            return
        try:
            await self._dispatch(method, params)
        except Exception as exc:
            logger.warning(f"Notification-style call to {method} failed: {exc}")

    async def _dispatch(self, method: str, params: Any) -> dict[str, Any]:
        if params is not None and not isinstance(params, dict):
            raise TransportError("Invalid params: expected an object", INVALID_PARAMS)
        params = params or {}

        if method == "initialize":
            return self._initialize(params)
        if method == "ping":
            return {}
        if method == "tools/list":
            return _dump(ListToolsResult(tools=self.server.list_tools()))
        if method == "tools/call":
            return await self._call_tool(params)
        if method == "logging/setLevel":
            return {}
        raise TransportError(f"Method not found: {method}", METHOD_NOT_FOUND)

    def _initialize(self, params: dict[str, Any]) -> dict[str, Any]:
        requested = params.get("protocolVersion")
        version = requested if isinstance(requested, str) and requested else LATEST_PROTOCOL_VERSION
        client = params.get("clientInfo") or {}
        logger.info(f"Client initialized: {client.get('name', 'unknown')} (protocol {version})")
        result = InitializeResult(
            protocolVersion=version,
            capabilities=ServerCapabilities(
                tools=ToolsCapability(listChanged=False),
                logging=LoggingCapability(),
            ),
            serverInfo=Implementation(name="workspace-mcp", version=__version__),
            instructions=INSTRUCTIONS,
        )
        return _dump(result)

    async def _call_tool(self, params: dict[str, Any]) -> dict[str, Any]:
        name = params.get("name")
        if not isinstance(name, str) or not name:
            raise TransportError("Invalid params: tools/call requires a tool name", INVALID_PARAMS)
        arguments = params.get("arguments")
        if arguments is not None and not isinstance(arguments, dict):
            raise TransportError("Invalid params: arguments must be an object", INVALID_PARAMS)
        result = await self.server.call_tool(name, arguments or {})
        return _dump(result)
