"""
Gateway error types.

Custom exceptions with stable string codes. Tool handlers raise these; the
tool registry turns them into failure results so they never reach the
transport.
"""

from __future__ import annotations


class GatewayError(Exception):
    """Base error for gateway operations."""

    code: str = "GATEWAY_ERROR"

    def __init__(self, message: str, *, code: str | None = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code


class ToolValidationError(GatewayError):
    """Tool input does not match its schema."""

    code = "VALIDATION_ERROR"


class RangeOutOfBoundsError(ToolValidationError):
    """Line range falls outside the document."""

    code = "RANGE_OUT_OF_BOUNDS"


class NotFoundError(GatewayError):
    """Path, command or workspace does not exist."""

    code = "NOT_FOUND"


class StaleContentError(GatewayError):
    """Caller's snapshot of the affected lines no longer matches the file."""

    code = "STALE_CONTENT"


class HostRejectedError(GatewayError):
    """Host refused an apply or save."""

    code = "HOST_REJECTED"


class EditRejectedError(HostRejectedError):
    """Host refused to apply an edit (read-only, changed underneath)."""

    code = "EDIT_REJECTED"


class SaveFailedError(HostRejectedError):
    """Edit applied but the document could not be persisted."""

    code = "SAVE_FAILED"


class ConsoleError(GatewayError):
    """Console session died or the host console API failed."""

    code = "CONSOLE_ERROR"


class TransportError(GatewayError):
    """Malformed request or unsupported method at the protocol layer."""

    code = "TRANSPORT_ERROR"

    def __init__(self, message: str, rpc_code: int, *, code: str | None = None):
        super().__init__(message, code=code)
        self.rpc_code = rpc_code


class DuplicateToolNameError(GatewayError):
    """A tool with the same name is already registered."""

    code = "DUPLICATE_TOOL_NAME"


class UnknownToolError(GatewayError):
    """No tool registered under the requested name."""

    code = "UNKNOWN_TOOL"


class GatewayBindError(GatewayError):
    """Transport could not bind its listening socket."""

    code = "BIND_FAILED"
