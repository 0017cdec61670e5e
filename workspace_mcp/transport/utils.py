"""Shared utilities for the HTTP transport layer."""

from __future__ import annotations

import socket
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from starlette.requests import Request


LOOPBACK_ADDRS = frozenset(["127.0.0.1", "::1", "localhost"])


def is_loopback(ip: str) -> bool:
    """Check if IP address is a loopback address."""
    return ip in LOOPBACK_ADDRS


def get_client_ip(request: Request) -> str:
    """Client IP of a request, or "unknown" if unavailable."""
    return request.client.host if request.client else "unknown"


def bind_loopback_socket(host: str, port: int) -> socket.socket:
    """
    Bind a listening TCP socket on a loopback address.

    Binding happens up front so a port conflict surfaces as an OSError to
    the caller before any server task is started.

    Args:
        host: Loopback host name or address
        port: Port number, 0 for an ephemeral port

    Returns:
        A bound, listening, non-blocking socket

    Raises:
        ValueError: host is not a loopback address
        OSError: the address is already in use or cannot be bound
    """
    if not is_loopback(host):
        raise ValueError(f"Refusing to bind non-loopback host: {host}")

    family = socket.AF_INET6 if host == "::1" else socket.AF_INET
    address = "127.0.0.1" if host == "localhost" else host

    sock = socket.socket(family, socket.SOCK_STREAM)
    try:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind((address, port))
        sock.listen(128)
        sock.setblocking(False)
    except OSError:
        sock.close()
        raise
    return sock
