"""Deadline-bounded socket operations used to enforce connection timeouts.

Every blocking socket call made on behalf of a client goes through these
helpers. Each one converts an absolute monotonic deadline into a socket
timeout, so an expired deadline surfaces as ``TimeoutError`` and the worker
closes the connection without answering.
"""

import socket
import time


def deadline_after(seconds: float) -> int:
    """Return a monotonic deadline ``seconds`` from now, in nanoseconds."""
    return time.monotonic_ns() + int(seconds * 1_000_000_000)


def _remaining_seconds(deadline_ns: int, what: str) -> float:
    remaining_ns = deadline_ns - time.monotonic_ns()
    if remaining_ns <= 0:
        raise TimeoutError(f"{what} deadline exceeded")
    return remaining_ns / 1_000_000_000


def recv_with_deadline(client_socket: socket.socket, deadline_ns: int) -> bytes:
    """Receive data from socket with a deadline, raising TimeoutError if exceeded."""
    client_socket.settimeout(_remaining_seconds(deadline_ns, "Request"))
    return client_socket.recv(4096)


def send_with_deadline(
    client_socket: socket.socket, data: bytes, deadline_ns: int
) -> None:
    """Send all of ``data`` before the deadline or raise TimeoutError."""
    client_socket.settimeout(_remaining_seconds(deadline_ns, "Response"))
    client_socket.sendall(data)


def handshake_with_deadline(client_socket, deadline_ns: int) -> None:
    """Complete a deferred TLS handshake before the read deadline."""
    client_socket.settimeout(_remaining_seconds(deadline_ns, "Handshake"))
    client_socket.do_handshake()
