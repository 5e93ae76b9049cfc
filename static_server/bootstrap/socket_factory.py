"""Listening socket creation and TLS configuration."""

import socket
import ssl

from static_server.domain.log_context import component_logger

SOCKET_LOGGER = component_logger("socket")

ACCEPT_POLL_SECONDS = 0.5


def create_tls_context(cert_file: str, key_file: str) -> ssl.SSLContext:
    """Build a server-side TLS context from a certificate and key pair."""
    tls_context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
    tls_context.minimum_version = ssl.TLSVersion.TLSv1_2
    tls_context.load_cert_chain(cert_file, key_file)
    return tls_context


def create_server_socket(
    host: str, port: int, tls_context: ssl.SSLContext
) -> ssl.SSLSocket:
    """Create the listening socket wrapped in TLS.

    Handshakes are deferred to the worker thread so a slow client cannot
    stall the accept loop.
    """
    server_socket = socket.create_server((host, port))
    server_socket.settimeout(ACCEPT_POLL_SECONDS)
    tls_socket = tls_context.wrap_socket(
        server_socket, server_side=True, do_handshake_on_connect=False
    )
    SOCKET_LOGGER.debug(
        "TLS listening socket created",
        extra={"event": "socket_created", "host": host, "port": port},
    )
    return tls_socket
