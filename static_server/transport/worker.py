"""Worker thread logic for handling individual client connections."""

import logging
import socket
import ssl
import threading
from http import HTTPStatus
from typing import Optional

from static_server.domain.http_types import HttpRequest
from static_server.domain.log_context import component_logger
from static_server.lifecycle.state import ServerLifecycle
from static_server.pipeline.io import (
    RequestHeaderFieldsTooLarge,
    SocketResponseWriter,
    receive_request,
    send_connection_error,
)
from static_server.transport.context import WorkerContext
from static_server.transport.timeouts import (
    deadline_after,
    handshake_with_deadline,
    recv_with_deadline,
)

WORKER_LOGGER = component_logger("transport.worker")


def _read_next_request(
    client_socket: socket.socket,
    buffer: bytes,
    client_addr_str: str,
    context: WorkerContext,
    read_deadline_ns: int,
) -> tuple[Optional[HttpRequest], bytes, bool]:
    """Read one request, answering 400/431 for requests that cannot be parsed."""
    timeouts = context.timeouts
    try:
        return receive_request(
            client_socket,
            buffer,
            client_addr_str,
            read_deadline_ns,
            timeouts.max_header_bytes,
        )
    except RequestHeaderFieldsTooLarge:
        WORKER_LOGGER.warning(
            "Request head exceeded limit",
            extra={"event": "header_size_exceeded", "client": client_addr_str},
        )
        send_connection_error(
            client_socket,
            HTTPStatus.REQUEST_HEADER_FIELDS_TOO_LARGE,
            deadline_after(timeouts.write_timeout),
        )
    except (ValueError, UnicodeDecodeError):
        WORKER_LOGGER.warning(
            "Malformed request received",
            extra={"event": "malformed_request", "client": client_addr_str},
        )
        send_connection_error(
            client_socket,
            HTTPStatus.BAD_REQUEST,
            deadline_after(timeouts.write_timeout),
        )
    return None, b"", True


def _serve_connection(
    client_socket: socket.socket,
    client_addr_str: str,
    context: WorkerContext,
    lifecycle: Optional[ServerLifecycle],
) -> None:
    timeouts = context.timeouts
    # Armed at accept: covers the TLS handshake and the whole first request.
    read_deadline_ns = deadline_after(timeouts.read_timeout)
    if isinstance(client_socket, ssl.SSLSocket):
        handshake_with_deadline(client_socket, read_deadline_ns)

    buffer = b""
    first_request = True
    while lifecycle is None or not lifecycle.should_stop():
        if not first_request:
            if not buffer:
                chunk = recv_with_deadline(
                    client_socket, deadline_after(timeouts.idle_timeout)
                )
                if not chunk:
                    break
                buffer = chunk
            read_deadline_ns = deadline_after(timeouts.read_timeout)
        first_request = False

        request, buffer, must_close = _read_next_request(
            client_socket, buffer, client_addr_str, context, read_deadline_ns
        )
        if request is None:
            break

        writer = SocketResponseWriter(
            client_socket,
            request,
            deadline_after(timeouts.write_timeout),
            close_connection=must_close,
        )
        context.handler(request, writer)
        writer.finish()

        if WORKER_LOGGER.logger.isEnabledFor(logging.DEBUG):
            WORKER_LOGGER.debug(
                "Request processing complete",
                extra={
                    "event": "request_complete",
                    "client": client_addr_str,
                    "status_code": writer.status,
                    "bytes_out": writer.bytes_written,
                },
            )
        if writer.close_connection:
            break


def _close_socket(client_socket: socket.socket) -> None:
    try:
        client_socket.shutdown(socket.SHUT_RDWR)
    except OSError:
        pass
    client_socket.close()


def handle_client(
    client_socket: socket.socket,
    client_address: tuple[str, int],
    context: WorkerContext,
) -> None:
    """Process requests on a client socket until it closes or times out."""
    client_addr_str = f"{client_address[0]}:{client_address[1]}"
    current_thread = threading.current_thread()
    lifecycle = context.lifecycle
    if lifecycle is not None:
        lifecycle.register_worker(current_thread)

    try:
        _serve_connection(client_socket, client_addr_str, context, lifecycle)
    except TimeoutError:
        WORKER_LOGGER.debug(
            "Connection timed out",
            extra={"event": "connection_timeout", "client": client_addr_str},
        )
    except ssl.SSLError as error:
        WORKER_LOGGER.warning(
            "TLS error on client connection",
            extra={
                "event": "tls_error",
                "client": client_addr_str,
                "error_type": type(error).__name__,
            },
        )
    except ConnectionError as error:
        WORKER_LOGGER.debug(
            "Client connection dropped",
            extra={
                "event": "connection_dropped",
                "client": client_addr_str,
                "error_type": type(error).__name__,
            },
        )
    except OSError as error:
        WORKER_LOGGER.error(
            "Error handling client connection",
            extra={
                "event": "connection_error",
                "client": client_addr_str,
                "error_type": type(error).__name__,
            },
        )
    except Exception as error:  # pylint: disable=broad-except
        WORKER_LOGGER.error(
            "Unexpected error in worker",
            extra={
                "event": "worker_error",
                "client": client_addr_str,
                "error_type": type(error).__name__,
            },
            exc_info=True,
        )
    finally:
        if lifecycle is not None:
            lifecycle.cleanup_worker(current_thread)
        _close_socket(client_socket)
        if WORKER_LOGGER.logger.isEnabledFor(logging.DEBUG):
            WORKER_LOGGER.debug(
                "Socket closed",
                extra={"event": "socket_closed", "client": client_addr_str},
            )
