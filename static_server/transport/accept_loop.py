"""Main connection acceptance loop."""

import logging
import socket
import threading

from static_server.bootstrap.config import ServerConfig
from static_server.domain.log_context import component_logger
from static_server.lifecycle.state import ServerLifecycle
from static_server.transport.context import WorkerContext
from static_server.transport.worker import handle_client

ACCEPT_LOGGER = component_logger("transport.accept")


def serve_forever(
    server_socket: socket.socket,
    context: WorkerContext,
    config: ServerConfig,
    lifecycle: ServerLifecycle,
) -> None:
    """Accept connections until shutdown, one worker thread per connection."""
    try:
        while True:
            try:
                client_socket, client_address = server_socket.accept()
            except socket.timeout:
                if lifecycle.should_stop():
                    break
                continue
            except OSError as error:
                if lifecycle.should_stop():
                    break
                ACCEPT_LOGGER.error(
                    "Socket accept failed",
                    extra={"event": "accept_error", "error_type": type(error).__name__},
                )
                continue

            if ACCEPT_LOGGER.logger.isEnabledFor(logging.DEBUG):
                ACCEPT_LOGGER.debug(
                    "Client connection accepted",
                    extra={
                        "event": "client_accepted",
                        "client": f"{client_address[0]}:{client_address[1]}",
                    },
                )
            thread = threading.Thread(
                target=handle_client,
                args=(client_socket, client_address, context),
                daemon=False,
            )
            thread.start()
    finally:
        server_socket.close()
        ACCEPT_LOGGER.info(
            "Waiting for active connections to complete",
            extra={
                "event": "shutdown_waiting",
                "shutdown_grace_seconds": config.shutdown_grace_seconds,
            },
        )
        lifecycle.wait_for_workers(config.shutdown_grace_seconds)
        ACCEPT_LOGGER.info("Server shutdown complete", extra={"event": "server_stopped"})
