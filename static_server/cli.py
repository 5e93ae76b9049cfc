"""Command-line entry point for the hardened static HTTPS server."""

import argparse
import signal
import ssl
import sys

from static_server.bootstrap.config import (
    ConfigError,
    load_settings,
    parse_cli_args,
    server_config_from_args,
)
from static_server.bootstrap.logging_setup import configure_logging
from static_server.bootstrap.socket_factory import (
    create_server_socket,
    create_tls_context,
)
from static_server.domain.log_context import component_logger
from static_server.domain.token_bucket import TokenBucket
from static_server.lifecycle.state import ServerLifecycle
from static_server.pipeline.assembly import build_pipeline
from static_server.transport.accept_loop import serve_forever
from static_server.transport.context import WorkerContext

SERVER_LOGGER = component_logger("server")


def run(args: argparse.Namespace) -> int:
    """Start the server described by ``args``; return the process exit code."""
    try:
        settings = load_settings(args.config)
    except ConfigError as error:
        print(f"Configuration error: {error}", file=sys.stderr)
        return 1

    configure_logging(args.log_level, settings.log_file, args.log_json)
    config = server_config_from_args(args)

    try:
        tls_context = create_tls_context(settings.cert_file, settings.key_file)
        server_socket = create_server_socket(settings.host, settings.port, tls_context)
    except (ssl.SSLError, OSError) as error:
        SERVER_LOGGER.critical(
            "Failed to start TLS listener",
            extra={"event": "listen_failed", "error_type": type(error).__name__},
        )
        print(f"Failed to start TLS listener: {error}", file=sys.stderr)
        return 1

    lifecycle = ServerLifecycle()

    def shutdown_handler(signum: int, _frame) -> None:
        SERVER_LOGGER.info(
            "Received shutdown signal", extra={"event": "signal", "signal": signum}
        )
        lifecycle.begin_shutdown()

    signal.signal(signal.SIGTERM, shutdown_handler)
    signal.signal(signal.SIGINT, shutdown_handler)

    bucket = TokenBucket.for_events_per_second(settings.events_per_second)
    context = WorkerContext(
        handler=build_pipeline(settings.content_dir, bucket),
        timeouts=config.timeouts,
        lifecycle=lifecycle,
    )

    SERVER_LOGGER.info(
        "Starting HTTPS server",
        extra={
            "event": "server_listening",
            "host": settings.host or "*",
            "port": settings.port,
            "content_dir": settings.content_dir,
            "log_file": settings.log_file,
            "events_per_second": settings.events_per_second,
            "burst": bucket.burst,
            "read_timeout": config.timeouts.read_timeout,
            "write_timeout": config.timeouts.write_timeout,
            "idle_timeout": config.timeouts.idle_timeout,
            "shutdown_grace_seconds": config.shutdown_grace_seconds,
        },
    )
    serve_forever(server_socket, context, config, lifecycle)
    return 0


def main() -> None:
    """Parse CLI arguments, run the server and exit with its status."""
    sys.exit(run(parse_cli_args(sys.argv[1:])))
