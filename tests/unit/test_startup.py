"""Unit tests for listener creation, the accept loop and CLI startup failures."""

from __future__ import annotations

import json
import logging
import socket
import ssl
import threading

import pytest

from static_server.bootstrap.config import ConnectionTimeouts, ServerConfig, parse_cli_args
from static_server.bootstrap.socket_factory import (
    ACCEPT_POLL_SECONDS,
    create_server_socket,
    create_tls_context,
)
from static_server.cli import run
from static_server.lifecycle.state import ServerLifecycle
from static_server.transport.accept_loop import serve_forever
from static_server.transport.context import WorkerContext
from tests.utils.http import build_request, read_http_response


@pytest.fixture(name="restore_project_logger")
def _restore_project_logger():
    """Undo configure_logging side effects made by ``run``."""
    logger = logging.getLogger("static_server")
    saved = (logger.level, logger.propagate, list(logger.handlers))
    yield
    for handler in list(logger.handlers):
        if handler not in saved[2]:
            handler.close()
    logger.setLevel(saved[0])
    logger.propagate = saved[1]
    logger.handlers[:] = saved[2]


def test_tls_context_requires_modern_tls(tls_material):
    context = create_tls_context(str(tls_material["cert"]), str(tls_material["key"]))
    assert context.minimum_version == ssl.TLSVersion.TLSv1_2


def test_tls_context_rejects_bad_key(tls_material, tmp_path):
    bad_key = tmp_path / "bad.pem"
    bad_key.write_text("not a key")
    with pytest.raises(ssl.SSLError):
        create_tls_context(str(tls_material["cert"]), str(bad_key))


def test_server_socket_is_tls_and_polls(tls_material):
    context = create_tls_context(str(tls_material["cert"]), str(tls_material["key"]))
    server_socket = create_server_socket("127.0.0.1", 0, context)
    try:
        assert isinstance(server_socket, ssl.SSLSocket)
        assert server_socket.gettimeout() == ACCEPT_POLL_SECONDS
    finally:
        server_socket.close()


def test_server_socket_fails_when_port_taken(tls_material):
    context = create_tls_context(str(tls_material["cert"]), str(tls_material["key"]))
    with socket.create_server(("127.0.0.1", 0)) as occupied:
        port = occupied.getsockname()[1]
        with pytest.raises(OSError):
            create_server_socket("127.0.0.1", port, context)


def test_accept_loop_serves_until_shutdown():
    responses: list[str] = []

    def handler(request, writer):
        responses.append(request.path)
        writer.write(b"ok")

    lifecycle = ServerLifecycle()
    context = WorkerContext(handler=handler, timeouts=ConnectionTimeouts(), lifecycle=lifecycle)
    config = ServerConfig(timeouts=context.timeouts, shutdown_grace_seconds=2)
    listener = socket.create_server(("127.0.0.1", 0))
    listener.settimeout(0.1)
    port = listener.getsockname()[1]
    loop = threading.Thread(target=serve_forever, args=(listener, context, config, lifecycle))
    loop.start()
    try:
        with socket.create_connection(("127.0.0.1", port), timeout=5) as client:
            client.sendall(build_request("GET", "/hello", connection="close"))
            response = read_http_response(client)
        assert response.status_code == 200
        assert response.body == b"ok"
        assert responses == ["/hello"]
    finally:
        lifecycle.begin_shutdown()
        loop.join(timeout=5)
    assert not loop.is_alive()
    assert listener.fileno() == -1


def test_run_reports_config_errors(tmp_path, capsys):
    args = parse_cli_args(["--config", str(tmp_path / "missing.json")])
    assert run(args) == 1
    assert "Configuration error" in capsys.readouterr().err


def test_run_reports_listen_failure(tmp_path, tls_material, capsys, restore_project_logger):
    content = tmp_path / "content"
    content.mkdir()
    with socket.create_server(("127.0.0.1", 0)) as occupied:
        port = occupied.getsockname()[1]
        config_path = tmp_path / "config.json"
        config_path.write_text(
            json.dumps(
                {
                    "cert": str(tls_material["cert"]),
                    "key": str(tls_material["key"]),
                    "content": str(content),
                    "logs": str(tmp_path / "logs"),
                    "port": f":{port}",
                    "host": "127.0.0.1",
                    "eventsPerSecond": 3,
                }
            )
        )
        assert run(parse_cli_args(["--config", str(config_path)])) == 1
    assert "Failed to start TLS listener" in capsys.readouterr().err
    assert (tmp_path / "logs" / "server.log").exists()
