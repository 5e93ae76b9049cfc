"""End-to-end tests for TLS-only listening, connection timeouts and startup errors."""

from __future__ import annotations

import json
import socket
import ssl
import subprocess
import sys
import time

import pytest

from tests.utils.http import build_request, read_http_response, reserve_port
from tests.utils.server import HOST, PROJECT_ROOT, SERVER_ENTRYPOINT, write_config

pytestmark = pytest.mark.integration


def tls_connect(server) -> ssl.SSLSocket:
    context = ssl.create_default_context(cafile=str(server["cert"]))
    raw = socket.create_connection((server["host"], server["port"]), timeout=5)
    return context.wrap_socket(raw, server_hostname="localhost")


def connection_closed(sock: socket.socket) -> bool:
    try:
        return sock.recv(1024) == b""
    except (ConnectionError, ssl.SSLError):
        return True


def test_plain_http_is_refused(https_server):
    with socket.create_connection((HOST, https_server["port"]), timeout=5) as sock:
        sock.sendall(build_request("GET", "/"))
        try:
            data = sock.recv(1024)
        except ConnectionError:
            data = b""
    assert not data.startswith(b"HTTP/")


def test_raw_tls_keep_alive(https_server):
    with tls_connect(https_server) as sock:
        for _ in range(2):
            sock.sendall(build_request("GET", "/notes.txt"))
            assert read_http_response(sock).status_code == 200


def test_idle_connection_is_closed(idle_timeout_server):
    with tls_connect(idle_timeout_server) as sock:
        sock.sendall(build_request("GET", "/"))
        assert read_http_response(sock).status_code == 200
        time.sleep(0.6)
        assert connection_closed(sock)


def test_silent_client_is_dropped_after_read_timeout(idle_timeout_server):
    """The read deadline starts at accept, so a client that never handshakes is dropped."""
    with socket.create_connection((HOST, idle_timeout_server["port"]), timeout=10) as sock:
        started = time.monotonic()
        assert connection_closed(sock)
        assert time.monotonic() - started < 8


def run_server(args: list[str]) -> subprocess.CompletedProcess[str]:
    return subprocess.run(
        [sys.executable, str(SERVER_ENTRYPOINT), *args],
        cwd=PROJECT_ROOT,
        capture_output=True,
        text=True,
        timeout=20,
        check=False,
    )


def test_missing_config_exits_non_zero(tmp_path):
    result = run_server(["--config", str(tmp_path / "absent.json")])
    assert result.returncode == 1
    assert "Configuration error" in result.stderr


def test_invalid_config_exits_non_zero(tmp_path):
    config = tmp_path / "config.json"
    config.write_text(json.dumps({"port": 8443}), encoding="utf-8")
    result = run_server(["--config", str(config)])
    assert result.returncode == 1
    assert "Missing required settings" in result.stderr


def test_port_in_use_exits_non_zero(tmp_path, tls_material, content_dir):
    with socket.create_server((HOST, reserve_port(HOST))) as occupied:
        port = occupied.getsockname()[1]
        config = write_config(
            tmp_path / "config.json", tls_material, content_dir, tmp_path / "logs", port, 5
        )
        result = run_server(["--config", str(config)])
    assert result.returncode == 1
    assert "Failed to start TLS listener" in result.stderr
