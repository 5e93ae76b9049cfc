"""Shared pytest fixtures for integration and unit tests."""

from __future__ import annotations

import subprocess
import sys
from pathlib import Path
from typing import TYPE_CHECKING, Generator

import pytest

from tests.utils.http import reserve_port, wait_for_port
from tests.utils.server import (
    HOST,
    INDEX_HTML,
    LARGE_BLOB,
    NOTES_TEXT,
    PROJECT_ROOT,
    SERVER_ENTRYPOINT,
    WIKI_INDEX_HTML,
    ServerProcessInfo,
    TlsMaterial,
    write_config,
    write_self_signed_cert,
)

if TYPE_CHECKING:
    from _pytest.tmpdir import TempPathFactory


def _launch_server(
    workdir: Path,
    tls: TlsMaterial,
    content_dir: Path,
    events_per_second: int,
    extra_args: list[str] | None = None,
) -> Generator[ServerProcessInfo, None, None]:
    port = reserve_port(HOST)
    logs_dir = workdir / "logs"
    config_path = write_config(
        workdir / "config.json", tls, content_dir, logs_dir, port, events_per_second
    )
    args = [
        sys.executable,
        str(SERVER_ENTRYPOINT),
        "--config",
        str(config_path),
        "--shutdown-grace-seconds",
        "1",
    ]
    if extra_args:
        args.extend(extra_args)

    with subprocess.Popen(
        args,
        cwd=PROJECT_ROOT,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        text=True,
    ) as process:
        try:
            wait_for_port(HOST, port)
        except Exception:
            process.terminate()
            stdout, stderr = process.communicate(timeout=5)
            print(f"\nServer stdout:\n{stdout}")
            print(f"\nServer stderr:\n{stderr}")
            raise

        yield {
            "base_url": f"https://{HOST}:{port}",
            "host": HOST,
            "port": port,
            "content_dir": content_dir,
            "log_file": logs_dir / "server.log",
            "cert": tls["cert"],
            "process": process,
        }

        process.terminate()
        try:
            process.wait(timeout=5)
        except subprocess.TimeoutExpired:
            process.kill()


@pytest.fixture(scope="session")
def project_root() -> Path:
    """Expose the repository root path to tests."""

    return PROJECT_ROOT


@pytest.fixture(name="tls_material", scope="session")
def _tls_material(tmp_path_factory: "TempPathFactory") -> TlsMaterial:
    """Generate a self-signed certificate valid for localhost and 127.0.0.1."""

    return write_self_signed_cert(tmp_path_factory.mktemp("tls"))


@pytest.fixture(name="content_dir", scope="session")
def _content_dir(tmp_path_factory: "TempPathFactory") -> Path:
    """Populate a content root with a landing page and a few sample files."""

    root = tmp_path_factory.mktemp("content")
    (root / "index.html").write_bytes(INDEX_HTML)
    (root / "notes.txt").write_bytes(NOTES_TEXT)
    (root / "large.bin").write_bytes(LARGE_BLOB)
    (root / "wiki").mkdir()
    (root / "wiki" / "index.html").write_bytes(WIKI_INDEX_HTML)
    return root


@pytest.fixture(name="https_server", scope="module")
def _https_server(
    tmp_path_factory: "TempPathFactory", tls_material: TlsMaterial, content_dir: Path
) -> Generator[ServerProcessInfo, None, None]:
    """Launch a server whose rate limit is high enough to stay out of the way."""

    workdir = tmp_path_factory.mktemp("server")
    yield from _launch_server(workdir, tls_material, content_dir, 1000)


@pytest.fixture(name="rate_limited_server")
def _rate_limited_server(
    tmp_path_factory: "TempPathFactory", tls_material: TlsMaterial, content_dir: Path
) -> Generator[ServerProcessInfo, None, None]:
    """Launch a server admitting one request per second with a burst of four."""

    workdir = tmp_path_factory.mktemp("server-limited")
    yield from _launch_server(workdir, tls_material, content_dir, 1)


@pytest.fixture(name="idle_timeout_server")
def _idle_timeout_server(
    tmp_path_factory: "TempPathFactory", tls_material: TlsMaterial, content_dir: Path
) -> Generator[ServerProcessInfo, None, None]:
    """Launch a server that drops keep-alive connections after 0.2s of silence."""

    workdir = tmp_path_factory.mktemp("server-idle")
    yield from _launch_server(
        workdir, tls_material, content_dir, 1000, ["--idle-timeout", "0.2"]
    )
