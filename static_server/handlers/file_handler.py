"""File serving handler rooted at the configured content directory."""

import errno
import logging
import mimetypes
import posixpath
import urllib.parse
from datetime import datetime, timezone
from email.utils import formatdate, parsedate_to_datetime
from http import HTTPStatus
from pathlib import Path
from typing import Iterator, Optional

from static_server.domain.http_types import HttpRequest, ResponseWriter
from static_server.domain.log_context import component_logger
from static_server.domain.response_builders import http_error, not_found, redirect
from static_server.domain.sandbox import ForbiddenPath, resolve_sandbox_path

FILE_LOGGER = component_logger("handlers.file")

INDEX_PAGE = "index.html"
CHUNK_SIZE = 65536


def stream_file(
    filepath: Path, length: Optional[int] = None, chunk_size: int = CHUNK_SIZE
) -> Iterator[bytes]:
    """Yield file contents in fixed-size chunks, stopping after ``length`` bytes."""
    remaining = length
    with open(filepath, "rb") as file_handle:
        while remaining is None or remaining > 0:
            size = chunk_size if remaining is None else min(chunk_size, remaining)
            chunk = file_handle.read(size)
            if not chunk:
                break
            if remaining is not None:
                remaining -= len(chunk)
            yield chunk


def content_type_for_path(filepath: Path) -> str:
    mime_type, _ = mimetypes.guess_type(filepath.as_posix())
    if mime_type is None:
        return "application/octet-stream"
    if mime_type.startswith("text/") or mime_type in (
        "application/javascript",
        "application/json",
    ):
        return f"{mime_type}; charset=utf-8"
    return mime_type


def _not_modified_since(request: HttpRequest, mtime: float) -> bool:
    header_value = request.headers.get("if-modified-since")
    if not header_value:
        return False
    try:
        since = parsedate_to_datetime(header_value)
    except (TypeError, ValueError):
        return False
    if since.tzinfo is None:
        since = since.replace(tzinfo=timezone.utc)
    modified = datetime.fromtimestamp(int(mtime), tz=timezone.utc)
    return modified <= since


def _error_for_os_error(writer: ResponseWriter, error: OSError) -> None:
    if error.errno in (errno.EACCES, errno.EPERM):
        http_error(writer, "403 Forbidden", HTTPStatus.FORBIDDEN)
    elif error.errno in (errno.ENOENT, errno.ENOTDIR, errno.ENAMETOOLONG, errno.ELOOP):
        not_found(writer)
    else:
        http_error(writer, "500 Internal Server Error", HTTPStatus.INTERNAL_SERVER_ERROR)


def _directory_location(path: str) -> str:
    """Relative redirect target adding the trailing slash to a directory."""
    return f"./{urllib.parse.quote(posixpath.basename(path))}/"


class FileResponder:
    """Serve files under ``content_root``; answer 404 for anything else.

    Request paths are taken relative to the root with the leading slash
    stripped. Directories serve their ``index.html``; there are no listings.
    HEAD is answered without opening the file, for use outside the GET-only
    policy chain.
    """

    def __init__(self, content_root: str) -> None:
        self.content_root = content_root

    def __call__(self, request: HttpRequest, writer: ResponseWriter) -> None:
        if request.path.endswith(f"/{INDEX_PAGE}"):
            redirect(writer, request, "./", HTTPStatus.MOVED_PERMANENTLY)
            return

        try:
            resolved_path = resolve_sandbox_path(self.content_root, request.path[1:])
            needs_slash = resolved_path.is_dir()
            if needs_slash and request.path.endswith("/"):
                resolved_path = resolved_path / INDEX_PAGE
                needs_slash = False
            is_file = not needs_slash and resolved_path.is_file()
        except ForbiddenPath:
            FILE_LOGGER.warning(
                "Forbidden path access blocked",
                extra={"event": "forbidden_path", "route": request.path},
            )
            not_found(writer)
            return
        except (OSError, RuntimeError) as error:
            # RuntimeError: symlink loop detected by Path.resolve().
            FILE_LOGGER.warning(
                "File lookup failed",
                extra={
                    "event": "file_lookup_failed",
                    "route": request.path,
                    "error_type": type(error).__name__,
                },
            )
            if isinstance(error, OSError):
                _error_for_os_error(writer, error)
            else:
                not_found(writer)
            return

        if needs_slash:
            redirect(
                writer,
                request,
                _directory_location(request.path),
                HTTPStatus.MOVED_PERMANENTLY,
            )
            return

        if not is_file:
            FILE_LOGGER.info(
                "File not found",
                extra={"event": "file_not_found", "route": request.path},
            )
            not_found(writer)
            return

        self._serve_file(request, writer, resolved_path)

    def _serve_file(
        self, request: HttpRequest, writer: ResponseWriter, resolved_path: Path
    ) -> None:
        try:
            file_stat = resolved_path.stat()
            chunks: Optional[Iterator[bytes]] = None
            if request.method != "HEAD":
                chunks = stream_file(resolved_path, file_stat.st_size)
                first_chunk = next(chunks, b"")
        except OSError as error:
            FILE_LOGGER.error(
                "File read failed",
                extra={
                    "event": "file_read_failed",
                    "route": request.path,
                    "error_type": type(error).__name__,
                },
            )
            _error_for_os_error(writer, error)
            return

        writer.headers["Last-Modified"] = formatdate(file_stat.st_mtime, usegmt=True)
        if _not_modified_since(request, file_stat.st_mtime):
            if chunks is not None:
                chunks.close()
            writer.write_header(HTTPStatus.NOT_MODIFIED)
            return

        writer.headers["Content-Type"] = content_type_for_path(resolved_path)
        writer.headers["Content-Length"] = str(file_stat.st_size)
        writer.write_header(HTTPStatus.OK)
        if chunks is None:
            return
        if FILE_LOGGER.logger.isEnabledFor(logging.DEBUG):
            FILE_LOGGER.debug(
                "File streaming started",
                extra={"event": "file_streaming_started", "route": request.path},
            )
        try:
            if first_chunk:
                writer.write(first_chunk)
            for chunk in chunks:
                writer.write(chunk)
        finally:
            chunks.close()
