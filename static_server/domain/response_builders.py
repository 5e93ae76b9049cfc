"""Canned responses written through a ResponseWriter."""

import html
from http import HTTPStatus

from static_server.domain.http_types import HttpRequest, ResponseWriter


def status_text(status: int) -> str:
    """Return the standard reason phrase for a status code."""
    try:
        return HTTPStatus(status).phrase
    except ValueError:
        return ""


def http_error(writer: ResponseWriter, message: str, status: int) -> None:
    """Reply with a plain-text error body followed by a newline."""
    writer.headers.pop("Content-Length", None)
    writer.headers["Content-Type"] = "text/plain; charset=utf-8"
    writer.headers["X-Content-Type-Options"] = "nosniff"
    writer.write_header(status)
    writer.write(f"{message}\n".encode())


def not_found(writer: ResponseWriter) -> None:
    """Reply with the default 404 body."""
    http_error(writer, "404 page not found", HTTPStatus.NOT_FOUND)


def redirect(
    writer: ResponseWriter, request: HttpRequest, location: str, status: int
) -> None:
    """Send a redirect to ``location`` with a short HTML body for GET."""
    writer.headers["Location"] = location
    if request.method in ("GET", "HEAD"):
        writer.headers["Content-Type"] = "text/html; charset=utf-8"
    writer.write_header(status)
    if request.method == "GET":
        body = f'<a href="{html.escape(location)}">{status_text(status)}</a>.\n\n'
        writer.write(body.encode())
