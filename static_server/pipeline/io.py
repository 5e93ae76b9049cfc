"""HTTP input/output: request parsing and the socket-backed response writer."""

import logging
import socket
import urllib.parse
from email.utils import formatdate
from http import HTTPStatus
from typing import Optional, Tuple

from static_server.bootstrap.config import MAX_DISCARDED_BODY_BYTES
from static_server.domain.http_types import HttpRequest
from static_server.domain.log_context import component_logger
from static_server.domain.response_builders import status_text
from static_server.transport.timeouts import recv_with_deadline, send_with_deadline

IO_LOGGER = component_logger("io")

HEADER_DELIMITER = b"\r\n\r\n"
SUPPORTED_PROTOCOLS = {"HTTP/1.0", "HTTP/1.1"}
TOKEN_CHARS = frozenset(
    "!#$%&'*+-.^_`|~0123456789"
    "abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ"
)
# Bodies up to this size are buffered so they can be sent with Content-Length.
BUFFERED_BODY_BYTES = 4096


class RequestHeaderFieldsTooLarge(Exception):
    """Raised when a request head exceeds the configured size limit."""


def parse_headers(lines: list[str]) -> dict[str, str]:
    """Convert raw header lines into a lowercase-keyed dictionary."""
    parsed: dict[str, str] = {}
    for line in lines:
        if not line:
            continue
        name, separator, value = line.partition(":")
        name = name.strip().lower()
        if not separator or not name or not TOKEN_CHARS.issuperset(name):
            raise ValueError("Invalid header line")
        value = value.strip()
        if name in parsed:
            if name == "host":
                raise ValueError("Duplicate Host header")
            parsed[name] = f"{parsed[name]}, {value}"
        else:
            parsed[name] = value
    return parsed


def parse_request_line(request_line: str) -> Tuple[str, str, str, str, str]:
    """Return method, target, decoded path, URL host and protocol."""
    parts = request_line.split(" ")
    if len(parts) != 3:
        raise ValueError("Invalid request line")
    method, target, protocol = parts
    if not method or not TOKEN_CHARS.issuperset(method):
        raise ValueError("Invalid method")
    if protocol not in SUPPORTED_PROTOCOLS:
        raise ValueError("Unsupported protocol")
    if target == "*":
        return method, target, "*", "", protocol

    parsed_target = urllib.parse.urlsplit(target)
    if parsed_target.scheme and parsed_target.scheme not in ("http", "https"):
        raise ValueError("Invalid request target")
    path = urllib.parse.unquote(parsed_target.path) or "/"
    if not path.startswith("/"):
        raise ValueError("Invalid request target")
    return method, target, path, parsed_target.netloc, protocol


def _declared_body_length(headers: dict[str, str]) -> Optional[int]:
    """Return the Content-Length to discard, or None if framing is unknown."""
    if "transfer-encoding" in headers:
        return None
    header_value = headers.get("content-length")
    if header_value is None:
        return 0
    try:
        content_length = int(header_value)
    except ValueError as exc:
        raise ValueError("Invalid Content-Length") from exc
    if content_length < 0:
        raise ValueError("Negative Content-Length")
    if content_length > MAX_DISCARDED_BODY_BYTES:
        return None
    return content_length


def receive_request(
    client_socket: socket.socket,
    buffer: bytes,
    remote_addr: str,
    deadline_ns: int,
    max_header_bytes: int,
) -> Tuple[Optional[HttpRequest], bytes, bool]:
    """Read bytes from the socket until a complete request is available.

    Returns the request (None if the client went away), the unread bytes
    that follow it, and whether the connection must be closed after the
    response because the request body could not be consumed.
    """
    buffer = buffer.lstrip(b"\r\n")
    while HEADER_DELIMITER not in buffer:
        if len(buffer) > max_header_bytes:
            raise RequestHeaderFieldsTooLarge
        chunk = recv_with_deadline(client_socket, deadline_ns)
        if not chunk:
            return None, b"", True
        buffer = (buffer + chunk).lstrip(b"\r\n")

    header_block, remainder = buffer.split(HEADER_DELIMITER, 1)
    if len(header_block) > max_header_bytes:
        raise RequestHeaderFieldsTooLarge
    header_lines = header_block.decode("iso-8859-1").split("\r\n")
    method, target, path, url_host, protocol = parse_request_line(header_lines[0])
    headers = parse_headers(header_lines[1:])

    if protocol == "HTTP/1.1" and "host" not in headers:
        raise ValueError("Missing Host header")
    host = url_host or headers.get("host", "")

    content_length = _declared_body_length(headers)
    must_close = content_length is None
    if content_length:
        while len(remainder) < content_length:
            chunk = recv_with_deadline(client_socket, deadline_ns)
            if not chunk:
                return None, b"", True
            remainder += chunk
        remainder = remainder[content_length:]

    if IO_LOGGER.logger.isEnabledFor(logging.DEBUG):
        IO_LOGGER.debug(
            "Parsed request",
            extra={"event": "request_parsed", "method": method, "route": path},
        )
    request = HttpRequest(
        method=method,
        host=host,
        path=path,
        protocol=protocol,
        remote_addr=remote_addr,
        headers=headers,
        target=target,
    )
    return request, (b"" if must_close else remainder), must_close


def send_connection_error(
    client_socket: socket.socket, status: int, deadline_ns: int
) -> None:
    """Answer a request that could not be parsed, then expect a close."""
    message = f"{int(status)} {status_text(status)}"
    head = (
        f"HTTP/1.1 {message}\r\n"
        "Content-Type: text/plain; charset=utf-8\r\n"
        "Connection: close\r\n\r\n"
    )
    send_with_deadline(client_socket, (head + message).encode(), deadline_ns)


class SocketResponseWriter:
    """ResponseWriter that serializes a single response onto a client socket.

    The status line and headers are held back until the first body bytes
    exceed a small buffer or the response is finished, so short bodies go out
    with a Content-Length. Longer bodies without a declared length are sent
    chunked (HTTP/1.1) or delimited by closing the connection (HTTP/1.0).
    """

    def __init__(
        self,
        client_socket: socket.socket,
        request: HttpRequest,
        deadline_ns: int,
        close_connection: bool = False,
    ) -> None:
        self._socket = client_socket
        self._request = request
        self._deadline_ns = deadline_ns
        self._headers: dict[str, str] = {}
        self._sent_headers: dict[str, str] = {}
        self._status: Optional[int] = None
        self._head_sent = False
        self._chunked = False
        self._pending = b""
        self.close_connection = close_connection or request.wants_close()
        self.bytes_written = 0

    @property
    def headers(self) -> dict[str, str]:
        return self._headers

    @property
    def status(self) -> Optional[int]:
        return self._status

    def write_header(self, status: int) -> None:
        if self._status is not None:
            IO_LOGGER.debug(
                "Superfluous write_header call ignored",
                extra={"event": "superfluous_write_header", "status_code": int(status)},
            )
            return
        self._status = int(status)
        self._sent_headers = dict(self._headers)

    def write(self, data: bytes) -> int:
        if self._status is None:
            self.write_header(HTTPStatus.OK)
        if not self._body_allowed():
            return 0
        if self._request.method == "HEAD":
            self.bytes_written += len(data)
            return len(data)
        if not data:
            return 0
        if self._head_sent:
            self._send_body(data)
        else:
            self._pending += data
            if len(self._pending) > BUFFERED_BODY_BYTES:
                self._send_head(content_length=None)
                pending, self._pending = self._pending, b""
                self._send_body(pending)
        self.bytes_written += len(data)
        return len(data)

    def finish(self) -> None:
        """Flush whatever is buffered and terminate the body framing."""
        if self._status is None:
            self.write_header(HTTPStatus.OK)
        if not self._head_sent:
            length = len(self._pending) if self._declares_length() else None
            self._send_head(content_length=length, payload=self._pending)
            self._pending = b""
        elif self._chunked:
            send_with_deadline(self._socket, b"0\r\n\r\n", self._deadline_ns)

    def _body_allowed(self) -> bool:
        status = self._status or HTTPStatus.OK
        return not (100 <= status < 200 or status in (204, 304))

    def _declares_length(self) -> bool:
        return self._body_allowed() and self._request.method != "HEAD"

    def _send_head(self, content_length: Optional[int], payload: bytes = b"") -> None:
        status = self._status or HTTPStatus.OK
        headers = self._sent_headers
        headers.setdefault("Date", formatdate(usegmt=True))
        if content_length is not None:
            headers.setdefault("Content-Length", str(content_length))
        elif "Content-Length" not in headers and self._declares_length():
            if self._request.protocol == "HTTP/1.1":
                headers["Transfer-Encoding"] = "chunked"
                self._chunked = True
            else:
                self.close_connection = True
        if self.close_connection:
            headers["Connection"] = "close"
        elif self._request.protocol == "HTTP/1.0":
            headers["Connection"] = "keep-alive"

        lines = [f"{self._request.protocol} {status} {status_text(status)}".rstrip()]
        lines.extend(f"{name}: {value}" for name, value in headers.items())
        head = ("\r\n".join(lines) + "\r\n\r\n").encode("iso-8859-1")
        send_with_deadline(self._socket, head + payload, self._deadline_ns)
        self._head_sent = True
        if IO_LOGGER.logger.isEnabledFor(logging.DEBUG):
            IO_LOGGER.debug(
                "Sent response head",
                extra={"event": "response_head_sent", "status_code": status},
            )

    def _send_body(self, data: bytes) -> None:
        if self._chunked:
            data = f"{len(data):X}\r\n".encode() + data + b"\r\n"
        send_with_deadline(self._socket, data, self._deadline_ns)
