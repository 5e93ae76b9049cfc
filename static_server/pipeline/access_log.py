"""Access logging around a handler, fed by a response-observing writer."""

import logging
from typing import MutableMapping, Protocol

from static_server.domain.http_types import Handler, HttpRequest, ResponseWriter

ACCESS_LOGGER_NAME = "static_server.access"


class LogSink(Protocol):
    """Anything that can append one line of text."""

    def write_line(self, line: str) -> None:
        ...


class LoggerSink:
    """LogSink that forwards every line to a ``logging.Logger`` at INFO."""

    def __init__(self, logger: logging.Logger) -> None:
        self._logger = logger

    def write_line(self, line: str) -> None:
        self._logger.info(line)


class ResponseObserver:
    """ResponseWriter wrapper recording the status and body size it forwards.

    The first status wins, matching the wrapped writer; a body write before
    any explicit status locks in 200.
    """

    def __init__(self, writer: ResponseWriter) -> None:
        self._writer = writer
        self._status_set = False
        self.status = 200
        self.size = 0

    @property
    def headers(self) -> MutableMapping[str, str]:
        return self._writer.headers

    def write_header(self, status: int) -> None:
        if not self._status_set:
            self._status_set = True
            self.status = int(status)
        self._writer.write_header(status)

    def write(self, data: bytes) -> int:
        self._status_set = True
        written = self._writer.write(data)
        self.size += written
        return written


def request_line(request: HttpRequest) -> str:
    return f'{request.remote_addr} "{request.method} {request.path} {request.protocol}"'


class AccessLogger:
    """Handler wrapper emitting a start and an end line per request."""

    def __init__(self, handler: Handler, sink: LogSink) -> None:
        self._handler = handler
        self._sink = sink

    def __call__(self, request: HttpRequest, writer: ResponseWriter) -> None:
        line = request_line(request)
        self._sink.write_line(line)
        observer = ResponseObserver(writer)
        result = self._handler(request, observer)
        self._sink.write_line(f"{line} {observer.status} {observer.size}")
        return result
