"""Shared HTTP type definitions to avoid circular imports."""

from dataclasses import dataclass, field
from typing import Callable, MutableMapping, Protocol


@dataclass(frozen=True)
class HttpRequest:
    """Represents a parsed HTTP request."""

    method: str
    host: str
    path: str
    protocol: str
    remote_addr: str
    headers: dict[str, str] = field(default_factory=dict)
    target: str = ""

    def wants_close(self) -> bool:
        """Return True when the client does not want a persistent connection."""
        connection = self.headers.get("connection", "").lower()
        if self.protocol == "HTTP/1.0":
            return connection != "keep-alive"
        return connection == "close"


class ResponseWriter(Protocol):
    """Outbound response channel handed to every handler."""

    @property
    def headers(self) -> MutableMapping[str, str]:
        """Headers sent with the response; frozen once the status is written."""

    def write_header(self, status: int) -> None:
        """Send the status line and headers. Later calls are no-ops."""

    def write(self, data: bytes) -> int:
        """Write body bytes, committing a 200 status first if needed."""


Handler = Callable[[HttpRequest, ResponseWriter], None]
