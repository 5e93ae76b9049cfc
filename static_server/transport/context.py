"""Context object shared across worker threads."""

from dataclasses import dataclass, field
from typing import Optional

from static_server.bootstrap.config import ConnectionTimeouts
from static_server.domain.http_types import Handler
from static_server.lifecycle.state import ServerLifecycle


@dataclass
class WorkerContext:
    """Dependencies shared across connection worker threads."""

    handler: Handler
    timeouts: ConnectionTimeouts = field(default_factory=ConnectionTimeouts)
    lifecycle: Optional[ServerLifecycle] = None
