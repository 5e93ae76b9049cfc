"""Rate limiting gate consulted before any other request processing."""

import logging
from http import HTTPStatus

from static_server.domain.http_types import Handler, HttpRequest, ResponseWriter
from static_server.domain.log_context import component_logger
from static_server.domain.response_builders import http_error, status_text
from static_server.domain.token_bucket import TokenBucket

LIMITER_LOGGER = component_logger("pipeline.rate_limiting")


class RateLimitGate:
    """Handler wrapper that answers 429 once the global bucket is empty.

    Rejected requests never reach the wrapped handler, so they produce no
    access log records.
    """

    def __init__(self, bucket: TokenBucket, next_handler: Handler) -> None:
        self._bucket = bucket
        self._next = next_handler

    def __call__(self, request: HttpRequest, writer: ResponseWriter) -> None:
        if self._bucket.allow():
            self._next(request, writer)
            return

        if LIMITER_LOGGER.logger.isEnabledFor(logging.DEBUG):
            LIMITER_LOGGER.debug(
                "Rate limit enforced",
                extra={"event": "rate_limit_enforced", "client": request.remote_addr},
            )
        http_error(
            writer,
            status_text(HTTPStatus.TOO_MANY_REQUESTS),
            HTTPStatus.TOO_MANY_REQUESTS,
        )
