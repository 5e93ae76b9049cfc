"""Policy middleware chain applied in front of the file responder.

Stages run in a fixed order: host redirect, method gate, security headers.
The two rejecting stages run first so that redirects and disallowed methods
never reach file I/O. Security headers are set last because headers are
frozen once the responder starts writing the body.
"""

import logging
from abc import ABC, abstractmethod
from http import HTTPStatus
from typing import Mapping, Sequence

from static_server.domain.http_types import Handler, HttpRequest, ResponseWriter
from static_server.domain.log_context import component_logger
from static_server.domain.response_builders import http_error, redirect

POLICY_LOGGER = component_logger("pipeline.policies")

WIKI_HOST_PREFIX = "wiki."
WIKI_LANDING_PATH = "/wiki/index.html"

SECURITY_HEADERS = {
    # Only load resources from the page's own origin.
    "Content-Security-Policy": "default-src 'self'",
    "Strict-Transport-Security": "max-age=31536000; includeSubDomains",
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "SAMEORIGIN",
}


class PolicyStage(ABC):
    """One cross-cutting concern in the chain."""

    @abstractmethod
    def handle(
        self, request: HttpRequest, writer: ResponseWriter, next_handler: Handler
    ) -> None:
        """Either answer the request or delegate to ``next_handler``."""

    @property
    def name(self) -> str:
        return self.__class__.__name__


class HostRedirectStage(PolicyStage):
    """Redirect ``<prefix><host>`` to a landing page on ``<host>``."""

    def __init__(
        self, prefix: str = WIKI_HOST_PREFIX, landing_path: str = WIKI_LANDING_PATH
    ) -> None:
        self.prefix = prefix
        self.landing_path = landing_path

    def handle(
        self, request: HttpRequest, writer: ResponseWriter, next_handler: Handler
    ) -> None:
        if not request.host.startswith(self.prefix):
            next_handler(request, writer)
            return
        target = f"https://{request.host[len(self.prefix):]}{self.landing_path}"
        if POLICY_LOGGER.logger.isEnabledFor(logging.DEBUG):
            POLICY_LOGGER.debug(
                "Host redirected",
                extra={"event": "host_redirect", "host": request.host, "route": target},
            )
        redirect(writer, request, target, HTTPStatus.FOUND)


class MethodGateStage(PolicyStage):
    """Reject every method other than the allowed one with 405."""

    def __init__(self, allowed_method: str = "GET") -> None:
        self.allowed_method = allowed_method

    def handle(
        self, request: HttpRequest, writer: ResponseWriter, next_handler: Handler
    ) -> None:
        if request.method == self.allowed_method:
            next_handler(request, writer)
            return
        if POLICY_LOGGER.logger.isEnabledFor(logging.DEBUG):
            POLICY_LOGGER.debug(
                "Method rejected",
                extra={"event": "method_not_allowed", "method": request.method},
            )
        writer.headers["Allow"] = self.allowed_method
        http_error(writer, "Method Not Allowed", HTTPStatus.METHOD_NOT_ALLOWED)


class SecurityHeadersStage(PolicyStage):
    """Set the fixed security headers before anything is written."""

    def __init__(self, headers: Mapping[str, str] = SECURITY_HEADERS) -> None:
        self.headers = dict(headers)

    def handle(
        self, request: HttpRequest, writer: ResponseWriter, next_handler: Handler
    ) -> None:
        writer.headers.update(self.headers)
        next_handler(request, writer)


class PolicyChain:
    """Ordered stages in front of a terminal handler, callable as a handler."""

    def __init__(self, stages: Sequence[PolicyStage], terminal: Handler) -> None:
        self._stages = tuple(stages)
        self._terminal = terminal

    @property
    def stages(self) -> tuple[PolicyStage, ...]:
        return self._stages

    def __call__(self, request: HttpRequest, writer: ResponseWriter) -> None:
        self._dispatch(0, request, writer)

    def _dispatch(self, index: int, request: HttpRequest, writer: ResponseWriter) -> None:
        if index == len(self._stages):
            self._terminal(request, writer)
            return

        def next_handler(req: HttpRequest, wr: ResponseWriter) -> None:
            self._dispatch(index + 1, req, wr)

        self._stages[index].handle(request, writer, next_handler)


def build_policy_chain(responder: Handler) -> PolicyChain:
    """Return the standard chain: redirect, method gate, security headers."""
    return PolicyChain(
        [HostRedirectStage(), MethodGateStage(), SecurityHeadersStage()],
        responder,
    )
