"""Composition of the per-request pipeline."""

import logging
from typing import Optional

from static_server.domain.http_types import Handler
from static_server.domain.token_bucket import TokenBucket
from static_server.handlers.file_handler import FileResponder
from static_server.pipeline.access_log import (
    ACCESS_LOGGER_NAME,
    AccessLogger,
    LoggerSink,
    LogSink,
)
from static_server.pipeline.policies import build_policy_chain
from static_server.pipeline.rate_limiting import RateLimitGate


def build_pipeline(
    content_root: str,
    bucket: TokenBucket,
    sink: Optional[LogSink] = None,
    responder: Optional[Handler] = None,
) -> Handler:
    """Return rate limit -> access log -> policy chain -> file responder."""
    if sink is None:
        sink = LoggerSink(logging.getLogger(ACCESS_LOGGER_NAME))
    if responder is None:
        responder = FileResponder(content_root)
    return RateLimitGate(bucket, AccessLogger(build_policy_chain(responder), sink))
