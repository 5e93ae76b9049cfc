"""Component-aware logger adapters shared by every layer of the server."""

import logging
from typing import Any, MutableMapping

ROOT_LOGGER_NAME = "static_server"


class ComponentLoggerAdapter(logging.LoggerAdapter):
    """Logger adapter that injects the emitting component into log records."""

    def process(
        self, msg: str, kwargs: MutableMapping[str, Any]
    ) -> tuple[str, MutableMapping[str, Any]]:
        """Add the component derived from the logger name to the extra dict."""
        if "extra" not in kwargs:
            kwargs["extra"] = {}
        else:
            kwargs["extra"] = dict(kwargs["extra"])

        logger_name = self.logger.name
        prefix = f"{ROOT_LOGGER_NAME}."
        if logger_name.startswith(prefix):
            component = logger_name[len(prefix) :]
        else:
            component = logger_name
        kwargs["extra"]["component"] = component

        return msg, kwargs


def component_logger(component: str) -> ComponentLoggerAdapter:
    """Return an adapter for ``static_server.<component>``."""
    return ComponentLoggerAdapter(
        logging.getLogger(f"{ROOT_LOGGER_NAME}.{component}"), {}
    )
