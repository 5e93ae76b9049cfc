"""Server configuration: JSON settings file and CLI argument parsing."""

import argparse
import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    return int(value) if value is not None else default


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    return float(value) if value is not None else default


DEFAULT_READ_TIMEOUT = _env_float("HTTP_SERVER_READ_TIMEOUT", 5.0)
DEFAULT_WRITE_TIMEOUT = _env_float("HTTP_SERVER_WRITE_TIMEOUT", 10.0)
DEFAULT_IDLE_TIMEOUT = _env_float("HTTP_SERVER_IDLE_TIMEOUT", 15.0)
DEFAULT_SHUTDOWN_GRACE_SECONDS = _env_int("HTTP_SERVER_SHUTDOWN_GRACE_SECONDS", 30)

MAX_HEADER_BYTES = 1 << 20
MAX_DISCARDED_BODY_BYTES = 1 << 20
LOG_FILE_NAME = "server.log"

# JSON key -> settings attribute. All of them are required.
REQUIRED_FIELDS = {
    "cert": "cert_file",
    "key": "key_file",
    "content": "content_dir",
    "logs": "logs_dir",
    "port": "port",
    "eventsPerSecond": "events_per_second",
}


class ConfigError(Exception):
    """Raised when the settings file is missing, unreadable or invalid."""


@dataclass(frozen=True)
class ServerSettings:
    """Deployment settings loaded once from the JSON settings file."""

    cert_file: str
    key_file: str
    content_dir: str
    logs_dir: str
    port: int
    events_per_second: int
    host: str = ""

    @property
    def log_file(self) -> str:
        return str(Path(self.logs_dir) / LOG_FILE_NAME)


@dataclass(frozen=True)
class ConnectionTimeouts:
    """Connection-wide deadlines enforced by every worker."""

    read_timeout: float = 5.0
    write_timeout: float = 10.0
    idle_timeout: float = 15.0
    max_header_bytes: int = MAX_HEADER_BYTES


@dataclass
class ServerConfig:
    """Runtime configuration including timeouts and shutdown settings."""

    timeouts: ConnectionTimeouts
    shutdown_grace_seconds: int


def parse_port(value: Any) -> int:
    """Accept ``8443``, ``"8443"`` or ``":8443"`` and return the port number."""
    if isinstance(value, bool):
        raise ConfigError(f"Invalid port: {value!r}")
    if isinstance(value, int):
        port = value
    elif isinstance(value, str):
        text = value.strip()
        if text.startswith(":"):
            text = text[1:]
        try:
            port = int(text)
        except ValueError as exc:
            raise ConfigError(f"Invalid port: {value!r}") from exc
    else:
        raise ConfigError(f"Invalid port: {value!r}")
    if not 0 < port < 65536:
        raise ConfigError(f"Port out of range: {port}")
    return port


def _require_readable_file(path: str, field_name: str) -> None:
    target = Path(path)
    if not target.is_file() or not os.access(target, os.R_OK):
        raise ConfigError(f"{field_name} file is missing or unreadable: {path}")


def settings_from_mapping(data: Any) -> ServerSettings:
    """Validate a decoded JSON object and build ServerSettings from it."""
    if not isinstance(data, dict):
        raise ConfigError("Settings file must contain a JSON object")

    missing = [name for name in REQUIRED_FIELDS if data.get(name) in (None, "", 0)]
    if missing:
        raise ConfigError(f"Missing required settings: {', '.join(sorted(missing))}")

    for name in ("cert", "key", "content", "logs"):
        if not isinstance(data[name], str):
            raise ConfigError(f"Setting {name!r} must be a string")

    events = data["eventsPerSecond"]
    if isinstance(events, bool) or not isinstance(events, int) or events <= 0:
        raise ConfigError("Setting 'eventsPerSecond' must be a positive integer")

    host = data.get("host", "")
    if not isinstance(host, str):
        raise ConfigError("Setting 'host' must be a string")

    _require_readable_file(data["cert"], "cert")
    _require_readable_file(data["key"], "key")
    if not Path(data["content"]).is_dir():
        raise ConfigError(f"content directory does not exist: {data['content']}")

    return ServerSettings(
        cert_file=data["cert"],
        key_file=data["key"],
        content_dir=data["content"],
        logs_dir=data["logs"],
        port=parse_port(data["port"]),
        events_per_second=events,
        host=host,
    )


def load_settings(path: str) -> ServerSettings:
    """Read and validate the JSON settings file at ``path``."""
    if not path:
        raise ConfigError("A settings file is required (--config)")
    try:
        raw = Path(path).read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"Failed to read config file: {exc}") from exc
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ConfigError(f"Failed to parse config file: {exc}") from exc
    return settings_from_mapping(data)


def parse_cli_args(argv: list[str]) -> argparse.Namespace:
    """Return parsed CLI arguments for server configuration."""
    parser = argparse.ArgumentParser(description="Hardened static HTTPS server")
    parser.add_argument(
        "--config",
        default="",
        help="Path to the JSON settings file",
    )
    default_log_level = os.getenv("HTTP_SERVER_LOG_LEVEL", "INFO").upper()
    parser.add_argument(
        "--log-level",
        default=default_log_level,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        type=str.upper,
    )
    parser.add_argument(
        "--log-json",
        action=argparse.BooleanOptionalAction,
        default=os.getenv("HTTP_SERVER_LOG_JSON", "").lower() in {"1", "true", "yes", "on"},
        help="Emit operational logs as JSON objects",
    )
    parser.add_argument(
        "--read-timeout",
        type=float,
        default=DEFAULT_READ_TIMEOUT,
        help="Seconds allowed to receive a complete request",
    )
    parser.add_argument(
        "--write-timeout",
        type=float,
        default=DEFAULT_WRITE_TIMEOUT,
        help="Seconds allowed to send a complete response",
    )
    parser.add_argument(
        "--idle-timeout",
        type=float,
        default=DEFAULT_IDLE_TIMEOUT,
        help="Seconds a keep-alive connection may wait for its next request",
    )
    parser.add_argument(
        "--shutdown-grace-seconds",
        type=int,
        default=DEFAULT_SHUTDOWN_GRACE_SECONDS,
        help="Grace period in seconds for graceful shutdown",
    )
    return parser.parse_args(argv)


def server_config_from_args(args: argparse.Namespace) -> ServerConfig:
    """Build the runtime ServerConfig from parsed CLI arguments."""
    return ServerConfig(
        timeouts=ConnectionTimeouts(
            read_timeout=args.read_timeout,
            write_timeout=args.write_timeout,
            idle_timeout=args.idle_timeout,
        ),
        shutdown_grace_seconds=args.shutdown_grace_seconds,
    )
