"""Logging setup for the ECU Link monitor.

Every line is a single JSON object. Attributes passed through ``extra=``
land under ``"extra"``; raw frames logged as bytes are rendered as text with
undecodable bytes escaped.
"""

from __future__ import annotations

import logging
import os
from datetime import datetime, timezone
from logging.config import dictConfig
from logging.handlers import SysLogHandler
from pathlib import Path
from typing import Any

import msgspec

from ..common import parse_bool
from .model import RuntimeConfig

SYSLOG_SOCKET = Path("/dev/log")
SYSLOG_SOCKET_FALLBACK = Path("/var/run/log")

# Libraries whose INFO output is per-frame or per-transition noise.
QUIET_LOGGERS = ("websockets", "transitions")

_RESERVED_LOG_KEYS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {"message", "asctime"}


def _encode_fallback(value: Any) -> str:
    return str(value)


_ENCODER = msgspec.json.Encoder(enc_hook=_encode_fallback)


class StructuredLogFormatter(logging.Formatter):
    """One JSON object per record, with the ``eculink.`` logger prefix dropped."""

    PREFIX = "eculink."

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name.removeprefix(self.PREFIX),
            "message": record.getMessage(),
        }

        extras = {
            key: value.decode("utf-8", "backslashreplace") if isinstance(value, bytes) else value
            for key, value in vars(record).items()
            if key not in _RESERVED_LOG_KEYS and not key.startswith("_")
        }
        if extras:
            payload["extra"] = extras
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        return _ENCODER.encode(payload).decode("utf-8")


def _syslog_address() -> Path | None:
    return next((path for path in (SYSLOG_SOCKET, SYSLOG_SOCKET_FALLBACK) if path.exists()), None)


def _build_handler() -> logging.Handler:
    """Stream to stderr unless ``ECULINK_LOG_SYSLOG`` asks for syslog and a socket exists."""
    address = _syslog_address() if parse_bool(os.environ.get("ECULINK_LOG_SYSLOG")) else None
    if address is None:
        return logging.StreamHandler()
    handler = SysLogHandler(address=str(address), facility=SysLogHandler.LOG_DAEMON)
    handler.ident = "eculink "
    return handler


def build_logging_config(config: RuntimeConfig) -> dict[str, Any]:
    level = "DEBUG" if config.debug_logging else "INFO"
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {"json": {"()": StructuredLogFormatter}},
        "handlers": {
            "eculink": {"()": _build_handler, "level": level, "formatter": "json"},
        },
        "root": {"level": level, "handlers": ["eculink"]},
        "loggers": {name: {"level": "WARNING"} for name in QUIET_LOGGERS},
    }


def configure_logging(config: RuntimeConfig) -> None:
    """Install the JSON handler on the root logger."""
    dictConfig(build_logging_config(config))
    logging.getLogger("eculink").info(
        "Logging configured at level %s",
        logging.getLevelName(logging.getLogger().level),
    )


__all__ = ["StructuredLogFormatter", "build_logging_config", "configure_logging"]
