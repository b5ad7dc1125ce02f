"""Settings loader for the ECU Link monitor.

Configuration is layered: dataclass defaults, then ``ECULINK_*`` environment
variables, then explicit overrides (command-line flags). The merged flat
mapping is validated by ``RuntimeConfigSchema``.
"""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import Mapping
from typing import Any

from marshmallow import ValidationError

from ..common import get_default_config, get_env_config
from .model import ConnectionConfig, RuntimeConfig
from .schema import ConnectionConfigSchema, RuntimeConfigSchema

logger = logging.getLogger(__name__)


class ConfigError(ValueError):
    """Raised when configuration values fail validation."""

    def __init__(self, messages: Mapping[str, Any]) -> None:
        self.messages = dict(messages)
        details = "; ".join(f"{key}: {_flatten_messages(value)}" for key, value in sorted(self.messages.items()))
        super().__init__(details or "invalid configuration")


def _flatten_messages(value: Any) -> str:
    if isinstance(value, (list, tuple)):
        return " ".join(str(item) for item in value)
    return str(value)


def load_runtime_config(
    overrides: Mapping[str, Any] | None = None,
    *,
    environ: Mapping[str, str] | None = None,
) -> RuntimeConfig:
    """Build a validated ``RuntimeConfig`` from defaults, environment and overrides."""
    raw: dict[str, Any] = get_default_config()
    raw.update(get_env_config(environ))
    if overrides:
        raw.update({key: value for key, value in overrides.items() if value is not None})

    try:
        config = RuntimeConfigSchema().load(raw)
    except ValidationError as exc:
        raise ConfigError(exc.normalized_messages()) from exc

    if config.connection.max_reconnect_attempts == 0:
        logger.warning("max_reconnect_attempts=0; lost connections will not be retried.")
    return config


def merge_connection_config(current: ConnectionConfig, partial: Mapping[str, Any]) -> ConnectionConfig:
    """Validate *partial* and shallow-merge it into *current*."""
    try:
        changes = ConnectionConfigSchema().load(dict(partial), partial=True)
    except ValidationError as exc:
        raise ConfigError(exc.normalized_messages()) from exc
    return dataclasses.replace(current, **changes)


__all__ = [
    "ConfigError",
    "ConnectionConfig",
    "RuntimeConfig",
    "load_runtime_config",
    "merge_connection_config",
]
