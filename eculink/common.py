"""Utility helpers shared across ECU Link packages."""

from __future__ import annotations

import dataclasses
import logging
import os
from collections.abc import Mapping
from typing import Any, Final

from .const import ENV_PREFIX

logger = logging.getLogger(__name__)

_TRUE_STRINGS: Final[frozenset[str]] = frozenset({"1", "yes", "on", "true", "enable", "enabled"})


def parse_bool(value: object) -> bool:
    """Parse a boolean value safely from various types."""
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return bool(value)
    if value is None:
        return False
    s = str(value).lower().strip()
    return s in _TRUE_STRINGS


def get_default_config() -> dict[str, Any]:
    """Provide default ECU Link configuration values as flat keys.

    Derived programmatically from the ``RuntimeConfig`` / ``ConnectionConfig``
    field defaults so the dataclasses stay the single source of truth.
    """
    # Lazy import to break circular dependency (settings → common → settings).
    from eculink.config.model import ConnectionConfig, RuntimeConfig

    defaults: dict[str, Any] = dataclasses.asdict(ConnectionConfig())
    runtime = RuntimeConfig()
    for fi in dataclasses.fields(RuntimeConfig):
        if fi.name == "connection":
            continue
        defaults[fi.name] = getattr(runtime, fi.name)
    return defaults


def get_env_config(environ: Mapping[str, str] | None = None) -> dict[str, str]:
    """Collect ``ECULINK_<KEY>`` overrides for known configuration keys."""
    env = os.environ if environ is None else environ
    known = get_default_config().keys()
    overrides: dict[str, str] = {}
    for key in known:
        value = env.get(f"{ENV_PREFIX}{key.upper()}")
        if value is None or not value.strip():
            continue
        overrides[key] = value.strip()
    if overrides:
        logger.debug("Environment overrides: %s", ", ".join(sorted(overrides)))
    return overrides


__all__: Final[tuple[str, ...]] = (
    "get_default_config",
    "get_env_config",
    "parse_bool",
)
