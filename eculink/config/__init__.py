"""Configuration helpers for the ECU Link monitor."""

from .model import ConnectionConfig, RuntimeConfig
from .settings import ConfigError, load_runtime_config, merge_connection_config

__all__ = [
    "ConfigError",
    "ConnectionConfig",
    "RuntimeConfig",
    "load_runtime_config",
    "merge_connection_config",
]
