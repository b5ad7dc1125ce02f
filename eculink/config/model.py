"""Data model for ECU Link configuration."""

from __future__ import annotations

from dataclasses import dataclass, field

from ..const import (
    DEFAULT_CONSOLE_ENABLED,
    DEFAULT_DEBUG_LOGGING,
    DEFAULT_HOST,
    DEFAULT_MAX_RECONNECT_ATTEMPTS,
    DEFAULT_METRICS_ENABLED,
    DEFAULT_METRICS_HOST,
    DEFAULT_METRICS_PORT,
    DEFAULT_PORT,
    DEFAULT_RECONNECT_INTERVAL_MS,
    DEFAULT_STATUS_INTERVAL,
    STATUS_FILE_PATH,
    WS_PATH,
)


@dataclass(slots=True, frozen=True)
class ConnectionConfig:
    """Endpoint and reconnect policy for the telemetry link."""

    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    reconnect_interval_ms: int = DEFAULT_RECONNECT_INTERVAL_MS
    max_reconnect_attempts: int = DEFAULT_MAX_RECONNECT_ATTEMPTS

    @property
    def url(self) -> str:
        return f"ws://{self.host}:{self.port}{WS_PATH}"

    @property
    def reconnect_interval(self) -> float:
        return self.reconnect_interval_ms / 1000.0


@dataclass(slots=True)
class RuntimeConfig:
    """Strongly typed configuration for the monitor daemon."""

    connection: ConnectionConfig = field(default_factory=ConnectionConfig)
    debug_logging: bool = DEFAULT_DEBUG_LOGGING
    status_interval: int = DEFAULT_STATUS_INTERVAL
    status_file: str = STATUS_FILE_PATH
    metrics_enabled: bool = DEFAULT_METRICS_ENABLED
    metrics_host: str = DEFAULT_METRICS_HOST
    metrics_port: int = DEFAULT_METRICS_PORT
    console_enabled: bool = DEFAULT_CONSOLE_ENABLED


__all__ = ["ConnectionConfig", "RuntimeConfig"]
