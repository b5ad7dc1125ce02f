"""Defaults and wire constants shared across ECU Link modules."""

from __future__ import annotations

from typing import Final

# Connection defaults (ESP32 soft-AP)
DEFAULT_HOST: Final[str] = "192.168.4.1"
DEFAULT_PORT: Final[int] = 80
DEFAULT_RECONNECT_INTERVAL_MS: Final[int] = 3000
DEFAULT_MAX_RECONNECT_ATTEMPTS: Final[int] = 10

# Wire protocol
WS_PATH: Final[str] = "/ws"
KEEPALIVE_PING: Final[str] = "ping"
KEEPALIVE_PONG: Final[str] = "pong"
KEEPALIVE_INTERVAL: Final[float] = 30.0
NORMAL_CLOSURE: Final[int] = 1000
MANUAL_DISCONNECT_REASON: Final[str] = "Manual disconnect"
DEFAULT_CLOSE_REASON: Final[str] = "Connection lost"

# Event log / alerting
EVENT_LOG_CAPACITY: Final[int] = 100
HIGH_RPM_THRESHOLD: Final[float] = 6000.0

# Daemon
DEFAULT_DEBUG_LOGGING: Final[bool] = False
DEFAULT_STATUS_INTERVAL: Final[int] = 5
STATUS_FILE_PATH: Final[str] = "/tmp/eculink_status.json"
STATUS_LOG_ENTRIES: Final[int] = 20
DEFAULT_METRICS_ENABLED: Final[bool] = False
DEFAULT_METRICS_HOST: Final[str] = "127.0.0.1"
DEFAULT_METRICS_PORT: Final[int] = 9131
DEFAULT_CONSOLE_ENABLED: Final[bool] = False
ENV_PREFIX: Final[str] = "ECULINK_"

SUPERVISOR_DEFAULT_RESTART_INTERVAL: Final[float] = 1.0
SUPERVISOR_DEFAULT_MIN_BACKOFF: Final[float] = 1.0
SUPERVISOR_DEFAULT_MAX_BACKOFF: Final[float] = 30.0
SUPERVISOR_STATUS_MAX_BACKOFF: Final[float] = 10.0
