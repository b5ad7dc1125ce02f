"""ECU Link data structures.

SINGLE SOURCE OF TRUTH for the telemetry, status and log shapes exchanged
between the connection core and its consumers.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import StrEnum

import msgspec
from msgspec import UNSET, UnsetType


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class LogKind(StrEnum):
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


class LogEntry(msgspec.Struct, frozen=True):
    """Human-readable event shown in the rolling log."""

    timestamp: datetime
    message: str
    kind: LogKind = LogKind.INFO


class ConnectionStatus(msgspec.Struct, frozen=True):
    """Externally observed summary of the connection state machine."""

    connected: bool
    message: str


class TelemetrySnapshot(msgspec.Struct, frozen=True):
    """Complete ECU/TCU reading; every field is always populated."""

    map_pressure: float = 0.0
    wastegate_position: float = 0.0
    tps_position: float = 0.0
    engine_rpm: float = 0.0
    target_boost: float = 0.0
    torque_request: float = 0.0
    tcu_protection_active: bool = False
    tcu_limp_mode: bool = False
    timestamp: datetime = msgspec.field(default_factory=utc_now)


class TelemetryPayload(msgspec.Struct, rename="camel", frozen=True):
    """Wire shape of an inbound telemetry frame.

    ``UNSET`` marks keys absent from the frame; ``None`` is an explicit
    JSON ``null``. Unknown keys are ignored. ``timestamp`` stays raw so an
    unusable value only costs the timestamp, not the frame.
    """

    map_pressure: float | None | UnsetType = UNSET
    wastegate_position: float | None | UnsetType = UNSET
    tps_position: float | None | UnsetType = UNSET
    engine_rpm: float | None | UnsetType = UNSET
    target_boost: float | None | UnsetType = UNSET
    torque_request: float | None | UnsetType = UNSET
    tcu_protection_active: bool | None | UnsetType = UNSET
    tcu_limp_mode: bool | None | UnsetType = UNSET
    timestamp: msgspec.Raw = msgspec.field(default_factory=msgspec.Raw)

    def has_telemetry_keys(self) -> bool:
        return self.engine_rpm is not UNSET or self.map_pressure is not UNSET


__all__ = [
    "ConnectionStatus",
    "LogEntry",
    "LogKind",
    "TelemetryPayload",
    "TelemetrySnapshot",
    "utc_now",
]
