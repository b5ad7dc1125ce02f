"""Safety classification of telemetry snapshots."""

from __future__ import annotations

import math
from datetime import datetime
from typing import Final

from .const import HIGH_RPM_THRESHOLD
from .protocol.structures import LogEntry, LogKind, TelemetrySnapshot, utc_now

LIMP_MODE_MESSAGE: Final[str] = "TCU LIMP MODE ACTIVE!"
PROTECTION_MESSAGE: Final[str] = "TCU Protection Active"


def evaluate_alerts(
    snapshot: TelemetrySnapshot,
    *,
    now: datetime | None = None,
) -> tuple[LogEntry, ...]:
    """Return the log-worthy alerts for *snapshot* in a fixed order.

    Limp mode and protection are mutually exclusive (limp mode wins); the
    high RPM warning is evaluated independently of both.
    """
    stamp = now or utc_now()
    alerts: list[LogEntry] = []

    if snapshot.tcu_limp_mode:
        alerts.append(LogEntry(stamp, LIMP_MODE_MESSAGE, LogKind.ERROR))
    elif snapshot.tcu_protection_active:
        alerts.append(LogEntry(stamp, PROTECTION_MESSAGE, LogKind.WARNING))

    if snapshot.engine_rpm > HIGH_RPM_THRESHOLD:
        alerts.append(LogEntry(stamp, f"High RPM: {_whole_rpm(snapshot.engine_rpm)}", LogKind.WARNING))

    return tuple(alerts)


def _whole_rpm(rpm: float) -> str:
    """Round half up, so 6000.5 renders as 6001."""
    if not math.isfinite(rpm):
        return f"{rpm:.0f}"
    return str(math.floor(rpm + 0.5))


__all__ = ["LIMP_MODE_MESSAGE", "PROTECTION_MESSAGE", "evaluate_alerts"]
