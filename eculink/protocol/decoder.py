"""Inbound frame decoder.

Turns a raw WebSocket frame into exactly one of three outcomes:

- ``KeepaliveAck`` for the literal ``"pong"`` reply,
- ``TelemetryUpdate`` carrying a fresh, fully populated snapshot,
- ``DecodeFailure`` for anything else.

``decode_frame`` never raises; parse errors are folded into ``DecodeFailure``.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

import msgspec
from msgspec import UNSET

from ..const import KEEPALIVE_PONG
from .structures import TelemetryPayload, TelemetrySnapshot, utc_now

logger = logging.getLogger("eculink.decoder")

_DECODER = msgspec.json.Decoder(TelemetryPayload, strict=False)
_TIMESTAMP_DECODER = msgspec.json.Decoder(float | str | None)


class KeepaliveAck(msgspec.Struct, frozen=True):
    """Reply to an outbound keepalive ping."""


class TelemetryUpdate(msgspec.Struct, frozen=True):
    snapshot: TelemetrySnapshot


class DecodeFailure(msgspec.Struct, frozen=True):
    reason: str


DecodeResult = KeepaliveAck | TelemetryUpdate | DecodeFailure


def decode_frame(frame: str | bytes, *, now: datetime | None = None) -> DecodeResult:
    """Classify a raw frame; ``now`` stamps frames without a timestamp."""
    if isinstance(frame, (bytes, bytearray, memoryview)):
        try:
            frame = bytes(frame).decode("utf-8")
        except UnicodeDecodeError:
            return DecodeFailure("binary frame is not valid UTF-8")

    if frame == KEEPALIVE_PONG:
        return KeepaliveAck()

    try:
        payload = _DECODER.decode(frame)
    except msgspec.MsgspecError as exc:
        return DecodeFailure(str(exc))

    if not payload.has_telemetry_keys():
        return DecodeFailure("frame carries no recognised telemetry keys")

    return TelemetryUpdate(build_snapshot(payload, now=now or utc_now()))


def build_snapshot(payload: TelemetryPayload, *, now: datetime) -> TelemetrySnapshot:
    return TelemetrySnapshot(
        map_pressure=_number(payload.map_pressure),
        wastegate_position=_number(payload.wastegate_position),
        tps_position=_number(payload.tps_position),
        engine_rpm=_number(payload.engine_rpm),
        target_boost=_number(payload.target_boost),
        torque_request=_number(payload.torque_request),
        tcu_protection_active=bool(payload.tcu_protection_active or False),
        tcu_limp_mode=bool(payload.tcu_limp_mode or False),
        timestamp=_resolve_timestamp(payload.timestamp, now),
    )


def _number(value: float | None | msgspec.UnsetType) -> float:
    if value is UNSET or value is None:
        return 0.0
    return float(value)


def _resolve_timestamp(raw: msgspec.Raw, now: datetime) -> datetime:
    if not raw:
        return now
    try:
        value = _TIMESTAMP_DECODER.decode(raw)
    except msgspec.MsgspecError:
        logger.debug("Unusable frame timestamp %r; using local clock", bytes(raw))
        return now
    # Falsy timestamps (null, 0, "") fall back to the local clock.
    if not value:
        return now
    if isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value)
        except ValueError:
            logger.debug("Unparseable frame timestamp %r; using local clock", value)
            return now
        return parsed if parsed.tzinfo is not None else parsed.replace(tzinfo=timezone.utc)
    # Numeric timestamps are epoch milliseconds.
    try:
        return datetime.fromtimestamp(value / 1000.0, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        logger.debug("Out-of-range frame timestamp %r; using local clock", value)
        return now


__all__ = [
    "DecodeFailure",
    "DecodeResult",
    "KeepaliveAck",
    "TelemetryUpdate",
    "build_snapshot",
    "decode_frame",
]
