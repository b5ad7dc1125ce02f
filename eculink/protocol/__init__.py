"""Wire structures and frame decoding for ECU Link."""

from .decoder import DecodeFailure, DecodeResult, KeepaliveAck, TelemetryUpdate, decode_frame
from .structures import ConnectionStatus, LogEntry, LogKind, TelemetryPayload, TelemetrySnapshot

__all__ = [
    "ConnectionStatus",
    "DecodeFailure",
    "DecodeResult",
    "KeepaliveAck",
    "LogEntry",
    "LogKind",
    "TelemetryPayload",
    "TelemetrySnapshot",
    "TelemetryUpdate",
    "decode_frame",
]
