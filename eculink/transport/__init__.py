"""Transport layer for the ESP32 telemetry link."""

from .websocket import ConnectionManager, SocketConnector, TelemetrySocket

__all__ = ["ConnectionManager", "SocketConnector", "TelemetrySocket"]
