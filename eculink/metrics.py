"""Prometheus exporter for the ECU Link monitor.

Every scrape reads the live ConnectionManager; nothing is cached between
requests. Telemetry gauges are only emitted once a frame has arrived.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterator
from typing import TYPE_CHECKING, Any, Final

from prometheus_client import CONTENT_TYPE_LATEST, CollectorRegistry, generate_latest
from prometheus_client.core import GaugeMetricFamily, StateSetMetricFamily
from prometheus_client.registry import Collector

from .state.status import build_metrics_snapshot

if TYPE_CHECKING:
    from .transport.websocket import ConnectionManager

logger = logging.getLogger("eculink.metrics")

METRICS_PATHS: Final[frozenset[str]] = frozenset({"/", "/metrics"})

# (snapshot key, metric name, help text)
LINK_GAUGES: Final[tuple[tuple[str, str, str], ...]] = (
    ("connected", "eculink_connected", "1 while the ESP32 WebSocket is open"),
    ("reconnect_attempts", "eculink_reconnect_attempts", "Reconnect attempts since the link was last open"),
    ("max_reconnect_attempts", "eculink_max_reconnect_attempts", "Configured reconnect attempt limit"),
    ("reconnect_pending", "eculink_reconnect_pending", "1 while a deferred reconnect is scheduled"),
    ("log_size", "eculink_log_entries", "Entries currently held in the event log"),
)

TELEMETRY_GAUGES: Final[tuple[tuple[str, str, str], ...]] = (
    ("map_pressure", "eculink_telemetry_map_pressure", "Manifold absolute pressure"),
    ("wastegate_position", "eculink_telemetry_wastegate_position", "Wastegate position"),
    ("tps_position", "eculink_telemetry_tps_position", "Throttle position"),
    ("engine_rpm", "eculink_telemetry_engine_rpm", "Engine speed in revolutions per minute"),
    ("target_boost", "eculink_telemetry_target_boost", "Boost target requested by the ECU"),
    ("torque_request", "eculink_telemetry_torque_request", "Torque request reported by the TCU"),
    ("tcu_protection_active", "eculink_telemetry_tcu_protection_active", "1 while TCU protection is active"),
    ("tcu_limp_mode", "eculink_telemetry_tcu_limp_mode", "1 while the TCU is in limp mode"),
    ("timestamp", "eculink_telemetry_timestamp_seconds", "Unix time of the latest telemetry snapshot"),
)

_REASONS: Final[dict[int, str]] = {
    200: "OK",
    400: "Bad Request",
    404: "Not Found",
    405: "Method Not Allowed",
}


class ConnectionCollector(Collector):
    """Typed gauges plus a state set for one ConnectionManager."""

    def __init__(self, manager: ConnectionManager) -> None:
        self._manager = manager

    def collect(self) -> Iterator[Any]:
        snapshot = build_metrics_snapshot(self._manager)

        for key, name, documentation in LINK_GAUGES:
            yield GaugeMetricFamily(name, documentation, value=float(snapshot[key]))

        current = snapshot["state"]
        yield StateSetMetricFamily(
            "eculink_connection_state",
            "Position of the connection state machine",
            value={state: state == current for state in self._manager.machine.states},
        )

        telemetry = snapshot.get("telemetry")
        if telemetry is None:
            return
        for key, name, documentation in TELEMETRY_GAUGES:
            yield GaugeMetricFamily(name, documentation, value=float(telemetry[key]))


class PrometheusExporter:
    """Serve the collector over plain HTTP on the daemon's event loop."""

    def __init__(self, manager: ConnectionManager, host: str, port: int) -> None:
        self._host = host
        self._port = port
        self._server: asyncio.AbstractServer | None = None
        self._registry = CollectorRegistry()
        self._registry.register(ConnectionCollector(manager))

    @property
    def port(self) -> int:
        """Bound port; resolves an ephemeral ``0`` once started."""
        if self._server is not None and self._server.sockets:
            return self._server.sockets[0].getsockname()[1]
        return self._port

    async def start(self) -> None:
        if self._server is not None:
            return
        self._server = await asyncio.start_server(self._handle_client, host=self._host, port=self._port)
        logger.info("Prometheus exporter listening", extra={"host": self._host, "port": self.port})

    async def stop(self) -> None:
        if self._server is None:
            return
        server, self._server = self._server, None
        server.close()
        await server.wait_closed()
        logger.info("Prometheus exporter stopped")

    async def run(self) -> None:
        await self.start()
        assert self._server is not None
        try:
            await self._server.serve_forever()
        finally:
            await self.stop()

    def render(self) -> bytes:
        return generate_latest(self._registry)

    def route(self, method: str, path: str) -> tuple[int, bytes, str]:
        """Map a request line onto ``(status, body, content type)``."""
        if path.split("?", 1)[0] not in METRICS_PATHS:
            return 404, b"", "text/plain; charset=utf-8"
        if method != "GET":
            return 405, b"", "text/plain; charset=utf-8"
        return 200, self.render(), CONTENT_TYPE_LATEST

    async def _handle_client(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        try:
            request_line = await reader.readline()
            if not request_line:
                return
            match request_line.decode("ascii", errors="replace").split():
                case [method, path, *_]:
                    await _skip_headers(reader)
                    status, body, content_type = self.route(method, path)
                case _:
                    status, body, content_type = 400, b"", "text/plain; charset=utf-8"
            head = (
                f"HTTP/1.1 {status} {_REASONS[status]}\r\n"
                f"Content-Type: {content_type}\r\n"
                f"Content-Length: {len(body)}\r\n"
                "Connection: close\r\n\r\n"
            )
            writer.write(head.encode("ascii") + body)
            await writer.drain()
        except (OSError, ValueError) as exc:
            logger.warning("Metrics request failed: %s", exc)
        finally:
            writer.close()
            try:
                await writer.wait_closed()
            except OSError:
                logger.debug("Metrics client vanished before close", exc_info=True)


async def _skip_headers(reader: asyncio.StreamReader) -> None:
    while await reader.readline() not in (b"", b"\r\n", b"\n"):
        pass


__all__ = ["ConnectionCollector", "PrometheusExporter"]
