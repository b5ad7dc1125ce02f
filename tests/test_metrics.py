"""Tests for the Prometheus exporter."""

from __future__ import annotations

import asyncio

import pytest
from prometheus_client import CollectorRegistry, generate_latest

from eculink.metrics import TELEMETRY_GAUGES, ConnectionCollector, PrometheusExporter
from eculink.transport.websocket import ConnectionManager
from mocks import FakeConnector, wait_until


def _render(manager: ConnectionManager) -> str:
    registry = CollectorRegistry()
    registry.register(ConnectionCollector(manager))
    return generate_latest(registry).decode("utf-8")


def test_collector_projects_idle_manager() -> None:
    text = _render(ConnectionManager())

    assert "# HELP eculink_connected 1 while the ESP32 WebSocket is open" in text
    assert "# TYPE eculink_connected gauge" in text
    assert "eculink_connected 0.0" in text
    assert "eculink_max_reconnect_attempts 10.0" in text
    assert "eculink_log_entries 0.0" in text
    assert 'eculink_connection_state{eculink_connection_state="idle"} 1.0' in text
    assert 'eculink_connection_state{eculink_connection_state="open"} 0.0' in text
    assert "eculink_telemetry_" not in text


@pytest.mark.asyncio
async def test_collector_projects_telemetry(connector: FakeConnector) -> None:
    async with ConnectionManager(connector=connector) as manager:
        manager.connect()
        await wait_until(lambda: manager.state == ConnectionManager.STATE_OPEN)
        connector.latest.feed('{"engineRpm": 7000, "tcuLimpMode": true, "timestamp": 1700000000000}')
        await wait_until(lambda: manager.telemetry is not None)

        text = _render(manager)

    assert "eculink_connected 1.0" in text
    assert 'eculink_connection_state{eculink_connection_state="open"} 1.0' in text
    assert "# HELP eculink_telemetry_engine_rpm Engine speed in revolutions per minute" in text
    assert "eculink_telemetry_engine_rpm 7000.0" in text
    assert "eculink_telemetry_tcu_limp_mode 1.0" in text
    assert "eculink_telemetry_tcu_protection_active 0.0" in text
    assert "eculink_telemetry_timestamp_seconds 1.7e+09" in text
    for _, name, _ in TELEMETRY_GAUGES:
        assert f"# TYPE {name} gauge" in text


def test_route_table() -> None:
    exporter = PrometheusExporter(ConnectionManager(), "127.0.0.1", 0)

    assert exporter.route("GET", "/metrics")[0] == 200
    assert exporter.route("GET", "/metrics?name[]=eculink_connected")[0] == 200
    assert exporter.route("GET", "/")[0] == 200
    assert exporter.route("POST", "/metrics")[0] == 405
    assert exporter.route("GET", "/favicon.ico")[0] == 404


async def _request(port: int, request: bytes) -> bytes:
    reader, writer = await asyncio.open_connection("127.0.0.1", port)
    writer.write(request)
    await writer.drain()
    response = await reader.read()
    writer.close()
    await writer.wait_closed()
    return response


@pytest.mark.asyncio
async def test_exporter_serves_metrics() -> None:
    exporter = PrometheusExporter(ConnectionManager(), "127.0.0.1", 0)
    await exporter.start()
    try:
        assert exporter.port != 0

        ok = await _request(exporter.port, b"GET /metrics HTTP/1.1\r\nHost: localhost\r\n\r\n")
        missing = await _request(exporter.port, b"GET /nope HTTP/1.1\r\nHost: localhost\r\n\r\n")
        wrong_method = await _request(exporter.port, b"DELETE /metrics HTTP/1.1\r\nHost: localhost\r\n\r\n")
        bad = await _request(exporter.port, b"GARBAGE\r\n")
    finally:
        await exporter.stop()

    assert ok.startswith(b"HTTP/1.1 200 OK\r\n")
    assert b"eculink_connected 0.0" in ok
    assert missing.startswith(b"HTTP/1.1 404 Not Found\r\n")
    assert wrong_method.startswith(b"HTTP/1.1 405 Method Not Allowed\r\n")
    assert bad.startswith(b"HTTP/1.1 400 Bad Request\r\n")


@pytest.mark.asyncio
async def test_exporter_run_stops_on_cancel() -> None:
    exporter = PrometheusExporter(ConnectionManager(), "127.0.0.1", 0)

    task = asyncio.create_task(exporter.run())
    await wait_until(lambda: exporter._server is not None)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert exporter._server is None
