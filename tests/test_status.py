"""Tests for the status snapshot writer."""

from __future__ import annotations

import asyncio
from pathlib import Path

import msgspec
import pytest

from eculink.config.model import ConnectionConfig
from eculink.state import status
from eculink.transport.websocket import ConnectionManager
from mocks import FakeConnector, wait_until


def test_snapshot_of_idle_manager() -> None:
    manager = ConnectionManager(ConnectionConfig(host="esp32.local", max_reconnect_attempts=4))

    snapshot = status.build_status_snapshot(manager)

    assert snapshot["connected"] is False
    assert snapshot["status_message"] == "Disconnected"
    assert snapshot["state"] == "idle"
    assert snapshot["url"] == "ws://esp32.local:80/ws"
    assert snapshot["max_reconnect_attempts"] == 4
    assert snapshot["telemetry"] is None
    assert snapshot["log"] == []


def test_snapshot_limits_log_entries() -> None:
    manager = ConnectionManager()
    for _ in range(30):
        manager.send_command("x")

    snapshot = status.build_status_snapshot(manager, log_entries=5)

    assert snapshot["log_size"] == 30
    assert len(snapshot["log"]) == 5
    assert snapshot["log"][0]["kind"] == "warning"
    assert snapshot["log"][0]["message"] == "Cannot send command: not connected"


@pytest.mark.asyncio
async def test_status_writer_persists_json(tmp_path: Path, connector: FakeConnector) -> None:
    target = tmp_path / "run" / "status.json"

    async with ConnectionManager(connector=connector) as manager:
        manager.connect()
        await wait_until(lambda: manager.state == ConnectionManager.STATE_OPEN)
        connector.latest.feed('{"engineRpm": 4200, "timestamp": 1700000000000}')
        await wait_until(lambda: manager.telemetry is not None)

        task = asyncio.create_task(status.status_writer(manager, 60, target))
        await wait_until(target.exists)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    payload = msgspec.json.decode(target.read_bytes())
    assert payload["connected"] is True
    assert payload["state"] == "open"
    assert payload["telemetry"]["engine_rpm"] == 4200.0
    assert payload["telemetry"]["timestamp"].startswith("2023-11-14T22:13:20")
    assert payload["log"][0]["kind"] == "success"
    assert list(tmp_path.joinpath("run").iterdir()) == [target]


def test_cleanup_status_file(tmp_path: Path) -> None:
    target = tmp_path / "status.json"
    target.write_text("{}")

    status.cleanup_status_file(target)
    status.cleanup_status_file(target)

    assert not target.exists()


def test_failed_encode_leaves_no_temp_file(tmp_path: Path) -> None:
    target = tmp_path / "status.json"

    with pytest.raises((TypeError, msgspec.EncodeError)):
        status._write_status_file({"unencodable": object()}, target)

    assert list(tmp_path.iterdir()) == []


def test_failed_replace_leaves_no_temp_file(tmp_path: Path) -> None:
    target = tmp_path / "status.json"
    target.mkdir()

    with pytest.raises(OSError):
        status._write_status_file({"connected": False}, target)

    assert list(tmp_path.iterdir()) == [target]


def test_metrics_snapshot_is_numeric() -> None:
    manager = ConnectionManager()

    snapshot = status.build_metrics_snapshot(manager)

    assert snapshot == {
        "connected": False,
        "state": "idle",
        "reconnect_attempts": 0,
        "max_reconnect_attempts": 10,
        "reconnect_pending": False,
        "log_size": 0,
    }
