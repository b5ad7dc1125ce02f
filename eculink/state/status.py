"""Periodic status writer for the ECU Link monitor."""

from __future__ import annotations

import asyncio
import msgspec
import logging
import time
from pathlib import Path
from tempfile import NamedTemporaryFile
from typing import TYPE_CHECKING, Any

from ..const import STATUS_FILE_PATH, STATUS_LOG_ENTRIES

if TYPE_CHECKING:
    from ..transport.websocket import ConnectionManager

logger = logging.getLogger("eculink.status")
STATUS_FILE = Path(STATUS_FILE_PATH)


def build_status_snapshot(manager: ConnectionManager, *, log_entries: int = STATUS_LOG_ENTRIES) -> dict[str, Any]:
    """Project the manager into a JSON-friendly mapping."""
    config = manager.config
    telemetry = manager.telemetry
    return {
        "connected": manager.status.connected,
        "status_message": manager.status.message,
        "state": manager.state,
        "url": config.url,
        "reconnect_attempts": manager.reconnect_attempts,
        "max_reconnect_attempts": config.max_reconnect_attempts,
        "reconnect_pending": manager.reconnect_pending,
        "telemetry": msgspec.to_builtins(telemetry) if telemetry is not None else None,
        "log_size": len(manager.log),
        "log": msgspec.to_builtins(manager.log[:log_entries]),
        "heartbeat_unix": time.time(),
    }


def build_metrics_snapshot(manager: ConnectionManager) -> dict[str, Any]:
    """Numeric view of the manager used by the Prometheus collector."""
    telemetry = manager.telemetry
    snapshot: dict[str, Any] = {
        "connected": manager.status.connected,
        "state": manager.state,
        "reconnect_attempts": manager.reconnect_attempts,
        "max_reconnect_attempts": manager.config.max_reconnect_attempts,
        "reconnect_pending": manager.reconnect_pending,
        "log_size": len(manager.log),
    }
    if telemetry is not None:
        fields = msgspec.structs.asdict(telemetry)
        fields["timestamp"] = telemetry.timestamp.timestamp()
        snapshot["telemetry"] = fields
    return snapshot


async def status_writer(
    manager: ConnectionManager,
    interval: int,
    path: Path = STATUS_FILE,
) -> None:
    """Persist lightweight status information periodically."""

    while True:
        try:
            payload = build_status_snapshot(manager)
            write_task = asyncio.create_task(asyncio.to_thread(_write_status_file, payload, path))
            try:
                await asyncio.shield(write_task)
            except asyncio.CancelledError:
                await write_task
                raise
        except asyncio.CancelledError:
            logger.info("Status writer task cancelled.")
            raise
        await asyncio.sleep(interval)


def cleanup_status_file(path: Path = STATUS_FILE) -> None:
    """Remove the status file if it exists."""

    try:
        path.unlink(missing_ok=True)
    except OSError:
        logger.debug("Ignoring error while removing status file.")


def _write_status_file(payload: dict[str, Any], path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    handle = NamedTemporaryFile("wb", dir=path.parent, prefix=f".{path.name}.", delete=False)
    temp_path = Path(handle.name)
    try:
        with handle:
            handle.write(msgspec.json.encode(payload))
        temp_path.replace(path)
    except BaseException:
        temp_path.unlink(missing_ok=True)
        raise


__all__ = [
    "STATUS_FILE",
    "build_metrics_snapshot",
    "build_status_snapshot",
    "cleanup_status_file",
    "status_writer",
]
