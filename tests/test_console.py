"""Tests for the operator console."""

from __future__ import annotations

import asyncio
import os
import shlex
from unittest.mock import MagicMock

import pytest

from eculink.console import command_console, handle_console_line, parse_config_assignments
from eculink.transport.websocket import ConnectionManager


@pytest.fixture
def fake_manager() -> MagicMock:
    return MagicMock(spec=ConnectionManager)


@pytest.mark.parametrize(
    ("line", "method"),
    [
        ("/connect\n", "connect"),
        ("  /disconnect ", "disconnect"),
        ("/clear", "clear_log"),
    ],
)
def test_slash_commands_map_to_operations(fake_manager: MagicMock, line: str, method: str) -> None:
    handle_console_line(fake_manager, line)

    getattr(fake_manager, method).assert_called_once_with()
    fake_manager.send_command.assert_not_called()


def test_plain_lines_are_sent_verbatim(fake_manager: MagicMock) -> None:
    handle_console_line(fake_manager, "SET_BOOST 1.4\n")

    fake_manager.send_command.assert_called_once_with("SET_BOOST 1.4")


def test_blank_lines_are_ignored(fake_manager: MagicMock) -> None:
    handle_console_line(fake_manager, "   \n")

    assert fake_manager.mock_calls == []


def test_config_command_updates_config(fake_manager: MagicMock) -> None:
    handle_console_line(fake_manager, "/config host=10.0.0.9 port=8080")

    fake_manager.update_config.assert_called_once_with({"host": "10.0.0.9", "port": "8080"})


@pytest.mark.parametrize("line", ["/config", "/config host", "/config =5"])
def test_malformed_config_command_is_ignored(fake_manager: MagicMock, line: str) -> None:
    handle_console_line(fake_manager, line)

    fake_manager.update_config.assert_not_called()


def test_unknown_slash_command_is_not_sent(fake_manager: MagicMock) -> None:
    handle_console_line(fake_manager, "/reboot")

    assert fake_manager.mock_calls == []


def test_parse_config_assignments_keeps_quoted_values() -> None:
    assert parse_config_assignments(shlex.split('host="esp 32" port=81')) == {"host": "esp 32", "port": "81"}


def test_config_command_drives_real_manager() -> None:
    manager = ConnectionManager()

    handle_console_line(manager, "/config reconnect_interval_ms=500 max_reconnect_attempts=2")

    assert manager.config.reconnect_interval_ms == 500
    assert manager.config.max_reconnect_attempts == 2
    assert manager.log[0].message == "ESP32 connection config updated"


@pytest.mark.asyncio
async def test_command_console_reads_until_eof(fake_manager: MagicMock) -> None:
    read_fd, write_fd = os.pipe()
    stream = os.fdopen(read_fd, "rb", buffering=0)
    try:
        os.write(write_fd, b"/connect\nhello ecu\n/clear\n")
        os.close(write_fd)

        await asyncio.wait_for(command_console(fake_manager, stream), timeout=2.0)
    finally:
        stream.close()

    fake_manager.connect.assert_called_once_with()
    fake_manager.send_command.assert_called_once_with("hello ecu")
    fake_manager.clear_log.assert_called_once_with()
