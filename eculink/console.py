"""Interactive stdin console driving a ConnectionManager."""

from __future__ import annotations

import asyncio
import functools
import logging
import shlex
import sys
from typing import TYPE_CHECKING, Any, TextIO

if TYPE_CHECKING:
    from .transport.websocket import ConnectionManager

logger = logging.getLogger("eculink.console")

CONSOLE_HELP = "Commands: /connect, /disconnect, /clear, /config key=value ..., /help; other lines are sent to the ECU."


def parse_config_assignments(tokens: list[str]) -> dict[str, Any]:
    """Turn ``key=value`` tokens into an update mapping.

    Values stay strings; the config schema coerces them.
    """
    changes: dict[str, Any] = {}
    for token in tokens:
        key, sep, value = token.partition("=")
        if not sep or not key:
            raise ValueError(f"expected key=value, got {token!r}")
        changes[key.strip()] = value.strip()
    return changes


def handle_console_line(manager: ConnectionManager, line: str) -> None:
    text = line.strip()
    if not text:
        return
    if not text.startswith("/"):
        manager.send_command(text)
        return

    command, _, rest = text.partition(" ")
    match command:
        case "/connect":
            manager.connect()
        case "/disconnect":
            manager.disconnect()
        case "/clear":
            manager.clear_log()
        case "/config":
            try:
                changes = parse_config_assignments(shlex.split(rest))
            except ValueError as exc:
                logger.warning("Ignoring malformed /config line: %s", exc)
                return
            if not changes:
                logger.warning("Ignoring empty /config line")
                return
            manager.update_config(changes)
        case "/help":
            logger.info(CONSOLE_HELP)
        case _:
            logger.warning("Unknown console command %s", command)


async def command_console(manager: ConnectionManager, stream: TextIO | None = None) -> None:
    """Read operator commands from *stream* (stdin by default) until EOF."""
    loop = asyncio.get_running_loop()
    reader = asyncio.StreamReader()
    await loop.connect_read_pipe(
        functools.partial(asyncio.StreamReaderProtocol, reader),
        stream or sys.stdin,
    )
    logger.info(CONSOLE_HELP)
    try:
        while True:
            raw = await reader.readline()
            if not raw:
                logger.info("Console input closed.")
                return
            handle_console_line(manager, raw.decode("utf-8", errors="replace"))
    except asyncio.CancelledError:
        logger.info("Console task cancelled.")
        raise


__all__ = ["command_console", "handle_console_line", "parse_config_assignments"]
