"""Bounded newest-first event log."""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Callable, Iterator
from datetime import datetime
from typing import Final

from ..const import EVENT_LOG_CAPACITY
from ..protocol.structures import LogEntry, LogKind, utc_now

CLEARED_MESSAGE: Final[str] = "Data stream cleared"

_LEVELS: Final[dict[LogKind, int]] = {
    LogKind.INFO: logging.INFO,
    LogKind.SUCCESS: logging.INFO,
    LogKind.WARNING: logging.WARNING,
    LogKind.ERROR: logging.ERROR,
}


class EventLog:
    """Ring buffer of ``LogEntry`` records, index 0 is always the newest.

    Insertions prepend; once ``capacity`` is reached the oldest entry is
    evicted from the tail. Every entry is mirrored to the ``eculink.events``
    logger.
    """

    def __init__(
        self,
        capacity: int = EVENT_LOG_CAPACITY,
        *,
        clock: Callable[[], datetime] = utc_now,
        logger: logging.Logger | None = None,
    ) -> None:
        if capacity <= 0:
            raise ValueError("capacity must be a positive integer")
        self._entries: deque[LogEntry] = deque(maxlen=capacity)
        self._clock = clock
        self._logger = logger or logging.getLogger("eculink.events")

    @property
    def capacity(self) -> int:
        return self._entries.maxlen or 0

    @property
    def entries(self) -> tuple[LogEntry, ...]:
        return tuple(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[LogEntry]:
        return iter(self.entries)

    def append(self, message: str, kind: LogKind = LogKind.INFO) -> LogEntry:
        entry = LogEntry(timestamp=self._clock(), message=message, kind=kind)
        self.add(entry)
        return entry

    def add(self, entry: LogEntry) -> None:
        # deque(maxlen) drops from the opposite end on appendleft.
        self._entries.appendleft(entry)
        self._logger.log(_LEVELS[entry.kind], "%s", entry.message, extra={"kind": entry.kind.value})

    def clear(self) -> None:
        self._entries = deque(maxlen=self._entries.maxlen)
        self.append(CLEARED_MESSAGE, LogKind.INFO)


__all__ = ["CLEARED_MESSAGE", "EventLog"]
