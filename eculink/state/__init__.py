"""Runtime state holders for ECU Link."""

from .event_log import CLEARED_MESSAGE, EventLog

__all__ = ["CLEARED_MESSAGE", "EventLog"]
