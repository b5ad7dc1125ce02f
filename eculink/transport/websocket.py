"""WebSocket connection manager for the ESP32 telemetry link.

Owns the socket lifecycle, the bounded reconnect policy and the keepalive
timer. Every transport event (open, frame, close, error) is handled
synchronously inside the session task that observed it, so state changes
never interleave.

State machine::

    idle -> connecting -> open -> (closing | reconnecting | failed)
    reconnecting -> connecting
    closing -> idle

``idle`` and ``failed`` only leave through an explicit ``connect()``.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Coroutine, Mapping
from types import TracebackType
from typing import TYPE_CHECKING, Any, Protocol

from transitions import Machine
from websockets.asyncio.client import connect as ws_connect
from websockets.exceptions import ConnectionClosed, InvalidHandshake, InvalidURI
from websockets.protocol import State

from ..alerts import evaluate_alerts
from ..config.model import ConnectionConfig
from ..config.settings import ConfigError, merge_connection_config
from ..const import (
    DEFAULT_CLOSE_REASON,
    EVENT_LOG_CAPACITY,
    KEEPALIVE_INTERVAL,
    KEEPALIVE_PING,
    MANUAL_DISCONNECT_REASON,
    NORMAL_CLOSURE,
)
from ..keepalive import KeepalivePinger
from ..protocol.decoder import DecodeFailure, TelemetryUpdate, decode_frame
from ..protocol.structures import ConnectionStatus, LogEntry, LogKind, TelemetrySnapshot
from ..state.event_log import EventLog

logger = logging.getLogger("eculink.transport")


class TelemetrySocket(Protocol):
    """Subset of the websockets client connection used by the manager."""

    @property
    def state(self) -> State: ...

    async def recv(self) -> str | bytes: ...

    async def send(self, message: str) -> None: ...

    async def close(self, code: int = NORMAL_CLOSURE, reason: str = "") -> None: ...


SocketConnector = Callable[..., Awaitable[TelemetrySocket]]

# Errors raised while dialing that browsers report as an error event
# followed by a close event.
_DIAL_ERRORS: tuple[type[BaseException], ...] = (OSError, InvalidHandshake, TimeoutError)


def _close_reason(exc: ConnectionClosed) -> str:
    if exc.rcvd is not None and exc.rcvd.reason:
        return exc.rcvd.reason
    return ""


class _SocketSession:
    """One dial attempt and, once open, the socket it produced."""

    __slots__ = ("url", "host", "socket", "task")

    def __init__(self, url: str, host: str) -> None:
        self.url = url
        self.host = host
        self.socket: TelemetrySocket | None = None
        self.task: asyncio.Task[None] | None = None


class ConnectionManager:
    """Resilient, auto-reconnecting client for a single telemetry endpoint.

    Consumers read ``status``, ``telemetry`` and ``log`` and call
    ``connect``, ``disconnect``, ``send_command``, ``clear_log`` and
    ``update_config``. None of these operations raise; failures surface
    through the log and the status.

    All operations must be called from within the running event loop.
    """

    if TYPE_CHECKING:
        # FSM generated attributes for static analysis
        fsm_state: str
        trigger: Callable[..., bool]

    # FSM States
    STATE_IDLE = "idle"
    STATE_CONNECTING = "connecting"
    STATE_OPEN = "open"
    STATE_CLOSING = "closing"
    STATE_RECONNECTING = "reconnecting"
    STATE_FAILED = "failed"

    def __init__(
        self,
        config: ConnectionConfig | None = None,
        *,
        connector: SocketConnector | None = None,
        keepalive_interval: float = KEEPALIVE_INTERVAL,
        log_capacity: int = EVENT_LOG_CAPACITY,
    ) -> None:
        self._config = config or ConnectionConfig()
        self._connector: SocketConnector = connector or ws_connect
        self._log = EventLog(log_capacity)
        self._status = ConnectionStatus(connected=False, message="Disconnected")
        self._telemetry: TelemetrySnapshot | None = None

        self._session: _SocketSession | None = None
        self._should_connect = False
        self._reconnect_attempts = 0
        self._reconnect_handle: asyncio.TimerHandle | None = None
        self._keepalive = KeepalivePinger(self._keepalive_tick, interval=keepalive_interval)
        self._tasks: set[asyncio.Task[Any]] = set()

        self.machine = Machine(
            model=self,
            states=[
                self.STATE_IDLE,
                self.STATE_CONNECTING,
                self.STATE_OPEN,
                self.STATE_CLOSING,
                self.STATE_RECONNECTING,
                self.STATE_FAILED,
            ],
            initial=self.STATE_IDLE,
            model_attribute="fsm_state",
            ignore_invalid_triggers=True,
        )
        self.machine.add_transition(
            "dial",
            [self.STATE_IDLE, self.STATE_CLOSING, self.STATE_RECONNECTING, self.STATE_FAILED],
            self.STATE_CONNECTING,
        )
        self.machine.add_transition("opened", self.STATE_CONNECTING, self.STATE_OPEN)
        self.machine.add_transition("lost", [self.STATE_CONNECTING, self.STATE_OPEN], self.STATE_RECONNECTING)
        self.machine.add_transition("exhausted", [self.STATE_CONNECTING, self.STATE_OPEN], self.STATE_FAILED)
        self.machine.add_transition("abort", self.STATE_CONNECTING, self.STATE_FAILED)
        self.machine.add_transition("begin_close", self.STATE_OPEN, self.STATE_CLOSING)
        self.machine.add_transition("closed", self.STATE_CLOSING, self.STATE_IDLE)
        self.machine.add_transition("reset", "*", self.STATE_IDLE)

    # ------------------------------------------------------------------
    # Read-only projection
    # ------------------------------------------------------------------

    @property
    def status(self) -> ConnectionStatus:
        return self._status

    @property
    def telemetry(self) -> TelemetrySnapshot | None:
        return self._telemetry

    @property
    def log(self) -> tuple[LogEntry, ...]:
        return self._log.entries

    @property
    def state(self) -> str:
        return self.fsm_state

    @property
    def config(self) -> ConnectionConfig:
        return self._config

    @property
    def reconnect_attempts(self) -> int:
        return self._reconnect_attempts

    @property
    def reconnect_pending(self) -> bool:
        return self._reconnect_handle is not None

    # ------------------------------------------------------------------
    # Consumer operations
    # ------------------------------------------------------------------

    def connect(self) -> None:
        if self.fsm_state == self.STATE_OPEN:
            self._log.append("Already connected to ESP32", LogKind.INFO)
            return
        if self.fsm_state == self.STATE_CONNECTING:
            self._log.append("Connection to ESP32 already in progress", LogKind.INFO)
            return

        self._should_connect = True
        self._reconnect_attempts = 0
        self._cancel_reconnect()
        self._open_socket()

    def disconnect(self) -> None:
        self._should_connect = False
        self._cancel_reconnect()

        session, self._session = self._session, None
        if session is not None and session.socket is not None and self.fsm_state == self.STATE_OPEN:
            self.trigger("begin_close")
            self._spawn(
                self._close_socket(session.socket),
                name="eculink-close",
            )
        else:
            if session is not None and session.task is not None:
                session.task.cancel()
            self.trigger("reset")

        self._set_status(False, "Disconnected")
        self._log.append("Manually disconnected from ESP32", LogKind.INFO)

    def send_command(self, command: str) -> None:
        socket = self._open_socket_or_none()
        if socket is None:
            self._log.append("Cannot send command: not connected", LogKind.WARNING)
            return
        self._spawn(self._send_frame(socket, command), name="eculink-send")
        self._log.append(f"Sent command: {command}", LogKind.INFO)

    def clear_log(self) -> None:
        self._log.clear()

    def update_config(self, partial: Mapping[str, Any] | None = None, /, **changes: Any) -> None:
        merged = {**(partial or {}), **changes}
        try:
            self._config = merge_connection_config(self._config, merged)
        except ConfigError as exc:
            logger.warning("Rejected connection config update: %s", exc)
            self._log.append(f"Rejected ESP32 connection config update: {exc}", LogKind.WARNING)
            return
        self._log.append("ESP32 connection config updated", LogKind.INFO)

    # ------------------------------------------------------------------
    # Scoped ownership
    # ------------------------------------------------------------------

    async def __aenter__(self) -> ConnectionManager:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Disconnect and wait for every task the manager spawned."""
        if self._should_connect or self._session is not None or self.reconnect_pending:
            self.disconnect()
        else:
            self._cancel_reconnect()
            self._keepalive.stop()
        while self._tasks:
            pending = list(self._tasks)
            await asyncio.gather(*pending, return_exceptions=True)

    # ------------------------------------------------------------------
    # Connect procedure and transport events
    # ------------------------------------------------------------------

    def _open_socket(self) -> None:
        config = self._config
        session = _SocketSession(config.url, config.host)
        self.trigger("dial")
        self._session = session
        self._log.append(f"Connecting to ESP32 at {session.url}...", LogKind.INFO)
        self._set_status(False, f"Connecting to {session.host}...")
        session.task = self._spawn(self._run_session(session), name="eculink-session")

    async def _run_session(self, session: _SocketSession) -> None:
        try:
            socket = await self._connector(session.url, ping_interval=None)
        except InvalidURI as exc:
            self._handle_invalid_endpoint(session, exc)
            return
        except _DIAL_ERRORS as exc:
            self._handle_error(session, exc)
            self._handle_close(session, "")
            return

        session.socket = socket
        self._handle_open(session)

        try:
            while True:
                frame = await socket.recv()
                self._handle_frame(session, frame)
        except ConnectionClosed as exc:
            self._handle_close(session, _close_reason(exc))

    def _handle_open(self, session: _SocketSession) -> None:
        if session is not self._session:
            return
        self._reconnect_attempts = 0
        self.trigger("opened")
        self._set_status(True, f"Connected to ESP32 at {session.host}")
        self._log.append("Connected to ESP32 WebSocket", LogKind.SUCCESS)
        if session.socket is not None:
            self._spawn(self._send_frame(session.socket, KEEPALIVE_PING), name="eculink-ping")

    def _handle_frame(self, session: _SocketSession, frame: str | bytes) -> None:
        if session is not self._session:
            return
        result = decode_frame(frame)
        if isinstance(result, TelemetryUpdate):
            self._telemetry = result.snapshot
            for alert in evaluate_alerts(result.snapshot):
                self._log.add(alert)
        elif isinstance(result, DecodeFailure):
            logger.warning("Dropping undecodable frame: %s", result.reason)
            self._log.append("Error parsing data from ESP32", LogKind.ERROR)

    def _handle_error(self, session: _SocketSession, exc: BaseException) -> None:
        if session is not self._session:
            return
        logger.error("WebSocket error on %s: %s", session.url, exc)
        self._log.append("WebSocket connection error", LogKind.ERROR)
        self._set_status(False, "Connection error")

    def _handle_invalid_endpoint(self, session: _SocketSession, exc: InvalidURI) -> None:
        if session is not self._session:
            return
        logger.error("Failed to create WebSocket connection: %s", exc)
        self._session = None
        self.trigger("abort")
        self._log.append("Failed to connect to ESP32", LogKind.ERROR)
        self._set_status(False, "Connection failed")

    def _handle_close(self, session: _SocketSession, reason: str) -> None:
        if session is not self._session:
            # Detached by disconnect(); its close completes the manual shutdown.
            if self._session is None and self.fsm_state == self.STATE_CLOSING:
                self.trigger("closed")
                self._set_status(False, "Disconnected from ESP32")
                self._log.append("Disconnected from ESP32", LogKind.INFO)
            return

        self._session = None
        self._set_status(False, "Disconnected from ESP32")

        max_attempts = self._config.max_reconnect_attempts
        if self._should_connect and self._reconnect_attempts < max_attempts:
            self.trigger("lost")
            self._log.append(
                f"Connection lost: {reason or DEFAULT_CLOSE_REASON}. Reconnecting...",
                LogKind.WARNING,
            )
            self._schedule_reconnect()
        elif self._should_connect:
            self.trigger("exhausted")
            self._log.append("Max reconnection attempts reached", LogKind.ERROR)
            self._set_status(False, "Failed to reconnect to ESP32")
        else:
            self.trigger("reset")
            self._log.append("Disconnected from ESP32", LogKind.INFO)

    # ------------------------------------------------------------------
    # Timers
    # ------------------------------------------------------------------

    def _schedule_reconnect(self) -> None:
        self._cancel_reconnect()
        delay = self._config.reconnect_interval
        logger.info(
            "Reconnecting in %.2fs (attempt %d of %d)",
            delay,
            self._reconnect_attempts + 1,
            self._config.max_reconnect_attempts,
        )
        self._reconnect_handle = asyncio.get_running_loop().call_later(delay, self._fire_reconnect)

    def _fire_reconnect(self) -> None:
        self._reconnect_handle = None
        if not self._should_connect or self.fsm_state != self.STATE_RECONNECTING:
            return
        self._reconnect_attempts += 1
        self._open_socket()

    def _cancel_reconnect(self) -> None:
        handle, self._reconnect_handle = self._reconnect_handle, None
        if handle is not None:
            handle.cancel()

    def _keepalive_tick(self) -> None:
        socket = self._open_socket_or_none()
        if socket is not None:
            self._spawn(self._send_frame(socket, KEEPALIVE_PING), name="eculink-ping")

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _set_status(self, connected: bool, message: str) -> None:
        self._status = ConnectionStatus(connected=connected, message=message)
        if connected:
            self._keepalive.start()
        else:
            self._keepalive.stop()

    def _open_socket_or_none(self) -> TelemetrySocket | None:
        session = self._session
        if self.fsm_state != self.STATE_OPEN or session is None or session.socket is None:
            return None
        if session.socket.state is not State.OPEN:
            return None
        return session.socket

    def _spawn(self, coro: Coroutine[Any, Any, None], *, name: str) -> asyncio.Task[None]:
        task = asyncio.get_running_loop().create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    @staticmethod
    async def _send_frame(socket: TelemetrySocket, text: str) -> None:
        try:
            await socket.send(text)
        except ConnectionClosed:
            # The session task observes the same closure and handles it.
            logger.debug("Send of %r skipped; socket already closed", text)

    @staticmethod
    async def _close_socket(socket: TelemetrySocket) -> None:
        try:
            await socket.close(NORMAL_CLOSURE, MANUAL_DISCONNECT_REASON)
        except OSError as exc:
            logger.debug("Error while closing socket: %s", exc)


__all__ = ["ConnectionManager", "SocketConnector", "TelemetrySocket"]
