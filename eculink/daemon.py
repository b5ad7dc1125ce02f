#!/usr/bin/env python3
"""Async orchestrator for the ECU Link telemetry monitor.

Owns one ConnectionManager for the lifetime of the process and supervises
the auxiliary tasks that project its state outward.

Architecture:
    main() -> MonitorDaemon -> ConnectionManager + TaskGroup
        ├── status-writer (status_writer)
        ├── prometheus-exporter (optional)
        ├── command-console (optional)
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
import time
from collections.abc import Awaitable, Callable, Sequence
from pathlib import Path
from typing import Any, NoReturn

import msgspec

import tenacity

import uvloop

from eculink import __version__
from eculink.config.logging import configure_logging
from eculink.config.settings import ConfigError, RuntimeConfig, load_runtime_config
from eculink.console import command_console
from eculink.const import (
    SUPERVISOR_DEFAULT_MAX_BACKOFF,
    SUPERVISOR_DEFAULT_MIN_BACKOFF,
    SUPERVISOR_DEFAULT_RESTART_INTERVAL,
    SUPERVISOR_STATUS_MAX_BACKOFF,
)
from eculink.metrics import PrometheusExporter
from eculink.state.status import cleanup_status_file, status_writer
from eculink.transport import ConnectionManager, SocketConnector

logger = logging.getLogger("eculink")


class SupervisedTaskSpec(msgspec.Struct):
    """Specification for a supervised async task."""

    name: str
    factory: Callable[[], Awaitable[None]]
    fatal_exceptions: tuple[type[BaseException], ...] = ()
    max_restarts: int | None = None
    restart_interval: float = SUPERVISOR_DEFAULT_RESTART_INTERVAL
    min_backoff: float = SUPERVISOR_DEFAULT_MIN_BACKOFF
    max_backoff: float = SUPERVISOR_DEFAULT_MAX_BACKOFF


class SupervisorStats(msgspec.Struct):
    restarts: int = 0
    last_failure_unix: float | None = None
    last_exception: str | None = None
    last_backoff: float = 0.0
    fatal: bool = False


class MonitorDaemon:
    """Main orchestrator for the monitor services.

    Attributes:
        config: Validated runtime configuration.
        manager: The ConnectionManager, created when ``run()`` starts.
        exporter: Optional Prometheus exporter.
        supervisor_stats: Failure bookkeeping per supervised task.
        installed_signals: Signals routed to ``request_stop()`` while running.
    """

    def __init__(self, config: RuntimeConfig, *, connector: SocketConnector | None = None):
        self.config = config
        self._connector = connector
        self._stop_event: asyncio.Event | None = None
        self.manager: ConnectionManager | None = None
        self.exporter: PrometheusExporter | None = None
        self.supervisor_stats: dict[str, SupervisorStats] = {}
        self.installed_signals: list[signal.Signals] = []

    def request_stop(self) -> None:
        if self._stop_event is not None:
            self._stop_event.set()

    def _handle_signal(self, signame: str) -> None:
        logger.info("Received signal %s; stopping...", signame)
        self.request_stop()

    def _install_signal_handlers(self, loop: asyncio.AbstractEventLoop) -> None:
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self._handle_signal, sig.name)
            except (NotImplementedError, RuntimeError):
                # Off the main thread the default disposition stays in place.
                logger.debug("Cannot install %s handler on this loop", sig.name)
                continue
            self.installed_signals.append(sig)

    def _remove_signal_handlers(self, loop: asyncio.AbstractEventLoop) -> None:
        while self.installed_signals:
            loop.remove_signal_handler(self.installed_signals.pop())

    def _require_manager(self) -> ConnectionManager:
        if self.manager is None:
            raise RuntimeError("connection manager is not running")
        return self.manager

    async def _run_status_writer(self) -> None:
        await status_writer(
            self._require_manager(),
            self.config.status_interval,
            Path(self.config.status_file),
        )

    async def _run_console(self) -> None:
        await command_console(self._require_manager())

    def _setup_supervision(self, manager: ConnectionManager) -> list[SupervisedTaskSpec]:
        """Prepare the list of tasks to be supervised."""
        specs: list[SupervisedTaskSpec] = [
            SupervisedTaskSpec(
                name="status-writer",
                factory=self._run_status_writer,
                max_restarts=5,
                max_backoff=SUPERVISOR_STATUS_MAX_BACKOFF,
            ),
        ]

        if self.config.metrics_enabled:
            self.exporter = PrometheusExporter(
                manager,
                self.config.metrics_host,
                self.config.metrics_port,
            )
            specs.append(
                SupervisedTaskSpec(
                    name="prometheus-exporter",
                    factory=self.exporter.run,
                    max_restarts=5,
                )
            )

        if self.config.console_enabled:
            specs.append(
                SupervisedTaskSpec(
                    name="command-console",
                    factory=self._run_console,
                    max_restarts=3,
                )
            )

        return specs

    async def _supervise_task(self, spec: SupervisedTaskSpec) -> None:
        """Run *spec.factory* restarting it on failures using tenacity."""
        log = logging.getLogger("eculink.supervisor")
        callbacks = self._SupervisorCallbacks(spec.name, log, self.supervisor_stats)

        retryer = tenacity.AsyncRetrying(
            wait=tenacity.wait_exponential(multiplier=spec.min_backoff, max=spec.max_backoff),
            retry=tenacity.retry_if_not_exception_type(
                (asyncio.CancelledError, SystemExit, KeyboardInterrupt, GeneratorExit) + spec.fatal_exceptions
            ),
            stop=(
                tenacity.stop_after_attempt(spec.max_restarts + 1)
                if spec.max_restarts is not None
                else tenacity.stop_never
            ),
            before_sleep=callbacks.before_sleep,
            after=callbacks.after_retry,
            reraise=True,
        )

        last_start_time = 0.0

        try:
            while True:
                try:
                    async for attempt in retryer:
                        with attempt:
                            last_start_time = time.monotonic()
                            await spec.factory()

                            log.warning("%s task exited cleanly; supervisor exiting", spec.name)
                            return
                except spec.fatal_exceptions as exc:
                    log.critical("%s failed with fatal exception: %s", spec.name, exc)
                    callbacks.record(exc, backoff=0.0, fatal=True)
                    raise
                except Exception:
                    if last_start_time > 0 and (time.monotonic() - last_start_time) > max(10.0, spec.restart_interval):
                        log.info("%s was healthy long enough; resetting backoff", spec.name)
                        continue
                    log.error("%s exceeded max restarts (%s); giving up", spec.name, spec.max_restarts)
                    raise
        except asyncio.CancelledError:
            log.debug("%s supervisor cancelled", spec.name)
            raise

    class _SupervisorCallbacks:
        """Helper to avoid nested functions in supervisor."""

        __slots__ = ("name", "log", "stats")

        def __init__(self, name: str, log: logging.Logger, stats: dict[str, SupervisorStats]):
            self.name = name
            self.log = log
            self.stats = stats

        def record(self, exc: BaseException, *, backoff: float, fatal: bool) -> None:
            entry = self.stats.setdefault(self.name, SupervisorStats())
            entry.restarts += 0 if fatal else 1
            entry.last_failure_unix = time.time()
            entry.last_exception = repr(exc)
            entry.last_backoff = backoff
            entry.fatal = fatal

        def before_sleep(self, retry_state: tenacity.RetryCallState) -> None:
            exc = retry_state.outcome.exception() if retry_state.outcome else None
            delay = retry_state.next_action.sleep if retry_state.next_action else 0.0
            self.log.error("%s failed (%s); restarting in %.1fs", self.name, exc, delay)
            self.stats.setdefault(self.name, SupervisorStats()).last_backoff = delay

        def after_retry(self, retry_state: tenacity.RetryCallState) -> None:
            exc = retry_state.outcome.exception() if retry_state.outcome else None
            if exc is not None:
                self.record(exc, backoff=0.0, fatal=False)

    async def run(self) -> None:
        """Main async entry point.

        Returns after ``request_stop()``, SIGINT/SIGTERM or cancellation. The
        ConnectionManager scope is released on every path.
        """
        self._stop_event = asyncio.Event()
        loop = asyncio.get_running_loop()
        self._install_signal_handlers(loop)
        status_path = Path(self.config.status_file)

        try:
            async with ConnectionManager(self.config.connection, connector=self._connector) as manager:
                self.manager = manager
                manager.connect()
                supervised_tasks = self._setup_supervision(manager)
                async with asyncio.TaskGroup() as task_group:
                    tasks = [task_group.create_task(self._supervise_task(spec)) for spec in supervised_tasks]
                    await self._stop_event.wait()
                    for task in tasks:
                        task.cancel()
        except* asyncio.CancelledError:
            logger.info("Main task cancelled; shutting down.")
        except* Exception as exc_group:
            for group_exc in exc_group.exceptions:
                logger.critical(
                    "Unhandled exception in main task group: %s",
                    group_exc,
                    exc_info=group_exc,
                )
            raise
        finally:
            self._remove_signal_handlers(loop)
            cleanup_status_file(status_path)
            logger.info("ECU Link monitor stopped.")


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="eculink",
        description="Monitor ESP32 ECU telemetry over WebSocket.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--host", help="ESP32 host or IP address")
    parser.add_argument("--port", type=int, help="ESP32 WebSocket port")
    parser.add_argument(
        "--reconnect-interval-ms",
        type=int,
        help="Delay before each reconnect attempt, in milliseconds",
    )
    parser.add_argument(
        "--max-reconnect-attempts",
        type=int,
        help="Reconnect attempts before giving up",
    )
    parser.add_argument("--status-interval", type=int, help="Seconds between status file writes")
    parser.add_argument("--status-file", help="Path of the JSON status file")
    parser.add_argument(
        "--metrics",
        dest="metrics_enabled",
        action="store_true",
        default=None,
        help="Serve Prometheus metrics",
    )
    parser.add_argument("--metrics-host", help="Prometheus exporter bind address")
    parser.add_argument("--metrics-port", type=int, help="Prometheus exporter port")
    parser.add_argument(
        "--console",
        dest="console_enabled",
        action="store_true",
        default=None,
        help="Read operator commands from stdin",
    )
    parser.add_argument(
        "--debug",
        dest="debug_logging",
        action="store_true",
        default=None,
        help="Enable debug logging",
    )
    return parser


def parse_overrides(argv: Sequence[str] | None = None) -> dict[str, Any]:
    """Parse *argv* into config overrides, dropping flags left unset."""
    namespace = build_arg_parser().parse_args(argv)
    return {key: value for key, value in vars(namespace).items() if value is not None}


def main(argv: Sequence[str] | None = None) -> NoReturn:
    overrides = parse_overrides(argv)
    try:
        config = load_runtime_config(overrides)
    except ConfigError as exc:
        logging.basicConfig(level=logging.INFO)
        logger.critical("Invalid configuration: %s", exc)
        sys.exit(1)
    configure_logging(config)

    logger.info(
        "Starting ECU Link monitor. Endpoint: %s (retry every %dms, max %d attempts)",
        config.connection.url,
        config.connection.reconnect_interval_ms,
        config.connection.max_reconnect_attempts,
    )

    try:
        daemon = MonitorDaemon(config)
        uvloop.run(daemon.run())
        sys.exit(0)
    except KeyboardInterrupt:
        logger.info("Monitor interrupted by user.")
        sys.exit(0)
    except ExceptionGroup as exc_group:
        for group_exc in exc_group.exceptions:
            logger.critical("Fatal error in task group: %s", group_exc, exc_info=group_exc)
        sys.exit(1)
    except OSError as exc:
        logger.critical("System/OS error during monitor execution: %s", exc, exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
