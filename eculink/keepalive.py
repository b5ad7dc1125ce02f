"""Periodic keepalive pinger for the telemetry link."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import TYPE_CHECKING

from transitions import Machine

from .const import KEEPALIVE_INTERVAL

KeepaliveKick = Callable[[], None]


class KeepalivePinger:
    """Invoke *kick* every *interval* seconds while running.

    The pinger only signals liveness; it never waits for a reply.
    """

    if TYPE_CHECKING:
        # FSM generated attributes for static analysis
        fsm_state: str

    # FSM States
    STATE_INIT = "init"
    STATE_RUNNING = "running"
    STATE_STOPPED = "stopped"

    def __init__(
        self,
        kick: KeepaliveKick,
        *,
        interval: float = KEEPALIVE_INTERVAL,
        logger: logging.Logger | None = None,
    ) -> None:
        if interval <= 0:
            raise ValueError("interval must be greater than zero")
        self._kick = kick
        self._interval = interval
        self._logger = logger or logging.getLogger("eculink.keepalive")
        self._task: asyncio.Task[None] | None = None

        self.state_machine = Machine(
            model=self,
            states=[self.STATE_INIT, self.STATE_RUNNING, self.STATE_STOPPED],
            initial=self.STATE_INIT,
            ignore_invalid_triggers=True,
            model_attribute="fsm_state",
        )
        self.state_machine.add_transition(
            trigger="arm", source=[self.STATE_INIT, self.STATE_STOPPED], dest=self.STATE_RUNNING
        )
        self.state_machine.add_transition(trigger="disarm", source=self.STATE_RUNNING, dest=self.STATE_STOPPED)

    @property
    def interval(self) -> float:
        return self._interval

    @property
    def running(self) -> bool:
        return self.fsm_state == self.STATE_RUNNING

    def start(self) -> None:
        """Begin ticking on the running loop; no-op when already running."""
        if self.running:
            return
        self.trigger("arm")
        self._task = asyncio.get_running_loop().create_task(self.run(), name="eculink-keepalive")

    def stop(self) -> None:
        if not self.running:
            return
        self.trigger("disarm")
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()

    async def run(self) -> None:
        try:
            while True:
                await asyncio.sleep(self._interval)
                self._kick()
        except asyncio.CancelledError:
            self._logger.debug("Keepalive pinger cancelled")
            raise


__all__ = ["KeepalivePinger"]
