"""Recurring refresh timer.

A daemon thread sleeps between ticks and posts each tick to the main-loop
dispatcher, so tick handlers always run on the host's own thread.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable

from .dispatch import MainLoopDispatcher

logger = logging.getLogger(__name__)

DEFAULT_INITIAL_DELAY_MS = 1000


class PeriodicRefreshScheduler:
    """Repeating timer with an initial delay and a fixed period.

    ``stop`` is synchronous from the caller's point of view: once it returns,
    no further tick reaches ``on_tick``, including ticks already queued on the
    dispatcher but not yet drained. A stopped scheduler cannot be restarted;
    create a new one instead.
    """

    def __init__(
        self,
        interval_ms: int,
        on_tick: Callable[[], None],
        dispatcher: MainLoopDispatcher,
        *,
        initial_delay_ms: int = DEFAULT_INITIAL_DELAY_MS,
    ) -> None:
        self.interval_ms = interval_ms
        self.initial_delay_ms = initial_delay_ms
        self._on_tick = on_tick
        self._dispatcher = dispatcher
        self._stopped = threading.Event()
        self._tick_pending = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def running(self) -> bool:
        return self._thread is not None and not self._stopped.is_set()

    def start(self) -> None:
        """Start the timer thread.

        Raises ``RuntimeError`` when the thread cannot be created.
        """
        if self._thread is not None:
            return
        thread = threading.Thread(
            target=self._run,
            name="vcstatus-refresh-timer",
            daemon=True,
        )
        thread.start()
        self._thread = thread

    def stop(self) -> None:
        self._stopped.set()
        self._thread = None

    def _run(self) -> None:
        delay = self.initial_delay_ms / 1000.0
        period = max(1, self.interval_ms) / 1000.0
        while not self._stopped.wait(delay):
            # A slow main loop gets one queued tick, not a backlog.
            if not self._tick_pending.is_set():
                self._tick_pending.set()
                self._dispatcher.call_soon(self._deliver_tick)
            delay = period

    def _deliver_tick(self) -> None:
        self._tick_pending.clear()
        if self._stopped.is_set():
            return
        self._on_tick()


__all__ = ["DEFAULT_INITIAL_DELAY_MS", "PeriodicRefreshScheduler"]
