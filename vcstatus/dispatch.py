"""Main-loop callback queue.

Worker and timer threads never touch shared state directly; they post
closures here and the host loop runs them on its own thread via ``drain``.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from queue import Empty, Queue

logger = logging.getLogger(__name__)


class MainLoopDispatcher:
    """Thread-safe FIFO of callbacks executed by the thread calling ``drain``."""

    def __init__(self) -> None:
        self._pending: Queue[Callable[[], None]] = Queue()

    def call_soon(self, callback: Callable[[], None]) -> None:
        """Schedule ``callback`` for the next ``drain``; safe from any thread."""
        self._pending.put(callback)

    def drain(self, max_callbacks: int | None = None) -> int:
        """Run queued callbacks and return how many ran.

        Callbacks posted while draining run in the same pass. A callback that
        raises is logged and does not stop the remaining ones.
        """
        ran = 0
        while max_callbacks is None or ran < max_callbacks:
            try:
                callback = self._pending.get_nowait()
            except Empty:
                break
            ran += 1
            try:
                callback()
            except Exception:
                logger.exception("Main-loop callback %r failed", callback)
        return ran

    def pending(self) -> int:
        return self._pending.qsize()


__all__ = ["MainLoopDispatcher"]
