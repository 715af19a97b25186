"""Asynchronous ``git status`` fetch pipeline.

Each run executes git on a daemon worker thread and posts its result back
to the main-loop dispatcher, where the cache is written and callbacks fire.
Overlapping requests for one root collapse into a single follow-up run.
"""

from __future__ import annotations

import logging
import subprocess
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

from .cache import StatusCache
from .dispatch import MainLoopDispatcher
from .porcelain import parse

logger = logging.getLogger(__name__)

STATUS_COMMAND = ("status", "--porcelain")


@dataclass(frozen=True)
class StatusRunResult:
    """Raw outcome of one git invocation."""

    returncode: int
    stdout: str
    stderr: str


@dataclass(frozen=True)
class FetchOutcome:
    """What a completed fetch did to the cache."""

    root: Path
    ok: bool
    entry_count: int
    error: str | None = None
    stale: bool = False


class FetchHandle:
    """Completion handle returned by ``StatusFetcher.fetch``."""

    def __init__(self, root: Path) -> None:
        self.root = root
        self.outcome: FetchOutcome | None = None
        self._done = threading.Event()

    def done(self) -> bool:
        return self._done.is_set()

    def wait(self, timeout: float | None = None) -> FetchOutcome | None:
        """Block until resolved; only useful off the main loop thread."""
        self._done.wait(timeout)
        return self.outcome

    def _resolve(self, outcome: FetchOutcome) -> None:
        self.outcome = outcome
        self._done.set()


@dataclass
class _FetchRequest:
    handle: FetchHandle
    on_done: Callable[[], None] | None
    token: tuple[int, int]


@dataclass
class _RootRuns:
    active: list[_FetchRequest]
    queued: list[_FetchRequest] = field(default_factory=list)


def run_git_status(root: Path) -> StatusRunResult:
    """Run ``git status --porcelain`` in ``root``.

    Raises ``OSError`` when git cannot be launched.
    """
    proc = subprocess.run(
        ["git", "-C", str(root), *STATUS_COMMAND],
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        text=True,
        encoding="utf-8",
        errors="replace",
        check=False,
    )
    return StatusRunResult(returncode=proc.returncode, stdout=proc.stdout or "", stderr=proc.stderr or "")


class StatusFetcher:
    """Coalescing per-root fetch runner.

    While a run for a root is in flight, new requests for that root are queued
    behind it and served together by one follow-up run, so the last write to
    the cache always reflects the newest working-tree state. Queued requests
    made before a cache clear are resolved as stale without running git. Every
    request's ``on_done`` is invoked exactly once, on the main loop.
    """

    def __init__(
        self,
        cache: StatusCache,
        dispatcher: MainLoopDispatcher,
        run_status: Callable[[Path], StatusRunResult] = run_git_status,
    ) -> None:
        self._cache = cache
        self._dispatcher = dispatcher
        self._run_status = run_status
        self._lock = threading.Lock()
        self._runs: dict[Path, _RootRuns] = {}
        self.runs_started = 0

    def fetch(self, root: Path, on_done: Callable[[], None] | None = None) -> FetchHandle:
        """Request a status refresh for ``root`` without blocking."""
        handle = FetchHandle(root)
        request = _FetchRequest(handle=handle, on_done=on_done, token=self._cache.token(root))
        with self._lock:
            runs = self._runs.get(root)
            if runs is not None:
                runs.queued.append(request)
                logger.debug("Queued fetch behind in-flight run for %s", root)
                return handle
            self._runs[root] = _RootRuns(active=[request])
        self._start(root)
        return handle

    def in_flight(self, root: Path) -> bool:
        with self._lock:
            return root in self._runs

    def busy(self) -> bool:
        """Return whether any root still has a run in flight or queued."""
        with self._lock:
            return bool(self._runs)

    def _start(self, root: Path) -> None:
        token = self._cache.token(root)
        with self._lock:
            self.runs_started += 1
        logger.debug("Running git status in %s", root)
        worker = threading.Thread(
            target=self._worker,
            args=(root, token),
            name="vcstatus-fetch",
            daemon=True,
        )
        try:
            worker.start()
        except RuntimeError as exc:
            self._post(root, token, None, f"could not start fetch worker: {exc}")

    def _worker(self, root: Path, token: tuple[int, int]) -> None:
        try:
            result = self._run_status(root)
        except OSError as exc:
            self._post(root, token, None, f"could not launch git: {exc}")
            return
        except Exception as exc:
            self._post(root, token, None, f"git status runner failed: {exc!r}")
            return
        self._post(root, token, result, None)

    def _post(
        self,
        root: Path,
        token: tuple[int, int],
        result: StatusRunResult | None,
        launch_error: str | None,
    ) -> None:
        self._dispatcher.call_soon(lambda: self._complete(root, token, result, launch_error))

    def _complete(
        self,
        root: Path,
        token: tuple[int, int],
        result: StatusRunResult | None,
        launch_error: str | None,
    ) -> None:
        current = self._cache.token(root)
        stale = current != token
        outcome = self._apply(root, result, launch_error, stale)

        with self._lock:
            runs = self._runs[root]
            served = runs.active
            # Requests queued before a clear must not refill the cache.
            cancelled = [request for request in runs.queued if request.token != current]
            waiting = [request for request in runs.queued if request.token == current]
            if waiting:
                runs.active = waiting
                runs.queued = []
                restart = True
            else:
                del self._runs[root]
                restart = False
        if restart:
            self._start(root)

        self._finish(root, served, outcome)
        if cancelled:
            logger.debug("Dropping %d fetch requests for cleared root %s", len(cancelled), root)
            skipped = FetchOutcome(root=root, ok=False, entry_count=0, error="cache cleared before run", stale=True)
            self._finish(root, cancelled, skipped)

    def _finish(self, root: Path, requests: list[_FetchRequest], outcome: FetchOutcome) -> None:
        for request in requests:
            request.handle._resolve(outcome)
            if request.on_done is None:
                continue
            try:
                request.on_done()
            except Exception:
                logger.exception("Fetch completion callback for %s failed", root)

    def _apply(
        self,
        root: Path,
        result: StatusRunResult | None,
        launch_error: str | None,
        stale: bool,
    ) -> FetchOutcome:
        if result is not None and result.returncode == 0:
            statuses = parse(result.stdout)
            if stale:
                logger.debug("Discarding stale status for cleared root %s", root)
            else:
                self._cache.set(root, statuses)
            logger.debug("Found %d files with git status in %s", len(statuses), root)
            return FetchOutcome(root=root, ok=True, entry_count=len(statuses), stale=stale)

        if launch_error is not None:
            message = launch_error
        elif result is not None:
            message = result.stderr.strip() or f"git exited with status {result.returncode}"
        else:
            message = "unknown error"
        logger.warning("git status failed in %s: %s", root, message)
        if not stale:
            self._cache.mark_failed(root, message)
        return FetchOutcome(root=root, ok=False, entry_count=0, error=message, stale=stale)


__all__ = [
    "FetchHandle",
    "FetchOutcome",
    "STATUS_COMMAND",
    "StatusFetcher",
    "StatusRunResult",
    "run_git_status",
]
