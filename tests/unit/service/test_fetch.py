"""Tests for the coalescing git status fetch pipeline."""

from __future__ import annotations

import threading
import time
import unittest
from pathlib import Path

from vcstatus.cache import RootState, StatusCache
from vcstatus.dispatch import MainLoopDispatcher
from vcstatus.fetch import StatusFetcher, StatusRunResult

ROOT = Path("/tmp/vcstatus-fetch-root")


def _drain_until(dispatcher: MainLoopDispatcher, predicate, timeout_seconds: float = 1.0) -> bool:
    deadline = time.monotonic() + timeout_seconds
    while time.monotonic() < deadline:
        dispatcher.drain()
        if predicate():
            return True
        time.sleep(0.005)
    return False


class _GatedRunner:
    """Fake git runner whose calls block until released one by one."""

    def __init__(self, outputs: list[StatusRunResult]) -> None:
        self._outputs = list(outputs)
        self.calls = 0
        self.started = threading.Semaphore(0)
        self.release = threading.Semaphore(0)

    def __call__(self, root: Path) -> StatusRunResult:
        self.calls += 1
        self.started.release()
        self.release.acquire(timeout=2.0)
        return self._outputs.pop(0)


class StatusFetcherTests(unittest.TestCase):
    def test_successful_fetch_replaces_cache_and_calls_back_on_main_thread(self) -> None:
        cache = StatusCache()
        dispatcher = MainLoopDispatcher()
        callback_threads: list[int] = []
        fetcher = StatusFetcher(
            cache,
            dispatcher,
            run_status=lambda _root: StatusRunResult(0, "M  foo.txt\n?? bar.txt\n", ""),
        )

        handle = fetcher.fetch(ROOT, lambda: callback_threads.append(threading.get_ident()))

        self.assertTrue(_drain_until(dispatcher, handle.done))
        self.assertEqual(callback_threads, [threading.get_ident()])
        self.assertEqual(cache.entries(ROOT), [("bar.txt", "??"), ("foo.txt", "M ")])
        self.assertIs(cache.root_state(ROOT), RootState.CLEAN)
        assert handle.outcome is not None
        self.assertTrue(handle.outcome.ok)
        self.assertEqual(handle.outcome.entry_count, 2)

    def test_cache_is_not_written_before_main_loop_drains(self) -> None:
        cache = StatusCache()
        dispatcher = MainLoopDispatcher()
        fetcher = StatusFetcher(cache, dispatcher, run_status=lambda _root: StatusRunResult(0, "M  a\n", ""))

        fetcher.fetch(ROOT)
        deadline = time.monotonic() + 1.0
        while dispatcher.pending() == 0 and time.monotonic() < deadline:
            time.sleep(0.005)

        self.assertFalse(cache.has_root(ROOT))
        dispatcher.drain()
        self.assertEqual(cache.get(ROOT, "a"), "M ")

    def test_nonzero_exit_stores_empty_map_in_error_state(self) -> None:
        cache = StatusCache()
        cache.set(ROOT, {"a.txt": "M "})
        dispatcher = MainLoopDispatcher()
        calls: list[str] = []
        fetcher = StatusFetcher(
            cache,
            dispatcher,
            run_status=lambda _root: StatusRunResult(128, "", "fatal: not a git repository\n"),
        )

        with self.assertLogs("vcstatus.fetch", level="WARNING"):
            handle = fetcher.fetch(ROOT, lambda: calls.append("done"))
            self.assertTrue(_drain_until(dispatcher, handle.done))

        self.assertEqual(calls, ["done"])
        self.assertTrue(cache.has_root(ROOT))
        self.assertIsNone(cache.get(ROOT, "a.txt"))
        self.assertIs(cache.root_state(ROOT), RootState.ERROR)
        self.assertEqual(cache.error_message(ROOT), "fatal: not a git repository")

    def test_launch_failure_is_treated_like_failed_fetch(self) -> None:
        cache = StatusCache()
        dispatcher = MainLoopDispatcher()

        def missing_git(_root: Path) -> StatusRunResult:
            raise FileNotFoundError("git")

        fetcher = StatusFetcher(cache, dispatcher, run_status=missing_git)
        with self.assertLogs("vcstatus.fetch", level="WARNING"):
            handle = fetcher.fetch(ROOT)
            self.assertTrue(_drain_until(dispatcher, handle.done))

        assert handle.outcome is not None
        self.assertFalse(handle.outcome.ok)
        self.assertIn("could not launch git", handle.outcome.error or "")
        self.assertIs(cache.root_state(ROOT), RootState.ERROR)

    def test_overlapping_requests_coalesce_into_one_follow_up_run(self) -> None:
        cache = StatusCache()
        dispatcher = MainLoopDispatcher()
        runner = _GatedRunner(
            [
                StatusRunResult(0, "M  first.txt\n", ""),
                StatusRunResult(0, "M  second.txt\n", ""),
            ]
        )
        fetcher = StatusFetcher(cache, dispatcher, run_status=runner)
        calls: list[int] = []

        first = fetcher.fetch(ROOT, lambda: calls.append(1))
        self.assertTrue(runner.started.acquire(timeout=1.0))
        second = fetcher.fetch(ROOT, lambda: calls.append(2))
        third = fetcher.fetch(ROOT, lambda: calls.append(3))
        self.assertTrue(fetcher.in_flight(ROOT))

        runner.release.release()
        self.assertTrue(_drain_until(dispatcher, first.done))
        self.assertEqual(calls, [1])
        self.assertEqual(cache.get(ROOT, "first.txt"), "M ")
        self.assertFalse(second.done())

        self.assertTrue(runner.started.acquire(timeout=1.0))
        runner.release.release()
        self.assertTrue(_drain_until(dispatcher, lambda: second.done() and third.done()))

        self.assertEqual(runner.calls, 2)
        self.assertEqual(fetcher.runs_started, 2)
        self.assertEqual(calls, [1, 2, 3])
        self.assertIsNone(cache.get(ROOT, "first.txt"))
        self.assertEqual(cache.get(ROOT, "second.txt"), "M ")
        self.assertFalse(fetcher.busy())

    def test_completion_after_clear_is_discarded_but_still_calls_back(self) -> None:
        cache = StatusCache()
        dispatcher = MainLoopDispatcher()
        runner = _GatedRunner([StatusRunResult(0, "M  stale.txt\n", "")])
        fetcher = StatusFetcher(cache, dispatcher, run_status=runner)
        calls: list[str] = []

        handle = fetcher.fetch(ROOT, lambda: calls.append("done"))
        self.assertTrue(runner.started.acquire(timeout=1.0))
        cache.clear_all()
        runner.release.release()

        self.assertTrue(_drain_until(dispatcher, handle.done))
        self.assertEqual(calls, ["done"])
        self.assertFalse(cache.has_root(ROOT))
        assert handle.outcome is not None
        self.assertTrue(handle.outcome.stale)

    def test_request_queued_before_clear_is_resolved_stale_without_running(self) -> None:
        cache = StatusCache()
        dispatcher = MainLoopDispatcher()
        runner = _GatedRunner([StatusRunResult(0, "M  stale.txt\n", "")])
        fetcher = StatusFetcher(cache, dispatcher, run_status=runner)
        calls: list[str] = []

        first = fetcher.fetch(ROOT, lambda: calls.append("first"))
        self.assertTrue(runner.started.acquire(timeout=1.0))
        queued = fetcher.fetch(ROOT, lambda: calls.append("queued"))
        cache.clear_all()
        runner.release.release()

        self.assertTrue(_drain_until(dispatcher, lambda: first.done() and queued.done()))
        self.assertEqual(calls, ["first", "queued"])
        self.assertEqual(runner.calls, 1)
        self.assertEqual(fetcher.runs_started, 1)
        self.assertFalse(cache.has_root(ROOT))
        self.assertFalse(fetcher.busy())
        assert queued.outcome is not None
        self.assertTrue(queued.outcome.stale)
        self.assertFalse(queued.outcome.ok)

    def test_request_queued_after_clear_still_runs(self) -> None:
        cache = StatusCache()
        dispatcher = MainLoopDispatcher()
        runner = _GatedRunner(
            [
                StatusRunResult(0, "M  stale.txt\n", ""),
                StatusRunResult(0, "M  fresh.txt\n", ""),
            ]
        )
        fetcher = StatusFetcher(cache, dispatcher, run_status=runner)

        first = fetcher.fetch(ROOT)
        self.assertTrue(runner.started.acquire(timeout=1.0))
        cache.clear_all()
        second = fetcher.fetch(ROOT)
        runner.release.release()
        self.assertTrue(_drain_until(dispatcher, first.done))
        self.assertFalse(cache.has_root(ROOT))

        self.assertTrue(runner.started.acquire(timeout=1.0))
        runner.release.release()
        self.assertTrue(_drain_until(dispatcher, second.done))

        self.assertEqual(runner.calls, 2)
        self.assertIsNone(cache.get(ROOT, "stale.txt"))
        self.assertEqual(cache.get(ROOT, "fresh.txt"), "M ")
        self.assertFalse(fetcher.busy())

    def test_unexpected_runner_error_fails_fetch_and_frees_root(self) -> None:
        cache = StatusCache()
        dispatcher = MainLoopDispatcher()
        attempts: list[Path] = []

        def flaky(root: Path) -> StatusRunResult:
            attempts.append(root)
            if len(attempts) == 1:
                raise ValueError("bad output")
            return StatusRunResult(0, "?? later.txt\n", "")

        fetcher = StatusFetcher(cache, dispatcher, run_status=flaky)
        calls: list[str] = []
        with self.assertLogs("vcstatus.fetch", level="WARNING"):
            handle = fetcher.fetch(ROOT, lambda: calls.append("done"))
            self.assertTrue(_drain_until(dispatcher, handle.done))

        self.assertEqual(calls, ["done"])
        assert handle.outcome is not None
        self.assertFalse(handle.outcome.ok)
        self.assertIn("ValueError", handle.outcome.error or "")
        self.assertIs(cache.root_state(ROOT), RootState.ERROR)
        self.assertFalse(fetcher.busy())

        retry = fetcher.fetch(ROOT)
        self.assertTrue(_drain_until(dispatcher, retry.done))
        self.assertEqual(cache.get(ROOT, "later.txt"), "??")
        self.assertIs(cache.root_state(ROOT), RootState.CLEAN)

    def test_failing_callback_does_not_block_other_callbacks(self) -> None:
        cache = StatusCache()
        dispatcher = MainLoopDispatcher()
        runner = _GatedRunner(
            [
                StatusRunResult(0, "", ""),
                StatusRunResult(0, "", ""),
            ]
        )
        fetcher = StatusFetcher(cache, dispatcher, run_status=runner)
        calls: list[str] = []

        def boom() -> None:
            raise RuntimeError("sink failed")

        first = fetcher.fetch(ROOT)
        self.assertTrue(runner.started.acquire(timeout=1.0))
        fetcher.fetch(ROOT, boom)
        last = fetcher.fetch(ROOT, lambda: calls.append("ok"))
        runner.release.release()
        self.assertTrue(_drain_until(dispatcher, first.done))
        self.assertTrue(runner.started.acquire(timeout=1.0))
        runner.release.release()

        with self.assertLogs("vcstatus.fetch", level="ERROR"):
            self.assertTrue(_drain_until(dispatcher, last.done))
        self.assertEqual(calls, ["ok"])


if __name__ == "__main__":
    unittest.main()
