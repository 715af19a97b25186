"""Git status service: setup, queries, and refresh triggers.

One ``GitStatusService`` per host owns the cache, fetcher and refresh timer.
UI code queries it synchronously; fetches complete later on the host loop and
ask the UI to redraw through ``request_refresh(refetch=False)``.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from pathlib import Path, PurePath

from .cache import RootState, StatusCache
from .config import GitStatusConfig
from .dispatch import MainLoopDispatcher
from .fetch import FetchHandle, StatusFetcher, StatusRunResult, run_git_status
from .roots import resolve_root
from .scheduler import DEFAULT_INITIAL_DELAY_MS, PeriodicRefreshScheduler

logger = logging.getLogger(__name__)


def _relative_key(path: Path, root: Path, cwd: Callable[[], Path]) -> str:
    """Return ``path`` as a forward-slash key relative to ``root``.

    Paths outside ``root`` fall back to being relative to the working
    directory, and are used unchanged when that fails too.
    """
    try:
        return path.relative_to(root).as_posix()
    except ValueError:
        pass
    try:
        return path.relative_to(cwd()).as_posix()
    except (OSError, ValueError):
        return path.as_posix()


class GitStatusService:
    """Best-effort, eventually consistent per-file git status.

    ``drain`` must be called regularly from the host's main loop; it is the
    only place cache writes, fetch callbacks and timer ticks run.
    """

    def __init__(
        self,
        request_refresh: Callable[..., None] | None = None,
        *,
        dispatcher: MainLoopDispatcher | None = None,
        run_status: Callable[[Path], StatusRunResult] = run_git_status,
        initial_delay_ms: int = DEFAULT_INITIAL_DELAY_MS,
        cwd: Callable[[], Path] = Path.cwd,
    ) -> None:
        self._request_refresh = request_refresh
        self.dispatcher = dispatcher if dispatcher is not None else MainLoopDispatcher()
        self.cache = StatusCache()
        self.fetcher = StatusFetcher(self.cache, self.dispatcher, run_status=run_status)
        self.config = GitStatusConfig()
        self._initial_delay_ms = initial_delay_ms
        self._cwd = cwd
        self._scheduler: PeriodicRefreshScheduler | None = None

    # Lifecycle

    def setup(self, config: GitStatusConfig | Mapping[str, object] | None = None) -> None:
        """(Re)initialize configuration and the refresh timer.

        Disabling stops the timer and discards the whole cache before
        returning. Enabling replaces any existing timer with a fresh one.
        """
        if not isinstance(config, GitStatusConfig):
            config = GitStatusConfig.from_mapping(config)
        self.config = config
        logger.info(
            "Git status setup: enabled=%s interval=%dms",
            config.enabled,
            config.update_interval,
        )

        self._stop_scheduler()
        if not config.enabled:
            self.cache.clear_all()
            return

        scheduler = PeriodicRefreshScheduler(
            config.update_interval,
            self._refresh_all_roots,
            self.dispatcher,
            initial_delay_ms=self._initial_delay_ms,
        )
        try:
            scheduler.start()
        except RuntimeError:
            logger.error("Failed to start git status refresh timer; periodic refresh disabled", exc_info=True)
            return
        self._scheduler = scheduler

    def set_refresh_sink(self, request_refresh: Callable[..., None] | None) -> None:
        """Replace the callback used to ask the UI for a redraw."""
        self._request_refresh = request_refresh

    def shutdown(self) -> None:
        """Stop periodic refresh and forget all cached state."""
        self.setup(GitStatusConfig(enabled=False, update_interval=self.config.update_interval))

    def drain(self) -> int:
        """Run pending completions and ticks on the calling (main) thread."""
        return self.dispatcher.drain()

    @property
    def scheduler_running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    def _stop_scheduler(self) -> None:
        if self._scheduler is not None:
            self._scheduler.stop()
            self._scheduler = None

    # Queries

    def is_enabled(self) -> bool:
        return self.config.enabled

    def get_status(self, path: Path | str, is_directory: bool = False) -> str | None:
        """Return the cached status code for ``path``.

        The first query inside an unseen repository registers it, starts a
        fetch and returns ``None``; callers re-query after the refresh request.
        Directories without their own entry report the status of the first
        changed path beneath them.
        """
        if not self.config.enabled:
            return None

        target = Path(path).absolute()
        root = resolve_root(target)
        if root is None:
            logger.debug("No git root found for %s", target)
            return None

        if not self.cache.has_root(root):
            logger.info("Initializing git status cache for %s", root)
            self.cache.register(root)
            self.fetcher.fetch(root, self._render_only_refresh)
            return None

        rel_path = _relative_key(target, root, self._cwd)
        status = self.cache.get(root, rel_path)
        if status is not None or not is_directory:
            return status
        return self._directory_status(root, rel_path)

    def _directory_status(self, root: Path, rel_dir: str) -> str | None:
        # The repository root itself (".") covers every entry in the map.
        prefix = "" if rel_dir == "." else rel_dir + "/"
        for rel_path, code in self.cache.entries(root):
            if rel_path.startswith(prefix):
                return code
        return None

    def root_state(self, path: Path | str) -> RootState | None:
        """Return the fetch state of the repository containing ``path``."""
        if not self.config.enabled:
            return None
        root = resolve_root(Path(path).absolute())
        if root is None:
            return None
        return self.cache.root_state(root)

    # Refresh triggers

    def refresh(self) -> FetchHandle | None:
        """Fetch status for the working directory's repository right away."""
        if not self.config.enabled:
            return None
        try:
            cwd = self._cwd()
        except OSError as exc:
            logger.debug("Cannot refresh without a working directory: %s", exc)
            return None
        root = resolve_root(cwd)
        if root is None:
            return None
        return self.fetcher.fetch(root, self._render_only_refresh)

    def notify_saved(self, path: Path | str) -> FetchHandle | None:
        """Save-event hook: refetch the file's repository if it is cached."""
        if not self.config.enabled:
            return None
        root = resolve_root(Path(path).absolute())
        if root is None or not self.cache.has_root(root):
            return None
        logger.debug("Saved %s; refreshing %s", path, root)
        return self.fetcher.fetch(root, self._render_only_refresh)

    def clear_cache(self) -> None:
        """Forget every cached root; the refresh timer keeps running."""
        self.cache.clear_all()

    def _refresh_all_roots(self) -> None:
        if not self.config.enabled:
            return
        roots = sorted(self.cache.roots(), key=PurePath.as_posix)
        if not roots:
            return
        logger.debug("Timer update: refreshing %d repositories", len(roots))
        for root in roots:
            self.fetcher.fetch(root, self._render_only_refresh)

    def _render_only_refresh(self) -> None:
        if self._request_refresh is None:
            return
        self._request_refresh(refetch=False)


__all__ = ["GitStatusService"]
