"""Repository-root discovery.

Walks parent directories looking for a ``.git`` marker.
Nothing is cached: every lookup re-walks the filesystem so results stay fresh.
"""

from __future__ import annotations

import logging
from pathlib import Path

GIT_MARKER = ".git"

logger = logging.getLogger(__name__)


def _start_directory(path: Path) -> Path:
    """Return the directory the upward walk starts from."""
    try:
        if path.is_dir():
            return path
    except OSError:
        pass
    return path.parent


def resolve_root(path: Path | str) -> Path | None:
    """Return the nearest ancestor of ``path`` that holds a ``.git`` marker.

    ``path`` itself is checked first when it is a directory. A ``.git`` file
    (linked worktrees, submodules) counts as a marker just like a directory.
    Returns ``None`` when no ancestor qualifies or the walk hits a stat error.
    """
    current = _start_directory(Path(path).absolute())
    while True:
        try:
            if (current / GIT_MARKER).exists():
                return current
        except OSError as exc:
            logger.debug("Stopping root search at %s: %s", current, exc)
            return None
        parent = current.parent
        if parent == current:
            return None
        current = parent


__all__ = ["GIT_MARKER", "resolve_root"]
