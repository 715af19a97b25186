"""Public package surface for vcstatus.

Exports the git status service, its config, and the category mapper.
``main`` lazily imports the CLI so library imports stay lightweight.
"""

from __future__ import annotations

from .cache import RootState
from .categories import Category, highlight_for
from .config import GitStatusConfig
from .service import GitStatusService


def main(*args, **kwargs):
    """Lazily import CLI entrypoint to keep package imports lightweight."""
    from .cli import main as _main

    return _main(*args, **kwargs)


__all__ = [
    "Category",
    "GitStatusConfig",
    "GitStatusService",
    "RootState",
    "highlight_for",
    "main",
]
