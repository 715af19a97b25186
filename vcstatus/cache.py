"""In-memory status cache keyed by repository root.

Maps ``root -> {relative_path: status_code}`` plus a per-root fetch state.
Only the main loop mutates it, so no locking happens here.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path


class RootState(Enum):
    """Freshness of one root's cached map.

    ``CLEAN`` means the last fetch succeeded, whether or not it found changes.
    """

    PENDING = "pending"
    CLEAN = "clean"
    ERROR = "error"


@dataclass
class _RootEntry:
    statuses: dict[str, str] = field(default_factory=dict)
    state: RootState = RootState.PENDING
    error: str | None = None


class StatusCache:
    """Per-root status maps with "unknown / pending / known" semantics.

    A root missing from the cache has never been fetched. A root with an empty
    map is either clean or its last fetch failed; ``get`` treats both alike and
    only ``root_state`` tells them apart.
    """

    def __init__(self) -> None:
        self._entries: dict[Path, _RootEntry] = {}
        self._root_epochs: dict[Path, int] = {}
        self.generation = 0

    def get(self, root: Path, rel_path: str) -> str | None:
        entry = self._entries.get(root)
        if entry is None:
            return None
        return entry.statuses.get(rel_path)

    def has_root(self, root: Path) -> bool:
        return root in self._entries

    def register(self, root: Path) -> None:
        """Insert an empty pending map for ``root`` unless one exists."""
        self._entries.setdefault(root, _RootEntry())

    def set(self, root: Path, statuses: dict[str, str]) -> None:
        """Replace the whole map for ``root``; there is no per-key merge."""
        self._entries[root] = _RootEntry(statuses=dict(statuses), state=RootState.CLEAN)

    def mark_failed(self, root: Path, message: str) -> None:
        """Record a failed fetch as an empty map in the error state."""
        self._entries[root] = _RootEntry(state=RootState.ERROR, error=message)

    def clear_root(self, root: Path) -> None:
        self._entries.pop(root, None)
        self._root_epochs[root] = self._root_epochs.get(root, 0) + 1

    def clear_all(self) -> None:
        self._entries.clear()
        self.generation += 1

    def token(self, root: Path) -> tuple[int, int]:
        """Return a value that changes whenever ``root`` is cleared.

        Fetch runs capture it when they start; a completion whose token no
        longer matches is stale and must not be written back.
        """
        return (self.generation, self._root_epochs.get(root, 0))

    def roots(self) -> set[Path]:
        return set(self._entries)

    def entries(self, root: Path) -> list[tuple[str, str]]:
        """Return ``(relative_path, code)`` pairs sorted by path."""
        entry = self._entries.get(root)
        if entry is None:
            return []
        return sorted(entry.statuses.items())

    def root_state(self, root: Path) -> RootState | None:
        entry = self._entries.get(root)
        return entry.state if entry is not None else None

    def error_message(self, root: Path) -> str | None:
        entry = self._entries.get(root)
        return entry.error if entry is not None else None

    def __len__(self) -> int:
        return len(self._entries)


__all__ = ["RootState", "StatusCache"]
