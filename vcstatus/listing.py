"""Directory listing rows with git status badges.

This is the consumer side of the service: every row asks ``get_status`` and
paints the returned code with its category colour.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from .categories import category_sgr, highlight_for
from .service import GitStatusService

DIR_COLOR = "\033[1;34m"
RESET = "\033[0m"


@dataclass(frozen=True)
class ListingEntry:
    path: Path
    is_dir: bool


def list_directory(directory: Path, show_hidden: bool = False) -> list[ListingEntry]:
    """Return directory children, directories first, case-insensitively sorted."""
    entries: list[ListingEntry] = []
    try:
        with os.scandir(directory) as it:
            for child in it:
                if not show_hidden and child.name.startswith("."):
                    continue
                try:
                    is_dir = child.is_dir()
                except OSError:
                    is_dir = False
                entries.append(ListingEntry(path=Path(child.path), is_dir=is_dir))
    except OSError:
        return []
    entries.sort(key=lambda entry: (not entry.is_dir, entry.path.name.casefold(), entry.path.name))
    return entries


def format_status_badge(code: str | None, style: str = "monokai", no_color: bool = False) -> str:
    """Render ``code`` as a `` [XY]`` badge, coloured by its category."""
    if code is None:
        return ""
    badge = f"[{code}]"
    category = highlight_for(code)
    if no_color or category is None:
        return " " + badge
    return f" {category_sgr(category, style)}{badge}{RESET}"


def format_listing_row(
    entry: ListingEntry,
    code: str | None,
    style: str = "monokai",
    no_color: bool = False,
) -> str:
    name = entry.path.name + ("/" if entry.is_dir else "")
    if entry.is_dir and not no_color:
        name = f"{DIR_COLOR}{name}{RESET}"
    return name + format_status_badge(code, style, no_color)


def render_listing(
    service: GitStatusService,
    directory: Path,
    *,
    show_hidden: bool = False,
    style: str = "monokai",
    no_color: bool = False,
) -> list[str]:
    """Build one display row per child of ``directory``."""
    rows: list[str] = []
    for entry in list_directory(directory, show_hidden=show_hidden):
        code = service.get_status(entry.path, is_directory=entry.is_dir)
        rows.append(format_listing_row(entry, code, style=style, no_color=no_color))
    return rows


__all__ = [
    "ListingEntry",
    "format_listing_row",
    "format_status_badge",
    "list_directory",
    "render_listing",
]
