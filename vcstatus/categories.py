"""Status-code to highlight-category mapping.

``highlight_for`` applies a fixed precedence: index column, then worktree
column, then the untracked marker. Categories link to Pygments token types so
badge colours follow the active Pygments style.
"""

from __future__ import annotations

from enum import Enum

from pygments.token import Comment, Generic, Token
from pygments.util import ClassNotFound

from .porcelain import UNTRACKED_CODE

TokenType = type(Token)


class Category(Enum):
    ADDED = "added"
    MODIFIED = "modified"
    DELETED = "deleted"
    RENAMED = "renamed"
    COPIED = "copied"
    UNTRACKED = "untracked"


_INDEX_CATEGORIES = {
    "A": Category.ADDED,
    "M": Category.MODIFIED,
    "D": Category.DELETED,
    "R": Category.RENAMED,
    "C": Category.COPIED,
}
_WORKTREE_CATEGORIES = {
    "M": Category.MODIFIED,
    "D": Category.DELETED,
}

CATEGORY_TOKENS: dict[Category, TokenType] = {
    Category.ADDED: Generic.Inserted,
    Category.MODIFIED: Generic.Strong,
    Category.DELETED: Generic.Deleted,
    Category.RENAMED: Generic.Strong,
    Category.COPIED: Generic.Inserted,
    Category.UNTRACKED: Comment,
}

# Used when the style leaves the linked token uncoloured.
FALLBACK_SGR: dict[Category, str] = {
    Category.ADDED: "\033[38;5;42m",
    Category.MODIFIED: "\033[38;5;214m",
    Category.DELETED: "\033[38;5;203m",
    Category.RENAMED: "\033[38;5;214m",
    Category.COPIED: "\033[38;5;42m",
    Category.UNTRACKED: "\033[38;5;245m",
}

_SGR_CACHE: dict[tuple[Category, str], str] = {}


def highlight_for(code: str | None) -> Category | None:
    """Map a two-character status code to its highlight category.

    The worktree column overrides the index column, and ``??`` overrides both.
    Codes matching none of the rules map to ``None``.
    """
    if not code:
        return None
    category = _INDEX_CATEGORIES.get(code[0])
    if len(code) > 1:
        category = _WORKTREE_CATEGORIES.get(code[1], category)
    if code == UNTRACKED_CODE:
        category = Category.UNTRACKED
    return category


def _style_color(style_name: str, token: TokenType) -> tuple[str | None, bool]:
    from pygments.styles import get_style_by_name

    try:
        style = get_style_by_name(style_name)
    except ClassNotFound:
        return None, False
    info = style.style_for_token(token)
    return info.get("color"), bool(info.get("bold"))


def category_sgr(category: Category, style_name: str = "monokai") -> str:
    """Return the ANSI SGR prefix used to paint ``category`` badges."""
    key = (category, style_name)
    cached = _SGR_CACHE.get(key)
    if cached is not None:
        return cached

    color, bold = _style_color(style_name, CATEGORY_TOKENS[category])
    if color and len(color) == 6:
        red, green, blue = (int(color[i : i + 2], 16) for i in (0, 2, 4))
        prefix = "1;" if bold else ""
        sgr = f"\033[{prefix}38;2;{red};{green};{blue}m"
    else:
        sgr = FALLBACK_SGR[category]
    _SGR_CACHE[key] = sgr
    return sgr


__all__ = [
    "CATEGORY_TOKENS",
    "Category",
    "FALLBACK_SGR",
    "category_sgr",
    "highlight_for",
]
