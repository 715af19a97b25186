"""Parser for ``git status --porcelain`` output.

Turns newline-delimited status records into ``{relative_path: code}``.
Malformed lines are skipped; parsing never raises.
"""

from __future__ import annotations

import logging

RENAME_SEPARATOR = " -> "
UNTRACKED_CODE = "??"

logger = logging.getLogger(__name__)


def _record_path(path_text: str) -> str:
    """Keep only the destination of ``old -> new`` rename/copy records."""
    if RENAME_SEPARATOR not in path_text:
        return path_text
    return path_text.rsplit(RENAME_SEPARATOR, 1)[1]


def parse(raw_output: str) -> dict[str, str]:
    """Parse porcelain v1 text into a map of repo-relative path to status code.

    Each usable line is ``XY PATH``: two status characters, one separator and
    the path. Lines shorter than three characters are ignored.
    """
    status: dict[str, str] = {}
    for line in raw_output.split("\n"):
        if not line:
            continue
        if len(line) < 3:
            logger.debug("Skipping short porcelain line: %r", line)
            continue
        rel_path = _record_path(line[3:])
        if not rel_path:
            logger.debug("Skipping porcelain line without a path: %r", line)
            continue
        status[rel_path] = line[:2]
    return status


__all__ = ["RENAME_SEPARATOR", "UNTRACKED_CODE", "parse"]
