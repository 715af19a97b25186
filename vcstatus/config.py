"""Git-status configuration and its persisted JSON form.

``GitStatusConfig`` is what ``GitStatusService.setup`` consumes. Stored
preferences live under the platform user-config directory; malformed or
missing files fall back to defaults.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from platformdirs import user_config_dir

APP_NAME = "vcstatus"
CONFIG_FILENAME = "config.json"
CONFIG_PATH = Path(user_config_dir(APP_NAME, appauthor=False)) / CONFIG_FILENAME
CONFIG_SECTION = "git_status"

DEFAULT_UPDATE_INTERVAL_MS = 3000


@dataclass(frozen=True)
class GitStatusConfig:
    """Enable flag plus periodic refresh interval in milliseconds."""

    enabled: bool = False
    update_interval: int = DEFAULT_UPDATE_INTERVAL_MS

    @classmethod
    def from_mapping(cls, data: Mapping[str, object] | None) -> GitStatusConfig:
        """Build a config from loosely typed data.

        Only a real boolean is accepted for ``enabled``; ``update_interval``
        must be a positive integer (booleans rejected). Anything else falls back
        to the default for that field.
        """
        if not data:
            return cls()
        enabled = data.get("enabled")
        interval = data.get("update_interval")
        return cls(
            enabled=enabled if isinstance(enabled, bool) else False,
            update_interval=_coerce_interval(interval),
        )

    def to_mapping(self) -> dict[str, object]:
        return {"enabled": self.enabled, "update_interval": self.update_interval}


def _coerce_interval(value: object) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        return DEFAULT_UPDATE_INTERVAL_MS
    return value


def load_config() -> dict[str, object]:
    """Load the persisted JSON object, or ``{}`` when unusable."""
    try:
        data = json.loads(CONFIG_PATH.read_text(encoding="utf-8"))
    except Exception:
        return {}
    return data if isinstance(data, dict) else {}


def save_config(data: dict[str, object]) -> None:
    """Persist config data as pretty-printed JSON, ignoring write errors."""
    try:
        CONFIG_PATH.parent.mkdir(parents=True, exist_ok=True)
        CONFIG_PATH.write_text(json.dumps(data, indent=2) + "\n", encoding="utf-8")
    except Exception:
        pass


def load_git_status_config(default: GitStatusConfig | None = None) -> GitStatusConfig:
    """Load stored git-status settings, or ``default`` when none are stored."""
    section = load_config().get(CONFIG_SECTION)
    if not isinstance(section, dict):
        return default if default is not None else GitStatusConfig()
    return GitStatusConfig.from_mapping(section)


def save_git_status_config(config: GitStatusConfig) -> None:
    data = load_config()
    data[CONFIG_SECTION] = config.to_mapping()
    save_config(data)


__all__ = [
    "CONFIG_PATH",
    "DEFAULT_UPDATE_INTERVAL_MS",
    "GitStatusConfig",
    "load_config",
    "load_git_status_config",
    "save_config",
    "save_git_status_config",
]
