"""Command-line front door for vcstatus.

Lists a directory with git status badges. One-shot mode waits for the first
fetch to land and prints; ``--watch`` keeps redrawing on every refresh.
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
import time
from pathlib import Path

from .config import GitStatusConfig, load_git_status_config, save_git_status_config
from .listing import list_directory, render_listing
from .service import GitStatusService

POLL_SECONDS = 0.05
CLEAR_SCREEN = "\033[H\033[2J"

logger = logging.getLogger(__name__)


def _positive_int(value: str) -> int:
    """argparse type for positive integer values."""
    try:
        parsed = int(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"invalid integer value: {value!r}") from exc
    if parsed <= 0:
        raise argparse.ArgumentTypeError("value must be >= 1")
    return parsed


def _positive_float(value: str) -> float:
    try:
        parsed = float(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"invalid number: {value!r}") from exc
    if parsed <= 0:
        raise argparse.ArgumentTypeError("value must be > 0")
    return parsed


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="List a directory with git status badges.")
    parser.add_argument("path", nargs="?", default=None, help="Directory to list. Defaults to current directory.")
    parser.add_argument("--watch", action="store_true", help="Keep the listing live until interrupted.")
    parser.add_argument(
        "--git",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Enable or disable git status (default: stored setting, else enabled).",
    )
    parser.add_argument("--interval", type=_positive_int, default=None, help="Periodic refresh interval in ms.")
    parser.add_argument("--timeout", type=_positive_float, default=5.0, help="Seconds to wait for status in one-shot mode.")
    parser.add_argument("--style", default="monokai", help="Pygments style used for badge colours.")
    parser.add_argument("--no-color", action="store_true", help="Disable color output.")
    parser.add_argument("--all", action="store_true", help="Include hidden entries.")
    parser.add_argument("--save-config", action="store_true", help="Persist --git/--interval as defaults.")
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging verbosity on stderr.",
    )
    return parser


def resolve_config(args: argparse.Namespace) -> GitStatusConfig:
    """Merge CLI overrides onto stored settings."""
    stored = load_git_status_config(default=GitStatusConfig(enabled=True))
    return GitStatusConfig(
        enabled=stored.enabled if args.git is None else args.git,
        update_interval=stored.update_interval if args.interval is None else args.interval,
    )


def _wait_for_fetches(service: GitStatusService, timeout_seconds: float) -> None:
    deadline = time.monotonic() + timeout_seconds
    while time.monotonic() < deadline:
        service.drain()
        if not service.fetcher.busy():
            return
        time.sleep(POLL_SECONDS)
    logger.warning("Timed out after %.1fs waiting for git status", timeout_seconds)


def _mtime_snapshot(directory: Path, show_hidden: bool) -> dict[Path, int]:
    snapshot: dict[Path, int] = {}
    for entry in list_directory(directory, show_hidden=show_hidden):
        try:
            snapshot[entry.path] = entry.path.stat().st_mtime_ns
        except OSError:
            continue
    return snapshot


def run_once(service: GitStatusService, directory: Path, args: argparse.Namespace) -> list[str]:
    """Query, wait for lazily started fetches, then query again."""
    render_kwargs = dict(show_hidden=args.all, style=args.style, no_color=args.no_color)
    render_listing(service, directory, **render_kwargs)
    _wait_for_fetches(service, args.timeout)
    return render_listing(service, directory, **render_kwargs)


def run_watch(service: GitStatusService, directory: Path, args: argparse.Namespace) -> None:
    """Redraw whenever the service requests a refresh or listed files change."""
    render_kwargs = dict(show_hidden=args.all, style=args.style, no_color=args.no_color)
    needs_redraw = True
    snapshot = _mtime_snapshot(directory, args.all)

    def request_refresh(refetch: bool = False) -> None:
        nonlocal needs_redraw
        needs_redraw = True

    service.set_refresh_sink(request_refresh)
    while True:
        service.drain()
        current = _mtime_snapshot(directory, args.all)
        for path, mtime_ns in current.items():
            if snapshot.get(path) != mtime_ns:
                service.notify_saved(path)
        if current.keys() != snapshot.keys():
            needs_redraw = True
        snapshot = current

        if needs_redraw:
            needs_redraw = False
            rows = render_listing(service, directory, **render_kwargs)
            sys.stdout.write(CLEAR_SCREEN + f"{directory}\n" + "".join(f"  {row}\n" for row in rows))
            sys.stdout.flush()
        time.sleep(POLL_SECONDS)


def main(argv: list[str] | None = None) -> int:
    """Parse arguments, set up the service, and list the target directory."""
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )
    if args.no_color is False and os.environ.get("NO_COLOR"):
        args.no_color = True

    directory = Path(args.path or Path.cwd()).absolute()
    if not directory.is_dir():
        raise SystemExit(f"Not a directory: {directory}")

    config = resolve_config(args)
    if args.save_config:
        save_git_status_config(config)

    service = GitStatusService()
    service.setup(config)
    try:
        if args.watch:
            try:
                run_watch(service, directory, args)
            except KeyboardInterrupt:
                pass
            return 0
        for row in run_once(service, directory, args):
            sys.stdout.write(row + "\n")
        return 0
    finally:
        service.shutdown()


if __name__ == "__main__":
    raise SystemExit(main())
