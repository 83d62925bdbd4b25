"""CLI entry point for wumon."""

from __future__ import annotations

import argparse
import json
import logging
import sys
import threading
from dataclasses import asdict
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any

from wumon import __version__

if TYPE_CHECKING:
    from wumon.analysis.phase_detector import PhaseEvent
    from wumon.config import ConfigHolder


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="wumon",
        description="Live phase tracking for Windows Update activity.",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"wumon {__version__}",
    )

    subparsers = parser.add_subparsers(dest="command")

    monitor = subparsers.add_parser(
        "monitor", help="Launch the live dashboard TUI (default)"
    )
    _add_monitor_args(monitor)

    watch = subparsers.add_parser(
        "watch", help="Print one JSON line per phase event (headless)"
    )
    _add_monitor_args(watch)
    watch.add_argument(
        "--count",
        type=int,
        default=None,
        metavar="N",
        help="Exit after N events",
    )

    history = subparsers.add_parser(
        "history", help="Show a historical CSV written by the agent"
    )
    history.add_argument("directory", type=Path, help="Directory holding the CSV")
    history.add_argument("file_name", help="CSV file name inside DIRECTORY")

    subparsers.add_parser(
        "speedup", help="Restart the Windows Update services (elevated)"
    )

    # Monitor args on the top-level parser so bare `wumon --config X` works
    _add_monitor_args(parser)

    return parser


def _add_monitor_args(parser: argparse.ArgumentParser) -> None:
    """Add live-monitoring arguments to a parser."""
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        metavar="PATH",
        help="Path to config TOML file",
    )
    parser.add_argument(
        "--state-file",
        type=Path,
        default=None,
        metavar="PATH",
        help="State document to watch (default: <tempdir>/WinUpdateMonState/live.json)",
    )
    parser.add_argument(
        "--poll-interval",
        type=float,
        default=None,
        metavar="SECONDS",
        help="Fallback poll interval in seconds (0.1-60)",
    )
    parser.add_argument(
        "--accessible",
        action="store_true",
        default=False,
        help="Enable accessible mode (text labels instead of symbols)",
    )
    parser.add_argument(
        "--log-file",
        type=Path,
        default=None,
        metavar="FILE",
        help="Write log output to FILE",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        default=False,
        help="Debug logging",
    )


def _configure_logging(args: argparse.Namespace, *, interactive: bool) -> None:
    level = logging.DEBUG if getattr(args, "verbose", False) else logging.WARNING
    log_file: Path | None = getattr(args, "log_file", None)
    if log_file is not None:
        logging.basicConfig(
            level=level,
            filename=str(log_file),
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )
    elif interactive:
        # stderr output would tear the TUI
        logging.getLogger().addHandler(logging.NullHandler())
    else:
        logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")


def _load_config_holder(args: argparse.Namespace) -> ConfigHolder:
    from wumon.config import ConfigHolder
    from wumon.source.base import ConfigError

    # CLI args override the file and survive SIGHUP reloads
    overrides: dict[str, dict[str, Any]] = {}
    if args.state_file is not None:
        overrides.setdefault("source", {})["path"] = args.state_file
    if args.poll_interval is not None:
        overrides.setdefault("watcher", {})["poll_interval"] = args.poll_interval
    if args.accessible:
        overrides.setdefault("display", {})["accessible"] = True

    try:
        return ConfigHolder(path=args.config, overrides=overrides)
    except ConfigError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        raise SystemExit(1) from None


def event_to_json(event: PhaseEvent) -> str:
    """Serialize a phase event to a single-line JSON string."""

    def _default(o: Any) -> Any:
        if isinstance(o, Enum):
            return o.value
        raise TypeError(f"Cannot serialize {type(o).__name__}")

    return json.dumps(asdict(event), default=_default, separators=(",", ":"))


def _run_monitor(args: argparse.Namespace) -> None:
    """Run the TUI dashboard."""
    _configure_logging(args, interactive=True)
    config_holder = _load_config_holder(args)
    config_holder.install_signal_handler()

    from wumon.ui.app import WumonApp

    app = WumonApp(config_holder=config_holder)
    app.run()


def _run_watch(args: argparse.Namespace) -> None:
    """Print phase events as JSON lines until interrupted or --count is reached."""
    _configure_logging(args, interactive=False)
    config_holder = _load_config_holder(args)

    from wumon.monitor import LiveMonitor

    monitor = LiveMonitor.from_config(config_holder.config)
    done = threading.Event()
    remaining = [args.count]

    def _print_event(event: PhaseEvent) -> None:
        if done.is_set():
            return
        print(event_to_json(event), flush=True)
        if remaining[0] is not None:
            remaining[0] -= 1
            if remaining[0] <= 0:
                done.set()

    monitor.subscribe(_print_event)
    monitor.start()
    try:
        done.wait()
    except KeyboardInterrupt:
        pass
    finally:
        monitor.stop()


def _run_history(args: argparse.Namespace) -> None:
    """Print a historical CSV as a table."""
    from rich.console import Console
    from rich.markup import escape
    from rich.table import Table

    from wumon.history import read_historical_csv
    from wumon.sanitize import sanitize_text

    result = read_historical_csv(args.directory, args.file_name)
    if not result.ok:
        print(f"Error: {result.error}", file=sys.stderr)
        raise SystemExit(1)

    console = Console()
    if not result.rows:
        console.print("No rows.")
        return

    table = Table(title=args.file_name)
    for header in result.rows[0]:
        table.add_column(escape(sanitize_text(header)))
    for row in result.rows:
        table.add_row(*(escape(sanitize_text(v)) for v in row.values()))
    console.print(table)


def _run_speedup(args: argparse.Namespace) -> None:
    from wumon.speedup import speed_up_updates

    result = speed_up_updates()
    if result.success:
        print(f"✓ {result.message}")
        return
    print(f"✗ {result.message}", file=sys.stderr)
    raise SystemExit(1)


def main(argv: list[str] | None = None) -> None:
    """Entry point for the wumon CLI."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command == "watch":
        _run_watch(args)
    elif args.command == "history":
        _run_history(args)
    elif args.command == "speedup":
        _run_speedup(args)
    else:
        # Default to monitor (both "monitor" subcommand and no subcommand)
        _run_monitor(args)
