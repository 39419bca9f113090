"""
Command line entry point for the gallery scanner.
"""

import argparse
import faulthandler
import json
import sys
import threading
import traceback
from datetime import datetime
from pathlib import Path

from config import ConfigProvider, ScanConfigurationError, ensure_directories
from dashboard.server import GalleryServer
from orchestrator import ScanFailedError, ScanLockError, ScanOrchestrator
from utils import setup_logging


def _enable_crash_diagnostics(logs_dir: Path) -> None:
    logs_dir.mkdir(parents=True, exist_ok=True)
    crash_log = logs_dir / f"crash_traceback_{datetime.utcnow().strftime('%Y%m%d')}.log"
    crash_stream = crash_log.open("a", encoding="utf-8")
    faulthandler.enable(file=crash_stream, all_threads=True)

    def _hook(exc_type, exc, tb):
        with crash_log.open("a", encoding="utf-8") as handle:
            handle.write("\n")
            handle.write(datetime.utcnow().isoformat() + " Unhandled exception\n")
            traceback.print_exception(exc_type, exc, tb, file=handle)
        sys.__excepthook__(exc_type, exc, tb)

    sys.excepthook = _hook

    def _thread_hook(args):
        _hook(args.exc_type, args.exc_value, args.exc_traceback)

    threading.excepthook = _thread_hook


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="gallery", description="Media scanner and thumbnail server")
    parser.add_argument("--config", type=Path, default=None, help="Path to config.yaml")
    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("scan", help="Run one scan in the foreground")
    commands.add_parser("serve", help="Run the HTTP server")
    commands.add_parser("status", help="Print the persisted scan state")

    clear = commands.add_parser("clear-lock", help="Remove a scan lock left by a dead scan")
    clear.add_argument("--force", action="store_true", help="Remove the lock even if its owner is alive")

    dirs = commands.add_parser("media-dirs", help="Show or replace the configured media roots")
    dirs.add_argument("roots", nargs="*", help="New media roots, in order")
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    provider = ConfigProvider(args.config)
    try:
        settings = provider.current()
    except FileNotFoundError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 2

    ensure_directories([settings.state_dir, settings.logs_dir])
    _enable_crash_diagnostics(settings.logs_dir)
    loggers = setup_logging(settings.logs_dir)
    logger = loggers["main"]
    orchestrator = ScanOrchestrator(
        provider,
        logger=loggers["scan"],
        performance_logger=loggers["performance"],
    )

    if args.command == "scan":
        try:
            result = orchestrator.start_scan(wait=True)
        except ScanConfigurationError as exc:
            logger.error("%s", exc)
            return 2
        except ScanFailedError:
            return 1
        if not result.accepted:
            state = result.state
            logger.error("A scan is already running (%s/%s files)", state.scanned, state.total)
            return 3
        print(json.dumps(result.state.to_dict(), indent=2))
        return 0

    if args.command == "serve":
        config = provider.config()
        server = GalleryServer(
            provider,
            orchestrator,
            host=str(config.get("server", "host", default="127.0.0.1")),
            port=int(config.get("server", "port", default=8765)),
            heartbeat_seconds=float(config.get("server", "heartbeat_seconds", default=15)),
            logger=logger,
        )
        server.serve_forever()
        return 0

    if args.command == "status":
        print(json.dumps(orchestrator.get_scan_state().to_dict(), indent=2))
        return 0

    if args.command == "clear-lock":
        try:
            removed = orchestrator.clear_lock(force=args.force)
        except ScanLockError as exc:
            logger.error("%s", exc)
            return 3
        print("Scan lock removed." if removed else "No scan lock present.")
        return 0

    if args.command == "media-dirs":
        if args.roots:
            try:
                roots = provider.set_media_roots(args.roots)
            except ScanConfigurationError as exc:
                logger.error("%s", exc)
                return 2
        else:
            roots = settings.media_roots
        for root in roots:
            print(root)
        return 0
    return 2


if __name__ == "__main__":
    raise SystemExit(main())
