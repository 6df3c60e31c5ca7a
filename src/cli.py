#!/usr/bin/env python3
"""
CLI for the deployment scanner.

Usage:
    python -m src.cli run --dir ./deployments --interval 5000
    python -m src.cli scan --dir ./deployments
    python -m src.cli status --dir ./deployments
"""

import argparse
import logging
import signal
import sys
import time
from pathlib import Path
from typing import Dict, List, Optional

from dotenv import load_dotenv

from src.deployment_scanner import (
    DeploymentScanner,
    HttpManagementClient,
    ScannerConfig,
    ScannerConfigError,
    ScannerError,
)
from src.deployment_scanner.markers import classify, should_recurse


LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"

logger = logging.getLogger("cli")


def setup_logging(verbose: bool = False, log_file: Optional[Path] = None) -> None:
    """Configure console logging and an optional debug log file."""
    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATEFMT)

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG if verbose or log_file else logging.INFO)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.DEBUG if verbose else logging.INFO)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, mode="a", encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)


class GracefulShutdown:
    """Handle graceful shutdown on SIGINT/SIGTERM."""

    def __init__(self):
        self.should_exit = False
        signal.signal(signal.SIGINT, self._handler)
        signal.signal(signal.SIGTERM, self._handler)

    def _handler(self, signum, frame):
        logger.info("Received shutdown signal, stopping...")
        self.should_exit = True


def build_config(args) -> ScannerConfig:
    """Environment-backed config with command line overrides."""
    return ScannerConfig.from_env(
        deployment_dir=Path(args.dir).resolve() if args.dir else None,
        scan_interval_ms=getattr(args, "interval", None),
        management_url=args.url,
        management_username=args.user,
        management_password=args.password,
        max_retry_rounds=getattr(args, "max_retry_rounds", None),
        watch_events=True if getattr(args, "watch_events", False) else None,
    )


def build_client(config: ScannerConfig) -> HttpManagementClient:
    return HttpManagementClient(
        base_url=config.management_url,
        username=config.management_username,
        password=config.management_password,
        timeout=config.request_timeout_seconds,
    )


def collect_markers(directory: Path) -> Dict[str, List[str]]:
    """Map each deployment name found under ``directory`` to its marker suffixes."""
    found: Dict[str, List[str]] = {}

    def walk(current: Path) -> None:
        for child in sorted(current.iterdir()):
            marker = classify(child.name)
            if marker is not None:
                found.setdefault(marker.deployment_name, []).append(marker.marker_type.suffix)
            elif should_recurse(child):
                walk(child)

    walk(directory)
    return found


def cmd_run(args) -> int:
    """Run the scanner until interrupted."""
    config = build_config(args)
    logger.info("Starting deployment scanner...")

    shutdown = GracefulShutdown()

    with build_client(config) as client:
        try:
            scanner = DeploymentScanner(config, client, client)
        except ScannerError as e:
            logger.error(f"Cannot start scanner: {e}")
            return 1

        with scanner:
            if config.scan_enabled:
                scanner.start_scanner()
            logger.info(f"Deployment directory: {scanner.deployment_dir}")
            logger.info(f"Scan interval: {scanner.scan_interval_ms} ms")
            logger.info(f"Management endpoint: {client.base_url}")
            logger.info("Press Ctrl+C to stop")

            while not shutdown.should_exit:
                time.sleep(0.5)

    logger.info("Scanner stopped")
    return 0


def cmd_scan(args) -> int:
    """Run exactly one scan pass."""
    config = build_config(args)
    config.scan_interval_ms = 0

    with build_client(config) as client:
        try:
            scanner = DeploymentScanner(config, client, client)
        except ScannerError as e:
            logger.error(f"Cannot start scanner: {e}")
            return 1

        with scanner:
            scanner.start_scanner()
            if not scanner.wait_for_scheduled_scan(timeout=args.timeout):
                logger.error(f"Scan did not finish within {args.timeout}s")
                return 1
            report = scanner.last_report

    if report is None:
        print("Scan failed, see log for details")
        return 1

    print(f"Tasks:     {report.task_count}")
    print(f"Succeeded: {report.succeeded}")
    print(f"Failed:    {report.failed}")
    print(f"Retried:   {report.retried}")
    print(f"Rounds:    {report.rounds}")
    return 0 if report.failed == 0 else 2


def cmd_status(args) -> int:
    """Show registered deployments and local marker state."""
    config = build_config(args)
    directory = config.deployment_dir
    if not directory.is_dir():
        logger.error(f"Not a directory: {directory}")
        return 1

    markers = collect_markers(directory)

    with build_client(config) as client:
        try:
            registered = client.read_deployment_names()
        except ScannerError as e:
            logger.error(f"Cannot read deployments: {e}")
            registered = None

    print(f"Deployment directory: {directory}")
    if registered is not None:
        print(f"Registered deployments ({len(registered)}):")
        for name in sorted(registered):
            print(f"  - {name}")

    print(f"Local markers ({len(markers)}):")
    for name in sorted(markers):
        print(f"  {name}: {', '.join(markers[name])}")
    return 0


def _add_common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--dir", default=None, help="Deployment directory (or DEPLOYMENT_SCANNER_DIR env)")
    parser.add_argument("--url", default=None, help="Management endpoint URL (default: http://localhost:9990)")
    parser.add_argument("--user", default=None, help="Management user (or DEPLOYMENT_SCANNER_MANAGEMENT_USER env)")
    parser.add_argument("--password", default=None, help="Management password (or DEPLOYMENT_SCANNER_MANAGEMENT_PASSWORD env)")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Filesystem deployment scanner",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Scan every 5 seconds and on marker file events
  python -m src.cli run --dir ./deployments --interval 5000 --watch-events

  # Single pass
  python -m src.cli scan --dir ./deployments

  # Show deployments and markers
  python -m src.cli status --dir ./deployments
        """,
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    parser.add_argument("--log-file", default=None, help="Also write debug logs to this file")

    subparsers = parser.add_subparsers(dest="command", required=True)

    run_parser = subparsers.add_parser("run", help="Run the scanner until interrupted")
    _add_common_arguments(run_parser)
    run_parser.add_argument("--interval", type=int, default=None, help="Scan interval in ms; <= 0 scans once (default: 5000)")
    run_parser.add_argument("--watch-events", action="store_true", help="Also scan on marker file events")
    run_parser.add_argument("--max-retry-rounds", type=int, default=None, help="Give up on steps cancelled this many times")
    run_parser.set_defaults(func=cmd_run)

    scan_parser = subparsers.add_parser("scan", help="Run a single scan pass")
    _add_common_arguments(scan_parser)
    scan_parser.add_argument("--max-retry-rounds", type=int, default=None, help="Give up on steps cancelled this many times")
    scan_parser.add_argument("--timeout", type=float, default=300.0, help="Seconds to wait for the scan (default: 300)")
    scan_parser.set_defaults(func=cmd_scan)

    status_parser = subparsers.add_parser("status", help="Show deployments and marker files")
    _add_common_arguments(status_parser)
    status_parser.set_defaults(func=cmd_status)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    load_dotenv()

    parser = build_parser()
    args = parser.parse_args(argv)

    setup_logging(args.verbose, Path(args.log_file) if args.log_file else None)

    try:
        return args.func(args)
    except ScannerConfigError as e:
        logger.error(f"Invalid configuration: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
