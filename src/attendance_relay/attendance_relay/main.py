from __future__ import annotations

import argparse
import logging
import signal
import sys
import threading
from typing import List, Optional

from dotenv import load_dotenv
from flask import Flask
from werkzeug.serving import make_server

from . import __version__
from .admin.controller import register as register_admin
from .common.logging_setup import configure_logging, flush_logging
from .container import Container, build_container
from .core.exceptions import RelayError
from .settings import RelaySettings, load_settings
from .stores.factory import AttendanceStoreFactory

logger = logging.getLogger(__name__)


def create_app(container: Optional[Container] = None) -> Flask:
    """Admin HTTP app; builds its own container from the environment when none is given."""

    if container is None:
        load_dotenv(override=False)
        container = build_container(load_settings())

    app = Flask(__name__)
    app.config["DEBUG"] = container.settings.debug
    register_admin(app, container)
    return app


class AdminServer:
    """Serves the admin app on a background thread while the relay runs."""

    def __init__(self, app: Flask, host: str, port: int):
        self._server = make_server(host, port, app, threaded=True)
        self._thread = threading.Thread(target=self._server.serve_forever, name="admin-http", daemon=True)

    @property
    def port(self) -> int:
        return self._server.server_port

    def start(self) -> None:
        self._thread.start()

    def stop(self) -> None:
        self._server.shutdown()
        self._thread.join(timeout=5)


def _install_signal_handlers(container: Container) -> None:
    def _signal_handler(signum, frame):
        logger.info("Received signal %s, stopping...", signum)
        container.orchestrator.stop()

    signal.signal(signal.SIGINT, _signal_handler)
    signal.signal(signal.SIGTERM, _signal_handler)


def _print_banner(settings: RelaySettings, mode: str) -> None:
    logger.info("===========================================")
    logger.info("   Attendance Relay %s", __version__)
    logger.info("   %s", mode)
    logger.info("===========================================")
    logger.info("Settings: %s | devices=%d | stores enabled=%d", settings.environment, len(settings.devices), len(settings.enabled_stores))


def run_service(settings: RelaySettings, container: Optional[Container] = None) -> int:
    container = container or build_container(settings)
    orchestrator = container.orchestrator
    _install_signal_handlers(container)
    _print_banner(settings, "REAL-TIME MODE")

    admin_server: Optional[AdminServer] = None
    try:
        orchestrator.start()
        if settings.admin_http_enabled:
            try:
                admin_server = AdminServer(create_app(container), settings.admin_http_host, settings.admin_http_port)
            except OSError as e:
                logger.error("Admin HTTP server could not start: %s", e)
            else:
                admin_server.start()
                logger.info("Admin API listening on %s:%s", settings.admin_http_host, admin_server.port)
        orchestrator.run_forever()
    finally:
        if admin_server is not None:
            admin_server.stop()
        orchestrator.shutdown()
    return 0


def run_batch_sync(settings: RelaySettings, *, delay: float, assume_yes: bool, container: Optional[Container] = None) -> int:
    """Wipe every store and rebuild it from the devices' stored logs."""

    _print_banner(settings, "BATCH SYNC MODE")
    if not assume_yes:
        answer = input("This deletes all attendance logs and work records. Continue? [y/N] ")
        if answer.strip().lower() not in {"y", "yes"}:
            logger.info("Batch sync cancelled")
            return 1

    container = container or build_container(settings)
    orchestrator = container.orchestrator
    try:
        if not container.fanout.initialize(settings.enabled_stores):
            logger.error("No databases enabled. Configure the .env file.")
            return 2
        if not settings.devices:
            logger.error("No devices configured. Configure the .env file.")
            return 2
        container.fleet.connect_all(settings.devices)
        try:
            report = orchestrator.resync(delay=delay)
        except RelayError as e:
            logger.error("Batch sync aborted: %s", e)
            return 2
        logger.info(
            "Batch sync finished: %d record(s) from %d device(s) in %.1fs",
            report.records_replayed,
            report.devices_read,
            (report.finished_at - report.started_at).total_seconds(),
        )
        return 0
    finally:
        orchestrator.shutdown()


def print_db_types() -> int:
    factory = AttendanceStoreFactory()
    print("Supported database types:")
    for name, aliases in factory.aliases().items():
        suffix = f" (aliases: {', '.join(aliases)})" if aliases else ""
        print(f"  - {name}{suffix}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="attendance-relay",
        description="Relay biometric terminal attendance events into relational databases",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  attendance-relay                      # Real-time monitoring (default)
  attendance-relay batch-sync --yes     # Clear databases and replay device logs
  attendance-relay db-types             # List supported database types
        """,
    )
    parser.add_argument("--env-file", type=str, default=None, help="Path to a .env file (default: ./.env)")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    sub = parser.add_subparsers(dest="command")
    sub.add_parser("run", help="Monitor devices in real time (default)")
    batch = sub.add_parser("batch-sync", help="Clear all databases and replay every device's stored logs")
    batch.add_argument("--yes", "-y", action="store_true", help="Skip the confirmation prompt")
    batch.add_argument("--delay", type=float, default=None, help="Safety delay in seconds before clearing")
    sub.add_parser("db-types", help="List supported database types")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    command = args.command or "run"

    if command == "db-types":
        return print_db_types()

    load_dotenv(args.env_file, override=False)
    settings = load_settings()
    configure_logging("DEBUG" if args.verbose else settings.log_level, settings.log_file, append=settings.log_append)

    try:
        if command == "batch-sync":
            delay = settings.batch_sync_delay if args.delay is None else max(0.0, args.delay)
            return run_batch_sync(settings, delay=delay, assume_yes=args.yes)
        return run_service(settings)
    except KeyboardInterrupt:
        logger.info("Interrupted")
        return 130
    finally:
        flush_logging()


if __name__ == "__main__":
    sys.exit(main())
