"""Main entry point for the tsstatus monitor."""

import argparse
import asyncio
import logging
import os
import signal
import sys
import time

from dotenv import load_dotenv
from PySide6.QtCore import QCoreApplication, QTimer

from tsstatus.api.query import QueryConnectionError, QueryError, QueryTimeoutError
from tsstatus.core.config import ConfigManager
from tsstatus.core.monitor import StatusMonitor, StatusUpdate

logger = logging.getLogger(__name__)


def _parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="tsstatus",
        description="TeamSpeak voice server status monitor",
    )
    parser.add_argument(
        "--env-file", default=".env", help="dotenv file to load (default: .env)",
    )
    parser.add_argument(
        "--once", action="store_true", help="poll once, log the snapshot and exit",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="enable debug logging",
    )
    return parser.parse_args(argv)


def log_update(update: object) -> None:
    """Log a published update the way a renderer would show it."""
    if not isinstance(update, StatusUpdate):
        return

    snapshot = update.snapshot
    logger.info("%s | Status (%d online)", snapshot.server_name, update.online_count)
    for client in snapshot.sorted_clients:
        logger.info(
            "  %s · %s · %s · %s%s",
            client.channel_name,
            client.name,
            client.audio_state.value,
            client.connected_display,
            " (away)" if client.away else "",
        )
    for name in update.joined_names:
        logger.info("+ %s joined", name)
    for departure in update.departures:
        logger.info("- %s left %s", departure.name, departure.ago(update.published_at))


def _run_once(monitor: StatusMonitor) -> int:
    """Poll once and return an exit code."""
    try:
        update = asyncio.run(monitor.poll_once())
    except (QueryConnectionError, QueryError, QueryTimeoutError) as e:
        logger.error("Poll failed: %s", e)
        return 1
    log_update(update)
    return 0


def main() -> int:
    """Run the tsstatus monitor.

    Returns:
        Exit code (0 for success).
    """
    args = _parse_args(sys.argv[1:])

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    # asyncssh is chatty at INFO
    logging.getLogger("asyncssh").setLevel(logging.WARNING)

    load_dotenv(args.env_file)

    QCoreApplication.setApplicationName("TSStatus")
    QCoreApplication.setOrganizationName("TSStatus")
    app = QCoreApplication(sys.argv[:1])

    config = ConfigManager()
    config.apply_environment(os.environ)

    missing = config.missing_required()
    if missing:
        logger.error("Missing required settings: %s", ", ".join(missing))
        return 1

    settings = config.get_query_settings()
    logger.debug("Settings: %r", settings)
    monitor = StatusMonitor(settings)

    if args.once:
        return _run_once(monitor)

    def on_connection_changed(connected: bool) -> None:
        if connected:
            logger.info("Query session established")
        else:
            logger.warning("Query session lost - reconnecting on next poll")

    def on_error(message: str) -> None:
        logger.debug("Monitor error: %s", message)

    monitor.update_published.connect(log_update)
    monitor.connection_changed.connect(on_connection_changed)
    monitor.error_occurred.connect(on_error)

    def shutdown(signum: int, _frame: object) -> None:
        logger.info("Received signal %d, shutting down", signum)
        app.quit()

    signal.signal(signal.SIGINT, shutdown)
    signal.signal(signal.SIGTERM, shutdown)

    # Let the Python interpreter run signal handlers while Qt's loop is active
    wakeup_timer = QTimer()
    wakeup_timer.timeout.connect(lambda: None)
    wakeup_timer.start(500)

    started = time.monotonic()
    monitor.start()

    exit_code = app.exec()

    # Cleanup
    wakeup_timer.stop()
    monitor.stop()
    logger.info("Stopped after %.0fs", time.monotonic() - started)

    return exit_code


if __name__ == "__main__":
    sys.exit(main())
