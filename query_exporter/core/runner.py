"""Exporter runner with graceful shutdown support."""

import logging
import threading
from typing import TYPE_CHECKING

from pydantic import ValidationError

from query_exporter.config import ExporterConfig, Settings, format_validation_error
from query_exporter.core.server import MetricsServer
from query_exporter.core.shutdown import LifecycleEvent
from query_exporter.exceptions import ConfigurationError, ServerBindError

if TYPE_CHECKING:
    from query_exporter.core.flask_app import App

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def run(config_path: str) -> int:
    """Run the exporter until SIGINT/SIGTERM.

    This is the main entry point. It handles:
    - Logging setup
    - Configuration loading (fatal on failure)
    - App and container creation via create_app()
    - Serving /metrics and running the query loops until shutdown

    Returns:
        Process exit code: 0 after a graceful shutdown, 1 when the
        settings or configuration cannot be loaded or the server cannot run.
    """
    try:
        settings = Settings.load()
    except ValidationError as e:
        logging.basicConfig(format=LOG_FORMAT)
        logger.error(f"Invalid settings:\n{format_validation_error(e)}")
        return 1

    logging.basicConfig(level=settings.log_level, format=LOG_FORMAT)

    try:
        config = ExporterConfig.load(config_path)
    except ConfigurationError as e:
        logger.error(f"Error reading configuration file: {e}")
        return 1

    # Import here to avoid circular imports
    from query_exporter import create_app

    app = create_app(config, settings)
    return serve(app, config, settings)


def serve(app: "App", config: ExporterConfig, settings: Settings) -> int:
    """Start the server and the scheduler, then block until shutdown."""
    container = app.container
    lifecycle_coordinator = container.lifecycle_coordinator()
    # Resolved up front so its STARTUP listener is registered
    container.query_scheduler()

    try:
        server = MetricsServer(
            app,
            host=settings.host,
            port=config.exporter_port,
            threads=settings.waitress_threads,
            lifecycle_coordinator=lifecycle_coordinator,
        )
    except ServerBindError as e:
        logger.error(f"Cannot start metrics server: {e}")
        return 1

    stopped = threading.Event()

    def signal_shutdown(lifecycle_event: LifecycleEvent) -> None:
        if lifecycle_event == LifecycleEvent.AFTER_SHUTDOWN:
            stopped.set()

    lifecycle_coordinator.register_lifecycle_notification(signal_shutdown)
    lifecycle_coordinator.initialize()

    server.start()
    lifecycle_coordinator.fire_startup()

    stopped.wait()

    if server.failed:
        return 1
    logger.info("Exporter stopped")
    return 0
