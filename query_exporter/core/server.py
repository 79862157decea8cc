"""Waitress server for the /metrics endpoint with graceful stop."""

import logging
import threading
from typing import TYPE_CHECKING

from paste.translogger import TransLogger  # type: ignore[import-untyped]
from waitress import create_server

from query_exporter.core.shutdown import LifecycleEvent
from query_exporter.exceptions import ServerBindError

if TYPE_CHECKING:
    from flask import Flask

    from query_exporter.core.shutdown import LifecycleCoordinatorProtocol

logger = logging.getLogger(__name__)


class MetricsServer:
    """Serves the Flask app from a background thread.

    The listening socket is bound in the constructor so a port conflict is
    reported before anything else starts. On PREPARE_SHUTDOWN the socket is
    closed; the "MetricsServer" shutdown waiter then lets in-flight scrapes
    finish within the remaining grace period.
    """

    def __init__(
        self,
        app: "Flask",
        host: str,
        port: int,
        threads: int,
        lifecycle_coordinator: "LifecycleCoordinatorProtocol",
    ):
        self.host = host
        self.port = port
        self.failed = False
        self._lifecycle_coordinator = lifecycle_coordinator
        self._thread: threading.Thread | None = None
        self._closed = False

        wsgi = TransLogger(app, setup_console_handler=False)
        try:
            self._server = create_server(wsgi, host=host, port=port, threads=threads)
        except OSError as e:
            raise ServerBindError(host, port, e) from e

        logger.info(f"Using Waitress WSGI server with {threads} threads")

        lifecycle_coordinator.register_lifecycle_notification(self._on_lifecycle_event)
        lifecycle_coordinator.register_shutdown_waiter("MetricsServer", self.wait_stopped)

    def start(self) -> None:
        if self._thread is not None:
            return

        self._thread = threading.Thread(
            target=self._serve, daemon=True, name="MetricsServer"
        )
        self._thread.start()

    def stop_accepting(self) -> None:
        """Close the listening socket; open connections are left to finish."""
        if self._closed:
            return
        self._closed = True
        logger.info("Shutting down the server...")
        # Close from inside the server loop thread
        self._server.trigger.pull_trigger(self._server.close)

    def wait_stopped(self, timeout: float) -> bool:
        """Wait for in-flight requests to complete within ``timeout``."""
        self.stop_accepting()

        dispatcher = self._server.task_dispatcher
        dispatcher.shutdown(cancel_pending=False, timeout=timeout)
        if dispatcher.threads:
            logger.warning(
                f"Could not shutdown server: {len(dispatcher.threads)} requests "
                "still in flight"
            )
            return False
        return True

    def _serve(self) -> None:
        logger.info(f"Starting Server on port {self.port}")
        try:
            self._server.run()
        except Exception as e:
            if self._lifecycle_coordinator.is_shutting_down():
                logger.debug(f"Server loop ended during shutdown: {e}")
                return
            logger.error(f"Metrics server failed: {e}", exc_info=True)
            self.failed = True
            self._lifecycle_coordinator.shutdown()

    def _on_lifecycle_event(self, event: LifecycleEvent) -> None:
        if event == LifecycleEvent.PREPARE_SHUTDOWN:
            self.stop_accepting()
