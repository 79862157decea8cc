"""Lifecycle coordinator for startup and graceful shutdown of the exporter."""

import logging
import signal
import threading
import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from enum import Enum

logger = logging.getLogger(__name__)


class LifecycleEvent(str, Enum):
    """Lifecycle events raised by the coordinator, in order."""

    STARTUP = "startup"
    PREPARE_SHUTDOWN = "prepare-shutdown"
    SHUTDOWN = "shutdown"
    AFTER_SHUTDOWN = "after-shutdown"


class LifecycleCoordinatorProtocol(ABC):
    """Protocol for lifecycle coordinator implementations."""

    @abstractmethod
    def initialize(self) -> None:
        """Setup the signal handlers."""
        pass

    @abstractmethod
    def register_lifecycle_notification(
        self, callback: Callable[[LifecycleEvent], None]
    ) -> None:
        """Register a callback to be notified of lifecycle events."""
        pass

    @abstractmethod
    def register_shutdown_waiter(
        self, name: str, handler: Callable[[float], bool]
    ) -> None:
        """Register a handler that blocks until ready for shutdown."""
        pass

    @abstractmethod
    def is_shutting_down(self) -> bool:
        """Check if shutdown has been initiated."""
        pass

    @abstractmethod
    def shutdown(self) -> None:
        """Implements the shutdown process."""
        pass

    @abstractmethod
    def fire_startup(self) -> None:
        """Raise the STARTUP event once."""
        pass


class LifecycleCoordinator(LifecycleCoordinatorProtocol):
    """Coordinator for exporter lifecycle events and graceful shutdown.

    Handles SIGTERM/SIGINT and runs shutdown exactly once: PREPARE_SHUTDOWN
    tells services to stop starting new work, the registered waiters share
    the grace period to let in-flight work finish, then SHUTDOWN and
    AFTER_SHUTDOWN are raised regardless of whether every waiter finished.
    """

    def __init__(self, graceful_shutdown_timeout: float):
        """Initialize lifecycle coordinator.

        Args:
            graceful_shutdown_timeout: Maximum seconds to wait for shutdown
        """
        self._graceful_shutdown_timeout = graceful_shutdown_timeout
        self._shutting_down = False
        self._started = False
        self._lifecycle_lock = threading.RLock()
        self._lifecycle_notifications: list[Callable[[LifecycleEvent], None]] = []
        self._shutdown_waiters: dict[str, Callable[[float], bool]] = {}

        logger.info("LifecycleCoordinator initialized")

    def initialize(self) -> None:
        """Setup the signal handlers."""
        signal.signal(signal.SIGTERM, self._handle_sigterm)
        signal.signal(signal.SIGINT, self._handle_sigterm)

    def register_lifecycle_notification(
        self, callback: Callable[[LifecycleEvent], None]
    ) -> None:
        with self._lifecycle_lock:
            self._lifecycle_notifications.append(callback)
            logger.debug(
                f"Registered lifecycle notification: "
                f"{getattr(callback, '__name__', repr(callback))}"
            )

    def register_shutdown_waiter(
        self, name: str, handler: Callable[[float], bool]
    ) -> None:
        with self._lifecycle_lock:
            self._shutdown_waiters[name] = handler
            logger.debug(f"Registered shutdown waiter: {name}")

    def is_shutting_down(self) -> bool:
        with self._lifecycle_lock:
            return self._shutting_down

    def fire_startup(self) -> None:
        with self._lifecycle_lock:
            if self._started:
                return
            self._started = True
        self._raise_lifecycle_event(LifecycleEvent.STARTUP)

    def _handle_sigterm(self, signum: int, frame: object) -> None:
        """Signal handler that performs complete graceful shutdown."""
        logger.info(f"Received signal {signum}, initiating graceful shutdown")
        self.shutdown()

    def shutdown(self) -> None:
        with self._lifecycle_lock:
            if self._shutting_down:
                logger.warning("Shutdown already in progress, ignoring request")
                return

            self._shutting_down = True
            shutdown_start_time = time.perf_counter()

            self._raise_lifecycle_event(LifecycleEvent.PREPARE_SHUTDOWN)
            waiters = list(self._shutdown_waiters.items())

        logger.info(
            f"Waiting for {len(waiters)} services to complete "
            f"(timeout: {self._graceful_shutdown_timeout}s)"
        )

        all_ready = True

        for name, waiter in waiters:
            elapsed = time.perf_counter() - shutdown_start_time
            remaining = self._graceful_shutdown_timeout - elapsed

            if remaining <= 0:
                logger.error(f"Shutdown timeout exceeded before checking {name}")
                all_ready = False
                break

            try:
                logger.info(
                    f"Waiting for {name} to complete (remaining: {remaining:.1f}s)"
                )
                if not waiter(remaining):
                    logger.warning(f"{name} was not ready within timeout")
                    all_ready = False
            except Exception as e:
                logger.error(f"Error in shutdown waiter {name}: {e}")
                all_ready = False

        total_duration = time.perf_counter() - shutdown_start_time

        if not all_ready:
            logger.error(
                f"Shutdown timeout exceeded after {total_duration:.1f}s, "
                "forcing shutdown"
            )
        else:
            logger.info(f"Graceful shutdown completed in {total_duration:.1f}s")

        self._raise_lifecycle_event(LifecycleEvent.SHUTDOWN)
        self._raise_lifecycle_event(LifecycleEvent.AFTER_SHUTDOWN)

    def _raise_lifecycle_event(self, event: LifecycleEvent) -> None:
        """Notify all registered callbacks of a lifecycle event."""
        logger.info(f"Raising lifecycle event {event.value}")

        with self._lifecycle_lock:
            callbacks = list(self._lifecycle_notifications)

        for callback in callbacks:
            try:
                callback(event)
            except Exception as e:
                logger.error(
                    f"Error in lifecycle event notification "
                    f"{getattr(callback, '__name__', repr(callback))}: {e}"
                )
