"""Scheduler running every configured query on its own interval.

Each QuerySpec gets a dedicated thread. A loop waits for its next tick,
runs the executor synchronously and waits again, so executions of one
query never overlap and a slow query never delays the others. All loops
share one cancellation event: a waiting loop stops as soon as it is set,
a running loop finishes its current execution first.
"""

import logging
import threading
import time
from enum import Enum
from typing import TYPE_CHECKING

from query_exporter.config import ConnectionParameters, ExporterConfig, QuerySpec
from query_exporter.core.shutdown import LifecycleEvent

if TYPE_CHECKING:
    from query_exporter.core.shutdown import LifecycleCoordinatorProtocol
    from query_exporter.services.query_executor import QueryExecutor

logger = logging.getLogger(__name__)


class LoopState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    STOPPED = "stopped"


class QueryScheduler:
    """Owns one timer-driven loop per configured query."""

    def __init__(
        self,
        executor: "QueryExecutor",
        lifecycle_coordinator: "LifecycleCoordinatorProtocol",
        config: ExporterConfig | None = None,
    ):
        """Initialize the scheduler.

        Args:
            executor: Executor invoked on every tick.
            lifecycle_coordinator: Coordinator for startup and graceful
                shutdown integration.
            config: Queries to start on STARTUP. Without it the loops only
                start through an explicit start() call.
        """
        self.executor = executor
        self._config = config
        self._cancel_event = threading.Event()
        self._lock = threading.Lock()
        self._threads: list[threading.Thread] = []
        self._specs: list[QuerySpec] = []
        self._states: list[LoopState] = []

        lifecycle_coordinator.register_lifecycle_notification(self._on_lifecycle_event)
        lifecycle_coordinator.register_shutdown_waiter(
            "QueryScheduler", self.wait_stopped
        )

    @property
    def cancel_event(self) -> threading.Event:
        return self._cancel_event

    def start(self, config: ExporterConfig) -> None:
        """Start one loop per query in ``config``."""
        with self._lock:
            if self._threads:
                logger.warning("Query scheduler already running")
                return
            if self._cancel_event.is_set():
                logger.warning("Query scheduler was cancelled, not starting")
                return
            if not config.queries:
                logger.warning("No queries configured, nothing to schedule")
                return

            for index, spec in enumerate(config.queries):
                self._specs.append(spec)
                self._states.append(LoopState.IDLE)
                thread = threading.Thread(
                    target=self._run_loop,
                    args=(index, config.connection, spec),
                    daemon=True,
                    name=f"QueryLoop-{spec.name}",
                )
                self._threads.append(thread)

            for thread in self._threads:
                thread.start()

        logger.info(f"Started {len(config.queries)} query loops")

    def cancel(self) -> None:
        """Signal every loop to stop; idempotent."""
        with self._lock:
            if self._cancel_event.is_set():
                return
            self._cancel_event.set()
        logger.info("Query scheduler cancelled")

    def wait_stopped(self, timeout: float) -> bool:
        """Wait until all loops have stopped.

        Returns:
            True if every loop stopped within ``timeout`` seconds.
        """
        self.cancel()

        with self._lock:
            threads = list(self._threads)

        deadline = time.perf_counter() + timeout
        for thread in threads:
            thread.join(timeout=max(0.0, deadline - time.perf_counter()))

        running = [thread.name for thread in threads if thread.is_alive()]
        if running:
            logger.warning(
                f"Timeout waiting for query loops, {len(running)} still running: "
                f"{', '.join(running)}"
            )
            return False

        logger.info("All query loops stopped")
        return True

    def state_of(self, name: str) -> LoopState | None:
        """Return the state of the first loop running the query ``name``."""
        with self._lock:
            for spec, state in zip(self._specs, self._states):
                if spec.name == name:
                    return state
        return None

    def _set_state(self, index: int, state: LoopState) -> None:
        with self._lock:
            self._states[index] = state

    def _run_loop(
        self, index: int, connection: ConnectionParameters, spec: QuerySpec
    ) -> None:
        interval = spec.interval.total_seconds()
        next_tick = time.monotonic() + interval

        logger.info(f"Scheduling '{spec.name}' every {interval:g}s")

        try:
            while True:
                self._set_state(index, LoopState.IDLE)

                # Wait first, so shutdown during the first interval runs nothing
                if self._cancel_event.wait(max(0.0, next_tick - time.monotonic())):
                    break

                self._set_state(index, LoopState.RUNNING)
                try:
                    self.executor.run(connection, spec, self._cancel_event)
                except Exception as e:
                    logger.error(
                        f"Unexpected error running query '{spec.name}': {e}",
                        exc_info=True,
                    )

                # A late execution delays the next tick once; missed ticks are dropped
                next_tick += interval
                now = time.monotonic()
                if next_tick < now:
                    next_tick = now
        finally:
            self._set_state(index, LoopState.STOPPED)
            logger.info(f"Query loop '{spec.name}' stopped")

    def _on_lifecycle_event(self, event: LifecycleEvent) -> None:
        """Start the loops on STARTUP and cancel them on PREPARE_SHUTDOWN."""
        if event == LifecycleEvent.STARTUP:
            if self._config is not None:
                self.start(self._config)
        elif event == LifecycleEvent.PREPARE_SHUTDOWN:
            self.cancel()
