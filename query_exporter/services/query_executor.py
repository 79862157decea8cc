"""Single execution of a configured count query."""

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any

from sqlalchemy import URL, Connection, Engine, create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import NullPool

from query_exporter.config import ConnectionParameters, QuerySpec, Settings
from query_exporter.exceptions import QueryResultError
from query_exporter.metrics.service import MetricsServiceProtocol

logger = logging.getLogger(__name__)

EngineFactory = Callable[[ConnectionParameters, str], Engine]


class OutcomeKind(str, Enum):
    SUCCESS = "success"
    CONNECT_FAILURE = "connect-failure"
    QUERY_FAILURE = "query-failure"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class ExecutionOutcome:
    """Result of one query execution."""

    kind: OutcomeKind
    count: int | None = None
    detail: str | None = None
    duration: float = 0.0

    @property
    def succeeded(self) -> bool:
        return self.kind == OutcomeKind.SUCCESS


def build_engine_factory(settings: Settings) -> EngineFactory:
    """Return a factory creating unpooled engines for the configured driver."""

    def factory(connection: ConnectionParameters, database: str) -> Engine:
        url = URL.create(
            drivername=settings.db_driver,
            username=connection.user,
            password=connection.password.get_secret_value(),
            host=connection.host,
            port=connection.port,
            database=database,
        )
        return create_engine(
            url,
            poolclass=NullPool,
            connect_args={"connect_timeout": settings.db_connect_timeout},
        )

    return factory


def coerce_count(value: Any) -> int:
    """Convert a scalar column value to an integer count."""
    if value is None:
        raise QueryResultError("query returned NULL")
    if isinstance(value, bool):
        raise QueryResultError(f"query returned a boolean: {value}")
    if isinstance(value, int):
        return value
    if isinstance(value, (Decimal, float)):
        try:
            integral = int(value)
        except (ValueError, OverflowError) as e:
            raise QueryResultError(f"query returned a non-finite number: {value}") from e
        if integral != value:
            raise QueryResultError(f"query returned a non-integer number: {value}")
        return integral
    if isinstance(value, (bytes, bytearray)):
        value = value.decode("utf-8", errors="replace")
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError as e:
            raise QueryResultError(f"cannot convert '{value}' to an integer") from e
    raise QueryResultError(f"unsupported result type {type(value).__name__}")


class QueryExecutor:
    """Runs one connect-execute-scan-publish-disconnect cycle per call.

    Each call opens a fresh connection and closes it before returning.
    The metric sample is only written when the query produced a count;
    failures leave the previous sample (or its absence) untouched.
    """

    def __init__(
        self,
        metrics_service: MetricsServiceProtocol,
        settings: Settings,
        engine_factory: EngineFactory | None = None,
    ):
        self.metrics_service = metrics_service
        self._engine_factory = engine_factory or build_engine_factory(settings)

    def run(
        self,
        connection: ConnectionParameters,
        spec: QuerySpec,
        cancel_event: threading.Event | None = None,
    ) -> ExecutionOutcome:
        if cancel_event is not None and cancel_event.is_set():
            logger.info(f"[{spec.database}] Skipping '{spec.name}', shutdown requested")
            return ExecutionOutcome(kind=OutcomeKind.CANCELLED)

        start_time = time.perf_counter()
        logger.info(f"[{spec.database}] Attempting connection")

        try:
            engine = self._engine_factory(connection, spec.database)
        except Exception as e:
            return self._connect_failure(connection, spec, e, start_time)

        try:
            try:
                db_connection = engine.connect()
            except Exception as e:
                return self._connect_failure(connection, spec, e, start_time)

            with db_connection:
                logger.info(f"[{spec.database}] Connection established")
                logger.info(f"[{spec.database}] Running Query {spec.query}")
                try:
                    count = self._fetch_count(db_connection, spec.query)
                except (SQLAlchemyError, QueryResultError) as e:
                    logger.error(
                        f"[{spec.database}] Error executing query {spec.query}: {e}",
                        extra={"query_name": spec.name},
                    )
                    return ExecutionOutcome(
                        kind=OutcomeKind.QUERY_FAILURE,
                        detail=str(e),
                        duration=time.perf_counter() - start_time,
                    )
        finally:
            engine.dispose()

        logger.info(f"[{spec.database}] Count: {count}")
        self.metrics_service.set_count(spec.name, spec.query, float(count))

        return ExecutionOutcome(
            kind=OutcomeKind.SUCCESS,
            count=count,
            duration=time.perf_counter() - start_time,
        )

    def _fetch_count(self, db_connection: Connection, query: str) -> int:
        # Run the SQL verbatim so '%' and ':' are not taken as bind markers
        result = db_connection.execution_options(no_parameters=True).exec_driver_sql(query)
        try:
            if not result.returns_rows:
                raise QueryResultError("query did not return a result set")
            columns = list(result.keys())
            if len(columns) != 1:
                raise QueryResultError(
                    f"query returned {len(columns)} columns, expected 1"
                )
            rows = result.fetchmany(2)
        finally:
            result.close()

        if not rows:
            raise QueryResultError("query returned no rows")
        if len(rows) > 1:
            raise QueryResultError("query returned more than one row")
        return coerce_count(rows[0][0])

    def _connect_failure(
        self,
        connection: ConnectionParameters,
        spec: QuerySpec,
        error: Exception,
        start_time: float,
    ) -> ExecutionOutcome:
        logger.error(
            f"[{spec.database}] Error connecting to database@{connection.host}: {error}",
            extra={"query_name": spec.name},
        )
        return ExecutionOutcome(
            kind=OutcomeKind.CONNECT_FAILURE,
            detail=str(error),
            duration=time.perf_counter() - start_time,
        )
