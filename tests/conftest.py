"""Pytest fixtures for exporter tests.

Database access runs against SQLite files created per test and injected
through the executor's engine factory, so no MySQL server is needed.
"""

from collections.abc import Generator
from datetime import timedelta
from pathlib import Path
from unittest.mock import MagicMock

import pytest
from sqlalchemy import Engine, create_engine
from sqlalchemy.pool import NullPool

from query_exporter import create_app
from query_exporter.config import ConnectionParameters, ExporterConfig, QuerySpec, Settings
from query_exporter.core.flask_app import App
from query_exporter.metrics.service import QueryMetricsService


@pytest.fixture
def settings() -> Settings:
    return Settings(
        host="127.0.0.1",
        waitress_threads=2,
        graceful_shutdown_timeout=5,
        db_driver="mysql+pymysql",
        db_connect_timeout=1,
        log_level="INFO",
    )


@pytest.fixture
def connection_parameters() -> ConnectionParameters:
    return ConnectionParameters(
        host="db.example.com",
        port=3306,
        user="exporter",
        password="s3cret-pass",
    )


@pytest.fixture
def exporter_config(connection_parameters: ConnectionParameters) -> ExporterConfig:
    return ExporterConfig(
        exporter_port=9104,
        connection=connection_parameters,
        queries=(
            QuerySpec(
                name="pending_orders",
                database="shop",
                query="SELECT COUNT(*) FROM orders WHERE status = 'pending'",
                interval=timedelta(seconds=30),
            ),
        ),
    )


@pytest.fixture
def metrics_service() -> QueryMetricsService:
    return QueryMetricsService()


@pytest.fixture
def sqlite_path(tmp_path: Path) -> Path:
    """SQLite database with an orders table holding two pending orders."""
    path = tmp_path / "shop.sqlite"
    engine = create_engine(f"sqlite:///{path}", poolclass=NullPool)
    with engine.begin() as conn:
        conn.exec_driver_sql("CREATE TABLE orders (id INTEGER PRIMARY KEY, status TEXT)")
        conn.exec_driver_sql(
            "INSERT INTO orders (status) VALUES ('pending'), ('pending'), ('shipped')"
        )
    engine.dispose()
    return path


@pytest.fixture
def sqlite_engine_factory(sqlite_path: Path) -> MagicMock:
    """Engine factory returning a fresh unpooled engine on the SQLite file."""

    def factory(connection: ConnectionParameters, database: str) -> Engine:
        return create_engine(f"sqlite:///{sqlite_path}", poolclass=NullPool)

    return MagicMock(side_effect=factory)


@pytest.fixture
def app(
    exporter_config: ExporterConfig,
    settings: Settings,
    sqlite_engine_factory: MagicMock,
) -> Generator[App, None, None]:
    app = create_app(exporter_config, settings, engine_factory=sqlite_engine_factory)
    app.config["TESTING"] = True
    yield app
    app.container.unwire()


@pytest.fixture
def client(app: App):
    return app.test_client()
