"""Tests for configuration management."""

from datetime import timedelta
from pathlib import Path

import pytest
from pydantic import ValidationError

from query_exporter.config import (
    ConnectionParameters,
    Environment,
    ExporterConfig,
    QuerySpec,
    Settings,
    format_validation_error,
    parse_duration,
)
from query_exporter.exceptions import ConfigErrorKind, ConfigurationError

VALID_CONFIG = """\
exporter_port: 9104
db_host: mysql.internal
db_port: 3306
db_user: exporter
db_password: hunter2
queries:
  - name: pending_orders
    database: shop
    query: SELECT COUNT(*) FROM orders WHERE status = 'pending'
    interval: 30
  - name: users
    database: accounts
    query: SELECT COUNT(*) FROM users
    interval: 1m30s
"""


def _write(tmp_path: Path, content: str) -> Path:
    path = tmp_path / "query_config.yaml"
    path.write_text(content)
    return path


class TestExporterConfigLoad:
    """Tests for ExporterConfig.load()."""

    def test_load_round_trip(self, tmp_path):
        config = ExporterConfig.load(_write(tmp_path, VALID_CONFIG))

        assert config.exporter_port == 9104
        assert config.connection.host == "mysql.internal"
        assert config.connection.port == 3306
        assert config.connection.user == "exporter"
        assert config.connection.password.get_secret_value() == "hunter2"
        assert len(config.queries) == 2

        orders, users = config.queries
        assert orders.name == "pending_orders"
        assert orders.database == "shop"
        assert orders.query == "SELECT COUNT(*) FROM orders WHERE status = 'pending'"
        assert orders.interval == timedelta(seconds=30)
        assert users.name == "users"
        assert users.database == "accounts"
        assert users.interval == timedelta(seconds=90)

    def test_load_accepts_string_path(self, tmp_path):
        config = ExporterConfig.load(str(_write(tmp_path, VALID_CONFIG)))
        assert config.exporter_port == 9104

    def test_missing_queries_is_parse_failure(self, tmp_path):
        content = VALID_CONFIG.split("queries:")[0]
        with pytest.raises(ConfigurationError) as exc_info:
            ExporterConfig.load(_write(tmp_path, content))
        assert exc_info.value.kind == ConfigErrorKind.PARSE_FAILURE
        assert "queries" in str(exc_info.value)

    def test_empty_query_list_loads(self, tmp_path):
        content = VALID_CONFIG.split("queries:")[0] + "queries: []\n"
        config = ExporterConfig.load(_write(tmp_path, content))
        assert config.queries == ()

    def test_numeric_password_loads_as_text(self, tmp_path):
        content = VALID_CONFIG.replace("db_password: hunter2", "db_password: 918273645")
        config = ExporterConfig.load(_write(tmp_path, content))
        assert config.connection.password.get_secret_value() == "918273645"

    @pytest.mark.parametrize(
        "password_line",
        [
            "db_password: [918273645]",
            "db_password: {value: 918273645}",
            "db_password: 918273645: extra",
        ],
        ids=["list", "mapping", "malformed-yaml"],
    )
    def test_parse_failure_does_not_echo_password(self, tmp_path, password_line):
        content = VALID_CONFIG.replace("db_password: hunter2", password_line)
        with pytest.raises(ConfigurationError) as exc_info:
            ExporterConfig.load(_write(tmp_path, content))
        assert exc_info.value.kind == ConfigErrorKind.PARSE_FAILURE
        assert "918273645" not in str(exc_info.value)

    def test_unknown_keys_are_ignored(self, tmp_path):
        config = ExporterConfig.load(_write(tmp_path, VALID_CONFIG + "extra_key: 1\n"))
        assert config.exporter_port == 9104

    def test_missing_file_is_io_failure(self, tmp_path):
        with pytest.raises(ConfigurationError) as exc_info:
            ExporterConfig.load(tmp_path / "missing.yaml")
        assert exc_info.value.kind == ConfigErrorKind.IO_FAILURE

    def test_directory_is_io_failure(self, tmp_path):
        with pytest.raises(ConfigurationError) as exc_info:
            ExporterConfig.load(tmp_path)
        assert exc_info.value.kind == ConfigErrorKind.IO_FAILURE

    @pytest.mark.parametrize(
        "content",
        [
            "exporter_port: [unclosed",
            "- just\n- a\n- list\n",
            "",
            VALID_CONFIG.replace("exporter_port: 9104\n", ""),
            VALID_CONFIG.replace("db_port: 3306", "db_port: not-a-port"),
            VALID_CONFIG.replace("exporter_port: 9104", "exporter_port: 70000"),
            VALID_CONFIG.replace("interval: 30\n", "interval: 0\n"),
            VALID_CONFIG.replace("interval: 30\n", "interval: -5\n"),
            VALID_CONFIG.replace("interval: 30\n", "interval: soon\n"),
            VALID_CONFIG.replace("    database: shop\n", ""),
        ],
        ids=[
            "malformed-yaml",
            "not-a-mapping",
            "empty",
            "missing-exporter-port",
            "bad-db-port",
            "port-out-of-range",
            "zero-interval",
            "negative-interval",
            "unparseable-interval",
            "missing-database",
        ],
    )
    def test_invalid_document_is_parse_failure(self, tmp_path, content):
        with pytest.raises(ConfigurationError) as exc_info:
            ExporterConfig.load(_write(tmp_path, content))
        assert exc_info.value.kind == ConfigErrorKind.PARSE_FAILURE

    def test_duplicate_queries_are_logged(self, tmp_path, caplog):
        content = VALID_CONFIG + (
            "  - name: users\n"
            "    database: accounts\n"
            "    query: SELECT COUNT(*) FROM users\n"
            "    interval: 10\n"
        )
        config = ExporterConfig.load(_write(tmp_path, content))

        assert len(config.queries) == 3
        assert "configured more than once" in caplog.text


class TestModels:
    """Tests for the immutable configuration models."""

    def test_password_is_masked(self):
        params = ConnectionParameters(host="h", port=3306, user="u", password="hunter2")
        assert "hunter2" not in repr(params)
        assert "hunter2" not in str(params)

    def test_models_are_frozen(self):
        spec = QuerySpec(name="q", database="d", query="SELECT 1", interval=5)
        with pytest.raises(ValidationError):
            spec.name = "other"  # type: ignore[misc]

    def test_port_range_is_validated(self):
        with pytest.raises(ValidationError):
            ConnectionParameters(host="h", port=0, user="u", password="p")


class TestParseDuration:
    """Tests for interval parsing."""

    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            (30, 30.0),
            (2.5, 2.5),
            ("45", 45.0),
            ("30s", 30.0),
            ("500ms", 0.5),
            ("5m", 300.0),
            ("1h30m", 5400.0),
            ("1m30s", 90.0),
            (timedelta(seconds=7), 7.0),
        ],
    )
    def test_valid_durations(self, value, expected):
        assert parse_duration(value).total_seconds() == pytest.approx(expected)

    @pytest.mark.parametrize("value", ["", "abc", "10x", "s30", "30s junk", True, None, [1], "inf"])
    def test_invalid_durations(self, value):
        with pytest.raises(ValueError):
            parse_duration(value)


def test_environment_defaults(monkeypatch):
    """Test Environment loads default values."""
    for name in ("HOST", "WAITRESS_THREADS", "GRACEFUL_SHUTDOWN_TIMEOUT", "DB_DRIVER", "LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)

    env = Environment(_env_file=None)

    assert env.HOST == "0.0.0.0"
    assert env.WAITRESS_THREADS == 4
    assert env.GRACEFUL_SHUTDOWN_TIMEOUT == 30
    assert env.DB_DRIVER == "mysql+pymysql"
    assert env.LOG_LEVEL == "INFO"


def test_environment_from_env_vars(monkeypatch):
    """Test Environment loads from environment variables."""
    monkeypatch.setenv("GRACEFUL_SHUTDOWN_TIMEOUT", "12")
    monkeypatch.setenv("DB_DRIVER", "postgresql+psycopg")

    env = Environment(_env_file=None)

    assert env.GRACEFUL_SHUTDOWN_TIMEOUT == 12
    assert env.DB_DRIVER == "postgresql+psycopg"


def test_settings_load():
    """Test Settings.load() maps environment fields."""
    env = Environment(_env_file=None, HOST="127.0.0.1", WAITRESS_THREADS=8, LOG_LEVEL="debug")
    settings = Settings.load(env)

    assert settings.host == "127.0.0.1"
    assert settings.waitress_threads == 8
    assert settings.log_level == "DEBUG"


def test_settings_rejects_unknown_log_level():
    """Test Settings.load() rejects a level logging does not know."""
    env = Environment(_env_file=None, LOG_LEVEL="verbose")

    with pytest.raises(ValidationError):
        Settings.load(env)


def test_format_validation_error_omits_input():
    """Test validation errors render location and message only."""
    with pytest.raises(ValidationError) as exc_info:
        ConnectionParameters(host="db", port=3306, user="exporter", password=["p4ss-w0rd"])

    rendered = format_validation_error(exc_info.value)

    assert "password" in rendered
    assert "p4ss-w0rd" not in rendered
