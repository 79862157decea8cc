"""Configuration management.

Two sources of configuration:
1. Settings: process settings loaded from environment variables (UPPER_CASE)
   through pydantic-settings, with lowercase fields on the clean model.
2. ExporterConfig: the YAML file naming the database and the queries to
   export. The raw document is validated as ConfigDocument and then reshaped
   into the immutable ExporterConfig.
"""

import logging
import math
import re
from datetime import timedelta
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    SecretStr,
    ValidationError,
    field_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict

from query_exporter.exceptions import ConfigErrorKind, ConfigurationError

logger = logging.getLogger(__name__)

_PROJECT_ROOT = Path(__file__).resolve().parent.parent

DEFAULT_CONFIG_PATH = "query_config.yaml"

_DURATION_SEGMENT = re.compile(r"(\d+(?:\.\d+)?)(ms|s|m|h)")
_DURATION_UNITS = {"ms": 0.001, "s": 1.0, "m": 60.0, "h": 3600.0}

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


def parse_duration(value: Any) -> timedelta:
    """Parse an interval given as seconds or as a string like ``1m30s``."""
    if isinstance(value, timedelta):
        return value
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        raise ValueError("interval must be a number of seconds or a duration")

    if isinstance(value, str):
        seconds = _parse_duration_text(value)
    else:
        seconds = float(value)

    if not math.isfinite(seconds):
        raise ValueError(f"invalid duration '{value}'")
    try:
        return timedelta(seconds=seconds)
    except OverflowError as e:
        raise ValueError(f"duration '{value}' is out of range") from e


def _parse_duration_text(value: str) -> float:
    text = value.strip()
    try:
        return float(text)
    except ValueError:
        pass

    position = 0
    seconds = 0.0
    for match in _DURATION_SEGMENT.finditer(text):
        if match.start() != position:
            break
        seconds += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        position = match.end()
    if position == 0 or position != len(text):
        raise ValueError(f"invalid duration '{value}'")
    return seconds


def format_validation_error(error: ValidationError) -> str:
    """Render validation errors as location and message only.

    Input values are left out so credentials never reach the log.
    """
    lines = []
    for detail in error.errors(include_url=False, include_input=False):
        location = ".".join(str(part) for part in detail["loc"]) or "<root>"
        lines.append(f"  {location}: {detail['msg']}")
    return "\n".join(lines)


def _describe_yaml_error(error: yaml.YAMLError) -> str:
    # The default rendering quotes the offending source line
    problem = getattr(error, "problem", None) or type(error).__name__
    mark = getattr(error, "problem_mark", None)
    if mark is None:
        return problem
    return f"{problem} (line {mark.line + 1}, column {mark.column + 1})"


class Environment(BaseSettings):
    """Raw environment variable loading."""

    model_config = SettingsConfigDict(
        env_file=_PROJECT_ROOT / ".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    HOST: str = Field(default="0.0.0.0")
    WAITRESS_THREADS: int = Field(default=4)
    GRACEFUL_SHUTDOWN_TIMEOUT: int = Field(default=30)
    DB_DRIVER: str = Field(default="mysql+pymysql")
    DB_CONNECT_TIMEOUT: int = Field(default=10)
    LOG_LEVEL: str = Field(default="INFO")


class Settings(BaseModel):
    """Process settings with lowercase fields."""

    model_config = ConfigDict(from_attributes=True)

    host: str = "0.0.0.0"
    waitress_threads: int = 4
    graceful_shutdown_timeout: int = 30
    db_driver: str = "mysql+pymysql"
    db_connect_timeout: int = 10
    log_level: LogLevel = "INFO"

    @classmethod
    def load(cls, env: "Environment | None" = None) -> "Settings":
        if env is None:
            env = Environment()

        return cls(
            host=env.HOST,
            waitress_threads=env.WAITRESS_THREADS,
            graceful_shutdown_timeout=env.GRACEFUL_SHUTDOWN_TIMEOUT,
            db_driver=env.DB_DRIVER,
            db_connect_timeout=env.DB_CONNECT_TIMEOUT,
            log_level=env.LOG_LEVEL.upper(),
        )


class ConnectionParameters(BaseModel):
    """Database server and credentials shared by every query."""

    model_config = ConfigDict(frozen=True)

    host: str
    port: int = Field(ge=1, le=65535)
    user: str
    password: SecretStr


class QuerySpec(BaseModel):
    """One query exported as a gauge sample on its own interval."""

    model_config = ConfigDict(frozen=True)

    name: str
    database: str
    query: str
    interval: timedelta

    @field_validator("interval", mode="before")
    @classmethod
    def _parse_interval(cls, value: Any) -> timedelta:
        return parse_duration(value)

    @field_validator("interval")
    @classmethod
    def _positive_interval(cls, value: timedelta) -> timedelta:
        if value <= timedelta(0):
            raise ValueError("interval must be greater than zero")
        return value


class ConfigDocument(BaseModel):
    """Raw shape of the YAML configuration file."""

    model_config = ConfigDict(extra="ignore")

    exporter_port: int = Field(ge=1, le=65535)
    db_host: str
    db_port: int = Field(ge=1, le=65535)
    db_user: str
    db_password: SecretStr
    queries: list[QuerySpec]

    @field_validator("db_password", mode="before")
    @classmethod
    def _scalar_password(cls, value: Any) -> Any:
        # YAML reads an unquoted numeric password as a number
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return value


class ExporterConfig(BaseModel):
    """Immutable exporter configuration."""

    model_config = ConfigDict(frozen=True)

    exporter_port: int = Field(ge=1, le=65535)
    connection: ConnectionParameters
    queries: tuple[QuerySpec, ...] = ()

    @classmethod
    def from_document(cls, document: ConfigDocument) -> "ExporterConfig":
        return cls(
            exporter_port=document.exporter_port,
            connection=ConnectionParameters(
                host=document.db_host,
                port=document.db_port,
                user=document.db_user,
                password=document.db_password,
            ),
            queries=tuple(document.queries),
        )

    @classmethod
    def load(cls, path: "str | Path") -> "ExporterConfig":
        """Read and validate the configuration file at ``path``.

        Raises:
            ConfigurationError: IO_FAILURE when the file cannot be read,
                PARSE_FAILURE when it is not a valid configuration.
        """
        try:
            raw = Path(path).read_bytes()
        except OSError as e:
            raise ConfigurationError(
                f"Cannot read configuration file {path}: {e}",
                ConfigErrorKind.IO_FAILURE,
            ) from e

        try:
            data = yaml.safe_load(raw)
        except yaml.YAMLError as e:
            raise ConfigurationError(
                f"Configuration file {path} is not valid YAML: "
                f"{_describe_yaml_error(e)}",
                ConfigErrorKind.PARSE_FAILURE,
            ) from e

        if not isinstance(data, dict):
            raise ConfigurationError(
                f"Configuration file {path} must contain a mapping",
                ConfigErrorKind.PARSE_FAILURE,
            )

        try:
            document = ConfigDocument.model_validate(data)
        except ValidationError as e:
            raise ConfigurationError(
                f"Configuration validation failed for {path}:\n"
                f"{format_validation_error(e)}",
                ConfigErrorKind.PARSE_FAILURE,
            ) from e

        config = cls.from_document(document)
        config._warn_duplicate_queries()
        return config

    def _warn_duplicate_queries(self) -> None:
        seen: set[tuple[str, str]] = set()
        for spec in self.queries:
            key = (spec.name, spec.query)
            if key in seen:
                logger.warning(
                    f"Query '{spec.name}' is configured more than once with the "
                    "same SQL; both loops will write the same sample"
                )
            seen.add(key)
