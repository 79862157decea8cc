"""Exporter exceptions with operator-ready messages."""

from enum import Enum


class ConfigErrorKind(str, Enum):
    """Why a configuration file could not be loaded."""

    IO_FAILURE = "io-failure"
    PARSE_FAILURE = "parse-failure"


class ConfigurationError(Exception):
    """Raised when the exporter configuration cannot be loaded."""

    def __init__(self, message: str, kind: ConfigErrorKind) -> None:
        self.message = message
        self.kind = kind
        super().__init__(message)


class ServerBindError(Exception):
    """Raised when the metrics HTTP server cannot listen on its port."""

    def __init__(self, host: str, port: int, cause: Exception) -> None:
        self.host = host
        self.port = port
        self.cause = cause
        super().__init__(f"Cannot listen on {host}:{port}: {cause}")


class QueryResultError(Exception):
    """Raised when a query result is not a single integer value."""

    pass
