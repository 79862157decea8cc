"""Prometheus metrics service holding the exported query samples.

The service owns its own CollectorRegistry instead of the global one, so
the /metrics endpoint renders exactly the query gauge and tests can build
isolated instances.
"""

import logging
from abc import ABC, abstractmethod

from prometheus_client import CollectorRegistry, Gauge, generate_latest

logger = logging.getLogger(__name__)

QUERY_METRIC_NAME = "mysql_query_exporter"
QUERY_METRIC_HELP = (
    "The number of rows returned by specified MySQL count queries, "
    "labeled by query name and SQL statement."
)
CONTENT_TYPE = "text/plain; version=0.0.4; charset=utf-8"


class MetricsServiceProtocol(ABC):
    """Protocol for metrics service implementations."""

    @abstractmethod
    def set_count(self, name: str, query: str, value: float) -> None:
        """Create or update the sample for a (name, query) pair."""
        pass

    @abstractmethod
    def get_metrics_text(self) -> str:
        """Get metrics in Prometheus text format."""
        pass


class QueryMetricsService(MetricsServiceProtocol):
    """Holds the latest successful count of every configured query."""

    def __init__(self, registry: "CollectorRegistry | None" = None):
        """Initialize metrics service.

        Args:
            registry: Registry to publish into; a private one is created
                when omitted.
        """
        self.registry = registry if registry is not None else CollectorRegistry()

        self.query_count = Gauge(
            QUERY_METRIC_NAME,
            QUERY_METRIC_HELP,
            ["name", "query"],
            registry=self.registry,
        )

    def set_count(self, name: str, query: str, value: float) -> None:
        self.query_count.labels(name=name, query=query).set(value)

    def get_sample(self, name: str, query: str) -> float | None:
        """Return the published value for (name, query), or None if absent."""
        return self.registry.get_sample_value(
            QUERY_METRIC_NAME, {"name": name, "query": query}
        )

    def get_metrics_text(self) -> str:
        return generate_latest(self.registry).decode("utf-8")
