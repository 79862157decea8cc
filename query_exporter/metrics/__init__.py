"""Prometheus metrics module."""

from query_exporter.metrics.service import MetricsServiceProtocol, QueryMetricsService

__all__ = [
    "MetricsServiceProtocol",
    "QueryMetricsService",
]
