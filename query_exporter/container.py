"""Exporter dependency injection container."""

from dependency_injector import containers, providers

from query_exporter.config import ExporterConfig, Settings
from query_exporter.core.shutdown import LifecycleCoordinator
from query_exporter.metrics.service import QueryMetricsService
from query_exporter.services.query_executor import QueryExecutor
from query_exporter.services.query_scheduler import QueryScheduler


class ExporterContainer(containers.DeclarativeContainer):
    """Service container for the exporter.

    ``config`` and ``settings`` must be overridden before any service is
    resolved. ``engine_factory`` may be overridden to point the executor at
    a different database backend.
    """

    config = providers.Dependency(instance_of=ExporterConfig)
    settings = providers.Dependency(instance_of=Settings)
    engine_factory = providers.Object(None)

    lifecycle_coordinator = providers.Singleton(
        LifecycleCoordinator,
        graceful_shutdown_timeout=settings.provided.graceful_shutdown_timeout,
    )

    metrics_service = providers.Singleton(QueryMetricsService)

    query_executor = providers.Singleton(
        QueryExecutor,
        metrics_service=metrics_service,
        settings=settings,
        engine_factory=engine_factory,
    )

    query_scheduler = providers.Singleton(
        QueryScheduler,
        executor=query_executor,
        lifecycle_coordinator=lifecycle_coordinator,
        config=config,
    )
