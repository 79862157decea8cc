"""Prometheus exporter publishing scheduled SQL count queries as gauges."""

from typing import TYPE_CHECKING

from query_exporter.config import ExporterConfig, Settings
from query_exporter.core.flask_app import App

if TYPE_CHECKING:
    from query_exporter.services.query_executor import EngineFactory

__version__ = "1.0.0"


def create_app(
    config: ExporterConfig,
    settings: "Settings | None" = None,
    engine_factory: "EngineFactory | None" = None,
) -> App:
    """Create the Flask application serving /metrics.

    Args:
        config: Loaded exporter configuration
        settings: Process settings (loaded from the environment if omitted)
        engine_factory: Override for the executor's engine factory (tests)

    Returns:
        Flask application with ``app.container`` holding every service.
        Background loops are not started here; see core.runner.run().
    """
    from query_exporter.container import ExporterContainer

    app = App(__name__)

    if settings is None:
        settings = Settings.load()

    container = ExporterContainer()
    container.config.override(config)
    container.settings.override(settings)
    if engine_factory is not None:
        container.engine_factory.override(engine_factory)

    container.wire(modules=["query_exporter.metrics.routes"])

    app.container = container

    from query_exporter.metrics.routes import metrics_bp

    app.register_blueprint(metrics_bp)

    return app
