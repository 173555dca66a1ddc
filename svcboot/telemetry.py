"""OpenTelemetry configuration for svcboot services."""

import os
import sys

from fastapi import FastAPI
from opentelemetry import metrics, trace
from opentelemetry.exporter.prometheus import PrometheusMetricReader
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter
from prometheus_client import start_http_server

from .config import ServiceSettings
from .logging_config import get_logger

logger = get_logger(__name__)


def setup_telemetry(app: FastAPI, settings: ServiceSettings) -> bool:
    """Configure OpenTelemetry tracing and metrics for the application.

    Returns:
        True if instrumentation was installed
    """
    if not settings.enable_telemetry:
        return False

    # Skip telemetry setup during tests to avoid I/O issues
    if "pytest" in sys.modules or os.getenv("TESTING"):
        logger.info("Skipping OpenTelemetry setup during tests")
        return False

    try:
        prometheus_reader = PrometheusMetricReader()
        metrics.set_meter_provider(MeterProvider(metric_readers=[prometheus_reader]))

        start_http_server(settings.metrics_port)
        logger.info("Prometheus metrics server started", port=settings.metrics_port)

        trace.set_tracer_provider(TracerProvider())
        tracer_provider = trace.get_tracer_provider()

        # Console exporter until an OTLP collector is wired in
        span_processor = BatchSpanProcessor(ConsoleSpanExporter())
        tracer_provider.add_span_processor(span_processor)  # type: ignore[attr-defined]

        FastAPIInstrumentor.instrument_app(app)
        SQLAlchemyInstrumentor().instrument()
        logger.info("OpenTelemetry tracing and metrics setup completed")
        return True

    except Exception as e:
        # Telemetry must never stop the service from starting
        logger.error("Failed to setup OpenTelemetry", error=str(e))
        return False
