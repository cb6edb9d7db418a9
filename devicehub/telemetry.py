"""
OpenTelemetry Configuration for DeviceHub

This module sets up observability with OpenTelemetry for metrics and traces,
exported through a Prometheus endpoint.

The counters below are created through the OpenTelemetry API, so they are
no-ops until ``setup_telemetry`` installs a meter provider.
"""
import logging
from typing import Optional

from opentelemetry import metrics, trace
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.resources import Resource, SERVICE_NAME, SERVICE_VERSION, DEPLOYMENT_ENVIRONMENT
from opentelemetry.exporter.prometheus import PrometheusMetricReader
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from prometheus_client import start_http_server

from devicehub.config import settings

logger = logging.getLogger(__name__)

_meter = metrics.get_meter("devicehub")

registrations_counter = _meter.create_counter(
    "devicehub.registrations",
    description="Device registrations by outcome (created, updated, adopted, rotated)",
)
auth_failures_counter = _meter.create_counter(
    "devicehub.auth_failures",
    description="Rejected device authorizations by reason",
)
bridge_requests_counter = _meter.create_counter(
    "devicehub.bridge_requests",
    description="Protocol bridge requests by JSON-RPC method",
)

_meter_provider: Optional[MeterProvider] = None


def setup_telemetry(
    app,
    service_name: str = "devicehub-api",
    service_version: str = "0.1.0",
    metrics_port: int = 8001
) -> metrics.Meter:
    """
    Set up OpenTelemetry instrumentation for the application.

    Args:
        app: FastAPI application instance
        service_name: Name of the service for identification
        service_version: Version of the service
        metrics_port: Port to expose Prometheus metrics endpoint

    Returns:
        Meter instance for creating custom metrics
    """
    global _meter_provider

    # Define resource (service identity)
    resource = Resource.create({
        SERVICE_NAME: service_name,
        SERVICE_VERSION: service_version,
        DEPLOYMENT_ENVIRONMENT: settings.ENV,
        "service.namespace": "devicehub",
    })

    logger.info(f"Setting up OpenTelemetry for {service_name}")

    # Setup Metrics with Prometheus exporter
    prometheus_reader = PrometheusMetricReader()
    _meter_provider = MeterProvider(
        resource=resource,
        metric_readers=[prometheus_reader]
    )
    metrics.set_meter_provider(_meter_provider)

    # Setup Traces
    trace_provider = TracerProvider(resource=resource)
    trace.set_tracer_provider(trace_provider)

    # Auto-instrument FastAPI
    FastAPIInstrumentor.instrument_app(app)
    logger.info("FastAPI auto-instrumentation enabled")

    # Auto-instrument SQLAlchemy
    from devicehub.database import engine
    SQLAlchemyInstrumentor().instrument(engine=engine.sync_engine)
    logger.info("SQLAlchemy auto-instrumentation enabled")

    # Start Prometheus metrics HTTP server
    try:
        start_http_server(port=metrics_port)
        logger.info(f"Prometheus metrics endpoint started on port {metrics_port}")
    except OSError as e:
        logger.warning(f"Failed to start metrics server on port {metrics_port}: {e}")

    logger.info(f"OpenTelemetry setup complete for {service_name}")

    return _meter_provider.get_meter(service_name)


def shutdown_telemetry() -> None:
    if _meter_provider is not None:
        _meter_provider.shutdown()
