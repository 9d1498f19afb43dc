"""Observability setup for OpenTelemetry, metrics, and structured logging."""

import logging

import structlog
from opentelemetry import metrics, trace
from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, generate_latest

from .config import settings

SERVICE_NAME = "cabin-booking-engine"
SERVICE_VERSION = "1.0.0"

# Prometheus metrics
REGISTRY = CollectorRegistry()

# Request metrics
REQUEST_COUNT = Counter(
    'http_requests_total',
    'Total HTTP requests',
    ['method', 'endpoint', 'status_code'],
    registry=REGISTRY
)

REQUEST_DURATION = Histogram(
    'http_request_duration_seconds',
    'HTTP request duration in seconds',
    ['method', 'endpoint'],
    registry=REGISTRY
)

# Booking engine metrics
HOLDS_CREATED = Counter(
    'booking_holds_created_total',
    'Total booking holds created',
    ['property', 'mode'],
    registry=REGISTRY
)

HOLDS_EXPIRED = Counter(
    'booking_holds_expired_total',
    'Total booking holds canceled by the hold reclaimer',
    registry=REGISTRY
)

BOOKINGS_CONFIRMED = Counter(
    'bookings_confirmed_total',
    'Total bookings confirmed',
    ['property', 'mode'],
    registry=REGISTRY
)

BOOKINGS_CANCELLED = Counter(
    'bookings_cancelled_total',
    'Total bookings canceled or released',
    ['property', 'mode'],
    registry=REGISTRY
)

BOOKING_CONFLICTS = Counter(
    'booking_conflicts_total',
    'Booking attempts rejected by inventory checks',
    ['code'],
    registry=REGISTRY
)

PENDING_REFUNDS_CREATED = Counter(
    'pending_refunds_created_total',
    'Pending refunds queued for administrative review',
    registry=REGISTRY
)

REFUNDS_ISSUED = Counter(
    'refunds_issued_total',
    'Refunds executed immediately through the payment collaborator',
    registry=REGISTRY
)

ACTIVE_HOLDS = Gauge(
    'booking_holds_active',
    'Number of bookings currently in hold status',
    registry=REGISTRY
)


def setup_structured_logging():
    """Configure structured logging with structlog."""

    def add_trace_context(logger, method_name, event_dict):
        """Add trace context to log events."""
        span = trace.get_current_span()
        if span and span.is_recording():
            ctx = span.get_span_context()
            event_dict['trace_id'] = format(ctx.trace_id, '032x')
            event_dict['span_id'] = format(ctx.span_id, '016x')
        return event_dict

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            add_trace_context,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.ConsoleRenderer() if settings.debug else structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, settings.log_level)
        ),
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def _resource() -> Resource:
    return Resource.create({
        "service.name": SERVICE_NAME,
        "service.version": SERVICE_VERSION,
        "environment": settings.environment,
    })


def setup_tracing():
    """Setup OpenTelemetry tracing."""
    provider = TracerProvider(resource=_resource())

    if settings.otlp_endpoint:
        provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=settings.otlp_endpoint)))

    trace.set_tracer_provider(provider)
    return trace.get_tracer(__name__)


def setup_metrics():
    """Setup OpenTelemetry metrics."""
    if settings.otlp_endpoint:
        reader = PeriodicExportingMetricReader(
            exporter=OTLPMetricExporter(endpoint=settings.otlp_endpoint),
            export_interval_millis=60000,
        )
        metrics.set_meter_provider(MeterProvider(resource=_resource(), metric_readers=[reader]))

    return metrics.get_meter(__name__)


def instrument_fastapi(app):
    """Instrument FastAPI with OpenTelemetry."""
    FastAPIInstrumentor.instrument_app(app)


def instrument_sqlalchemy(engine):
    """Instrument SQLAlchemy with OpenTelemetry."""
    SQLAlchemyInstrumentor().instrument(engine=engine.sync_engine)


class MetricsCollector:
    """Collector for booking engine metrics."""

    @staticmethod
    def record_hold_created(property_name: str, mode: str):
        HOLDS_CREATED.labels(property=property_name, mode=mode).inc()
        ACTIVE_HOLDS.inc()

    @staticmethod
    def record_hold_expired():
        HOLDS_EXPIRED.inc()

    @staticmethod
    def record_booking_confirmed(property_name: str, mode: str):
        BOOKINGS_CONFIRMED.labels(property=property_name, mode=mode).inc()
        ACTIVE_HOLDS.dec()

    @staticmethod
    def record_booking_cancelled(property_name: str, mode: str, was_hold: bool):
        BOOKINGS_CANCELLED.labels(property=property_name, mode=mode).inc()
        if was_hold:
            ACTIVE_HOLDS.dec()

    @staticmethod
    def record_conflict(code: str):
        BOOKING_CONFLICTS.labels(code=code).inc()

    @staticmethod
    def record_pending_refund():
        PENDING_REFUNDS_CREATED.inc()

    @staticmethod
    def record_refund_issued():
        REFUNDS_ISSUED.inc()


def get_prometheus_metrics():
    """Get Prometheus metrics for the /metrics endpoint."""
    return generate_latest(REGISTRY)


# Global metrics collector instance
metrics_collector = MetricsCollector()


def get_logger(name: str):
    """Get a structured logger instance."""
    return structlog.get_logger(name)
