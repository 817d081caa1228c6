"""Observability configuration using OpenTelemetry with pluggable exporters.

This module provides vendor-neutral distributed tracing that works with:
- Local development (spans written through Loguru)
- Self-hosted collectors (Jaeger, Tempo, Zipkin via OTLP)

Besides request spans from the FastAPI instrumentation, route loading opens
one span per module so slow or failing imports show up in traces.
"""

from __future__ import annotations

from contextlib import contextmanager
from functools import lru_cache
from typing import TYPE_CHECKING, Any, Final

from loguru import logger
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import ReadableSpan, TracerProvider
from opentelemetry.sdk.trace.export import (
    BatchSpanProcessor,
    SpanExporter,
    SpanExportResult,
)
from opentelemetry.sdk.trace.sampling import TraceIdRatioBased

from src.core.context import RequestContext

if TYPE_CHECKING:
    from collections.abc import Generator, Sequence

    from fastapi import FastAPI

    from src.core.config import Settings

# Constants
SERVICE_NAME_KEY: Final[str] = "service.name"
SERVICE_VERSION_KEY: Final[str] = "service.version"
ENVIRONMENT_KEY: Final[str] = "deployment.environment"


class _TracingState:
    """Tracks whether a tracer provider has been installed."""

    def __init__(self) -> None:
        self.configured = False


_state = _TracingState()


class LoguruSpanExporter(SpanExporter):
    """Custom span exporter that sends traces through Loguru logger."""

    def export(self, spans: Sequence[ReadableSpan]) -> SpanExportResult:
        """Export spans through Loguru logger instead of stdout.

        This ensures traces follow our logging configuration and don't
        pollute the console with raw JSON.
        """
        for span in spans:
            span_context = span.get_span_context()
            if not span_context:
                continue

            attributes = dict(span.attributes or {})
            correlation_id = attributes.get(
                "correlation_id", RequestContext.get_correlation_id()
            )

            duration_ms = None
            if span.end_time and span.start_time:
                duration_ms = (span.end_time - span.start_time) // 1_000_000

            # Skip noisy ASGI internals
            if span.name.endswith((" http send", " http receive")):
                continue

            logger.bind(
                trace_id=f"0x{span_context.trace_id:032x}",
                span_id=f"0x{span_context.span_id:016x}",
                correlation_id=correlation_id,
                span_name=span.name,
                span_kind=span.kind.name,
                duration_ms=duration_ms,
                attributes=attributes,
                status=span.status.status_code.name,
            ).debug("Trace span completed: {}", span.name)

        return SpanExportResult.SUCCESS


def get_span_exporter(settings: Settings) -> SpanExporter | None:
    """Get the appropriate span exporter based on configuration.

    Args:
        settings: Application settings.

    Returns:
        SpanExporter | None: Configured exporter or None if disabled.
    """
    exporter_type = settings.observability_config.exporter_type

    if exporter_type == "console":
        logger.info("Using Loguru span exporter for development")
        return LoguruSpanExporter()

    if exporter_type == "otlp":
        endpoint = (
            settings.observability_config.exporter_endpoint or "http://localhost:4317"
        )
        logger.info("Using OTLP exporter at {}", endpoint)
        return OTLPSpanExporter(
            endpoint=endpoint,
            insecure=settings.environment == "development",
        )

    logger.info("Tracing explicitly disabled")
    return None


@lru_cache(maxsize=8)
def get_tracer(name: str) -> trace.Tracer:
    """Get a tracer instance for the given component.

    Args:
        name: Component name, typically __name__.

    Returns:
        trace.Tracer: OpenTelemetry tracer instance.
    """
    return trace.get_tracer(name)


def setup_tracing(settings: Settings) -> None:
    """Configure OpenTelemetry tracing with pluggable exporters.

    The global tracer provider can only be set once per process, so later
    calls (for example from a second application in tests) are ignored.

    Args:
        settings: Application settings.
    """
    if not settings.observability_config.enable_tracing:
        logger.info("Tracing disabled by configuration")
        return

    if _state.configured:
        return

    resource = Resource.create(
        {
            SERVICE_NAME_KEY: settings.app_name,
            SERVICE_VERSION_KEY: settings.app_version,
            ENVIRONMENT_KEY: settings.environment,
        }
    )

    tracer_provider = TracerProvider(
        resource=resource,
        sampler=TraceIdRatioBased(settings.observability_config.trace_sample_rate),
    )

    exporter = get_span_exporter(settings)
    if exporter:
        tracer_provider.add_span_processor(BatchSpanProcessor(exporter))

    trace.set_tracer_provider(tracer_provider)
    _state.configured = True

    logger.info(
        "Tracing configured",
        exporter_type=settings.observability_config.exporter_type,
        sample_rate=settings.observability_config.trace_sample_rate,
    )


def instrument_app(app: FastAPI, settings: Settings) -> None:
    """Instrument FastAPI application for tracing.

    Args:
        app: FastAPI application to instrument.
        settings: Application settings.
    """
    if not settings.observability_config.enable_tracing:
        return

    excluded = ["/health"]
    if settings.openapi_url:
        excluded.append(settings.openapi_url)

    FastAPIInstrumentor.instrument_app(
        app,
        excluded_urls=",".join(excluded),
        server_request_hook=add_correlation_id_to_span,
    )

    logger.info("Application instrumented for tracing")


def add_correlation_id_to_span(span: trace.Span, scope: dict[str, Any]) -> None:
    """Add correlation and request IDs to the current server span.

    Args:
        span: The current span.
        scope: ASGI scope dict containing request information.
    """
    if correlation_id := RequestContext.get_correlation_id():
        span.set_attribute("correlation_id", correlation_id)

    headers = dict(scope.get("headers", []))
    if request_id := headers.get(b"x-request-id", b"").decode("utf-8"):
        span.set_attribute("request_id", request_id)


@contextmanager
def trace_operation(
    name: str, **attributes: str | int | float | bool
) -> Generator[trace.Span]:
    """Context manager for tracing a custom operation.

    Exceptions raised inside the block are recorded on the span and
    re-raised.

    Args:
        name: Operation name for the span.
        **attributes: Initial attributes for the span.

    Yields:
        Generator[trace.Span]: The created span for the operation.

    Example:
        >>> with trace_operation("route.load", source="routes/users.py"):
        >>>     declaration = source.load()
    """
    tracer = get_tracer(__name__)
    span = tracer.start_span(name)

    for key, value in attributes.items():
        span.set_attribute(key, str(value))

    if correlation_id := RequestContext.get_correlation_id():
        span.set_attribute("correlation_id", correlation_id)

    with trace.use_span(span, end_on_exit=True):
        yield span
