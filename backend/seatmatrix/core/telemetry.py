"""OpenTelemetry tracing and log export.

Spans recorded by the service:

- ``railway.<operation>`` (CLIENT) for every railway API call, carrying the
  final status code and the number of attempts it took
- ``matrix.compute``, ``availability.check`` and ``availability.search_trains``
  (INTERNAL) around each use case
- FastAPI server spans when the app is instrumented in ``main``

Providers are built on first use so that each worker process gets its own
batch processors, and only when ``OTEL_ENABLED`` is set.
"""

import threading
from collections.abc import Generator
from contextlib import contextmanager
from typing import TYPE_CHECKING

import structlog
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http._log_exporter import OTLPLogExporter
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk._logs import LoggerProvider
from opentelemetry.sdk._logs.export import BatchLogRecordProcessor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.trace import SpanKind, Status, StatusCode

from seatmatrix import __version__
from seatmatrix.core.config import require_config, settings

if TYPE_CHECKING:
    from opentelemetry.trace.span import Span

logger = structlog.get_logger(__name__)

_tracer_provider: TracerProvider | None = None
_logger_provider: LoggerProvider | None = None
_providers_lock = threading.Lock()

# Span attribute values: primitives or homogeneous lists of them
AttributeValue = str | int | float | bool | list[str] | list[int] | list[float] | list[bool]


def _parse_otlp_headers(raw: str) -> dict[str, str]:
    """
    Split ``OTEL_EXPORTER_OTLP_HEADERS`` into a header dict.

    Pairs are comma separated; only the first ``=`` splits key from value.
    Pairs without ``=`` are skipped with a warning.

    Examples:
        >>> _parse_otlp_headers("Authorization=Bearer abc,X-Scope=seatmatrix")
        {'Authorization': 'Bearer abc', 'X-Scope': 'seatmatrix'}

        >>> _parse_otlp_headers("token=a=b")
        {'token': 'a=b'}
    """
    headers: dict[str, str] = {}
    for pair in (part.strip() for part in raw.split(",")):
        if not pair:
            continue
        key, separator, value = pair.partition("=")
        if not separator:
            logger.warning("otel_malformed_header", pair=pair)
            continue
        headers[key.strip()] = value.strip()
    return headers


def _resource() -> Resource:
    return Resource(
        attributes={
            "service.name": settings.OTEL_SERVICE_NAME,
            "service.version": __version__,
            "deployment.environment": settings.OTEL_ENVIRONMENT,
        }
    )


def get_tracer_provider() -> TracerProvider | None:
    """
    The process-wide TracerProvider, built on first call.

    Outside DEBUG a traces endpoint is required; in DEBUG a provider without
    an exporter is returned so spans can still be inspected locally.

    Returns:
        TracerProvider, or None when OTEL is disabled

    Raises:
        ValueError: If not in DEBUG and ``OTEL_EXPORTER_OTLP_TRACES_ENDPOINT`` is unset
    """
    global _tracer_provider  # noqa: PLW0603
    if not settings.OTEL_ENABLED:
        return None
    with _providers_lock:
        if _tracer_provider is None:
            if not settings.DEBUG:
                require_config("OTEL_EXPORTER_OTLP_TRACES_ENDPOINT")
            provider = TracerProvider(resource=_resource())
            endpoint = settings.OTEL_EXPORTER_OTLP_TRACES_ENDPOINT
            if endpoint:
                exporter = OTLPSpanExporter(
                    endpoint=endpoint, headers=_parse_otlp_headers(settings.OTEL_EXPORTER_OTLP_HEADERS or "")
                )
                provider.add_span_processor(BatchSpanProcessor(exporter))
                logger.info("otel_tracer_provider_created", endpoint=endpoint, service=settings.OTEL_SERVICE_NAME)
            else:
                logger.warning("otel_no_traces_endpoint_configured")
            _tracer_provider = provider
    return _tracer_provider


def shutdown_tracer_provider() -> None:
    """Flush and close the TracerProvider if one was built."""
    if _tracer_provider is not None:
        _tracer_provider.shutdown()
        logger.info("otel_tracer_provider_shutdown")


def get_logger_provider() -> LoggerProvider | None:
    """
    The process-wide LoggerProvider, built on first call.

    Logs still go to stdout without an OTLP endpoint, so unlike traces the
    logs endpoint is optional in every environment.

    Returns:
        LoggerProvider, or None when OTEL is disabled
    """
    global _logger_provider  # noqa: PLW0603
    if not settings.OTEL_ENABLED:
        return None
    with _providers_lock:
        if _logger_provider is None:
            provider = LoggerProvider(resource=_resource())
            endpoint = settings.OTEL_EXPORTER_OTLP_LOGS_ENDPOINT
            if endpoint:
                exporter = OTLPLogExporter(
                    endpoint=endpoint, headers=_parse_otlp_headers(settings.OTEL_EXPORTER_OTLP_HEADERS or "")
                )
                provider.add_log_record_processor(BatchLogRecordProcessor(exporter))
                logger.info("otel_logger_provider_created", endpoint=endpoint, level=settings.OTEL_LOG_LEVEL)
            _logger_provider = provider
    return _logger_provider


def shutdown_logger_provider() -> None:
    """Flush and close the LoggerProvider if one was built."""
    if _logger_provider is not None:
        _logger_provider.shutdown()  # type: ignore[no-untyped-call]
        logger.info("otel_logger_provider_shutdown")


@contextmanager
def service_span(
    name: str,
    service: str,
    kind: SpanKind = SpanKind.INTERNAL,
    **attributes: AttributeValue,
) -> Generator["Span"]:
    """
    Span around one service operation, marked OK when the block completes.

    An exception escaping the block is recorded on the span by the SDK and
    the span is marked ERROR. The tracer is looked up on every call, so the
    provider installed at startup (or by a test) is the one used.

    Args:
        name: Span name, e.g. "railway.seat_layout"
        service: ``peer.service`` value, e.g. "railway-api"
        kind: CLIENT for remote calls, INTERNAL otherwise
        **attributes: Extra span attributes

    Example:
        with service_span("matrix.compute", "matrix-service", train_model="787") as span:
            span.set_attribute("matrix.stations", len(stations))
    """
    tracer = trace.get_tracer(__name__)
    with tracer.start_as_current_span(name, kind=kind, attributes={"peer.service": service, **attributes}) as span:
        yield span
        span.set_status(Status(StatusCode.OK))
