"""Structured logging for the API and the CLI.

Everything, including stdlib loggers from httpx and uvicorn, is rendered
through one structlog ``ProcessorFormatter`` on stdout: JSON lines at DEBUG
(for log shipping and tests), coloured console output otherwise. Values bound
with ``structlog.contextvars`` (the access log middleware binds
``request_id``) appear on every line logged while they are bound.

When OTEL is enabled, records are also forwarded to the OTLP LoggerProvider.
"""

import logging
import sys
from collections.abc import MutableMapping
from typing import Any

import structlog
from opentelemetry import trace
from opentelemetry.sdk._logs import LoggingHandler
from opentelemetry.util.types import Attributes

# A full matrix makes one request per station pair; per-request lines from
# these would drown out the service's own logs
QUIET_LOGGERS = (
    "httpx",
    "httpcore",
    "opentelemetry.exporter.otlp.proto.http",
    "uvicorn.access",  # AccessLoggingMiddleware logs requests instead
)


def _add_otel_context(
    logger: logging.Logger, method_name: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    """Stamp the active span's trace and span ids on the event."""
    span = trace.get_current_span()
    if span and span.is_recording():
        context = span.get_span_context()
        event_dict["trace_id"] = format(context.trace_id, "032x")
        event_dict["span_id"] = format(context.span_id, "016x")
    return event_dict


class OTLPLoggingHandler(LoggingHandler):
    """
    OTEL LoggingHandler that drops structlog's bookkeeping attributes.

    ``ProcessorFormatter.wrap_for_formatter`` stores the bound logger on the
    record as ``_logger``; the OTLP exporter cannot serialize it.
    """

    DROP_ATTRIBUTES = frozenset({"_logger", "_name"})

    @staticmethod
    def _get_attributes(record: logging.LogRecord) -> Attributes:
        attributes = LoggingHandler._get_attributes(record)
        if attributes is None:
            return None
        return {key: value for key, value in attributes.items() if key not in OTLPLoggingHandler.DROP_ATTRIBUTES}


def _renderer(level: str) -> structlog.types.Processor:
    if level == "DEBUG":
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=True)


def configure_logging(*, log_level: str = "INFO") -> None:
    """
    Route structlog and stdlib logging through one formatter on stdout.

    Safe to call more than once; the root logger's handlers are replaced.

    Args:
        log_level: DEBUG, INFO, WARNING, ERROR or CRITICAL
    """
    level = log_level.upper()

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        _add_otel_context,
    ]
    structlog.configure(
        processors=[*shared_processors, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    stdout_handler = logging.StreamHandler(sys.stdout)
    stdout_handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=shared_processors,
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, _renderer(level)],
        )
    )

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(stdout_handler)
    root_logger.setLevel(getattr(logging, level))

    # Imported here: telemetry logs through this module's configuration
    from seatmatrix.core.config import settings  # noqa: PLC0415
    from seatmatrix.core.telemetry import get_logger_provider  # noqa: PLC0415

    if settings.OTEL_ENABLED and (logger_provider := get_logger_provider()):
        root_logger.addHandler(
            OTLPLoggingHandler(level=getattr(logging, settings.OTEL_LOG_LEVEL), logger_provider=logger_provider)
        )
        structlog.get_logger(__name__).info("otel_logging_handler_attached", level=settings.OTEL_LOG_LEVEL)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
