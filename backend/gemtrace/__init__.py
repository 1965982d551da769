"""
gemtrace: request tracing with OTLP/JSON export.

Records spans for each HTTP request and delivers completed traces to an
OpenTelemetry-compatible collector, either immediately or in time-based
batches.
"""

from .core.config import TraceSettings, get_settings
from .export.exporter import BatchExporter, Exporter, ImmediateExporter, create_exporter
from .tracing.current import current_engine
from .tracing.engine import TraceEngine, status_from_http_code
from .tracing.attributes import limit_string_for_tracing
from .tracing.types import EMPTY_SPAN, SkipReason, SpanKind, SpanRef, SpanStatus

__version__ = "0.1.0"

__all__ = [
    "BatchExporter",
    "EMPTY_SPAN",
    "Exporter",
    "ImmediateExporter",
    "SkipReason",
    "SpanKind",
    "SpanRef",
    "SpanStatus",
    "TraceEngine",
    "TraceSettings",
    "create_exporter",
    "current_engine",
    "get_settings",
    "limit_string_for_tracing",
    "status_from_http_code",
]
