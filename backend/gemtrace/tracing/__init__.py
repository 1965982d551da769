"""
Tracing engine.

Records spans for a single request and hands completed traces to an
exporter.
"""

from .attributes import MAX_TRACE_STRING_LENGTH, limit_string_for_tracing, normalize_attributes
from .current import activate, clear_current_engine, current_engine, deactivate
from .engine import TraceEngine, format_stack_trace, status_from_http_code
from .ids import IdentifierGenerationError, IdentifierGenerator, new_span_id, new_trace_id
from .request import RequestAccessor, StarletteRequestAccessor
from .sampler import Sampler, clamp_sample_rate
from .types import EMPTY_SPAN, SkipReason, Span, SpanEvent, SpanKind, SpanRef, SpanStatus

__all__ = [
    "EMPTY_SPAN",
    "IdentifierGenerationError",
    "IdentifierGenerator",
    "MAX_TRACE_STRING_LENGTH",
    "RequestAccessor",
    "Sampler",
    "SkipReason",
    "Span",
    "SpanEvent",
    "SpanKind",
    "SpanRef",
    "SpanStatus",
    "StarletteRequestAccessor",
    "TraceEngine",
    "activate",
    "clamp_sample_rate",
    "clear_current_engine",
    "current_engine",
    "deactivate",
    "format_stack_trace",
    "limit_string_for_tracing",
    "new_span_id",
    "new_trace_id",
    "normalize_attributes",
    "status_from_http_code",
]
