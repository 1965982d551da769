from __future__ import annotations

from typing import Any, Callable

from prometheus_client import Counter, Histogram, REGISTRY


def _register(factory: Callable[..., Any], name: str, *args: Any, **kwargs: Any) -> Any:
    try:
        return factory(name, *args, registry=REGISTRY, **kwargs)
    except ValueError:
        existing = getattr(REGISTRY, "_names_to_collectors", {}).get(name)
        if existing:
            return existing
        raise


EXPORTS_TOTAL = _register(
    Counter,
    "gemtrace_exports",
    "Trace export attempts by delivery mode and outcome",
    ["mode", "outcome"],
)

EXPORTED_SPANS_TOTAL = _register(
    Counter,
    "gemtrace_exported_spans",
    "Spans handed to the transport",
    ["mode"],
)

EXPORT_DURATION = _register(
    Histogram,
    "gemtrace_export_duration_seconds",
    "Synchronous export latency",
    ["mode"],
    buckets=(0.05, 0.1, 0.25, 0.5, 1, 2.5, 5, float("inf")),
)


def record_export(mode: str, outcome: str, span_count: int = 0) -> None:
    EXPORTS_TOTAL.labels(mode=mode, outcome=outcome).inc()
    if span_count and outcome in ("sent", "queued"):
        EXPORTED_SPANS_TOTAL.labels(mode=mode).inc(span_count)


def observe_export_duration(mode: str, seconds: float) -> None:
    EXPORT_DURATION.labels(mode=mode).observe(seconds)


__all__ = [
    "EXPORTS_TOTAL",
    "EXPORTED_SPANS_TOTAL",
    "EXPORT_DURATION",
    "record_export",
    "observe_export_duration",
]
