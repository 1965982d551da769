from __future__ import annotations

import contextvars
import json
import logging
import logging.config
import re
from pathlib import Path
from typing import Any, Dict, Iterable, Optional

import yaml
from prometheus_client import Counter, REGISTRY

from .core.config import TraceSettings

_DEFAULT_CONTEXT = "-"
_REQUEST_ID = contextvars.ContextVar("gemtrace_request_id", default=_DEFAULT_CONTEXT)
_TRACE_ID = contextvars.ContextVar("gemtrace_trace_id", default=_DEFAULT_CONTEXT)
_SPAN_ID = contextvars.ContextVar("gemtrace_span_id", default=_DEFAULT_CONTEXT)


def _register_error_counter() -> Counter:
    try:
        return Counter(
            "gemtrace_log_errors_total",
            "Total log statements at error level or above",
            ["module", "level"],
            registry=REGISTRY,
        )
    except ValueError:
        existing = getattr(REGISTRY, "_names_to_collectors", {}).get("gemtrace_log_errors_total")
        if existing:
            return existing  # type: ignore[return-value]
        raise


LOG_ERROR_COUNTER = _register_error_counter()


def bind_request_context(request_id: Optional[str] = None) -> None:
    if request_id:
        _REQUEST_ID.set(request_id)


def bind_trace_context(trace_id: Optional[str], span_id: Optional[str] = None) -> None:
    if trace_id:
        _TRACE_ID.set(trace_id)
    if span_id:
        _SPAN_ID.set(span_id)


def clear_context() -> None:
    _REQUEST_ID.set(_DEFAULT_CONTEXT)
    _TRACE_ID.set(_DEFAULT_CONTEXT)
    _SPAN_ID.set(_DEFAULT_CONTEXT)


def current_context() -> Dict[str, str]:
    return {
        "request_id": _REQUEST_ID.get(),
        "trace_id": _TRACE_ID.get(),
        "span_id": _SPAN_ID.get(),
    }


class ContextFilter(logging.Filter):
    """Inject request and trace ids into every log record."""

    def filter(self, record: logging.LogRecord) -> bool:  # noqa: D401
        record.request_id = _REQUEST_ID.get()
        record.trace_id = _TRACE_ID.get()
        record.span_id = _SPAN_ID.get()
        return True


class PIIRedactingFilter(logging.Filter):
    """Filter that removes credentials and emails from log messages."""

    _PATTERNS: Iterable[re.Pattern[str]] = (
        re.compile(r"x-api-key['\"]?\s*[:=]\s*['\"]?[A-Za-z0-9._\-]{6,}", re.IGNORECASE),
        re.compile(r"bearer [a-z0-9\._\-]{10,}", re.IGNORECASE),
        re.compile(r"[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}"),
    )
    _REPLACEMENT = "[REDACTED]"

    def filter(self, record: logging.LogRecord) -> bool:  # noqa: D401
        record.msg = self._scrub(record.msg)
        if isinstance(record.args, tuple):
            record.args = tuple(self._scrub(arg) for arg in record.args)
        return True

    def _scrub(self, value: Any) -> Any:
        if isinstance(value, str):
            redacted = value
            for pattern in self._PATTERNS:
                redacted = pattern.sub(self._REPLACEMENT, redacted)
            return redacted
        if isinstance(value, dict):
            return {k: self._scrub(v) for k, v in value.items()}
        if isinstance(value, list):
            return [self._scrub(item) for item in value]
        return value


class PrometheusErrorHandler(logging.Handler):
    """A logging handler that increments a Prometheus counter on errors."""

    def emit(self, record: logging.LogRecord) -> None:  # noqa: D401
        try:
            LOG_ERROR_COUNTER.labels(module=record.name, level=record.levelname).inc()
        except Exception:  # pragma: no cover - never raise from logging
            self.handleError(record)


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:  # noqa: D401
        return serialize_log_record(record)


def setup_logging(settings: TraceSettings) -> None:
    """Load logging.yaml and configure the ``gemtrace`` logger per environment."""

    config_path = settings.log_config_path or Path(__file__).with_name("logging.yaml")
    if not config_path.exists():
        raise FileNotFoundError(f"Logging configuration not found at {config_path}")

    with config_path.open("r", encoding="utf-8") as fp:
        config: Dict[str, Any] = yaml.safe_load(fp)

    env = settings.environment.lower()

    handlers: list[str]
    if env == "development":
        handlers = ["console", "error_metrics"]
    else:
        handlers = ["json", "error_metrics"]
        if settings.enable_file_logging:
            log_dir = settings.log_dir
            log_dir.mkdir(parents=True, exist_ok=True)
            handlers.append("file")

    if not settings.enable_json_logs and "json" in handlers:
        handlers = [name if name != "json" else "console" for name in handlers]

    file_handler = config.get("handlers", {}).get("file")
    if file_handler:
        if "file" in handlers:
            file_handler["filename"] = str(settings.log_dir / "gemtrace.log")
        else:
            # dictConfig opens every declared handler; drop the unused file one
            config["handlers"].pop("file")

    for handler_name in ("console", "json"):
        handler = config.get("handlers", {}).get(handler_name)
        if handler:
            handler["level"] = settings.log_level.upper()

    config.setdefault("loggers", {})
    config["loggers"]["gemtrace"] = {
        "handlers": handlers,
        "level": settings.log_level.upper(),
        "propagate": False,
    }

    logging.config.dictConfig(config)


def serialize_log_record(record: logging.LogRecord) -> str:
    payload = {
        "timestamp": record.created,
        "level": record.levelname,
        "logger": record.name,
        "message": record.getMessage(),
        "context": current_context(),
    }
    if record.exc_info:
        payload["exception"] = logging.Formatter().formatException(record.exc_info)
    return json.dumps(payload, ensure_ascii=False)


__all__ = [
    "bind_request_context",
    "bind_trace_context",
    "clear_context",
    "current_context",
    "ContextFilter",
    "JsonFormatter",
    "PIIRedactingFilter",
    "PrometheusErrorHandler",
    "serialize_log_record",
    "setup_logging",
]
