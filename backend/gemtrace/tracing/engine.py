"""
Trace engine: span lifecycle, sampling and flushing for one request.

Usage:
    engine = TraceEngine(settings=settings, request=accessor, exporter=exporter)
    engine.start_request_trace()

    span = engine.start_span("database-query", {"db.query": sql})
    # ... do work ...
    engine.end_span(span, {"db.rows": 10})

    # after the response has been sent
    engine.flush_on_shutdown(status_code=200)

An engine is owned by a single request and is not thread-safe. Its state
moves Empty -> Open (first span started) -> Empty again on ``flush``.

No public method raises into the caller. A tracing failure is logged and
surfaces only as an empty ``SpanRef`` whose ``reason`` says why.
"""

from __future__ import annotations

import logging
import time
import traceback
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any, Callable, Dict, Iterator, List, Mapping, Optional, Union

from ..core.config import TraceSettings, get_settings
from .attributes import limit_string_for_tracing, normalize_attributes
from .context import SpanContextStack
from .current import clear_current_engine
from .ids import IdentifierGenerationError, IdentifierGenerator
from .registry import SpanRegistry
from .request import RequestAccessor
from .sampler import Sampler
from .types import EMPTY_SPAN, SkipReason, Span, SpanEvent, SpanKind, SpanRef, SpanStatus

if TYPE_CHECKING:  # pragma: no cover
    from ..export.exporter import Exporter

logger = logging.getLogger(__name__)

ROOT_SPAN_NAME = "http-request"
ERROR_SPAN_NAME = "error-handler"
EXCEPTION_EVENT_NAME = "exception"


def status_from_http_code(status_code: int) -> SpanStatus:
    """Map an HTTP status code to a span status: < 400 is OK, otherwise ERROR."""
    return SpanStatus.OK if status_code < 400 else SpanStatus.ERROR


def exception_code(exception: BaseException) -> int:
    for attr in ("code", "errno", "status_code"):
        value = getattr(exception, attr, None)
        if isinstance(value, int) and not isinstance(value, bool):
            return value
    return 0


def qualified_type_name(exception: BaseException) -> str:
    cls = type(exception)
    if cls.__module__ == "builtins":
        return cls.__qualname__
    return f"{cls.__module__}.{cls.__qualname__}"


def format_stack_trace(exception: BaseException) -> str:
    """Render the traceback innermost frame first, one frame per line.

    Each line reads ``qualified_function at file:line``, or ``file:line``
    when no function name is known.
    """
    frames: List[str] = []
    for frame, lineno in traceback.walk_tb(exception.__traceback__):
        code = frame.f_code
        function = getattr(code, "co_qualname", None) or code.co_name
        filename = code.co_filename
        if function:
            frames.append(f"{function} at {filename}:{lineno}")
        else:
            frames.append(f"{filename}:{lineno}")
    frames.reverse()
    return "\n".join(frames)


def _now_ns() -> int:
    return time.time_ns()


class TraceEngine:
    """
    Records spans for one request and hands completed traces to an exporter.

    Args:
        settings: Tracing configuration (defaults to ``get_settings()``)
        request: Accessor for the inbound request, if there is one
        exporter: Delivery strategy; built from settings when omitted
        sampler: Sampling policy
        id_generator: Trace/span id source
        clock: Wall clock returning nanoseconds since the epoch
    """

    def __init__(
        self,
        settings: Optional[TraceSettings] = None,
        request: Optional[RequestAccessor] = None,
        exporter: Optional[Exporter] = None,
        sampler: Optional[Sampler] = None,
        id_generator: Optional[IdentifierGenerator] = None,
        clock: Callable[[], int] = _now_ns,
    ) -> None:
        self._settings = settings or get_settings()
        self._request = request
        self._exporter = exporter
        self._sampler = sampler or Sampler()
        self._ids = id_generator or IdentifierGenerator()
        self._clock = clock

        self._trace_id: Optional[str] = None
        self._registry = SpanRegistry()
        self._stack = SpanContextStack()
        self.root_span: SpanRef = EMPTY_SPAN

    # ------------------------------------------------------------------
    # Configuration accessors
    # ------------------------------------------------------------------

    @property
    def settings(self) -> TraceSettings:
        return self._settings

    @property
    def request(self) -> Optional[RequestAccessor]:
        return self._request

    @property
    def exporter(self) -> Exporter:
        if self._exporter is None:
            # export imports the tracing types, so it is resolved on first use
            from ..export.exporter import create_exporter

            self._exporter = create_exporter(self._settings)
        return self._exporter

    def is_enabled(self) -> bool:
        return self._settings.is_enabled

    @property
    def sample_rate(self) -> float:
        return self._settings.sample_rate

    @property
    def sample_rate_percent(self) -> float:
        return self._settings.sample_rate * 100.0

    def should_trace_response(self) -> bool:
        return self._settings.trace_response

    def should_trace_db_query(self) -> bool:
        return self._settings.trace_db_query

    def should_trace_request_body(self) -> bool:
        return self._settings.trace_request_body

    # ------------------------------------------------------------------
    # Trace state
    # ------------------------------------------------------------------

    @property
    def trace_id(self) -> Optional[str]:
        return self._trace_id

    @property
    def active_span(self) -> Optional[Span]:
        return self._stack.active

    @property
    def spans(self) -> List[Span]:
        """Snapshot of the spans of the in-flight trace, in start order."""
        return list(self._registry)

    def get_span(self, span_ref: SpanRef) -> Optional[Span]:
        return self._registry.get(span_ref.span_id)

    # ------------------------------------------------------------------
    # Span lifecycle
    # ------------------------------------------------------------------

    def start_trace(
        self,
        name: str,
        attributes: Optional[Mapping[str, Any]] = None,
        force_sample: bool = False,
    ) -> SpanRef:
        """Start a root span (kind SERVER).

        Args:
            name: Operation name, e.g. ``http-request``
            attributes: Initial attributes
            force_sample: Record regardless of the sample rate (errors)

        Returns:
            Handle to the new span, or an empty handle when disabled,
            not sampled, or on failure
        """
        if not self.is_enabled():
            return SpanRef.empty(SkipReason.DISABLED)
        if not self._sampler.should_sample(force_sample, self.sample_rate):
            return SpanRef.empty(SkipReason.NOT_SAMPLED)

        try:
            return self._open_span(name, attributes, SpanKind.SERVER, parent_span_id=None)
        except IdentifierGenerationError as e:
            logger.error(f"Unable to start trace '{name}': {e}")
            return SpanRef.empty(SkipReason.FAILED)
        except Exception as e:
            logger.error(f"Failed to start trace: {e}")
            return SpanRef.empty(SkipReason.FAILED)

    def start_span(
        self,
        name: str,
        attributes: Optional[Mapping[str, Any]] = None,
        kind: Union[SpanKind, int] = SpanKind.INTERNAL,
    ) -> SpanRef:
        """Start a child span under the current active span.

        Child spans inherit the root's sampling decision. Only a standalone
        span (no root span and no request) consults the sampler.
        """
        if not self.is_enabled():
            return SpanRef.empty(SkipReason.DISABLED)
        if not self.root_span and self._request is None:
            if not self._sampler.should_sample(False, self.sample_rate):
                return SpanRef.empty(SkipReason.NOT_SAMPLED)

        try:
            parent = self._stack.active
            return self._open_span(
                name,
                attributes,
                SpanKind.coerce(kind),
                parent_span_id=parent.span_id if parent else None,
            )
        except IdentifierGenerationError as e:
            logger.error(f"Unable to start span '{name}': {e}")
            return SpanRef.empty(SkipReason.FAILED)
        except Exception as e:
            logger.error(f"Failed to start span: {e}")
            return SpanRef.empty(SkipReason.FAILED)

    def end_span(
        self,
        span_ref: SpanRef,
        final_attributes: Optional[Mapping[str, Any]] = None,
        status: Union[SpanStatus, str, None] = SpanStatus.OK,
    ) -> None:
        """End a span and pop the context stack.

        Unknown, empty or already-ended handles are ignored. The stack pop
        assumes LIFO nesting: whatever span is on top is removed.
        """
        if not span_ref or not self.is_enabled():
            return

        try:
            span = self._registry.get(span_ref.span_id)
            if span is None:
                return
            if span.end_time is not None:
                logger.debug(f"Span {span.span_id} already ended, ignoring")
                return

            end_time = self._clock()
            span.end_time = end_time
            span.duration = end_time - span.start_time

            if final_attributes:
                span.attributes.update(normalize_attributes(final_attributes))

            if status == SpanStatus.ERROR:
                span.status = SpanStatus.ERROR

            self._stack.pop()
        except Exception as e:
            logger.error(f"Failed to end span: {e}")

    def add_event(
        self,
        span_ref: SpanRef,
        name: str,
        attributes: Optional[Mapping[str, Any]] = None,
    ) -> None:
        if not span_ref or not self.is_enabled():
            return
        try:
            span = self._registry.get(span_ref.span_id)
            if span is None:
                return
            span.events.append(self._create_event(name, attributes))
        except Exception as e:
            logger.error(f"Failed to add event: {e}")

    def record_exception(self, span_ref: SpanRef, exception: BaseException) -> SpanRef:
        """Attach an ``exception`` event to a span and mark it ERROR.

        With an empty handle the root span is used. When there is no root
        span either, a force-sampled ``error-handler`` root is created so the
        error is recorded even at a 0% sample rate.

        Returns:
            The handle of the span the exception was recorded on
        """
        if not self.is_enabled():
            return SpanRef.empty(SkipReason.DISABLED)

        try:
            if not span_ref:
                if self.root_span:
                    span_ref = self.root_span
                else:
                    span_ref = self._start_error_trace(exception)
                    if not span_ref:
                        logger.error(f"Failed to create trace for exception: {exception}")
                        return span_ref
                    self.root_span = span_ref

            span = self._registry.get(span_ref.span_id)
            if span is None:
                return span_ref

            span.events.append(
                self._create_event(
                    EXCEPTION_EVENT_NAME,
                    {
                        "exception.type": qualified_type_name(exception),
                        "exception.message": str(exception),
                        "exception.code": exception_code(exception),
                        "exception.stacktrace": format_stack_trace(exception),
                    },
                )
            )
            span.status = SpanStatus.ERROR
            return span_ref
        except Exception as e:
            logger.error(f"Failed to record exception: {e}")
            return span_ref if span_ref else SpanRef.empty(SkipReason.FAILED)

    @contextmanager
    def span(
        self,
        name: str,
        attributes: Optional[Mapping[str, Any]] = None,
        kind: Union[SpanKind, int] = SpanKind.INTERNAL,
    ) -> Iterator[SpanRef]:
        """
        Context manager that starts a span and always ends it.

        Usage:
            with engine.span("database-query", {"db.table": "users"}) as span:
                rows = run_query()

        An exception raised by the block is recorded on the span, which is
        then ended with ERROR status; the exception propagates unchanged.
        """
        span_ref = self.start_span(name, attributes, kind)
        try:
            yield span_ref
        except BaseException as exc:
            if span_ref:
                self.record_exception(span_ref, exc)
            self.end_span(span_ref, status=SpanStatus.ERROR)
            raise
        else:
            self.end_span(span_ref)

    # ------------------------------------------------------------------
    # Request integration
    # ------------------------------------------------------------------

    def start_request_trace(self) -> SpanRef:
        """Open the ``http-request`` root span for the bound request."""
        if self._request is None or not self.is_enabled():
            return SpanRef.empty(SkipReason.DISABLED)

        try:
            request = self._request
            attributes: Dict[str, Any] = {
                "http.method": request.method(),
                "http.url": request.uri(),
                "http.user_agent": request.header("User-Agent") or "unknown",
                "http.route": f"{request.service_name()}/{request.operation_name()}",
            }
            if self.should_trace_request_body():
                body = self._request_body_for_tracing()
                if body is not None:
                    attributes["http.request.body"] = limit_string_for_tracing(body)

            self.root_span = self.start_trace(ROOT_SPAN_NAME, attributes)
            if not self.root_span:
                logger.debug(f"Root span not started ({self.root_span.reason})")
            else:
                logger.debug(f"Root span started - trace_id={self.root_span.trace_id[:16]}...")
            return self.root_span
        except Exception as e:
            logger.error(f"Failed to initialize root trace: {e}")
            return SpanRef.empty(SkipReason.FAILED)

    def flush_on_shutdown(
        self,
        status_code: int = 200,
        final_attributes: Optional[Mapping[str, Any]] = None,
        force_export: bool = True,
    ) -> None:
        """End the root span with the response status, flush, and optionally force export.

        Runs after the response has been delivered to the client.
        """
        if not self.root_span:
            logger.debug("Flush skipped - no root span")
            return

        try:
            attributes: Dict[str, Any] = dict(final_attributes or {})
            attributes["http.status_code"] = status_code
            self.end_span(self.root_span, attributes, status_from_http_code(status_code))
            self.flush()
            if force_export:
                self.exporter.force_flush()
        except Exception as e:
            logger.error(f"Failed to flush traces on shutdown: {e}")

    def flush(self) -> None:
        """Serialize completed spans, hand them to the exporter and reset the trace.

        Open spans are dropped, never partially exported.
        """
        if not self.is_enabled() or not len(self._registry) or self._trace_id is None:
            logger.debug(
                f"Flush skipped - enabled={self.is_enabled()}, spans={len(self._registry)}, "
                f"trace_id={self._trace_id}"
            )
            return

        try:
            from ..export.otlp import serialize

            document = serialize(self._registry.completed(), self._settings.service_name)
            if document is not None:
                self.exporter.export(document)
            else:
                logger.debug(f"No completed spans in trace {self._trace_id}, nothing to export")
        except Exception as e:
            logger.error(f"Failed to flush traces: {e}")
        finally:
            self._reset()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _open_span(
        self,
        name: str,
        attributes: Optional[Mapping[str, Any]],
        kind: SpanKind,
        parent_span_id: Optional[str],
    ) -> SpanRef:
        trace_id = self._trace_id or self._ids.new_trace_id()
        span_id = self._ids.new_span_id()
        self._trace_id = trace_id

        span = Span(
            trace_id=trace_id,
            span_id=span_id,
            parent_span_id=parent_span_id,
            name=name,
            kind=kind,
            start_time=self._clock(),
            attributes=normalize_attributes(attributes),
        )
        self._registry.add(span)
        self._stack.push(span)
        return SpanRef(span_id=span.span_id, trace_id=trace_id, start_time=span.start_time)

    def _start_error_trace(self, exception: BaseException) -> SpanRef:
        attributes: Dict[str, Any] = {
            "error.type": qualified_type_name(exception),
            "error.message": str(exception),
            "error.code": exception_code(exception),
        }
        if self._request is not None:
            attributes["http.method"] = self._request.method()
            attributes["http.url"] = self._request.uri()
        return self.start_trace(ERROR_SPAN_NAME, attributes, force_sample=True)

    def _create_event(self, name: str, attributes: Optional[Mapping[str, Any]]) -> SpanEvent:
        return SpanEvent(name=name, time=self._clock(), attributes=normalize_attributes(attributes))

    def _request_body_for_tracing(self) -> Optional[str]:
        body = self._request.body() if self._request is not None else None
        if body is None:
            return None
        if isinstance(body, bytes):
            body = body.decode("utf-8", errors="replace")
        return body or None

    def _reset(self) -> None:
        self._registry.clear()
        self._stack.clear()
        self._trace_id = None
        self.root_span = EMPTY_SPAN
        clear_current_engine(self)
