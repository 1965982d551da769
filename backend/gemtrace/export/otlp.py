"""
OTLP-JSON serialization.

Converts the engine's span models into the OpenTelemetry OTLP/JSON trace
document::

    {"resourceSpans": [{"resource": {...}, "scopeSpans": [{"spans": [...]}]}]}

Timestamps are rendered as decimal strings (64-bit safety in JSON), every
attribute value is sent as a ``stringValue``, and root spans omit
``parentSpanId`` entirely.
"""

from __future__ import annotations

import json
import numbers
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Sequence

from ..tracing.types import Span, SpanEvent, SpanStatus

STATUS_CODE_OK = "STATUS_CODE_OK"
STATUS_CODE_ERROR = "STATUS_CODE_ERROR"
UNKNOWN_SERVICE = "unknown"

Document = Dict[str, Any]


def attribute_string_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (str, numbers.Number)):
        return str(value)
    if isinstance(value, (list, tuple)):
        return json.dumps([str(item) for item in value], ensure_ascii=False)
    return ""


def build_attribute(key: str, value: Any) -> Dict[str, Any]:
    return {"key": str(key), "value": {"stringValue": attribute_string_value(value)}}


def build_attributes(attributes: Dict[str, Any]) -> List[Dict[str, Any]]:
    return [build_attribute(key, value) for key, value in attributes.items()]


def build_event(event: SpanEvent) -> Dict[str, Any]:
    return {
        "name": event.name or "event",
        "timeUnixNano": str(event.time),
        "attributes": build_attributes(event.attributes),
    }


def build_span(span: Span) -> Dict[str, Any]:
    error_message = ""
    if span.status == SpanStatus.ERROR:
        message = span.attributes.get("error.message")
        error_message = message if isinstance(message, str) else "Error"

    record: Dict[str, Any] = {
        "traceId": span.trace_id,
        "spanId": span.span_id,
        "name": span.name,
        "kind": int(span.kind),
        "startTimeUnixNano": str(span.start_time),
        "endTimeUnixNano": str(span.end_time or 0),
        "attributes": build_attributes(span.attributes),
        "status": {
            "code": STATUS_CODE_ERROR if span.status == SpanStatus.ERROR else STATUS_CODE_OK,
            "message": error_message,
        },
        "events": [build_event(event) for event in span.events],
    }
    if span.parent_span_id is not None:
        record["parentSpanId"] = span.parent_span_id
    return record


def wrap_spans(span_records: List[Dict[str, Any]], service_name: str) -> Document:
    return {
        "resourceSpans": [
            {
                "resource": {
                    "attributes": [build_attribute("service.name", service_name)],
                },
                "scopeSpans": [
                    {"spans": span_records},
                ],
            }
        ]
    }


def serialize(spans: Sequence[Span], service_name: str) -> Optional[Document]:
    """Serialize spans into one OTLP document.

    Returns:
        The document, or None when there is nothing to send. A wrapper with
        zero spans is never produced.
    """
    if not spans:
        return None
    return wrap_spans([build_span(span) for span in spans], service_name)


@dataclass(frozen=True)
class ValidatedPayload:
    spans: List[Dict[str, Any]]
    span_count: int
    service_name: str
    trace_id: str


def _first_dict(value: Any) -> Optional[Dict[str, Any]]:
    if isinstance(value, list) and value and isinstance(value[0], dict):
        return value[0]
    return None


def _service_name_of(resource_span: Dict[str, Any]) -> str:
    resource = resource_span.get("resource")
    if not isinstance(resource, dict):
        return UNKNOWN_SERVICE
    first_attr = _first_dict(resource.get("attributes"))
    if not first_attr:
        return UNKNOWN_SERVICE
    value = first_attr.get("value")
    if isinstance(value, dict) and isinstance(value.get("stringValue"), str):
        return value["stringValue"]
    return UNKNOWN_SERVICE


def validate_document(document: Any) -> Optional[ValidatedPayload]:
    """Check the nested OTLP shape and that at least one span is present."""
    if not isinstance(document, dict) or not document:
        return None
    resource_span = _first_dict(document.get("resourceSpans"))
    if resource_span is None:
        return None
    scope_span = _first_dict(resource_span.get("scopeSpans"))
    if scope_span is None:
        return None
    spans = scope_span.get("spans")
    if not isinstance(spans, list) or not spans:
        return None

    first_span = spans[0] if isinstance(spans[0], dict) else {}
    trace_id = first_span.get("traceId")
    return ValidatedPayload(
        spans=spans,
        span_count=len(spans),
        service_name=_service_name_of(resource_span),
        trace_id=trace_id if isinstance(trace_id, str) else "N/A",
    )


def merge_documents(documents: Iterable[Any], service_name: str) -> Optional[Document]:
    """Combine several trace documents under one resource/scope wrapper.

    Malformed documents are skipped. Span records keep their per-trace data
    and their original order.
    """
    all_spans: List[Dict[str, Any]] = []
    for document in documents:
        validated = validate_document(document)
        if validated is None:
            continue
        all_spans.extend(validated.spans)
    if not all_spans:
        return None
    return wrap_spans(all_spans, service_name)


class OTLPSerializer:
    """Serializer bound to a service name."""

    def __init__(self, service_name: str) -> None:
        self.service_name = service_name

    def serialize(self, spans: Sequence[Span]) -> Optional[Document]:
        return serialize(spans, self.service_name)

    def merge(self, documents: Iterable[Any]) -> Optional[Document]:
        return merge_documents(documents, self.service_name)
