"""
Core data models for the tracing engine.

Spans and events are the mutable in-flight representation kept by the
engine. Callers never see them directly: they hold a ``SpanRef`` handle.
"""

from __future__ import annotations

from enum import Enum, IntEnum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .attributes import AttributeValue


class SpanKind(IntEnum):
    """OTLP span kinds, serialized as integers."""
    UNSPECIFIED = 0
    INTERNAL = 1
    SERVER = 2
    CLIENT = 3
    PRODUCER = 4
    CONSUMER = 5

    @classmethod
    def coerce(cls, value: Any) -> "SpanKind":
        """Return a valid kind, falling back to INTERNAL for unknown values."""
        if isinstance(value, bool):
            return cls.INTERNAL
        try:
            return cls(value)
        except (ValueError, TypeError):
            return cls.INTERNAL


class SpanStatus(str, Enum):
    OK = "OK"
    ERROR = "ERROR"


class SkipReason(str, Enum):
    """Why a span handle is empty."""
    DISABLED = "disabled"          # no API key or switched off
    NOT_SAMPLED = "not_sampled"    # rejected by the sampler
    FAILED = "failed"              # internal tracing failure


class SpanEvent(BaseModel):
    """A timestamped event attached to a span."""
    model_config = ConfigDict(frozen=True)

    name: str = Field(description="Event name, e.g. 'exception'")
    time: int = Field(description="Nanoseconds since the Unix epoch")
    attributes: Dict[str, AttributeValue] = Field(default_factory=dict)


class Span(BaseModel):
    """A single timed operation within a trace."""
    trace_id: str = Field(description="32-char hex trace identifier")
    span_id: str = Field(description="16-char hex span identifier")
    parent_span_id: Optional[str] = Field(default=None, description="Parent span id; None for roots")
    name: str = Field(description="Operation name")
    kind: SpanKind = Field(default=SpanKind.INTERNAL)
    start_time: int = Field(description="Nanoseconds since the Unix epoch")
    end_time: Optional[int] = Field(default=None, description="Set when the span ends")
    duration: Optional[int] = Field(default=None, description="end_time - start_time, in nanoseconds")
    status: SpanStatus = Field(default=SpanStatus.OK)
    attributes: Dict[str, AttributeValue] = Field(default_factory=dict)
    events: List[SpanEvent] = Field(default_factory=list)

    @property
    def is_root(self) -> bool:
        return self.parent_span_id is None

    @property
    def is_ended(self) -> bool:
        return self.end_time is not None


class SpanRef(BaseModel):
    """Opaque handle returned by span start operations.

    An empty handle (no ``span_id``) is falsy and carries the reason tracing
    was skipped. Every engine operation accepts an empty handle as a no-op.
    """
    model_config = ConfigDict(frozen=True)

    span_id: Optional[str] = None
    trace_id: Optional[str] = None
    start_time: Optional[int] = None
    reason: Optional[SkipReason] = None

    @classmethod
    def empty(cls, reason: SkipReason) -> "SpanRef":
        return cls(reason=reason)

    @property
    def is_empty(self) -> bool:
        return not self.span_id

    def __bool__(self) -> bool:
        return not self.is_empty


EMPTY_SPAN = SpanRef()
