"""Flat collection of spans belonging to the in-flight trace."""

from typing import Dict, Iterator, List, Optional

from .types import Span


class SpanRegistry:
    """Spans of the current trace, kept in start order.

    Lookups go through an id index; iteration preserves the order in which
    spans were started, which is also the export order.
    """

    def __init__(self) -> None:
        self._spans: List[Span] = []
        self._index: Dict[str, Span] = {}

    def add(self, span: Span) -> None:
        self._spans.append(span)
        self._index[span.span_id] = span

    def get(self, span_id: Optional[str]) -> Optional[Span]:
        if not span_id:
            return None
        return self._index.get(span_id)

    def completed(self) -> List[Span]:
        """Spans that have ended. Open spans are never exported."""
        return [span for span in self._spans if span.end_time is not None]

    def clear(self) -> None:
        self._spans.clear()
        self._index.clear()

    def __len__(self) -> int:
        return len(self._spans)

    def __iter__(self) -> Iterator[Span]:
        return iter(self._spans)

    def __contains__(self, span_id: object) -> bool:
        return span_id in self._index
