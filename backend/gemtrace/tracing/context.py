"""
Span context stack.

The stack gives "current active span" semantics for parent linkage. It
assumes strict LIFO nesting of start/end calls: ``pop`` removes whatever is
on top, it does not search for a particular span.
"""

from typing import Iterator, List, Optional

from .types import Span


class SpanContextStack:
    """LIFO stack of in-flight spans, owned by a single engine."""

    def __init__(self) -> None:
        self._stack: List[Span] = []

    def push(self, span: Span) -> None:
        self._stack.append(span)

    def pop(self) -> Optional[Span]:
        if not self._stack:
            return None
        return self._stack.pop()

    @property
    def active(self) -> Optional[Span]:
        """The innermost open span, used as the parent for new spans."""
        return self._stack[-1] if self._stack else None

    def clear(self) -> None:
        self._stack.clear()

    def __len__(self) -> int:
        return len(self._stack)

    def __iter__(self) -> Iterator[Span]:
        return iter(self._stack)
