"""
Request-scoped "current engine" binding.

Call sites that cannot receive the engine explicitly look it up here. The
binding lives in a ContextVar, so each asyncio task and each thread sees
only the engine of its own request.
"""

from __future__ import annotations

import contextvars
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:  # pragma: no cover
    from .engine import TraceEngine

_CURRENT_ENGINE: contextvars.ContextVar[Optional["TraceEngine"]] = contextvars.ContextVar(
    "gemtrace_current_engine", default=None
)


def activate(engine: "TraceEngine") -> contextvars.Token:
    return _CURRENT_ENGINE.set(engine)


def deactivate(token: contextvars.Token) -> None:
    try:
        _CURRENT_ENGINE.reset(token)
    except ValueError:
        # Token created in another context; fall back to a plain unbind.
        _CURRENT_ENGINE.set(None)


def current_engine() -> Optional["TraceEngine"]:
    return _CURRENT_ENGINE.get()


def clear_current_engine(engine: Optional["TraceEngine"] = None) -> None:
    """Unbind the current engine, or only ``engine`` when given."""
    if engine is None or _CURRENT_ENGINE.get() is engine:
        _CURRENT_ENGINE.set(None)
