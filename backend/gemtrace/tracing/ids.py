"""
Trace and span identifier generation.

Identifiers are drawn from the operating system CSPRNG so that trace ids
cannot be predicted or correlated by a third party.
"""

import secrets

TRACE_ID_BYTES = 16  # 128 bits -> 32 hex chars
SPAN_ID_BYTES = 8  # 64 bits -> 16 hex chars


class IdentifierGenerationError(RuntimeError):
    """Raised when the random source cannot produce an identifier."""
    pass


def _random_hex(num_bytes: int) -> str:
    try:
        return secrets.token_hex(num_bytes)
    except (OSError, NotImplementedError) as e:
        raise IdentifierGenerationError(f"Random source unavailable: {e}") from e


def new_trace_id() -> str:
    """Return a new 32-character lowercase hex trace id."""
    return _random_hex(TRACE_ID_BYTES)


def new_span_id() -> str:
    """Return a new 16-character lowercase hex span id."""
    return _random_hex(SPAN_ID_BYTES)


class IdentifierGenerator:
    """Injectable wrapper around the module-level id functions."""

    def new_trace_id(self) -> str:
        return new_trace_id()

    def new_span_id(self) -> str:
        return new_span_id()
