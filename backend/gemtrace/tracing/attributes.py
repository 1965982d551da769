"""
Attribute normalization for span and event attributes.

Everything that reaches a span is coerced into a transport-safe value:
``str | int | float | bool | list[str]``. Normalization is total and never
raises, so arbitrary objects can be passed from instrumented code.
"""

from __future__ import annotations

import numbers
from typing import Any, Dict, List, Mapping, Optional, Union

AttributeValue = Union[str, int, float, bool, List[str]]
Attributes = Dict[str, AttributeValue]

MAX_TRACE_STRING_LENGTH = 2000
TRUNCATION_MARKER = "..."


def _element_to_string(value: Any) -> str:
    # Only text and numbers survive inside lists; bools and nested values blank out.
    if isinstance(value, bool):
        return ""
    if isinstance(value, (str, numbers.Number)):
        return str(value)
    return ""


def _has_own_str(value: Any) -> bool:
    return type(value).__str__ is not object.__str__


def normalize_value(value: Any) -> AttributeValue:
    if isinstance(value, (str, bool, int, float)):
        return value
    if isinstance(value, (list, tuple, set, frozenset)):
        return [_element_to_string(item) for item in value]
    if isinstance(value, Mapping):
        return [_element_to_string(item) for item in value.values()]
    if value is None:
        return ""
    if _has_own_str(value):
        try:
            return str(value)
        except Exception:
            return ""
    return ""


def normalize_attributes(attributes: Optional[Mapping[Any, Any]]) -> Attributes:
    """Coerce an arbitrary mapping into span-safe attributes.

    Args:
        attributes: Mapping of attribute names to arbitrary values. ``None``
            is treated as an empty mapping.

    Returns:
        A new ordered dict with ``str`` keys and normalized values.
    """
    if not attributes:
        return {}
    try:
        items = list(attributes.items())
    except Exception:
        return {}
    normalized: Attributes = {}
    for key, value in items:
        normalized[str(key)] = normalize_value(value)
    return normalized


def limit_string_for_tracing(value: str, max_length: int = MAX_TRACE_STRING_LENGTH) -> str:
    """Cap a string at ``max_length`` characters, marking truncation with an ellipsis."""
    if len(value) <= max_length:
        return value
    return value[:max_length] + TRUNCATION_MARKER
