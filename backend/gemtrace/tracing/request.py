"""
Read-only request surface consumed by the tracing engine.

The engine never touches a framework request object directly. Hosts adapt
their request into a ``RequestAccessor``; a Starlette adapter is provided.
"""

from __future__ import annotations

from typing import Any, Optional, Protocol, Union, runtime_checkable


@runtime_checkable
class RequestAccessor(Protocol):
    """Protocol for the inbound request the root span describes."""

    def method(self) -> str:
        """HTTP method, e.g. ``GET``."""
        ...

    def uri(self) -> str:
        """Full request URI."""
        ...

    def header(self, name: str) -> Optional[str]:
        """Header value by case-insensitive name, or None when absent."""
        ...

    def service_name(self) -> str:
        """Route group identifier (first half of ``http.route``)."""
        ...

    def operation_name(self) -> str:
        """Route operation identifier (second half of ``http.route``)."""
        ...

    def body(self) -> Optional[Union[str, bytes]]:
        """Raw request body, when it has been captured."""
        ...


class StarletteRequestAccessor:
    """Adapts a Starlette/FastAPI ``Request``.

    The body must be read by the caller beforehand (``await request.body()``)
    because accessor methods are synchronous.
    """

    def __init__(self, request: Any, body: Optional[bytes] = None) -> None:
        self._request = request
        self._body = body

    def method(self) -> str:
        return self._request.method

    def uri(self) -> str:
        return str(self._request.url)

    def header(self, name: str) -> Optional[str]:
        return self._request.headers.get(name)

    def route_template(self) -> str:
        route = self._request.scope.get("route")
        return getattr(route, "path", None) or self._request.url.path

    def service_name(self) -> str:
        segments = [part for part in self.route_template().split("/") if part]
        return segments[0] if segments else ""

    def operation_name(self) -> str:
        endpoint = self._request.scope.get("endpoint")
        name = getattr(endpoint, "__name__", None)
        if name:
            return name
        segments = [part for part in self._request.url.path.split("/") if part]
        return segments[-1] if len(segments) > 1 else "index"

    def body(self) -> Optional[bytes]:
        return self._body
