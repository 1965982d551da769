"""
HTTP transports for trace delivery.

``HttpTransport`` performs a synchronous POST and never raises: every
outcome, including network failure, comes back as a ``TransportResult``.
``FireAndForgetSender`` runs the same POST on a background worker so the
caller does not wait on network I/O.
"""

from __future__ import annotations

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Protocol, runtime_checkable

import httpx

logger = logging.getLogger(__name__)

RESPONSE_BODY_PREVIEW = 200


class TransportError(Exception):
    """Network-level failure while posting a payload."""
    pass


@dataclass(frozen=True)
class TransportResult:
    """Outcome of one POST.

    ``success`` means the request completed and a response was received,
    whatever its status code; ``error`` is set when it did not.
    """
    success: bool
    status_code: int = 0
    body: str = ""
    error: Optional[str] = None

    @property
    def is_2xx(self) -> bool:
        return 200 <= self.status_code < 300


@runtime_checkable
class Transport(Protocol):
    def post(self, url: str, payload: Dict[str, Any], headers: Dict[str, str]) -> TransportResult:
        ...

    def close(self) -> None:
        ...


class HttpTransport:
    """Synchronous JSON POST over httpx."""

    def __init__(
        self,
        connect_timeout: float = 1.0,
        read_timeout: float = 3.0,
        client: Optional[httpx.Client] = None,
    ) -> None:
        self._timeout = httpx.Timeout(read_timeout, connect=connect_timeout)
        self._owns_client = client is None
        # Shared by the sender worker threads, so it exists before any of them run.
        self._client = client or httpx.Client(timeout=self._timeout)

    def _send(self, url: str, payload: Dict[str, Any], headers: Dict[str, str]) -> httpx.Response:
        try:
            return self._client.post(url, json=payload, headers=headers)
        except httpx.HTTPError as e:
            raise TransportError(f"{type(e).__name__}: {e}") from e

    def post(self, url: str, payload: Dict[str, Any], headers: Dict[str, str]) -> TransportResult:
        try:
            response = self._send(url, payload, headers)
        except TransportError as e:
            return TransportResult(success=False, error=str(e))
        except Exception as e:
            logger.debug(f"Unexpected transport failure: {e!r}")
            return TransportResult(success=False, error=str(e))
        return TransportResult(
            success=True,
            status_code=response.status_code,
            body=response.text[:RESPONSE_BODY_PREVIEW],
        )

    def close(self) -> None:
        if self._owns_client:
            self._client.close()


ResponseCallback = Callable[[TransportResult], None]


class FireAndForgetSender:
    """Hands POSTs to a worker thread and reports back through a callback."""

    def __init__(self, transport: Optional[Transport] = None, max_workers: int = 2) -> None:
        self._transport = transport or HttpTransport()
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers,
            thread_name_prefix="gemtrace-export",
        )

    def submit(
        self,
        url: str,
        payload: Dict[str, Any],
        headers: Dict[str, str],
        on_response: Optional[ResponseCallback] = None,
    ) -> Future:
        future = self._executor.submit(self._transport.post, url, payload, headers)
        if on_response is not None:
            future.add_done_callback(lambda done: self._dispatch(done, on_response))
        return future

    @staticmethod
    def _dispatch(future: Future, callback: ResponseCallback) -> None:
        try:
            result = future.result()
        except Exception as e:
            result = TransportResult(success=False, error=str(e))
        try:
            callback(result)
        except Exception as e:
            logger.error(f"Trace export callback failed: {e}")

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)
        self._transport.close()
