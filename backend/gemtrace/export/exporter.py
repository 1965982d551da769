"""
Trace exporters.

Two interchangeable delivery strategies sit behind the ``Exporter``
protocol:

- ``ImmediateExporter`` ships each trace on a background worker as soon as
  it is flushed (fire-and-forget).
- ``BatchExporter`` queues traces and sends them together, synchronously,
  once the send interval has elapsed or when forced at shutdown.

Delivery is best-effort and at-most-once in both modes: failures and
non-2xx responses are logged, never retried and never raised.
"""

from __future__ import annotations

import logging
import threading
import time
from functools import partial
from typing import Callable, Dict, List, Optional, Protocol, runtime_checkable

from ..core.config import TraceSettings
from ..telemetry.export_metrics import observe_export_duration, record_export
from .otlp import Document, merge_documents, validate_document
from .transport import FireAndForgetSender, HttpTransport, Transport, TransportResult

logger = logging.getLogger(__name__)

API_KEY_HEADER = "X-API-Key"


def build_headers(api_key: str) -> Dict[str, str]:
    return {
        "Content-Type": "application/json",
        API_KEY_HEADER: api_key,
    }


@runtime_checkable
class Exporter(Protocol):
    """Protocol for trace delivery strategies."""

    def export(self, document: Document) -> None:
        """Accept one serialized trace for delivery."""
        ...

    def force_flush(self) -> None:
        """Deliver anything still buffered, ignoring any send interval."""
        ...

    def shutdown(self) -> None:
        """Flush and release transport resources."""
        ...


class ImmediateExporter:
    """Fire-and-forget delivery of each trace."""

    mode = "immediate"

    def __init__(
        self,
        endpoint: str,
        api_key: str,
        sender: Optional[FireAndForgetSender] = None,
    ) -> None:
        self.endpoint = endpoint
        self._headers = build_headers(api_key)
        self._sender = sender or FireAndForgetSender()

    def export(self, document: Document) -> None:
        try:
            validated = validate_document(document)
            if validated is None:
                logger.warning("Empty or invalid trace payload, skipping send")
                record_export(self.mode, "invalid")
                return

            logger.info(
                f"Queueing trace for fire-and-forget send - service={validated.service_name}, "
                f"spans={validated.span_count}, trace_id={validated.trace_id[:16]}..."
            )
            self._sender.submit(
                self.endpoint,
                document,
                self._headers,
                on_response=partial(self._on_response, validated.service_name, validated.span_count),
            )
            record_export(self.mode, "queued", validated.span_count)
        except Exception as e:
            logger.error(f"Error sending traces: {e}")
            record_export(self.mode, "error")

    def _on_response(self, service_name: str, span_count: int, result: TransportResult) -> None:
        if not result.success:
            logger.error(f"Failed to send traces: {result.error or 'Unknown error'}")
            record_export(self.mode, "failed")
            return
        if not result.is_2xx:
            logger.warning(
                f"HTTP {result.status_code} response from collector - service={service_name}, "
                f"spans={span_count}, response={result.body}"
            )
            record_export(self.mode, "rejected")
            return
        logger.info(
            f"Traces sent - service={service_name}, spans={span_count}, http={result.status_code}"
        )
        record_export(self.mode, "sent")

    def force_flush(self) -> None:
        # Nothing is buffered; each trace was handed off on export.
        return None

    def shutdown(self) -> None:
        self._sender.shutdown(wait=True)


class BatchExporter:
    """Time-based batching with a synchronous send.

    One instance is shared by every request of a process, so the queue is
    guarded by a lock. The network call itself happens outside the lock.

    Args:
        endpoint: Collector URL
        api_key: Value for the API key header
        service_name: ``service.name`` of the merged batch document
        interval_seconds: Minimum seconds between scheduled sends (>= 1)
        transport: Synchronous transport, defaults to ``HttpTransport``
        clock: Monotonic clock, injectable for tests
    """

    mode = "batch"

    def __init__(
        self,
        endpoint: str,
        api_key: str,
        service_name: str,
        interval_seconds: int = 5,
        transport: Optional[Transport] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.endpoint = endpoint
        self.service_name = service_name
        self.interval_seconds = max(1, int(interval_seconds))
        self._headers = build_headers(api_key)
        self._transport = transport or HttpTransport()
        self._clock = clock
        self._queue: List[Document] = []
        self._lock = threading.Lock()
        self._last_flush = clock()

    @property
    def pending(self) -> int:
        with self._lock:
            return len(self._queue)

    @property
    def last_flush(self) -> float:
        return self._last_flush

    def add_to_batch(self, payload: Optional[Document]) -> None:
        if not payload:
            return
        with self._lock:
            self._queue.append(payload)

    def send_if_due(self, interval_seconds: Optional[int] = None) -> bool:
        """Send the queued batch when the interval since the last flush has elapsed.

        Returns:
            True if a batch was delivered with a 2xx response
        """
        interval = max(1, int(interval_seconds or self.interval_seconds))
        with self._lock:
            if not self._queue:
                return False
            if self._clock() - self._last_flush < interval:
                return False
            batch = self._drain()
        return self._send(batch)

    def force_send(self) -> bool:
        """Send everything queued now, regardless of the interval."""
        with self._lock:
            batch = self._drain()
        if not batch:
            return False
        return self._send(batch)

    def export(self, document: Document) -> None:
        self.add_to_batch(document)
        self.send_if_due()

    def force_flush(self) -> None:
        self.force_send()

    def shutdown(self) -> None:
        self.force_send()
        self._transport.close()

    def _drain(self) -> List[Document]:
        batch = list(self._queue)
        self._queue.clear()
        self._last_flush = self._clock()
        return batch

    def _send(self, batch: List[Document]) -> bool:
        try:
            document = merge_documents(batch, self.service_name)
            if document is None:
                logger.warning(f"Batch of {len(batch)} traces held no valid spans, skipping send")
                record_export(self.mode, "invalid")
                return False

            validated = validate_document(document)
            span_count = validated.span_count if validated else 0
            started = time.perf_counter()
            result = self._transport.post(self.endpoint, document, self._headers)
            observe_export_duration(self.mode, time.perf_counter() - started)

            if not result.success:
                logger.error(f"Failed to send trace batch: {result.error or 'Unknown error'}")
                record_export(self.mode, "failed")
                return False
            if not result.is_2xx:
                logger.warning(
                    f"HTTP {result.status_code} response from collector for batch of "
                    f"{len(batch)} traces: {result.body}"
                )
                record_export(self.mode, "rejected")
                return False

            logger.info(
                f"Trace batch sent - service={self.service_name}, traces={len(batch)}, "
                f"spans={span_count}, http={result.status_code}"
            )
            record_export(self.mode, "sent", span_count)
            return True
        except Exception as e:
            logger.error(f"Error sending trace batch: {e}")
            record_export(self.mode, "error")
            return False


def create_exporter(settings: TraceSettings, transport: Optional[Transport] = None) -> Exporter:
    """Build the exporter selected by ``settings.delivery_mode``."""
    transport = transport or HttpTransport(
        connect_timeout=settings.connect_timeout,
        read_timeout=settings.read_timeout,
    )
    if settings.delivery_mode == "immediate":
        return ImmediateExporter(
            endpoint=settings.endpoint,
            api_key=settings.api_key,
            sender=FireAndForgetSender(transport=transport),
        )
    return BatchExporter(
        endpoint=settings.endpoint,
        api_key=settings.api_key,
        service_name=settings.service_name,
        interval_seconds=settings.send_interval,
        transport=transport,
    )


__all__ = [
    "API_KEY_HEADER",
    "BatchExporter",
    "Exporter",
    "ImmediateExporter",
    "build_headers",
    "create_exporter",
]
