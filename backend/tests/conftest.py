import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

import os
from typing import Any, Dict, List, Optional, Tuple

import pytest

from gemtrace.core.config import TraceSettings, get_settings
from gemtrace.export.transport import TransportResult
from gemtrace.tracing.current import clear_current_engine
from gemtrace.tracing.engine import TraceEngine


class FakeTransport:
    """Records POSTs and answers with a canned result."""

    def __init__(self, result: Optional[TransportResult] = None):
        self.result = result or TransportResult(success=True, status_code=200, body="{}")
        self.posts: List[Tuple[str, Dict[str, Any], Dict[str, str]]] = []
        self.closed = False

    def post(self, url, payload, headers):
        self.posts.append((url, payload, headers))
        return self.result

    def close(self):
        self.closed = True


class RecordingExporter:
    """Exporter double that keeps every document handed to it."""

    def __init__(self):
        self.documents: List[Dict[str, Any]] = []
        self.force_flushes = 0
        self.shutdowns = 0

    def export(self, document):
        self.documents.append(document)

    def force_flush(self):
        self.force_flushes += 1

    def shutdown(self):
        self.shutdowns += 1

    def spans(self) -> List[Dict[str, Any]]:
        return [
            span
            for document in self.documents
            for span in document["resourceSpans"][0]["scopeSpans"][0]["spans"]
        ]


class FakeRequest:
    """Plain RequestAccessor for engine tests."""

    def __init__(
        self,
        method: str = "GET",
        uri: str = "https://example.test/users/42",
        headers: Optional[Dict[str, str]] = None,
        service: str = "users",
        operation: str = "get_user",
        body: Optional[str] = None,
    ):
        self._method = method
        self._uri = uri
        self._headers = {k.lower(): v for k, v in (headers or {}).items()}
        self._service = service
        self._operation = operation
        self._body = body

    def method(self):
        return self._method

    def uri(self):
        return self._uri

    def header(self, name):
        return self._headers.get(name.lower())

    def service_name(self):
        return self._service

    def operation_name(self):
        return self._operation

    def body(self):
        return self._body


class TickingClock:
    """Nanosecond clock advancing by a fixed step on every read."""

    def __init__(self, start: int = 1_700_000_000_000_000_000, step: int = 1_000):
        self.now = start
        self.step = step

    def __call__(self) -> int:
        self.now += self.step
        return self.now


def make_settings(**overrides: Any) -> TraceSettings:
    values: Dict[str, Any] = {"api_key": "test-key", "sample_rate": 1.0}
    values.update(overrides)
    return TraceSettings(_env_file=None, **values)


@pytest.fixture(autouse=True, scope="session")
def isolated_environment():
    saved = {
        name: os.environ.pop(name)
        for name in list(os.environ)
        if name.startswith(("TRACEKIT_", "APM_"))
    }
    get_settings.cache_clear()
    yield
    os.environ.update(saved)
    get_settings.cache_clear()


@pytest.fixture
def clean_context():
    clear_current_engine()
    yield
    clear_current_engine()


@pytest.fixture
def trace_settings() -> TraceSettings:
    return make_settings()


@pytest.fixture
def exporter() -> RecordingExporter:
    return RecordingExporter()


@pytest.fixture
def engine(trace_settings, exporter) -> TraceEngine:
    return TraceEngine(settings=trace_settings, exporter=exporter, clock=TickingClock())
