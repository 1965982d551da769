import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

import json

import httpx

from conftest import FakeTransport
from gemtrace.export.exporter import ImmediateExporter
from gemtrace.export.otlp import serialize
from gemtrace.export.transport import FireAndForgetSender, HttpTransport, TransportResult
from gemtrace.telemetry.export_metrics import EXPORTS_TOTAL
from gemtrace.tracing.types import Span, SpanKind


def make_document():
    span = Span(
        trace_id="b" * 32,
        span_id="c" * 16,
        name="http-request",
        kind=SpanKind.SERVER,
        start_time=10,
        end_time=20,
        duration=10,
    )
    return serialize([span], "immediate-service")


def exports_count(outcome: str) -> float:
    return EXPORTS_TOTAL.labels(mode="immediate", outcome=outcome)._value.get()


def test_export_posts_document_in_background():
    transport = FakeTransport()
    sender = FireAndForgetSender(transport=transport)
    exporter = ImmediateExporter("https://collector.test/v1/traces", "k-123", sender)
    document = make_document()
    before = exports_count("sent")

    exporter.export(document)
    exporter.shutdown()

    assert len(transport.posts) == 1
    url, payload, headers = transport.posts[0]
    assert url == "https://collector.test/v1/traces"
    assert payload == document
    assert headers["X-API-Key"] == "k-123"
    assert headers["Content-Type"] == "application/json"
    assert transport.closed
    assert exports_count("sent") == before + 1


def test_invalid_document_is_not_sent():
    transport = FakeTransport()
    exporter = ImmediateExporter("https://collector.test", "k", FireAndForgetSender(transport=transport))
    before = exports_count("invalid")

    exporter.export({"resourceSpans": [{"scopeSpans": [{"spans": []}]}]})
    exporter.shutdown()

    assert transport.posts == []
    assert exports_count("invalid") == before + 1


def test_non_2xx_response_is_counted_as_rejected():
    transport = FakeTransport(TransportResult(success=True, status_code=500, body="oops"))
    exporter = ImmediateExporter("https://collector.test", "k", FireAndForgetSender(transport=transport))
    before = exports_count("rejected")

    exporter.export(make_document())
    exporter.shutdown()

    assert exports_count("rejected") == before + 1


def test_force_flush_is_noop():
    transport = FakeTransport()
    exporter = ImmediateExporter("https://collector.test", "k", FireAndForgetSender(transport=transport))
    exporter.force_flush()
    exporter.shutdown()
    assert transport.posts == []


# =============================================================================
# HttpTransport over httpx
# =============================================================================

def test_http_transport_posts_json():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["method"] = request.method
        seen["url"] = str(request.url)
        seen["api_key"] = request.headers.get("x-api-key")
        seen["body"] = json.loads(request.content)
        return httpx.Response(202, text="accepted" * 50)

    client = httpx.Client(transport=httpx.MockTransport(handler))
    transport = HttpTransport(client=client)

    result = transport.post("https://collector.test/v1/traces", {"a": 1}, {"X-API-Key": "k"})

    assert result.success
    assert result.is_2xx
    assert result.status_code == 202
    assert len(result.body) == 200
    assert seen == {
        "method": "POST",
        "url": "https://collector.test/v1/traces",
        "api_key": "k",
        "body": {"a": 1},
    }
    transport.close()
    assert not client.is_closed


def test_http_transport_converts_network_errors():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectTimeout("timed out", request=request)

    transport = HttpTransport(client=httpx.Client(transport=httpx.MockTransport(handler)))
    result = transport.post("https://collector.test", {}, {})

    assert not result.success
    assert not result.is_2xx
    assert result.error.startswith("ConnectTimeout")


def test_sender_reports_transport_exceptions_through_callback():
    class RaisingTransport(FakeTransport):
        def post(self, url, payload, headers):
            raise RuntimeError("worker crashed")

    results = []
    sender = FireAndForgetSender(transport=RaisingTransport())
    sender.submit("https://collector.test", {}, {}, on_response=results.append)
    sender.shutdown()

    assert len(results) == 1
    assert not results[0].success
    assert results[0].error == "worker crashed"


def test_concurrent_posts_share_one_client(monkeypatch):
    created = []
    base_client = httpx.Client

    class CountingClient(base_client):
        def __init__(self, *args, **kwargs):
            kwargs["transport"] = httpx.MockTransport(lambda request: httpx.Response(200))
            super().__init__(*args, **kwargs)
            created.append(self)

    monkeypatch.setattr(httpx, "Client", CountingClient)

    results = []
    sender = FireAndForgetSender(transport=HttpTransport(), max_workers=4)
    for _ in range(20):
        sender.submit("https://collector.test/v1/traces", {}, {}, on_response=results.append)
    sender.shutdown()

    assert len(created) == 1
    assert len(results) == 20
    assert all(result.is_2xx for result in results)
