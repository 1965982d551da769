import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

import asyncio

from conftest import RecordingExporter, make_settings
from gemtrace.tracing.current import activate, clear_current_engine, current_engine, deactivate
from gemtrace.tracing.engine import TraceEngine


def build_engine() -> TraceEngine:
    return TraceEngine(settings=make_settings(), exporter=RecordingExporter())


def test_new_engine_is_not_bound(clean_context):
    build_engine()
    assert current_engine() is None


def test_deactivate_restores_previous_binding(clean_context):
    outer = build_engine()
    inner = build_engine()
    outer_token = activate(outer)
    inner_token = activate(inner)
    assert current_engine() is inner
    deactivate(inner_token)
    assert current_engine() is outer
    deactivate(outer_token)
    assert current_engine() is None


def test_activate_and_deactivate(clean_context):
    engine = build_engine()
    token = activate(engine)
    assert current_engine() is engine
    deactivate(token)
    assert current_engine() is None


def test_clear_only_unbinds_matching_engine(clean_context):
    engine = build_engine()
    activate(engine)
    clear_current_engine(build_engine())
    assert current_engine() is engine
    clear_current_engine(engine)
    assert current_engine() is None


def test_concurrent_requests_see_their_own_engine(clean_context):
    async def handle_request(name: str):
        engine = build_engine()
        activate(engine)
        root = engine.start_trace(name)
        await asyncio.sleep(0)
        assert current_engine() is engine
        span = current_engine().start_span(f"{name}-child")
        await asyncio.sleep(0)
        return engine, root, span

    async def main():
        return await asyncio.gather(*(handle_request(f"req-{i}") for i in range(5)))

    results = asyncio.run(main())

    trace_ids = {root.trace_id for _, root, _ in results}
    assert len(trace_ids) == 5
    for engine, root, span in results:
        child = engine.get_span(span)
        assert child.trace_id == root.trace_id
        assert child.parent_span_id == root.span_id
    assert current_engine() is None
