from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Any, Dict, Optional, Set

from fastapi import Request
from starlette.background import BackgroundTask, BackgroundTasks
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response
from starlette.types import ASGIApp

from ..core.config import TraceSettings, get_settings
from ..export.exporter import Exporter, create_exporter
from ..logging_utils import bind_request_context, bind_trace_context, clear_context
from ..tracing.current import activate, deactivate
from ..tracing.engine import TraceEngine
from ..tracing.request import StarletteRequestAccessor
from ..tracing.types import EMPTY_SPAN

STATE_ATTRIBUTE = "trace_engine"


class TracingMiddleware(BaseHTTPMiddleware):
    """Open a root span per request and export the trace after the response is sent.

    One exporter is shared by every request handled by this middleware, so
    batch mode accumulates traces across requests.
    """

    def __init__(
        self,
        app: ASGIApp,
        settings: Optional[TraceSettings] = None,
        exporter: Optional[Exporter] = None,
    ):
        super().__init__(app)
        self.settings = settings or get_settings()
        self.exporter = exporter or create_exporter(self.settings)
        self.logger = logging.getLogger("gemtrace.http")
        self._pending_flushes: Set[asyncio.Future] = set()

    async def dispatch(self, request: Request, call_next):
        clear_context()
        bind_request_context(request.headers.get("x-request-id") or str(uuid.uuid4()))

        body: Optional[bytes] = None
        if self.settings.is_enabled and self.settings.trace_request_body:
            body = await request.body()

        accessor = StarletteRequestAccessor(request, body)
        engine = TraceEngine(settings=self.settings, request=accessor, exporter=self.exporter)
        setattr(request.state, STATE_ATTRIBUTE, engine)
        token = activate(engine)

        root = engine.start_request_trace()
        bind_trace_context(root.trace_id, root.span_id)

        try:
            response = await call_next(request)
        except Exception as exc:
            engine.record_exception(EMPTY_SPAN, exc)
            # The 500 is written by ServerErrorMiddleware once this re-raises.
            self._flush_detached(engine, 500, self._final_attributes(accessor))
            self.logger.exception(
                "Request failed",
                extra={"method": request.method, "path": request.url.path},
            )
            raise
        finally:
            deactivate(token)
            clear_context()

        if engine.root_span:
            final_attributes = self._final_attributes(accessor, response)
            self._schedule(
                response,
                BackgroundTask(engine.flush_on_shutdown, response.status_code, final_attributes, False),
            )
        return response

    def _final_attributes(
        self, accessor: StarletteRequestAccessor, response: Optional[Response] = None
    ) -> Dict[str, Any]:
        # Routing has run by now, so the matched route template is known.
        attributes: Dict[str, Any] = {
            "http.route": f"{accessor.service_name()}/{accessor.operation_name()}",
        }
        if response is not None and self.settings.trace_response:
            content_type = response.headers.get("content-type")
            content_length = response.headers.get("content-length")
            if content_type:
                attributes["http.response.content_type"] = content_type
            if content_length:
                attributes["http.response.content_length"] = content_length
        return attributes

    @staticmethod
    def _schedule(response: Response, task: BackgroundTask) -> None:
        existing = response.background
        if existing is None:
            response.background = task
        else:
            response.background = BackgroundTasks(tasks=[existing, task])

    def _flush_detached(self, engine: TraceEngine, status_code: int, attributes: Dict[str, Any]) -> None:
        loop = asyncio.get_running_loop()
        future = loop.run_in_executor(None, engine.flush_on_shutdown, status_code, attributes, False)
        self._pending_flushes.add(future)
        future.add_done_callback(self._on_flush_done)

    def _on_flush_done(self, future: asyncio.Future) -> None:
        self._pending_flushes.discard(future)
        if future.cancelled():
            return
        error = future.exception()
        if error is not None:
            self.logger.error(f"Trace flush after failed request raised: {error}")
