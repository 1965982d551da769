"""
FastAPI wiring.

Usage:
    app = FastAPI()
    instrument_app(app)

    @app.get("/users/{user_id}")
    def get_user(user_id: int, engine: TraceEngine = Depends(get_trace_engine)):
        with engine.span("database-query", {"db.table": "users"}):
            ...
"""

from __future__ import annotations

import atexit
import logging
from typing import Optional

from fastapi import FastAPI, Request

from ..core.config import TraceSettings, get_settings
from ..export.exporter import Exporter, create_exporter
from ..middleware.tracing_middleware import STATE_ATTRIBUTE, TracingMiddleware
from ..tracing.engine import TraceEngine

logger = logging.getLogger(__name__)


def instrument_app(
    app: FastAPI,
    settings: Optional[TraceSettings] = None,
    exporter: Optional[Exporter] = None,
) -> Exporter:
    """Install ``TracingMiddleware`` and flush pending traces at interpreter exit.

    Returns:
        The exporter shared by all requests of ``app``
    """
    settings = settings or get_settings()
    exporter = exporter or create_exporter(settings)
    app.add_middleware(TracingMiddleware, settings=settings, exporter=exporter)
    atexit.register(exporter.shutdown)

    if settings.is_enabled:
        logger.info(
            f"Tracing enabled - service={settings.service_name}, mode={settings.delivery_mode}, "
            f"sample_rate={settings.sample_rate * 100:.0f}%"
        )
    else:
        logger.info("Tracing disabled - no API key configured or switched off")
    return exporter


def get_trace_engine(request: Request) -> Optional[TraceEngine]:
    """FastAPI dependency returning the engine bound to ``request``."""
    return getattr(request.state, STATE_ATTRIBUTE, None)
