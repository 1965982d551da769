from .fastapi import get_trace_engine, instrument_app

__all__ = ["get_trace_engine", "instrument_app"]
