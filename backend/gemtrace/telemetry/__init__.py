"""Prometheus metrics describing the tracing client itself."""

from .export_metrics import observe_export_duration, record_export

__all__ = ["observe_export_duration", "record_export"]
