"""
Export pipeline: OTLP-JSON serialization, transports and delivery strategies.
"""

from .exporter import BatchExporter, Exporter, ImmediateExporter, create_exporter
from .otlp import OTLPSerializer, merge_documents, serialize, validate_document
from .transport import FireAndForgetSender, HttpTransport, TransportError, TransportResult

__all__ = [
    "BatchExporter",
    "Exporter",
    "FireAndForgetSender",
    "HttpTransport",
    "ImmediateExporter",
    "OTLPSerializer",
    "TransportError",
    "TransportResult",
    "create_exporter",
    "merge_documents",
    "serialize",
    "validate_document",
]
