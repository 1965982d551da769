from .tracing_middleware import TracingMiddleware

__all__ = ["TracingMiddleware"]
