from .config import DEFAULT_ENDPOINT, TraceSettings, get_settings

__all__ = ["DEFAULT_ENDPOINT", "TraceSettings", "get_settings"]
