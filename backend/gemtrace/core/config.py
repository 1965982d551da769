from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Any, Literal, Optional

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_ENDPOINT = "https://app.tracekit.dev/v1/traces"
DEFAULT_SERVICE_NAME = "gemtrace-app"
MIN_SEND_INTERVAL = 1


class TraceSettings(BaseSettings):
    # Collector
    api_key: str = Field(
        default="",
        validation_alias=AliasChoices("TRACEKIT_API_KEY", "APM_API_KEY"),
    )
    enabled: bool = Field(
        default=True,
        validation_alias=AliasChoices("TRACEKIT_ENABLED", "APM_ENABLED"),
    )
    service_name: str = DEFAULT_SERVICE_NAME
    endpoint: str = DEFAULT_ENDPOINT

    # Sampling and feature flags
    sample_rate: float = Field(
        default=1.0,
        validation_alias=AliasChoices("TRACEKIT_SAMPLE_RATE", "APM_SAMPLE_RATE"),
    )
    trace_response: bool = False
    trace_db_query: bool = False
    trace_request_body: bool = Field(
        default=False,
        validation_alias=AliasChoices(
            "TRACEKIT_TRACE_REQUEST_BODY",
            "TRACEKIT_TRACE_RESPONSE_BODY",
        ),
    )

    # Delivery
    delivery_mode: Literal["batch", "immediate"] = "batch"
    send_interval: int = Field(
        default=5,
        validation_alias=AliasChoices("TRACEKIT_SEND_INTERVAL", "APM_SEND_INTERVAL"),
    )
    connect_timeout: float = 1.0  # seconds
    read_timeout: float = 3.0  # seconds

    # Logging
    environment: str = "production"
    log_config_path: Optional[Path] = None
    log_level: str = "INFO"
    log_dir: Path = Path("logs")
    enable_file_logging: bool = False
    enable_json_logs: bool = True

    model_config = SettingsConfigDict(
        env_prefix="TRACEKIT_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    @field_validator("sample_rate", mode="before")
    @classmethod
    def _clamp_sample_rate(cls, value: Any) -> float:
        from ..tracing.sampler import clamp_sample_rate

        return clamp_sample_rate(value)

    @field_validator("send_interval", mode="before")
    @classmethod
    def _clamp_send_interval(cls, value: Any) -> int:
        try:
            interval = int(float(value))
        except (TypeError, ValueError, OverflowError):
            return 5
        return max(MIN_SEND_INTERVAL, interval)

    @property
    def is_enabled(self) -> bool:
        """Tracing runs only when switched on and an API key is configured."""
        return self.enabled and bool(self.api_key)

    @property
    def is_development(self) -> bool:
        return self.environment.lower() in ("development", "dev", "local")


@lru_cache(maxsize=1)
def get_settings() -> TraceSettings:
    return TraceSettings()
