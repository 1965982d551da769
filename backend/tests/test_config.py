import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

import pytest

from gemtrace.core.config import DEFAULT_ENDPOINT, TraceSettings, get_settings


@pytest.fixture
def env(monkeypatch):
    get_settings.cache_clear()
    yield monkeypatch
    get_settings.cache_clear()


def load() -> TraceSettings:
    return TraceSettings(_env_file=None)


def test_defaults_without_api_key_disable_tracing(env):
    settings = load()
    assert settings.api_key == ""
    assert settings.enabled is True
    assert settings.is_enabled is False
    assert settings.service_name == "gemtrace-app"
    assert settings.endpoint == DEFAULT_ENDPOINT
    assert settings.sample_rate == 1.0
    assert settings.delivery_mode == "batch"
    assert settings.send_interval == 5
    assert settings.connect_timeout == 1.0
    assert settings.read_timeout == 3.0


def test_tracekit_variables(env):
    env.setenv("TRACEKIT_API_KEY", "tk-123")
    env.setenv("TRACEKIT_SERVICE_NAME", "orders")
    env.setenv("TRACEKIT_ENDPOINT", "https://collector.test/v1/traces")
    env.setenv("TRACEKIT_DELIVERY_MODE", "immediate")
    settings = load()
    assert settings.is_enabled
    assert settings.api_key == "tk-123"
    assert settings.service_name == "orders"
    assert settings.endpoint == "https://collector.test/v1/traces"
    assert settings.delivery_mode == "immediate"


def test_apm_aliases(env):
    env.setenv("APM_API_KEY", "apm-key")
    env.setenv("APM_SAMPLE_RATE", "0.3")
    env.setenv("APM_SEND_INTERVAL", "12")
    env.setenv("APM_ENABLED", "false")
    settings = load()
    assert settings.api_key == "apm-key"
    assert settings.sample_rate == 0.3
    assert settings.send_interval == 12
    assert settings.is_enabled is False


def test_tracekit_name_wins_over_apm_alias(env):
    env.setenv("TRACEKIT_API_KEY", "primary")
    env.setenv("APM_API_KEY", "fallback")
    assert load().api_key == "primary"


@pytest.mark.parametrize(
    "raw, expected",
    [("1.7", 1.0), ("-3", 0.0), ("0.05", 0.05), ("often", 1.0)],
)
def test_sample_rate_is_clamped(env, raw, expected):
    env.setenv("TRACEKIT_SAMPLE_RATE", raw)
    assert load().sample_rate == expected


@pytest.mark.parametrize("raw, expected", [("0", 1), ("-10", 1), ("soon", 5), ("30", 30)])
def test_send_interval_has_a_floor(env, raw, expected):
    env.setenv("TRACEKIT_SEND_INTERVAL", raw)
    assert load().send_interval == expected


def test_response_body_variable_enables_request_body_capture(env):
    env.setenv("TRACEKIT_TRACE_RESPONSE_BODY", "true")
    assert load().trace_request_body is True


def test_feature_flags(env):
    env.setenv("TRACEKIT_TRACE_RESPONSE", "1")
    env.setenv("TRACEKIT_TRACE_DB_QUERY", "yes")
    settings = load()
    assert settings.trace_response is True
    assert settings.trace_db_query is True
    assert settings.trace_request_body is False


def test_init_kwargs_use_field_names(env):
    settings = TraceSettings(_env_file=None, api_key="kw", sample_rate=2)
    assert settings.api_key == "kw"
    assert settings.sample_rate == 1.0


def test_get_settings_is_cached(env):
    env.setenv("TRACEKIT_API_KEY", "cached")
    first = get_settings()
    env.setenv("TRACEKIT_API_KEY", "changed")
    assert get_settings() is first
    get_settings.cache_clear()
    assert get_settings().api_key == "changed"


def test_development_environment(env):
    env.setenv("TRACEKIT_ENVIRONMENT", "development")
    assert load().is_development
