"""Unit tests for the observability module."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest

from core.observability import (
    _get_connection_string,
    _is_observability_enabled,
    configure_observability,
    get_tracer,
)


@pytest.fixture(autouse=True)
def _fresh_configuration(monkeypatch: pytest.MonkeyPatch):
    """Reset the cached configuration and the env vars it writes."""
    monkeypatch.delenv("OTEL_SERVICE_NAME", raising=False)
    monkeypatch.delenv("OTEL_PYTHON_FASTAPI_EXCLUDED_URLS", raising=False)
    configure_observability.cache_clear()
    yield
    configure_observability.cache_clear()


class TestIsObservabilityEnabled:
    @pytest.mark.parametrize(
        "env_value,expected",
        [
            ("true", True),
            ("TRUE", True),
            ("1", True),
            ("yes", True),
            ("on", True),
            ("false", False),
            ("0", False),
            ("off", False),
            ("", False),
            ("random", False),
        ],
    )
    def test_truthy_and_falsy_values(
        self, env_value: str, expected: bool, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("ENABLE_OBSERVABILITY", env_value)
        assert _is_observability_enabled() is expected

    def test_default_when_not_set(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("ENABLE_OBSERVABILITY", raising=False)
        assert _is_observability_enabled() is False


def test_connection_string_read_from_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("APPLICATIONINSIGHTS_CONNECTION_STRING", "InstrumentationKey=x")
    assert _get_connection_string() == "InstrumentationKey=x"

    monkeypatch.delenv("APPLICATIONINSIGHTS_CONNECTION_STRING")
    assert _get_connection_string() is None


class TestConfigureObservability:
    """Tests for configure_observability function."""

    def test_returns_false_when_disabled(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("ENABLE_OBSERVABILITY", "false")
        assert configure_observability() is False

    def test_returns_false_when_no_connection_string(
        self, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("ENABLE_OBSERVABILITY", "true")
        monkeypatch.delenv("APPLICATIONINSIGHTS_CONNECTION_STRING", raising=False)
        assert configure_observability() is False

    def test_returns_false_when_exporter_missing(
        self, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("ENABLE_OBSERVABILITY", "true")
        monkeypatch.setenv("APPLICATIONINSIGHTS_CONNECTION_STRING", "InstrumentationKey=x")

        # A None entry in sys.modules makes the import raise ImportError
        with patch.dict("sys.modules", {"azure.monitor.opentelemetry": None}):
            assert configure_observability() is False

    def test_configures_azure_monitor(self, monkeypatch: pytest.MonkeyPatch) -> None:
        import os

        monkeypatch.setenv("ENABLE_OBSERVABILITY", "true")
        monkeypatch.setenv("APPLICATIONINSIGHTS_CONNECTION_STRING", "InstrumentationKey=x")
        mock_module = MagicMock()

        with patch.dict("sys.modules", {"azure.monitor.opentelemetry": mock_module}):
            assert configure_observability() is True

        mock_module.configure_azure_monitor.assert_called_once_with(
            connection_string="InstrumentationKey=x"
        )
        assert os.environ["OTEL_SERVICE_NAME"] == "pipelinepilot-backend"
        assert "health" in os.environ["OTEL_PYTHON_FASTAPI_EXCLUDED_URLS"]

    def test_returns_false_when_exporter_raises(
        self, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("ENABLE_OBSERVABILITY", "true")
        monkeypatch.setenv("APPLICATIONINSIGHTS_CONNECTION_STRING", "InstrumentationKey=x")
        mock_module = MagicMock()
        mock_module.configure_azure_monitor.side_effect = RuntimeError("bad key")

        with patch.dict("sys.modules", {"azure.monitor.opentelemetry": mock_module}):
            assert configure_observability() is False


def test_get_tracer_spans_work_without_sdk() -> None:
    tracer = get_tracer("tests.observability")

    with tracer.start_as_current_span("pipeline.generate") as span:
        span.set_attribute("generation.model", "fake-model")
        span.set_attribute("generation.attempt", 1)
