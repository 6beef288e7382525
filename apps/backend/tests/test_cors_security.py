"""Tests for CORS configuration and settings validation."""

import pytest
from fastapi.testclient import TestClient

from core.config import Settings


def _settings(**overrides) -> Settings:
    return Settings(_env_file=None, **overrides)  # type: ignore[call-arg]


class TestCORSConfiguration:
    """Test CORS configuration adheres to security requirements."""

    def test_cors_preflight_request(self, client: TestClient):
        response = client.options(
            "/api/v1/pipelines/validate",
            headers={
                "Origin": "http://localhost:5173",
                "Access-Control-Request-Method": "POST",
                "Access-Control-Request-Headers": "Content-Type",
            },
        )

        assert response.status_code == 200
        assert (
            response.headers["Access-Control-Allow-Origin"] == "http://localhost:5173"
        )
        assert response.headers["Access-Control-Allow-Credentials"] == "true"

    def test_cors_request_from_disallowed_origin(self, client: TestClient):
        response = client.get(
            "/api/v1/health",
            headers={"Origin": "http://malicious-site.com"},
        )

        # Still served, but without CORS approval for the foreign origin
        assert response.status_code == 200
        assert (
            response.headers.get("Access-Control-Allow-Origin")
            != "http://malicious-site.com"
        )

    def test_correlation_id_header_is_exposed(self, client: TestClient):
        response = client.get(
            "/api/v1/health", headers={"Origin": "http://127.0.0.1:5173"}
        )

        assert "X-Correlation-ID" in response.headers["Access-Control-Expose-Headers"]


class TestSettingsValidation:
    def test_cors_credentials_with_wildcard_prevented(self):
        with pytest.raises(ValueError, match="CORS configuration error"):
            _settings(CORS_ORIGINS=["*"], ALLOW_CREDENTIALS=True)

    def test_cors_wildcard_allowed_without_credentials(self):
        settings = _settings(CORS_ORIGINS=["*"], ALLOW_CREDENTIALS=False)
        assert settings.CORS_ORIGINS == ["*"]

    def test_cors_origins_csv_parsing(self):
        settings = _settings(
            CORS_ORIGINS="http://localhost:5173,https://app.example.com, "
            "http://127.0.0.1:5173",
        )

        assert settings.CORS_ORIGINS == [
            "http://localhost:5173",
            "https://app.example.com",
            "http://127.0.0.1:5173",
        ]

    def test_cors_origins_json_parsing(self):
        settings = _settings(
            CORS_ORIGINS='["http://localhost:5173", "https://app.example.com"]',
        )
        assert settings.CORS_ORIGINS == [
            "http://localhost:5173",
            "https://app.example.com",
        ]

    def test_generation_models_csv_parsing(self):
        settings = _settings(GENERATION_MODELS="model-a, model-b")
        assert settings.GENERATION_MODELS == ["model-a", "model-b"]

    def test_generation_models_must_not_be_empty(self):
        with pytest.raises(ValueError, match="at least one model"):
            _settings(GENERATION_MODELS="")

    def test_retry_delays_parse_as_floats(self):
        settings = _settings(GENERATION_RETRY_DELAYS="0.5,1,2")
        assert settings.GENERATION_RETRY_DELAYS == [0.5, 1.0, 2.0]

    def test_negative_retry_delay_rejected(self):
        with pytest.raises(ValueError, match="non-negative"):
            _settings(GENERATION_RETRY_DELAYS=[1.0, -2.0])

    def test_max_iterations_must_be_positive(self):
        with pytest.raises(ValueError, match="GENERATION_MAX_ITERATIONS"):
            _settings(GENERATION_MAX_ITERATIONS=0)

    def test_defaults_match_generation_loop(self):
        settings = _settings()
        assert settings.GENERATION_MAX_RETRIES == 3
        assert settings.GENERATION_RETRY_DELAYS == [1.0, 2.0, 4.0]
        assert settings.GENERATION_MAX_ITERATIONS == 5
        assert settings.GENERATION_FALLBACK_POLICY == "return_placeholder"
        assert settings.STRICT_RESOURCE_VALIDATION is False
