"""Tests for rate limiting functionality.

Tests cover:
- Graceful degradation when Redis fails
- 429 response when rate limit exceeded
- Client identifier extraction from tokens and addresses
"""

from __future__ import annotations

import time
import uuid
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi import HTTPException, Request

from core.ratelimit import _get_client_identifier, check_rate_limit
from dependencies.context import hash_user_token


def _request(
    path: str = "/api/v1/pipelines/generate",
    headers: dict[str, str] | None = None,
    host: str | None = "192.168.1.1",
) -> MagicMock:
    mock_request = MagicMock(spec=Request)
    mock_request.url.path = path
    mock_request.headers = headers or {}
    if host is None:
        mock_request.client = None
    else:
        mock_request.client.host = host
    return mock_request


class TestCheckRateLimit:
    """Tests for the check_rate_limit dependency."""

    @pytest.mark.asyncio
    async def test_check_rate_limit_allows_request_on_redis_error(self) -> None:
        """Verify requests proceed when rate limiter raises exception.

        When Redis fails, generation requests should still be allowed
        through rather than blocking all traffic.
        """
        mock_settings = MagicMock()
        mock_settings.RATE_LIMIT_REQUESTS = 10

        mock_ratelimiter = MagicMock()
        mock_ratelimiter.limit = AsyncMock(
            side_effect=Exception("Redis connection failed")
        )

        with patch("core.ratelimit.get_ratelimiter", return_value=mock_ratelimiter):
            await check_rate_limit(_request(), mock_settings)

            mock_ratelimiter.limit.assert_awaited_once_with("ip:192.168.1.1")

    @pytest.mark.asyncio
    async def test_check_rate_limit_returns_429_when_exceeded(self) -> None:
        """Verify 429 response when rate limit exceeded."""
        mock_settings = MagicMock()
        mock_settings.RATE_LIMIT_REQUESTS = 10

        mock_response = MagicMock()
        mock_response.allowed = False
        mock_response.remaining = 0
        mock_response.reset = int(time.time() * 1000) + 30000  # 30 seconds from now

        mock_ratelimiter = MagicMock()
        mock_ratelimiter.limit = AsyncMock(return_value=mock_response)

        with patch("core.ratelimit.get_ratelimiter", return_value=mock_ratelimiter):
            with pytest.raises(HTTPException) as exc_info:
                await check_rate_limit(_request(), mock_settings)

        assert exc_info.value.status_code == 429
        headers = exc_info.value.headers
        assert headers is not None
        assert 1 <= int(headers["Retry-After"]) <= 30
        assert headers["X-RateLimit-Limit"] == "10"
        assert headers["X-RateLimit-Remaining"] == "0"

    @pytest.mark.asyncio
    async def test_check_rate_limit_allows_within_window(self) -> None:
        mock_response = MagicMock()
        mock_response.allowed = True

        mock_ratelimiter = MagicMock()
        mock_ratelimiter.limit = AsyncMock(return_value=mock_response)

        with patch("core.ratelimit.get_ratelimiter", return_value=mock_ratelimiter):
            await check_rate_limit(_request(), MagicMock())

    @pytest.mark.asyncio
    async def test_check_rate_limit_bypasses_health_endpoints(self) -> None:
        """Verify health check endpoints bypass rate limiting."""
        with patch("core.ratelimit.get_ratelimiter") as mock_get_ratelimiter:
            await check_rate_limit(_request("/api/v1/health"), MagicMock())
            mock_get_ratelimiter.assert_not_called()

    @pytest.mark.asyncio
    async def test_check_rate_limit_allows_when_not_configured(self) -> None:
        """Verify requests proceed when rate limiting is not configured."""
        with patch("core.ratelimit.get_ratelimiter", return_value=None):
            await check_rate_limit(_request(), MagicMock())


class TestGetClientIdentifier:
    """Tests for client identifier extraction."""

    def test_bearer_token_selects_user_bucket(self) -> None:
        """Verify callers with a token share one bucket across addresses."""
        request = _request(
            headers={
                "Authorization": "Bearer abc",
                "X-Forwarded-For": "10.0.0.1",
            }
        )

        assert _get_client_identifier(request) == f"user:{hash_user_token('abc')}"

    def test_get_client_identifier_uses_forwarded_for(self) -> None:
        """Verify the first X-Forwarded-For hop is used when present."""
        request = _request(headers={"X-Forwarded-For": "  10.0.0.1  , 192.168.1.1"})

        assert _get_client_identifier(request) == "ip:10.0.0.1"

    def test_get_client_identifier_uses_client_host(self) -> None:
        """Verify client.host is used when no X-Forwarded-For."""
        request = _request(host="192.168.1.100")

        assert _get_client_identifier(request) == "ip:192.168.1.100"

    @pytest.mark.parametrize("host", [None, ""])
    def test_get_client_identifier_returns_uuid_without_client(
        self, host: str | None
    ) -> None:
        """Verify a fresh UUID is generated when the caller is unidentifiable."""
        request = _request(host=host)

        result = _get_client_identifier(request)

        assert result.startswith("unknown:")
        uuid.UUID(result.split(":")[1])  # Will raise if invalid
