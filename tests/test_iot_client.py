#!/usr/bin/env python3
"""Unit tests for the IoT Cloud HTTP client.

Tests cover:
    - Authorization and organization headers
    - Mapping of HTTP status codes to typed exceptions
    - Token refresh on 401 and backoff on 5xx
    - Rate limits surfacing without retry
"""
import sys
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

sys.path.insert(0, str(__file__).rsplit("/tests", 1)[0])
from src.swsync.api.exceptions import (
    NotFoundError,
    RateLimitError,
    ServerError,
    SwSyncError,
    ValidationError,
)
from src.swsync.api.iot_client import IoTClient


def make_response(status: int, payload=None, text: str = "", headers: dict | None = None):
    mock_response = MagicMock()
    mock_response.status = status
    mock_response.headers = headers or {}
    mock_response.json = AsyncMock(return_value=payload)
    mock_response.text = AsyncMock(return_value=text)
    mock_response.__aenter__ = AsyncMock(return_value=mock_response)
    mock_response.__aexit__ = AsyncMock(return_value=None)
    return mock_response


def make_client(*responses, organization_id: str | None = None) -> IoTClient:
    """Client wired to a fake session answering with the given responses."""
    token_manager = MagicMock()
    token_manager.get_token = AsyncMock(return_value="test_token")
    token_manager.invalidate = MagicMock()

    client = IoTClient(
        token_manager,
        base_url="https://api.example.com",
        organization_id=organization_id,
    )
    session = MagicMock()
    session.request = MagicMock(side_effect=list(responses))
    session.close = AsyncMock()
    client._session = session
    return client


# ============================================
# Request Tests
# ============================================

class TestRequests:
    """Test request construction."""

    @pytest.mark.asyncio
    async def test_get_sends_bearer_and_params(self):
        client = make_client(make_response(200, [{"id": "t1"}]))

        result = await client.get("/iot/v2/things", params=[("show_properties", "true")])

        assert result == [{"id": "t1"}]
        kwargs = client._session.request.call_args.kwargs
        assert kwargs["method"] == "GET"
        assert kwargs["url"] == "https://api.example.com/iot/v2/things"
        assert kwargs["params"] == [("show_properties", "true")]
        assert kwargs["headers"]["Authorization"] == "Bearer test_token"
        assert "X-Organization" not in kwargs["headers"]

    @pytest.mark.asyncio
    async def test_organization_header(self):
        client = make_client(make_response(200, {}), organization_id="org-1")

        await client.get("/iot/v1/property_types")

        headers = client._session.request.call_args.kwargs["headers"]
        assert headers["X-Organization"] == "org-1"

    @pytest.mark.asyncio
    async def test_post_sends_json_body(self):
        client = make_client(make_response(200, {"responses": []}))
        body = {"requests": [{"q": "thing.t1"}]}

        result = await client.post("/iot/v2/series/batch_query", body)

        assert result == {"responses": []}
        kwargs = client._session.request.call_args.kwargs
        assert kwargs["method"] == "POST"
        assert kwargs["json"] == body

    @pytest.mark.asyncio
    async def test_requires_context_manager(self):
        client = IoTClient(MagicMock(), base_url="https://api.example.com")

        with pytest.raises(RuntimeError):
            await client.get("/iot/v2/things")

    @pytest.mark.asyncio
    async def test_context_manager_closes_session(self):
        token_manager = MagicMock()
        with patch("aiohttp.TCPConnector"), patch("aiohttp.ClientSession") as mock_session_cls:
            mock_session_cls.return_value.close = AsyncMock()
            async with IoTClient(token_manager, base_url="https://api.example.com") as client:
                assert client._session is mock_session_cls.return_value

        mock_session_cls.return_value.close.assert_awaited_once()
        assert client._session is None


# ============================================
# Error Mapping Tests
# ============================================

class TestErrorMapping:
    """Test mapping of HTTP errors to typed exceptions."""

    @pytest.mark.asyncio
    async def test_404_not_found(self):
        client = make_client(make_response(404, text="missing"))

        with pytest.raises(NotFoundError):
            await client.get("/iot/v2/things/x")

        assert client._session.request.call_count == 1

    @pytest.mark.asyncio
    async def test_400_validation(self):
        client = make_client(make_response(400, text="bad query"))

        with pytest.raises(ValidationError) as exc_info:
            await client.post("/iot/v2/series/batch_query", {})

        assert exc_info.value.status_code == 400

    @pytest.mark.asyncio
    async def test_429_not_retried(self):
        client = make_client(make_response(429, headers={"Retry-After": "7"}))

        with pytest.raises(RateLimitError) as exc_info:
            await client.post("/iot/v2/series/batch_query", {})

        assert exc_info.value.retry_after == 7
        assert client._session.request.call_count == 1

    @pytest.mark.asyncio
    async def test_401_refreshes_token_and_retries(self):
        client = make_client(make_response(401), make_response(200, {"ok": True}))

        result = await client.get("/iot/v2/things")

        assert result == {"ok": True}
        client.token_manager.invalidate.assert_called_once()
        assert client._session.request.call_count == 2

    @pytest.mark.asyncio
    async def test_5xx_retried_with_backoff(self):
        client = make_client(make_response(503), make_response(502), make_response(200, []))

        with patch("asyncio.sleep", new_callable=AsyncMock) as mock_sleep:
            result = await client.get("/iot/v2/things")

        assert result == []
        assert [c.args[0] for c in mock_sleep.await_args_list] == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_5xx_exhausted(self):
        client = make_client(*(make_response(500) for _ in range(3)))

        with patch("asyncio.sleep", new_callable=AsyncMock):
            with pytest.raises(ServerError):
                await client.get("/iot/v2/things")

        assert client._session.request.call_count == 3

    @pytest.mark.asyncio
    async def test_other_status_is_api_error(self):
        client = make_client(make_response(403, text="forbidden"))

        with pytest.raises(SwSyncError) as exc_info:
            await client.get("/iot/v2/things")

        assert exc_info.value.status_code == 403
        assert exc_info.value.details["endpoint"] == "/iot/v2/things"


# ============================================
# Run tests
# ============================================

if __name__ == "__main__":
    pytest.main([__file__, "-v"])
