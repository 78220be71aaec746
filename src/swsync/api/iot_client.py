#!/usr/bin/env python3
"""Async HTTP Client for the Arduino IoT Cloud API.

This module provides the transport used to read things, property types and
time series from the IoT Cloud:

    - OAuth2 authentication via TokenManager
    - Organization scoping through the X-Organization header
    - Automatic token refresh on 401 responses
    - Exponential backoff on 5xx responses and network errors
    - Connection pooling via shared aiohttp session
    - Typed exceptions for every failure

Rate limiting (HTTP 429) is NOT retried here. It surfaces immediately as
RateLimitError so the caller can apply its own retry policy; the exporter
wraps sample fetches in a fixed-count, jittered retry.

Design Philosophy:
    This client knows HOW to talk to the IoT Cloud, but not WHAT to fetch.
    Endpoints and payload shapes belong in the IoTThingSource adapter.

Usage:
    async with IoTClient(token_manager, organization_id="org") as client:
        things = await client.get("/iot/v2/things", params={"show_properties": "true"})
        series = await client.post("/iot/v2/series/batch_query", {"requests": [...]})
"""
import asyncio
import logging
from typing import Any, Optional

import aiohttp

from .auth import TokenManager, resolve_api_url
from .exceptions import (
    APIError,
    ConnectionError,
    NetworkError,
    NotFoundError,
    RateLimitError,
    ServerError,
    TimeoutError,
    TokenExpiredError,
    ValidationError,
)

logger = logging.getLogger(__name__)


class IoTClient:
    """Async HTTP client for the Arduino IoT Cloud API.

    Use as an async context manager so the HTTP session is closed:

        async with IoTClient(token_manager) as client:
            data = await client.get("/iot/v1/property_types")

    Attributes:
        token_manager: TokenManager instance for OAuth2 authentication
        base_url: API base URL (e.g., "https://api2.arduino.cc")
        organization_id: Optional organization the requests are scoped to
    """

    def __init__(
        self,
        token_manager: TokenManager,
        base_url: Optional[str] = None,
        organization_id: Optional[str] = None,
        max_retries: int = 3,
        max_connections: int = 10,
    ):
        self.token_manager = token_manager
        self.base_url = resolve_api_url(base_url)
        self.organization_id = organization_id or None
        self.max_retries = max_retries
        self.max_connections = max_connections

        self._session: Optional[aiohttp.ClientSession] = None

    # ----------------------------------------
    # Context Manager Protocol
    # ----------------------------------------

    async def __aenter__(self) -> "IoTClient":
        self._session = aiohttp.ClientSession(
            connector=aiohttp.TCPConnector(
                limit=self.max_connections,
                limit_per_host=self.max_connections,
            ),
            timeout=aiohttp.ClientTimeout(total=60, connect=10),
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        if self._session:
            await self._session.close()
            self._session = None

    # ----------------------------------------
    # Low-Level Request Methods
    # ----------------------------------------

    async def _get_headers(self) -> dict[str, str]:
        token = await self.token_manager.get_token()
        headers = {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
        }
        if self.organization_id:
            headers["X-Organization"] = self.organization_id
        return headers

    async def _request(
        self,
        method: str,
        endpoint: str,
        params: Optional[Any] = None,
        json_body: Optional[dict] = None,
    ) -> Any:
        """Make a single HTTP request (no retry logic).

        Raises:
            APIError: If response status is not 2xx
            RuntimeError: If called outside of async context manager
            ConnectionError: If connection to server fails
            TimeoutError: If request times out
        """
        if not self._session:
            raise RuntimeError(
                "IoTClient must be used as async context manager: "
                "async with IoTClient(...) as client:"
            )

        url = f"{self.base_url}{endpoint}"

        try:
            headers = await self._get_headers()

            async with self._session.request(
                method=method,
                url=url,
                headers=headers,
                params=params,
                json=json_body,
            ) as response:
                if response.status >= 400:
                    error_text = await response.text()
                    raise self._create_api_error(
                        status=response.status,
                        method=method,
                        endpoint=endpoint,
                        response_body=error_text,
                        retry_after=response.headers.get("Retry-After"),
                    )

                return await response.json()

        except aiohttp.ClientConnectionError as e:
            raise ConnectionError(
                f"Failed to connect to {self.base_url}",
                host=self.base_url,
                cause=e,
            )

        except asyncio.TimeoutError as e:
            raise TimeoutError(
                f"Request to {endpoint} timed out",
                timeout_seconds=60,
                cause=e,
            )

        except aiohttp.ClientError as e:
            raise NetworkError(
                f"Network error during {method} {endpoint}: {e}",
                cause=e,
            )

    def _create_api_error(
        self,
        status: int,
        method: str,
        endpoint: str,
        response_body: str,
        retry_after: Optional[str] = None,
    ) -> APIError:
        """Create appropriate APIError subclass based on status code."""
        if status == 401:
            return TokenExpiredError(
                "Access token expired or invalid",
                details={"endpoint": endpoint},
            )

        if status == 404:
            return NotFoundError(
                resource_type="Resource",
                resource_id=endpoint,
                endpoint=endpoint,
                response_body=response_body,
            )

        if status == 429:
            return RateLimitError(
                f"Rate limit exceeded for {endpoint}",
                retry_after=int(retry_after) if retry_after and retry_after.isdigit() else None,
                endpoint=endpoint,
                method=method,
                response_body=response_body,
            )

        if status in (400, 422):
            return ValidationError(
                f"Validation failed for {method} {endpoint}",
                status_code=status,
                endpoint=endpoint,
                method=method,
                response_body=response_body,
            )

        if status >= 500:
            return ServerError(
                f"Server error ({status}) for {method} {endpoint}",
                status_code=status,
                endpoint=endpoint,
                method=method,
                response_body=response_body,
            )

        return APIError(
            f"{method} {endpoint} failed",
            status_code=status,
            endpoint=endpoint,
            method=method,
            response_body=response_body,
        )

    async def _request_with_retry(
        self,
        method: str,
        endpoint: str,
        params: Optional[Any] = None,
        json_body: Optional[dict] = None,
    ) -> Any:
        """Make an HTTP request with automatic retry.

        - 401 Unauthorized: Invalidate token, refresh, retry
        - 5xx Server Errors: Exponential backoff retry
        - Network errors: Exponential backoff retry
        - 429 Rate Limited: raised immediately (caller applies its policy)

        Raises:
            RateLimitError: On the first 429 response
            APIError: If request fails after all retries
            NetworkError: If network error persists after retries
        """
        last_error: Optional[Exception] = None
        backoff_delay = 1.0

        for attempt in range(1, self.max_retries + 1):
            try:
                return await self._request(method, endpoint, params, json_body)

            except TokenExpiredError as e:
                last_error = e
                logger.warning(f"Token expired, refreshing (attempt {attempt})")
                self.token_manager.invalidate()
                continue

            except (RateLimitError, NotFoundError, ValidationError):
                raise

            except (ServerError, NetworkError) as e:
                last_error = e
                if attempt < self.max_retries:
                    logger.warning(
                        f"{e}. Retrying in {backoff_delay}s "
                        f"(attempt {attempt}/{self.max_retries})"
                    )
                    await asyncio.sleep(backoff_delay)
                    backoff_delay = min(backoff_delay * 2, 60.0)
                    continue
                raise

        if last_error:
            raise last_error

        raise APIError(
            "Request failed after all retries",
            status_code=0,
            endpoint=endpoint,
            method=method,
        )

    # ----------------------------------------
    # High-Level Request Methods
    # ----------------------------------------

    async def get(self, endpoint: str, params: Optional[Any] = None) -> Any:
        """Make a GET request and return the parsed JSON body."""
        return await self._request_with_retry("GET", endpoint, params=params)

    async def post(
        self,
        endpoint: str,
        json_body: dict,
        params: Optional[Any] = None,
    ) -> Any:
        """Make a POST request and return the parsed JSON body."""
        return await self._request_with_retry(
            "POST", endpoint, params=params, json_body=json_body
        )
