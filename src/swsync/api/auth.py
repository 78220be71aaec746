#!/usr/bin/env python3
"""OAuth2 Token Management for the Arduino IoT Cloud API.

This module manages access tokens for the IoT Cloud API using the OAuth2
client credentials grant. The API key and secret issued by the IoT Cloud
are the client id and client secret; the token endpoint lives under the
API base URL and requires an ``audience`` form field.

Features:
    - Token caching with dynamic expiration buffer (10% of TTL, max 5min)
    - Refresh serialized with asyncio.Lock so concurrent callers share one fetch
    - Exponential backoff retry on failures (1s, 2s, 4s)
    - Typed exceptions for invalid credentials and transport failures

Security Notes:
    - Tokens are cached in memory only (never persisted to disk)
    - Credentials come from the environment or the parameter store
    - Log lines carry a SHA-256 prefix of the token, never the token itself

Example:
    >>> manager = TokenManager(client_id="key", client_secret="secret")
    >>> token = await manager.get_token()
"""
import asyncio
import hashlib
import logging
import os
import random
import time
from dataclasses import dataclass
from typing import Optional

import aiohttp
from dotenv import load_dotenv

from .exceptions import (
    ConfigurationError,
    ConnectionError,
    InvalidCredentialsError,
    NetworkError,
    TimeoutError,
    TokenFetchError,
)

load_dotenv()

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://api2.arduino.cc"
DEV_API_URL = "https://api2.oniudra.cc"
TOKEN_PATH = "/iot/v1/clients/token"
TOKEN_AUDIENCE = "https://api2.arduino.cc/iot"


def resolve_api_url(base_url: Optional[str] = None) -> str:
    """API base URL: explicit value, then IOT_API_URL, then production."""
    return (base_url or os.getenv("IOT_API_URL") or DEFAULT_API_URL).rstrip("/")


@dataclass
class CachedToken:
    """Container for a cached OAuth2 access token.

    Attributes:
        access_token: The OAuth2 bearer token string.
        expires_at: Unix timestamp when the token expires.
        token_type: Token type, typically "Bearer".
        expires_in: Original TTL in seconds (for dynamic buffer calculation).
    """
    access_token: str
    expires_at: float
    token_type: Optional[str] = "Bearer"
    expires_in: int = 300

    MAX_BUFFER_SECONDS = 300
    MIN_BUFFER_SECONDS = 30

    @property
    def token_id(self) -> str:
        """Safe identifier for logging (SHA-256 hash, first 8 chars)."""
        return hashlib.sha256(self.access_token.encode()).hexdigest()[:8]

    @property
    def _buffer_seconds(self) -> float:
        base_buffer = self.expires_in * 0.1
        buffer = max(self.MIN_BUFFER_SECONDS, min(base_buffer, self.MAX_BUFFER_SECONDS))
        # ±10% so that parallel processes do not refresh in lockstep
        return buffer + buffer * random.uniform(-0.1, 0.1)

    @property
    def is_expired(self) -> bool:
        """Check if the token has expired (with dynamic safety buffer)."""
        return time.time() >= (self.expires_at - self._buffer_seconds)

    @property
    def time_remaining(self) -> float:
        """Return seconds remaining before token expires (0 if expired)."""
        return max(0, self.expires_at - time.time())


class TokenManager:
    """OAuth2 client-credentials token manager for the IoT Cloud API.

    Attributes:
        client_id: IoT API key (from env: IOT_API_KEY).
        client_secret: IoT API secret (from env: IOT_API_SECRET).
        token_url: Token endpoint, derived from the API base URL.
        audience: Audience requested for the token.

    Example:
        >>> manager = TokenManager()
        >>> token = await manager.get_token()  # Fetches new token
        >>> token = await manager.get_token()  # Returns cached token
    """

    def __init__(
        self,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
        base_url: Optional[str] = None,
        audience: str = TOKEN_AUDIENCE,
    ):
        self.client_id = client_id or os.getenv("IOT_API_KEY")
        self.client_secret = client_secret or os.getenv("IOT_API_SECRET")
        self.token_url = resolve_api_url(base_url) + TOKEN_PATH
        self.audience = audience

        missing = []
        if not self.client_id:
            missing.append("IOT_API_KEY")
        if not self.client_secret:
            missing.append("IOT_API_SECRET")
        if missing:
            raise ConfigurationError(
                f"Missing required credentials: {', '.join(missing)}",
                missing_keys=missing,
            )

        self._cached_token: Optional[CachedToken] = None
        self._lock = asyncio.Lock()

    async def get_token(self) -> str:
        """Get a valid access token, fetching or refreshing as needed.

        Raises:
            TokenFetchError: If the token cannot be obtained after retries
            InvalidCredentialsError: If the API key/secret pair is rejected
        """
        if self._cached_token and not self._cached_token.is_expired:
            return self._cached_token.access_token

        async with self._lock:
            if self._cached_token and not self._cached_token.is_expired:
                return self._cached_token.access_token

            self._cached_token = await self._fetch_token()
            return self._cached_token.access_token

    async def _fetch_token(self, max_retries: int = 3) -> CachedToken:
        payload = {
            "grant_type": "client_credentials",
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "audience": self.audience,
        }
        headers = {"Content-Type": "application/x-www-form-urlencoded"}

        last_error: Optional[Exception] = None

        for attempt in range(1, max_retries + 1):
            try:
                async with aiohttp.ClientSession() as session:
                    async with session.post(
                        self.token_url,
                        data=payload,
                        headers=headers,
                        timeout=aiohttp.ClientTimeout(total=30),
                    ) as response:
                        if response.status == 200:
                            data = await response.json()

                            access_token = data.get("access_token")
                            if not access_token:
                                raise TokenFetchError(
                                    "Token response missing access_token",
                                    status_code=200,
                                    attempts=attempt,
                                    details={"response_keys": list(data.keys())},
                                )

                            expires_in = int(data.get("expires_in", 300))
                            token = CachedToken(
                                access_token=access_token,
                                expires_at=time.time() + expires_in,
                                token_type=data.get("token_type", "Bearer"),
                                expires_in=expires_in,
                            )
                            logger.info(
                                f"IoT token fetched (id={token.token_id}), "
                                f"expires in {expires_in}s"
                            )
                            return token

                        error_text = await response.text()

                        if response.status == 401:
                            raise InvalidCredentialsError(
                                "Invalid IoT API key or secret",
                                details={"response": error_text[:200]},
                            )

                        if response.status == 400:
                            raise TokenFetchError(
                                f"Invalid token request: {error_text[:200]}",
                                status_code=400,
                                attempts=attempt,
                            )

                        last_error = TokenFetchError(
                            f"Token server returned HTTP {response.status}",
                            status_code=response.status,
                            attempts=attempt,
                            details={"response": error_text[:200]},
                        )
                        logger.warning(
                            f"Token fetch attempt {attempt}/{max_retries} failed: "
                            f"HTTP {response.status}"
                        )

            except aiohttp.ClientConnectionError as e:
                last_error = ConnectionError(
                    f"Failed to connect to token server: {e}",
                    host=self.token_url,
                    cause=e,
                )
                logger.warning(
                    f"Token fetch attempt {attempt}/{max_retries} failed: "
                    f"Connection error - {e}"
                )

            except asyncio.TimeoutError as e:
                last_error = TimeoutError(
                    "Token request timed out",
                    timeout_seconds=30,
                    cause=e,
                )
                logger.warning(
                    f"Token fetch attempt {attempt}/{max_retries} failed: Timeout"
                )

            except aiohttp.ClientError as e:
                last_error = NetworkError(
                    f"Network error fetching token: {e}",
                    cause=e,
                )
                logger.warning(
                    f"Token fetch attempt {attempt}/{max_retries} failed: {e}"
                )

            if attempt < max_retries:
                wait_time = 2 ** (attempt - 1)
                logger.debug(f"Waiting {wait_time}s before retry")
                await asyncio.sleep(wait_time)

        raise TokenFetchError(
            f"Failed to fetch token after {max_retries} attempts",
            attempts=max_retries,
            cause=last_error,
        )

    def invalidate(self):
        """Invalidate the cached token."""
        self._cached_token = None

    @property
    def token_info(self) -> Optional[dict]:
        """Debug information about the cached token (hash only, never the token)."""
        if not self._cached_token:
            return None
        return {
            "token_id": self._cached_token.token_id,
            "is_expired": self._cached_token.is_expired,
            "time_remaining_seconds": self._cached_token.time_remaining,
            "expires_in_original": self._cached_token.expires_in,
        }
