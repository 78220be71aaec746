"""External API modules.

This package provides the clients used to talk to the Arduino IoT Cloud
(source of things and samples), AWS IoT SiteWise (destination models,
assets and time series) and AWS Systems Manager (deployed settings).

Classes:
    IoTClient: Async HTTP client for the IoT Cloud API
    TokenManager: OAuth2 client-credentials token management
    SiteWiseClient: Async facade over the boto3 iotsitewise client
    ParameterStore: Per-stack settings in the SSM parameter store

Exceptions:
    SwSyncError: Base exception for all errors
    ConfigurationError: Missing or invalid configuration
    AuthenticationError: Authentication failures
    APIError: API request failures
    RateLimitError: Rate limit exceeded
    ConflictError: Resource name already taken
    NetworkError: Network connectivity issues
    SyncError: Synchronization failures

Resilience:
    RetryPolicy: Attempt bound and delay schedule
    retry_async / poll_until: Inline retry and state polling
    BoundedTaskPool: Bounded fan-out with a join barrier
"""
from .auth import DEFAULT_API_URL, DEV_API_URL, CachedToken, TokenManager
from .exceptions import (
    APIError,
    AuthenticationError,
    ConfigurationError,
    ConflictError,
    ConnectionError,
    DiscoveryError,
    ErrorCollector,
    InvalidCredentialsError,
    ModelAlignmentError,
    NetworkError,
    NotFoundError,
    PartialSyncError,
    RateLimitError,
    ServerError,
    SwSyncError,
    SyncError,
    TimeoutError,
    TokenExpiredError,
    TokenFetchError,
    ValidationError,
)
from .iot_client import IoTClient
from .parameters import ParameterStore
from .resilience import (
    ASSET_ACTIVE_POLL,
    MODEL_ACTIVE_POLL,
    RATE_LIMIT_RETRY,
    BoundedTaskPool,
    RetryPolicy,
    poll_until,
    retry_async,
)
from .sitewise_client import SiteWiseClient

__all__ = [
    # Auth
    "TokenManager",
    "CachedToken",
    "DEFAULT_API_URL",
    "DEV_API_URL",
    # Clients
    "IoTClient",
    "SiteWiseClient",
    "ParameterStore",
    # Exceptions - Base
    "SwSyncError",
    "ConfigurationError",
    # Exceptions - Auth
    "AuthenticationError",
    "TokenFetchError",
    "TokenExpiredError",
    "InvalidCredentialsError",
    # Exceptions - API
    "APIError",
    "RateLimitError",
    "NotFoundError",
    "ValidationError",
    "ConflictError",
    "ServerError",
    # Exceptions - Network
    "NetworkError",
    "ConnectionError",
    "TimeoutError",
    # Exceptions - Sync
    "SyncError",
    "DiscoveryError",
    "ModelAlignmentError",
    "PartialSyncError",
    # Error utilities
    "ErrorCollector",
    # Resilience
    "RetryPolicy",
    "MODEL_ACTIVE_POLL",
    "ASSET_ACTIVE_POLL",
    "RATE_LIMIT_RETRY",
    "retry_async",
    "poll_until",
    "BoundedTaskPool",
]
