#!/usr/bin/env python3
"""Async wrapper around the AWS IoT SiteWise API.

boto3 is synchronous, so every call is offloaded to a worker thread with
anyio.to_thread to keep the event loop free while the aligner and the
exporter fan out. The botocore client is thread safe and shared by all
tasks.

Error translation:
    ResourceAlreadyExistsException -> ConflictError
    ThrottlingException / LimitExceededException -> RateLimitError
    ResourceNotFoundException -> NotFoundError
    InvalidRequestException -> ValidationError
    InternalFailureException / ServiceUnavailableException -> ServerError
    anything else -> APIError
    EndpointConnectionError and friends -> ConnectionError

Usage:
    client = SiteWiseClient(region_name="eu-west-1")
    page = await client.list_asset_models()
    model = await client.describe_asset_model(page["assetModelSummaries"][0]["id"])
"""
import logging
from functools import partial
from typing import Any, Callable, Optional

import anyio
import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError, EndpointConnectionError

from .exceptions import (
    APIError,
    ConflictError,
    ConnectionError,
    NetworkError,
    NotFoundError,
    RateLimitError,
    ServerError,
    ValidationError,
)

logger = logging.getLogger(__name__)

# Hard limits of the SiteWise API
MAX_RESULTS = 100
MAX_ENTRIES_PER_BATCH = 10
MAX_VALUES_PER_ENTRY = 10


def translate_client_error(error: ClientError, operation: str) -> APIError:
    """Map a botocore ClientError onto the exception hierarchy."""
    err = error.response.get("Error", {})
    code = err.get("Code", "")
    message = err.get("Message", str(error))
    status = error.response.get("ResponseMetadata", {}).get("HTTPStatusCode", 0)

    if code == "ResourceAlreadyExistsException":
        return ConflictError(message, endpoint=operation, method="POST", cause=error)

    if code in ("ThrottlingException", "LimitExceededException"):
        return RateLimitError(
            f"{operation} throttled: {message}",
            endpoint=operation,
            method="POST",
            cause=error,
        )

    if code == "ResourceNotFoundException":
        return NotFoundError(
            resource_type=operation,
            endpoint=operation,
            response_body=message,
            cause=error,
        )

    if code == "InvalidRequestException":
        return ValidationError(
            f"{operation} rejected: {message}",
            endpoint=operation,
            method="POST",
            cause=error,
        )

    if code in ("InternalFailureException", "ServiceUnavailableException"):
        return ServerError(
            f"{operation} failed: {message}",
            status_code=status or 500,
            endpoint=operation,
            method="POST",
            cause=error,
        )

    return APIError(
        f"{operation} failed: [{code}] {message}",
        status_code=status,
        endpoint=operation,
        method="POST",
        cause=error,
    )


class SiteWiseClient:
    """Thin async facade over the boto3 ``iotsitewise`` client.

    Methods return the raw response dictionaries; mapping to domain objects
    happens in the SiteWiseAssetStore adapter.

    Attributes:
        region_name: AWS region, None to use the default provider chain
    """

    def __init__(
        self,
        region_name: Optional[str] = None,
        max_attempts: int = 5,
        boto_client: Any = None,
    ):
        self.region_name = region_name
        self._client = boto_client or boto3.client(
            "iotsitewise",
            region_name=region_name,
            config=BotoConfig(retries={"max_attempts": max_attempts, "mode": "standard"}),
        )

    async def _call(self, operation: str, **params) -> dict[str, Any]:
        method: Callable[..., dict[str, Any]] = getattr(self._client, operation)
        try:
            return await anyio.to_thread.run_sync(partial(method, **params))
        except ClientError as e:
            raise translate_client_error(e, operation) from e
        except EndpointConnectionError as e:
            raise ConnectionError(
                f"Cannot reach SiteWise endpoint: {e}",
                host=str(e.kwargs.get("endpoint_url", "")),
                cause=e,
            ) from e
        except BotoCoreError as e:
            raise NetworkError(f"{operation} failed: {e}", cause=e) from e

    # ----------------------------------------
    # Catalog
    # ----------------------------------------

    async def list_asset_models(self, next_token: Optional[str] = None) -> dict[str, Any]:
        params: dict[str, Any] = {"maxResults": MAX_RESULTS}
        if next_token:
            params["nextToken"] = next_token
        return await self._call("list_asset_models", **params)

    async def list_assets(
        self,
        asset_model_id: str,
        next_token: Optional[str] = None,
    ) -> dict[str, Any]:
        params: dict[str, Any] = {"maxResults": MAX_RESULTS, "assetModelId": asset_model_id}
        if next_token:
            params["nextToken"] = next_token
        return await self._call("list_assets", **params)

    async def describe_asset_model(self, asset_model_id: str) -> dict[str, Any]:
        return await self._call("describe_asset_model", assetModelId=asset_model_id)

    async def describe_asset(self, asset_id: str) -> dict[str, Any]:
        return await self._call(
            "describe_asset", assetId=asset_id, excludeProperties=False
        )

    # ----------------------------------------
    # Structure
    # ----------------------------------------

    async def create_asset_model(
        self,
        name: str,
        properties: list[dict[str, Any]],
    ) -> dict[str, Any]:
        logger.debug(f"Creating asset model '{name}' with {len(properties)} properties")
        return await self._call(
            "create_asset_model",
            assetModelName=name,
            assetModelProperties=properties,
        )

    async def update_asset_model(self, request: dict[str, Any]) -> dict[str, Any]:
        """Send an UpdateAssetModel request built from a describe payload."""
        return await self._call("update_asset_model", **request)

    async def create_asset(
        self,
        name: str,
        asset_model_id: str,
        external_id: str,
    ) -> dict[str, Any]:
        return await self._call(
            "create_asset",
            assetName=name,
            assetModelId=asset_model_id,
            assetExternalId=external_id,
        )

    async def update_asset_property(
        self,
        asset_id: str,
        property_id: str,
        alias: str,
    ) -> dict[str, Any]:
        return await self._call(
            "update_asset_property",
            assetId=asset_id,
            propertyId=property_id,
            propertyAlias=alias,
        )

    # ----------------------------------------
    # Data
    # ----------------------------------------

    async def batch_put_asset_property_value(
        self,
        entries: list[dict[str, Any]],
    ) -> dict[str, Any]:
        """Write up to MAX_ENTRIES_PER_BATCH entries in one call.

        Returns the raw response; ``errorEntries`` lists per-entry failures.
        """
        if len(entries) > MAX_ENTRIES_PER_BATCH:
            raise ValueError(
                f"At most {MAX_ENTRIES_PER_BATCH} entries per call, got {len(entries)}"
            )
        return await self._call("batch_put_asset_property_value", entries=entries)
