#!/usr/bin/env python3
"""Unit tests for the async SiteWise client.

Tests cover:
    - Request parameters passed to boto3
    - Pagination tokens
    - Translation of botocore errors to typed exceptions
    - Batch size limits
"""
import sys
from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError, EndpointConnectionError

sys.path.insert(0, str(__file__).rsplit("/tests", 1)[0])
from src.swsync.api.exceptions import (
    APIError,
    ConflictError,
    ConnectionError,
    NotFoundError,
    RateLimitError,
    ServerError,
    ValidationError,
)
from src.swsync.api.sitewise_client import SiteWiseClient, translate_client_error


def client_error(code: str, status: int = 400, message: str = "failure") -> ClientError:
    return ClientError(
        {
            "Error": {"Code": code, "Message": message},
            "ResponseMetadata": {"HTTPStatusCode": status},
        },
        "Operation",
    )


@pytest.fixture
def boto_client():
    return MagicMock()


@pytest.fixture
def client(boto_client):
    return SiteWiseClient(region_name="eu-west-1", boto_client=boto_client)


# ============================================
# Request Tests
# ============================================

class TestRequests:
    """Test the parameters forwarded to boto3."""

    @pytest.mark.asyncio
    async def test_list_asset_models_first_page(self, client, boto_client):
        boto_client.list_asset_models.return_value = {"assetModelSummaries": []}

        result = await client.list_asset_models()

        assert result == {"assetModelSummaries": []}
        boto_client.list_asset_models.assert_called_once_with(maxResults=100)

    @pytest.mark.asyncio
    async def test_list_assets_next_page(self, client, boto_client):
        boto_client.list_assets.return_value = {"assetSummaries": []}

        await client.list_assets("model-1", next_token="tok")

        boto_client.list_assets.assert_called_once_with(
            maxResults=100, assetModelId="model-1", nextToken="tok"
        )

    @pytest.mark.asyncio
    async def test_describe_asset_includes_properties(self, client, boto_client):
        boto_client.describe_asset.return_value = {"assetId": "a1"}

        await client.describe_asset("a1")

        boto_client.describe_asset.assert_called_once_with(assetId="a1", excludeProperties=False)

    @pytest.mark.asyncio
    async def test_create_asset(self, client, boto_client):
        boto_client.create_asset.return_value = {"assetId": "a1"}

        result = await client.create_asset("Sensor", "model-1", "thing-1")

        assert result["assetId"] == "a1"
        boto_client.create_asset.assert_called_once_with(
            assetName="Sensor", assetModelId="model-1", assetExternalId="thing-1"
        )

    @pytest.mark.asyncio
    async def test_update_asset_model_passes_request(self, client, boto_client):
        request = {"assetModelId": "m1", "assetModelName": "M", "assetModelProperties": []}

        await client.update_asset_model(request)

        boto_client.update_asset_model.assert_called_once_with(**request)

    @pytest.mark.asyncio
    async def test_batch_limit(self, client, boto_client):
        with pytest.raises(ValueError):
            await client.batch_put_asset_property_value([{}] * 11)

        boto_client.batch_put_asset_property_value.assert_not_called()


# ============================================
# Error Translation Tests
# ============================================

class TestErrorTranslation:
    """Test mapping of botocore errors."""

    @pytest.mark.parametrize(
        "code,expected",
        [
            ("ResourceAlreadyExistsException", ConflictError),
            ("ThrottlingException", RateLimitError),
            ("LimitExceededException", RateLimitError),
            ("ResourceNotFoundException", NotFoundError),
            ("InvalidRequestException", ValidationError),
            ("InternalFailureException", ServerError),
            ("ServiceUnavailableException", ServerError),
        ],
    )
    def test_known_codes(self, code, expected):
        error = translate_client_error(client_error(code), "create_asset_model")

        assert isinstance(error, expected)
        assert error.endpoint == "create_asset_model"

    def test_unknown_code_is_api_error(self):
        error = translate_client_error(client_error("AccessDeniedException", 403), "list_assets")

        assert type(error) is APIError
        assert error.status_code == 403
        assert "AccessDeniedException" in error.message

    @pytest.mark.asyncio
    async def test_call_raises_translated_error(self, client, boto_client):
        original = client_error("ResourceAlreadyExistsException", 409)
        boto_client.create_asset_model.side_effect = original

        with pytest.raises(ConflictError) as exc_info:
            await client.create_asset_model("M", [])

        assert exc_info.value.__cause__ is original

    @pytest.mark.asyncio
    async def test_endpoint_unreachable(self, client, boto_client):
        boto_client.describe_asset_model.side_effect = EndpointConnectionError(
            endpoint_url="https://iotsitewise.eu-west-1.amazonaws.com"
        )

        with pytest.raises(ConnectionError):
            await client.describe_asset_model("m1")


# ============================================
# Run tests
# ============================================

if __name__ == "__main__":
    pytest.main([__file__, "-v"])
