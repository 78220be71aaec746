"""SiteWise adapter for the model, asset and time-series store.

This adapter implements IAssetStore and wraps SiteWiseClient. It owns the
request shapes of the structural operations: in particular, model updates
are rebuilt from the full describe payload so nothing is ever dropped.
"""

import logging
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from ...api.sitewise_client import MAX_ENTRIES_PER_BATCH, MAX_VALUES_PER_ENTRY
from ..domain.entities import (
    AssetDescription,
    AssetModel,
    AssetSummary,
    DataPoint,
    EntryError,
    ModelPropertyDefinition,
    Page,
)
from ..domain.ports import IAssetStore
from ..domain.values import PropertyValue
from .field_mapper import SiteWiseFieldMapper

if TYPE_CHECKING:
    from ...api.sitewise_client import SiteWiseClient

logger = logging.getLogger(__name__)

# Fields of a described model property accepted back by UpdateAssetModel
_PROPERTY_FIELDS = ("id", "externalId", "name", "dataType", "dataTypeSpec", "unit", "type")

# Optional top-level fields carried over from the describe payload
_MODEL_FIELDS = {
    "assetModelDescription": "assetModelDescription",
    "assetModelHierarchies": "assetModelHierarchies",
    "assetModelCompositeModels": "assetModelCompositeModels",
    "assetModelExternalId": "assetModelExternalId",
}


class SiteWiseAssetStore(IAssetStore):
    """SiteWise implementation of the asset store port.

    Example:
        async_client = SiteWiseClient(region_name="eu-west-1")
        store = SiteWiseAssetStore(async_client)
        page = await store.list_models()
    """

    def __init__(
        self,
        client: "SiteWiseClient",
        mapper: SiteWiseFieldMapper | None = None,
    ):
        self.client = client
        self.mapper = mapper or SiteWiseFieldMapper()

    # ----------------------------------------
    # Catalog
    # ----------------------------------------

    async def list_models(self, next_token: str | None = None) -> Page[str]:
        data = await self.client.list_asset_models(next_token)
        return Page(
            items=[m["id"] for m in data.get("assetModelSummaries") or []],
            next_token=data.get("nextToken"),
        )

    async def list_assets(
        self,
        model_id: str,
        next_token: str | None = None,
    ) -> Page[AssetSummary]:
        data = await self.client.list_assets(model_id, next_token)
        return Page(
            items=[self.mapper.map_asset_summary(a) for a in data.get("assetSummaries") or []],
            next_token=data.get("nextToken"),
        )

    async def describe_model(self, model_id: str) -> AssetModel:
        data = await self.client.describe_asset_model(model_id)
        return self.mapper.map_model(data)

    async def describe_asset(self, asset_id: str) -> AssetDescription:
        data = await self.client.describe_asset(asset_id)
        return self.mapper.map_asset(data)

    # ----------------------------------------
    # Structure
    # ----------------------------------------

    async def create_model(
        self,
        name: str,
        definitions: list[ModelPropertyDefinition],
    ) -> str:
        properties = [self.mapper.map_definition(d) for d in definitions]
        data = await self.client.create_asset_model(name, properties)
        return data["assetModelId"]

    async def update_model(
        self,
        model: AssetModel,
        definitions: list[ModelPropertyDefinition],
    ) -> bool:
        known = model.property_names
        missing = [d for d in definitions if d.name not in known]
        if not missing:
            logger.debug(f"Model {model.id} already declares every property")
            return False

        request = self.build_update_request(model, missing)
        logger.info(
            f"Updating model {model.id}: adding {', '.join(d.name for d in missing)}"
        )
        await self.client.update_asset_model(request)
        return True

    def build_update_request(
        self,
        model: AssetModel,
        additions: list[ModelPropertyDefinition],
    ) -> dict[str, Any]:
        """UpdateAssetModel request keeping everything the model already has.

        UpdateAssetModel replaces the whole definition: properties,
        hierarchies and composite models missing from the request are deleted.
        """
        raw = model.raw_data
        request: dict[str, Any] = {
            "assetModelId": model.id,
            "assetModelName": raw.get("assetModelName") or model.name,
        }
        for source, target in _MODEL_FIELDS.items():
            if raw.get(source):
                request[target] = raw[source]

        properties = [
            {k: p[k] for k in _PROPERTY_FIELDS if k in p}
            for p in raw.get("assetModelProperties") or []
        ]
        properties.extend(self.mapper.map_definition(d) for d in additions)
        request["assetModelProperties"] = properties
        return request

    async def create_asset(self, name: str, model_id: str, external_id: str) -> str:
        data = await self.client.create_asset(name, model_id, external_id)
        return data["assetId"]

    async def update_asset_properties(
        self,
        asset_id: str,
        aliases: Mapping[str, str],
    ) -> int:
        asset = await self.describe_asset(asset_id)
        updated = 0
        for name, alias in aliases.items():
            prop = asset.property_by_name(name)
            if prop is None:
                logger.debug(f"Asset {asset_id} has no property {name}, skipping alias")
                continue
            if prop.alias == alias:
                continue
            await self.client.update_asset_property(asset_id, prop.id, alias)
            updated += 1
        return updated

    # ----------------------------------------
    # Data
    # ----------------------------------------

    async def put_values(
        self,
        alias: str,
        timestamps: list[int],
        values: list[PropertyValue],
    ) -> list[EntryError]:
        if len(timestamps) != len(values):
            raise ValueError("timestamps and values must have the same length")
        if len(values) > MAX_VALUES_PER_ENTRY:
            raise ValueError(
                f"At most {MAX_VALUES_PER_ENTRY} values per entry, got {len(values)}"
            )
        if not values:
            return []

        entry = self.mapper.map_entry(alias, timestamps, values)
        data = await self.client.batch_put_asset_property_value([entry])
        return self.mapper.map_entry_errors(data)

    async def batch_write(self, points: list[DataPoint]) -> list[EntryError]:
        if len(points) > MAX_ENTRIES_PER_BATCH:
            raise ValueError(
                f"At most {MAX_ENTRIES_PER_BATCH} points per batch, got {len(points)}"
            )
        if not points:
            return []

        entries = [self.mapper.map_point(p) for p in points]
        data = await self.client.batch_put_asset_property_value(entries)
        return self.mapper.map_entry_errors(data)
