"""Discover Catalog Use Case - Index the models and assets kept in SiteWise.

Two paginated walks against the asset store:

1. Models: follow next-page tokens, describe every model, index it by the
   schema key of its measurement properties. Models without measurement
   properties are only kept in the id -> model map.
2. Assets: for every discovered model, follow next-page tokens and keep the
   assets carrying an external id (the id of the thing they mirror).

Any failure aborts discovery with a DiscoveryError: nothing can be
reconciled against a partial catalog.
"""

import logging
from collections.abc import AsyncIterator, Iterable

from ...api.exceptions import DiscoveryError
from ..domain.entities import AssetModel, AssetSummary, Catalog
from ..domain.ports import IAssetStore
from ..domain.schema_key import key_from_model

logger = logging.getLogger(__name__)


class DiscoverCatalogUseCase:
    """Walks the asset store and builds the catalog indexes.

    Example:
        discovery = DiscoverCatalogUseCase(store)
        catalog = await discovery.discover()
        model_id = catalog.models_by_key.get("humidity,temperature")
    """

    def __init__(self, store: IAssetStore):
        self.store = store

    async def iter_model_ids(self) -> AsyncIterator[str]:
        """Yield the id of every model, following next-page tokens."""
        token: str | None = None
        while True:
            try:
                page = await self.store.list_models(token)
            except Exception as e:
                raise DiscoveryError(f"Listing models failed: {e}", stage="list_models", cause=e)
            for model_id in page.items:
                yield model_id
            token = page.next_token
            if not token:
                break

    async def iter_assets(self, model_id: str) -> AsyncIterator[AssetSummary]:
        """Yield every asset of a model, following next-page tokens."""
        token: str | None = None
        while True:
            try:
                page = await self.store.list_assets(model_id, token)
            except Exception as e:
                raise DiscoveryError(
                    f"Listing assets of model {model_id} failed: {e}",
                    stage="list_assets",
                    details={"model_id": model_id},
                    cause=e,
                )
            for asset in page.items:
                yield asset
            token = page.next_token
            if not token:
                break

    async def list_models(self) -> tuple[dict[str, str], dict[str, AssetModel]]:
        """Describe every model.

        Returns:
            Tuple of (schema key -> model id, model id -> model)
        """
        models_by_key: dict[str, str] = {}
        models_by_id: dict[str, AssetModel] = {}

        async for model_id in self.iter_model_ids():
            try:
                model = await self.store.describe_model(model_id)
            except Exception as e:
                raise DiscoveryError(
                    f"Describing model {model_id} failed: {e}",
                    stage="describe_model",
                    details={"model_id": model_id},
                    cause=e,
                )
            models_by_id[model_id] = model

            key = key_from_model(model)
            if key is None:
                logger.debug(f"Model {model_id} ({model.name}) has no measurements, not indexed")
                continue
            models_by_key[key] = model_id

        return models_by_key, models_by_id

    async def list_assets(self, model_ids: Iterable[str]) -> dict[str, AssetSummary]:
        """Index the managed assets of the given models by external id."""
        assets_by_thing: dict[str, AssetSummary] = {}

        for model_id in model_ids:
            async for asset in self.iter_assets(model_id):
                if not asset.external_id:
                    continue
                if asset.external_id in assets_by_thing:
                    logger.warning(
                        f"External id {asset.external_id} used by assets "
                        f"{assets_by_thing[asset.external_id].id} and {asset.id}, "
                        f"keeping {asset.id}"
                    )
                assets_by_thing[asset.external_id] = asset

        return assets_by_thing

    async def discover(self) -> Catalog:
        """Run both walks and return the catalog."""
        logger.info("Discovering SiteWise models")
        models_by_key, models_by_id = await self.list_models()
        for key, model_id in models_by_key.items():
            logger.info(f"  Model [{model_id}] - key: {key}")

        logger.info("Discovering SiteWise assets")
        assets_by_thing = await self.list_assets(models_by_id.keys())

        logger.info(
            f"Discovered {len(models_by_id)} models "
            f"({len(models_by_key)} indexed) and {len(assets_by_thing)} managed assets"
        )
        return Catalog(
            models_by_key=models_by_key,
            models_by_id=models_by_id,
            assets_by_thing=assets_by_thing,
        )
