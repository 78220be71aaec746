"""Align Entities Use Case - Mirror things into SiteWise models and assets.

This use case reconciles the things read from the IoT Cloud against the
SiteWise catalog. It depends on ports only, so it runs against an
in-memory store in tests.

Workflow:
1. Discover the catalog (models by schema key, assets by thing id)
2. Drift reconciliation (sequential): a model bound to a thing's asset
   that lacks some of the thing's properties gets them added; a model that
   already covers the thing is re-indexed under the thing's key
3. Model creation (sequential): every thing key with no model gets a new
   model, renamed on name collisions
4. Asset alignment (concurrent): create the missing assets and bind the
   property aliases
5. Join and return the collected per-thing errors

Steps 1-3 are fatal on failure (DiscoveryError / ModelAlignmentError):
the later steps depend on a correct model set. Failures in step 4 are
collected and never cancel the other things' tasks.
"""

import logging
from collections.abc import Mapping
from datetime import datetime, timezone

from ...api.exceptions import ConflictError, ModelAlignmentError, SyncError
from ...api.resilience import (
    ASSET_ACTIVE_POLL,
    MODEL_ACTIVE_POLL,
    BoundedTaskPool,
    RetryPolicy,
    poll_until,
)
from ..domain.entities import (
    AlignStatistics,
    AssetModel,
    AssetSummary,
    Catalog,
    ModelPropertyDefinition,
    SyncResult,
    Thing,
)
from ..domain.ports import IAssetStore
from ..domain.property_types import build_property_definitions
from ..domain.schema_key import (
    compose_model_name,
    is_subset_key,
    key_from_model,
    key_from_thing,
    property_alias,
)
from .discover_catalog import DiscoverCatalogUseCase

logger = logging.getLogger(__name__)

ALIGN_CONCURRENCY = 6
MAX_MODEL_NAME_ATTEMPTS = 100


class AlignEntitiesUseCase:
    """Creates and updates SiteWise models and assets for a set of things.

    Example:
        use_case = AlignEntitiesUseCase(store=SiteWiseAssetStore(client))
        result = await use_case.execute(things, property_types)
        if not result.success:
            for error in result.errors:
                logger.error(error)
    """

    def __init__(
        self,
        store: IAssetStore,
        discovery: DiscoverCatalogUseCase | None = None,
        max_concurrent: int = ALIGN_CONCURRENCY,
        model_poll: RetryPolicy = MODEL_ACTIVE_POLL,
        asset_poll: RetryPolicy = ASSET_ACTIVE_POLL,
        max_name_attempts: int = MAX_MODEL_NAME_ATTEMPTS,
    ):
        """Initialize the use case with its dependencies.

        Args:
            store: Port for the SiteWise catalog
            discovery: Catalog walker (defaults to one over the same store)
            max_concurrent: Asset tasks running at the same time
            model_poll: How long to wait for a model to become ACTIVE
            asset_poll: How long to wait for an asset to become ACTIVE
            max_name_attempts: Renames tried when a model name is taken
        """
        self.store = store
        self.discovery = discovery or DiscoverCatalogUseCase(store)
        self.max_concurrent = max_concurrent
        self.model_poll = model_poll
        self.asset_poll = asset_poll
        self.max_name_attempts = max_name_attempts

    async def execute(
        self,
        things: list[Thing],
        property_types: Mapping[str, list[str]],
    ) -> SyncResult:
        """Align models and assets with the given things.

        Args:
            things: Things to mirror
            property_types: Type tag -> accepted units, from the IoT Cloud

        Returns:
            SyncResult whose errors are the failed asset tasks

        Raises:
            DiscoveryError: If the catalog cannot be read
            ModelAlignmentError: If a model cannot be updated or created
        """
        started_at = datetime.now(timezone.utc)
        stats = AlignStatistics(things=len(things))
        logger.info(f"Aligning entities for {len(things)} things")

        catalog = await self.discovery.discover()
        things_by_id = {thing.id: thing for thing in things}

        logger.info("Aligning already created models with things")
        await self.reconcile_drift(things_by_id, catalog, property_types, stats)

        logger.info("Creating models for new property sets")
        await self.create_missing_models(things, catalog, property_types, stats)

        logger.info("Aligning assets")
        errors = await self.align_assets(things, catalog, stats)

        finished_at = datetime.now(timezone.utc)
        logger.info(
            f"Entity alignment completed in {(finished_at - started_at).total_seconds():.2f}s: "
            f"{stats.models_updated} models updated, {stats.models_created} created, "
            f"{stats.assets_created} assets created, {len(errors)} errors"
        )
        return SyncResult(
            operation="align",
            started_at=started_at,
            finished_at=finished_at,
            errors=errors,
            statistics=stats,
        )

    # ----------------------------------------
    # Phase 1: drift
    # ----------------------------------------

    async def reconcile_drift(
        self,
        things_by_id: Mapping[str, Thing],
        catalog: Catalog,
        property_types: Mapping[str, list[str]],
        stats: AlignStatistics,
    ) -> None:
        """Grow the models of existing assets to cover their things."""
        for thing_id, asset in catalog.assets_by_thing.items():
            thing = things_by_id.get(thing_id)
            if thing is None:
                logger.debug(f"Asset {asset.id}: thing {thing_id} not selected, skipping")
                continue

            model = catalog.models_by_id.get(asset.model_id)
            if model is None:
                logger.debug(f"Asset {asset.id}: model {asset.model_id} not found, skipping")
                continue

            model_key = key_from_model(model)
            thing_key = key_from_thing(thing)
            if model_key is None:
                logger.warning(f"Model {model.id} has no measurement properties, skipping")
                continue
            if not thing_key or model_key == thing_key:
                continue

            if is_subset_key(model_key, thing_key):
                logger.info(
                    f"Thing {thing.id} is covered by model {model.id} (key: {model_key}), "
                    f"skipping model update"
                )
                stats.models_reindexed += 1
            else:
                logger.warning(
                    f"Model and thing are not aligned. Model {model.id} key: {model_key} "
                    f"- thing {thing.id} key: {thing_key}"
                )
                definitions = self._union_definitions(model, thing, property_types)
                catalog.models_by_id[model.id] = await self._update_model(model, definitions)
                stats.models_updated += 1

            catalog.models_by_key[thing_key] = model.id

    def _union_definitions(
        self,
        model: AssetModel,
        thing: Thing,
        property_types: Mapping[str, list[str]],
    ) -> list[ModelPropertyDefinition]:
        definitions = [
            ModelPropertyDefinition(name=p.name, data_type=p.data_type, unit=p.unit)
            for p in model.properties
        ]
        known = model.property_names
        definitions.extend(
            d for d in build_property_definitions(thing.property_types, property_types)
            if d.name not in known
        )
        return definitions

    async def _update_model(
        self,
        model: AssetModel,
        definitions: list[ModelPropertyDefinition],
    ) -> AssetModel:
        """Send the additive update and return the refreshed model."""
        try:
            await self.store.update_model(model, definitions)
            logger.info(f"Model {model.id} properties updated, waiting for it to be active")

            refreshed = await poll_until(
                lambda: self.store.describe_model(model.id),
                lambda m: m.is_active,
                policy=self.model_poll,
                description=f"model {model.id}",
            )
            if refreshed is None:
                # Later updates must be built from the current definition
                refreshed = await self.store.describe_model(model.id)
        except Exception as e:
            logger.error(f"Error updating model {model.id}: {e}")
            raise ModelAlignmentError(
                f"Updating model {model.id} failed: {e}",
                model_name=model.name,
                cause=e,
            ) from e
        return refreshed

    # ----------------------------------------
    # Phase 2: model creation
    # ----------------------------------------

    async def create_missing_models(
        self,
        things: list[Thing],
        catalog: Catalog,
        property_types: Mapping[str, list[str]],
        stats: AlignStatistics,
    ) -> None:
        """Create one model per thing key that has none."""
        for thing in things:
            key = key_from_thing(thing)
            if not key:
                logger.warning(f"Thing {thing.id} ({thing.name}) has no typed properties, skipping")
                continue
            if key in catalog.models_by_key:
                continue

            logger.info(f"Model not found for thing {thing.id} ({thing.name}), creating it")
            definitions = build_property_definitions(thing.property_types, property_types)
            model_id = await self._create_model(thing, definitions)

            try:
                model = await poll_until(
                    lambda: self.store.describe_model(model_id),
                    lambda m: m.is_active,
                    policy=self.model_poll,
                    description=f"model {model_id}",
                )
            except Exception as e:
                raise ModelAlignmentError(
                    f"Waiting for model {model_id} failed: {e}",
                    model_name=model_id,
                    cause=e,
                ) from e
            if model is not None:
                catalog.models_by_id[model_id] = model

            catalog.models_by_key[key] = model_id
            stats.models_created += 1

    async def _create_model(
        self,
        thing: Thing,
        definitions: list[ModelPropertyDefinition],
    ) -> str:
        for attempt in range(self.max_name_attempts):
            name = compose_model_name(thing.name, attempt)
            try:
                model_id = await self.store.create_model(name, definitions)
            except ConflictError:
                logger.info(f"Model name '{name}' already taken, retrying")
                continue
            except Exception as e:
                logger.error(f"Error creating model '{name}': {e}")
                raise ModelAlignmentError(
                    f"Creating model '{name}' failed: {e}",
                    model_name=name,
                    cause=e,
                ) from e
            logger.info(f"Created model '{name}' ({model_id}), waiting for it to be active")
            return model_id

        raise ModelAlignmentError(
            f"No free model name for thing {thing.id} after {self.max_name_attempts} attempts",
            model_name=compose_model_name(thing.name),
        )

    # ----------------------------------------
    # Phase 3: assets
    # ----------------------------------------

    async def align_assets(
        self,
        things: list[Thing],
        catalog: Catalog,
        stats: AlignStatistics,
    ) -> list[Exception]:
        """Create missing assets and bind aliases, one task per thing.

        Returns:
            Errors of the failed tasks
        """
        async with BoundedTaskPool(self.max_concurrent, name="align-assets") as pool:
            for thing in things:
                key = key_from_thing(thing)
                model_id = catalog.models_by_key.get(key) if key else None
                if model_id is None:
                    logger.warning(f"Model not found for thing {thing.id} ({thing.name}), skipping")
                    stats.things_skipped += 1
                    continue

                logger.info(f"Aligning thing {thing.id} ({thing.name}) - model key: {key}")
                await pool.submit(
                    self._align_asset,
                    thing,
                    model_id,
                    catalog.assets_by_thing.get(thing.id),
                    label=thing.id,
                )

            logger.info("Waiting for asset tasks completion")
            created, errors = await pool.join()

        stats.assets_aligned = len(created)
        stats.assets_created = sum(1 for c in created if c)
        if errors:
            logger.warning(f"{len(errors)} asset task(s) failed")
        return errors

    async def _align_asset(
        self,
        thing: Thing,
        model_id: str,
        existing: AssetSummary | None,
    ) -> bool:
        """Align the asset of one thing. Returns True if it was created."""
        created = False
        try:
            if existing is not None:
                logger.debug(f"Thing {thing.id} already has asset {existing.id}")
                asset_id = existing.id
            else:
                logger.info(f"Creating asset for thing {thing.id}")
                asset_id = await self.store.create_asset(thing.name, model_id, thing.id)
                created = True
                await poll_until(
                    lambda: self.store.describe_asset(asset_id),
                    lambda a: a.is_active,
                    policy=self.asset_poll,
                    description=f"asset {asset_id}",
                )

            aliases = {
                prop.name: property_alias(thing.id, prop.name)
                for prop in thing.properties
                if prop.name.strip()
            }
            updated = await self.store.update_asset_properties(asset_id, aliases)
            logger.debug(f"Asset {asset_id}: {updated} alias(es) updated")
        except Exception as e:
            logger.error(f"Error aligning asset for thing {thing.id} ({thing.name}): {e}")
            raise SyncError(
                f"Aligning asset of thing {thing.id} failed: {e}",
                details={"thing_id": thing.id},
                cause=e,
            ) from e
        return created
