"""Test doubles for the sync ports.

InMemoryAssetStore keeps models and assets in dictionaries and records every
structural call and write; FakeThingSource serves canned things and series.
Both can be told to fail on specific calls.
"""

from collections import Counter
from collections.abc import Mapping
from dataclasses import replace
from datetime import datetime
from typing import Any

import pytest

from src.swsync.api.exceptions import ConflictError, NotFoundError
from src.swsync.sync.domain.entities import (
    AssetDescription,
    AssetModel,
    AssetProperty,
    AssetSummary,
    DataPoint,
    EntryError,
    ModelProperty,
    ModelPropertyDefinition,
    Page,
    SeriesResponse,
    Thing,
    ThingProperty,
    UpdateStrategy,
)
from src.swsync.sync.domain.ports import IAssetStore, IThingSource
from src.swsync.sync.domain.values import PropertyValue


class InMemoryAssetStore(IAssetStore):
    """In-memory implementation of IAssetStore."""

    def __init__(self, page_size: int = 2):
        self.page_size = page_size
        self.models: dict[str, AssetModel] = {}
        self.assets: dict[str, AssetDescription] = {}
        self.created_models: list[tuple[str, list[ModelPropertyDefinition]]] = []
        self.updated_models: list[tuple[str, list[ModelPropertyDefinition]]] = []
        self.created_assets: list[tuple[str, str, str]] = []
        self.alias_updates: list[tuple[str, dict[str, str]]] = []
        self.writes: list[tuple[str, list[int], list[PropertyValue]]] = []
        self.batches: list[list[DataPoint]] = []
        self.entry_errors: list[EntryError] = []
        self.fail_on: dict[str, Exception] = {}
        self.fail_describe_asset: dict[str, Exception] = {}
        self.fail_create_asset: dict[str, Exception] = {}
        self.describe_model_calls = 0
        self.describe_calls: Counter[str] = Counter()
        # Describes that report a created or updated entity as not yet ACTIVE
        self.settle_after = 0
        self._settling: dict[str, tuple[str, int]] = {}
        self._next_id = 0

    # ----------------------------------------
    # Seeding helpers
    # ----------------------------------------

    def _new_id(self, prefix: str) -> str:
        self._next_id += 1
        return f"{prefix}-{self._next_id}"

    def add_model(
        self,
        name: str,
        property_names: list[str],
        state: str = "ACTIVE",
        extra: list[ModelProperty] | None = None,
    ) -> AssetModel:
        model_id = self._new_id("model")
        properties = [ModelProperty(name=n, data_type="DOUBLE", id=f"{model_id}-{n}") for n in property_names]
        properties.extend(extra or [])
        model = AssetModel(id=model_id, name=name, state=state, properties=properties)
        self.models[model_id] = model
        return model

    def add_asset(
        self,
        model_id: str,
        name: str,
        external_id: str | None,
        aliases: Mapping[str, str] | None = None,
    ) -> AssetDescription:
        asset_id = self._new_id("asset")
        model = self.models[model_id]
        aliases = aliases or {}
        asset = AssetDescription(
            id=asset_id,
            name=name,
            model_id=model_id,
            external_id=external_id,
            state="ACTIVE",
            properties=[
                AssetProperty(id=f"{asset_id}-{p.name}", name=p.name, alias=aliases.get(p.name))
                for p in model.properties
            ],
        )
        self.assets[asset_id] = asset
        return asset

    def assets_of(self, model_id: str) -> list[AssetDescription]:
        return [a for a in self.assets.values() if a.model_id == model_id]

    def _check(self, operation: str) -> None:
        if operation in self.fail_on:
            raise self.fail_on[operation]

    def _start_settling(self, entity_id: str, state: str) -> None:
        if self.settle_after:
            self._settling[entity_id] = (state, self.settle_after)

    def _observe(self, entity):
        """Record a describe and report a settling entity in its transient state."""
        self.describe_calls[entity.id] += 1
        state, remaining = self._settling.get(entity.id, (None, 0))
        if not remaining:
            return entity
        self._settling[entity.id] = (state, remaining - 1)
        return replace(entity, state=state)

    def _page(self, items: list, token: str | None) -> Page:
        start = int(token) if token else 0
        end = start + self.page_size
        return Page(items=items[start:end], next_token=str(end) if end < len(items) else None)

    # ----------------------------------------
    # Catalog
    # ----------------------------------------

    async def list_models(self, next_token: str | None = None) -> Page[str]:
        self._check("list_models")
        return self._page(list(self.models), next_token)

    async def list_assets(self, model_id: str, next_token: str | None = None) -> Page[AssetSummary]:
        self._check("list_assets")
        summaries = [
            AssetSummary(id=a.id, name=a.name, model_id=a.model_id, external_id=a.external_id)
            for a in self.assets_of(model_id)
        ]
        return self._page(summaries, next_token)

    async def describe_model(self, model_id: str) -> AssetModel:
        self._check("describe_model")
        self.describe_model_calls += 1
        if model_id not in self.models:
            raise NotFoundError(resource_type="AssetModel", resource_id=model_id)
        return self._observe(self.models[model_id])

    async def describe_asset(self, asset_id: str) -> AssetDescription:
        if asset_id in self.fail_describe_asset:
            raise self.fail_describe_asset[asset_id]
        if asset_id not in self.assets:
            raise NotFoundError(resource_type="Asset", resource_id=asset_id)
        return self._observe(self.assets[asset_id])

    # ----------------------------------------
    # Structure
    # ----------------------------------------

    async def create_model(self, name: str, definitions: list[ModelPropertyDefinition]) -> str:
        self._check("create_model")
        if any(m.name == name for m in self.models.values()):
            raise ConflictError(f"Model {name} already exists", resource_name=name)
        self.created_models.append((name, list(definitions)))
        model_id = self._new_id("model")
        self.models[model_id] = AssetModel(
            id=model_id,
            name=name,
            state="ACTIVE",
            properties=[
                ModelProperty(name=d.name, data_type=d.data_type, id=f"{model_id}-{d.name}", unit=d.unit)
                for d in definitions
            ],
        )
        self._start_settling(model_id, "CREATING")
        return model_id

    async def update_model(self, model: AssetModel, definitions: list[ModelPropertyDefinition]) -> bool:
        self._check("update_model")
        current = self.models[model.id]
        missing = [d for d in definitions if d.name not in current.property_names]
        self.updated_models.append((model.id, list(definitions)))
        if not missing:
            return False
        self._start_settling(model.id, "UPDATING")
        current.properties = current.properties + [
            ModelProperty(name=d.name, data_type=d.data_type, id=f"{model.id}-{d.name}", unit=d.unit)
            for d in missing
        ]
        # Assets follow their model
        for asset in self.assets_of(model.id):
            asset.properties = asset.properties + [
                AssetProperty(id=f"{asset.id}-{d.name}", name=d.name) for d in missing
            ]
        return True

    async def create_asset(self, name: str, model_id: str, external_id: str) -> str:
        self._check("create_asset")
        if external_id in self.fail_create_asset:
            raise self.fail_create_asset[external_id]
        self.created_assets.append((name, model_id, external_id))
        asset_id = self.add_asset(model_id, name, external_id).id
        self._start_settling(asset_id, "CREATING")
        return asset_id

    async def update_asset_properties(self, asset_id: str, aliases: Mapping[str, str]) -> int:
        self._check("update_asset_properties")
        asset = self.assets[asset_id]
        applied = {}
        properties = []
        for prop in asset.properties:
            alias = aliases.get(prop.name)
            if alias and alias != prop.alias:
                applied[prop.name] = alias
                prop = AssetProperty(id=prop.id, name=prop.name, alias=alias, data_type=prop.data_type)
            properties.append(prop)
        asset.properties = properties
        self.alias_updates.append((asset_id, applied))
        return len(applied)

    # ----------------------------------------
    # Data
    # ----------------------------------------

    async def put_values(
        self,
        alias: str,
        timestamps: list[int],
        values: list[PropertyValue],
    ) -> list[EntryError]:
        self._check("put_values")
        assert len(values) <= 10
        self.writes.append((alias, list(timestamps), list(values)))
        return list(self.entry_errors)

    async def batch_write(self, points: list[DataPoint]) -> list[EntryError]:
        self._check("batch_write")
        assert len(points) <= 10
        self.batches.append(list(points))
        return []


class FakeThingSource(IThingSource):
    """Canned implementation of IThingSource."""

    def __init__(self, things: list[Thing] | None = None):
        self.things = things or []
        self.units: dict[str, list[str]] = {}
        self.series: dict[str, list[SeriesResponse]] = {}
        self.sampled: dict[str, SeriesResponse] = {}
        self.series_failures: dict[str, list[Exception]] = {}
        self.series_calls: list[tuple[str, datetime, datetime, int]] = []
        self.sampled_calls: list[list[str]] = []
        self.tags_requested: list[Mapping[str, str] | None] = []

    async def list_things(self, tags: Mapping[str, str] | None = None) -> list[Thing]:
        self.tags_requested.append(tags)
        return list(self.things)

    async def property_type_catalog(self) -> dict[str, list[str]]:
        return dict(self.units)

    async def fetch_series_by_thing(
        self,
        thing_id: str,
        start: datetime,
        end: datetime,
        interval: int,
    ) -> list[SeriesResponse]:
        self.series_calls.append((thing_id, start, end, interval))
        failures = self.series_failures.get(thing_id)
        if failures:
            raise failures.pop(0)
        return list(self.series.get(thing_id, []))

    async def fetch_sampled_series(
        self,
        property_ids: list[str],
        start: datetime,
        end: datetime,
        interval: int,
    ) -> list[SeriesResponse]:
        self.sampled_calls.append(list(property_ids))
        return [self.sampled[pid] for pid in property_ids if pid in self.sampled]


def make_thing(
    thing_id: str,
    name: str,
    properties: Mapping[str, str],
    last_values: Mapping[str, Any] | None = None,
    on_change: bool = False,
) -> Thing:
    """Build a thing whose property ids are ``<thing_id>-<name>``."""
    last_values = last_values or {}
    return Thing(
        id=thing_id,
        name=name,
        properties=tuple(
            ThingProperty(
                id=f"{thing_id}-{prop_name}",
                name=prop_name,
                type=prop_type,
                last_value=last_values.get(prop_name),
                update_strategy=UpdateStrategy.ON_CHANGE if on_change else UpdateStrategy.TIMED,
            )
            for prop_name, prop_type in properties.items()
        ),
    )


@pytest.fixture
def store() -> InMemoryAssetStore:
    return InMemoryAssetStore()


@pytest.fixture
def source() -> FakeThingSource:
    return FakeThingSource()


@pytest.fixture
def thing_factory():
    return make_thing
