"""Domain entities for sync operations.

These are pure data structures with no infrastructure dependencies.
They represent the things read from the IoT Cloud, the models and assets
kept in SiteWise, and the outcome of an align or export pass.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Generic, TypeVar

from .values import PropertyValue

T = TypeVar("T")

ACTIVE_STATE = "ACTIVE"


class PropertyKind(str, Enum):
    """Value family of a thing property, derived from its type tag."""

    NUMERIC = "NUMERIC"
    BOOLEAN = "BOOLEAN"
    STRING = "STRING"
    LOCATION = "LOCATION"
    STRUCTURED = "STRUCTURED"

    @property
    def is_primary(self) -> bool:
        """Primary kinds are read from the aggregated series endpoint."""
        return self in (PropertyKind.NUMERIC, PropertyKind.BOOLEAN)


class UpdateStrategy(str, Enum):
    """How the IoT Cloud reports a property."""

    ON_CHANGE = "ON_CHANGE"
    TIMED = "TIMED"


# ============================================
# Source Entities (IoT Cloud)
# ============================================


@dataclass(frozen=True)
class ThingProperty:
    """A typed property of a thing."""

    id: str
    name: str
    type: str
    last_value: Any = None
    update_strategy: UpdateStrategy | None = None
    value_updated_at: datetime | None = None

    @property
    def is_on_change(self) -> bool:
        return self.update_strategy == UpdateStrategy.ON_CHANGE


@dataclass(frozen=True)
class Thing:
    """Domain entity representing an IoT Cloud thing.

    Things are owned by the IoT Cloud and never modified by this system.
    """

    id: str
    name: str
    properties: tuple[ThingProperty, ...] = ()
    tags: dict[str, str] = field(default_factory=dict)

    def property_by_name(self, name: str) -> ThingProperty | None:
        for prop in self.properties:
            if prop.name == name:
                return prop
        return None

    @property
    def property_types(self) -> dict[str, str]:
        """Property name to type tag, for properties with a name and a type."""
        return {p.name: p.type for p in self.properties if p.name.strip() and p.type}


@dataclass(frozen=True)
class SeriesResponse:
    """One per-property series returned by the IoT Cloud.

    ``times`` are unix seconds, parallel to ``values``.
    """

    query: str
    times: list[int] = field(default_factory=list)
    values: list[Any] = field(default_factory=list)
    count: int = 0

    @property
    def property_id(self) -> str:
        """Property id addressed by a ``property.<id>`` query."""
        prefix = "property."
        return self.query[len(prefix):] if self.query.startswith(prefix) else self.query

    @property
    def is_empty(self) -> bool:
        return self.count == 0 or not self.times


# ============================================
# Destination Entities (SiteWise)
# ============================================


@dataclass(frozen=True)
class ModelPropertyDefinition:
    """A property to declare on a model (always a measurement)."""

    name: str
    data_type: str
    unit: str | None = None


@dataclass(frozen=True)
class ModelProperty:
    """A property of an existing model."""

    name: str
    data_type: str
    id: str | None = None
    unit: str | None = None
    is_measurement: bool = True


@dataclass
class AssetModel:
    """Domain entity representing a SiteWise asset model.

    The raw_data field keeps the full describe response: model updates must
    resend every existing property, hierarchy and composite model.
    """

    id: str
    name: str
    state: str | None = None
    properties: list[ModelProperty] = field(default_factory=list)
    raw_data: dict[str, Any] = field(default_factory=dict)

    @property
    def is_active(self) -> bool:
        return self.state == ACTIVE_STATE

    @property
    def property_names(self) -> set[str]:
        return {p.name for p in self.properties}

    @property
    def measurement_names(self) -> list[str]:
        """Names of measurement properties (transforms and metrics excluded)."""
        return [p.name for p in self.properties if p.is_measurement and p.name.strip()]


@dataclass(frozen=True)
class AssetSummary:
    """An asset as returned by the paginated listing."""

    id: str
    name: str
    model_id: str
    external_id: str | None = None


@dataclass(frozen=True)
class AssetProperty:
    """A property slot of an asset, optionally bound to an alias."""

    id: str
    name: str
    alias: str | None = None
    data_type: str | None = None


@dataclass
class AssetDescription:
    """Domain entity representing a described SiteWise asset."""

    id: str
    name: str
    model_id: str
    external_id: str | None = None
    state: str | None = None
    properties: list[AssetProperty] = field(default_factory=list)

    @property
    def is_active(self) -> bool:
        return self.state == ACTIVE_STATE

    def property_by_name(self, name: str) -> AssetProperty | None:
        for prop in self.properties:
            if prop.name == name:
                return prop
        return None


@dataclass(frozen=True)
class DataPoint:
    """A single value to write to an alias at a unix timestamp (seconds)."""

    alias: str
    timestamp: int
    value: PropertyValue


@dataclass(frozen=True)
class EntryError:
    """Per-entry failure reported by a batch write."""

    entry_id: str
    error_code: str
    message: str


@dataclass(frozen=True)
class TimeWindow:
    """Aligned export window and the interval used to query it."""

    start: datetime
    end: datetime
    resolution: int

    @property
    def minutes(self) -> float:
        return (self.end - self.start).total_seconds() / 60


@dataclass(frozen=True)
class Page(Generic[T]):
    """One page of a token-paginated listing."""

    items: list[T]
    next_token: str | None = None


@dataclass
class Catalog:
    """Indexes built by catalog discovery.

    models_by_key: schema key -> model id
    models_by_id: model id -> described model (all models, keyed or not)
    assets_by_thing: thing id (asset external id) -> asset summary
    """

    models_by_key: dict[str, str] = field(default_factory=dict)
    models_by_id: dict[str, AssetModel] = field(default_factory=dict)
    assets_by_thing: dict[str, AssetSummary] = field(default_factory=dict)


# ============================================
# Results
# ============================================


@dataclass
class AlignStatistics:
    """Breakdown of the structural changes made by one align pass."""

    things: int = 0
    models_updated: int = 0
    models_reindexed: int = 0
    models_created: int = 0
    assets_created: int = 0
    assets_aligned: int = 0
    things_skipped: int = 0


@dataclass
class ExportStatistics:
    """Breakdown of the data written by one export pass."""

    assets_processed: int = 0
    assets_skipped: int = 0
    chunks_written: int = 0
    points_written: int = 0
    fallback_points: int = 0
    entry_errors: int = 0


@dataclass
class SyncResult:
    """Result of an align or export pass.

    Per-task failures do not abort a pass; they are collected in ``errors``
    and make the result unsuccessful.
    """

    operation: str
    started_at: datetime
    finished_at: datetime | None = None
    errors: list[Exception] = field(default_factory=list)
    statistics: AlignStatistics | ExportStatistics | None = None

    @property
    def success(self) -> bool:
        return not self.errors

    @property
    def duration_seconds(self) -> float | None:
        if self.started_at and self.finished_at:
            return (self.finished_at - self.started_at).total_seconds()
        return None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging and the entry point response."""
        data: dict[str, Any] = {
            "operation": self.operation,
            "success": self.success,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "errors": len(self.errors),
            "error_details": [str(e) for e in self.errors[:20]],
        }
        if self.statistics is not None:
            data["statistics"] = dict(vars(self.statistics))
        return data
