"""Domain layer - Pure domain entities, value types and port interfaces.

This layer contains:
- Entities: Things, models, assets and sync results
- Values: The closed set of property value types written to SiteWise
- Schema keys: The matching rule between things and models
- Property types: Type tag classification and unit lookup
- Ports: Abstract interfaces defining contracts for adapters

No infrastructure dependencies allowed in this layer.
"""

from .entities import (
    AlignStatistics,
    AssetDescription,
    AssetModel,
    AssetProperty,
    AssetSummary,
    Catalog,
    DataPoint,
    EntryError,
    ExportStatistics,
    ModelProperty,
    ModelPropertyDefinition,
    Page,
    PropertyKind,
    SeriesResponse,
    SyncResult,
    Thing,
    ThingProperty,
    TimeWindow,
    UpdateStrategy,
)
from .ports import IAssetStore, IThingSource
from .property_types import (
    build_property_definitions,
    classify,
    coerce_value,
    data_type_for,
    unit_for,
)
from .schema_key import (
    build_key,
    compose_model_name,
    is_subset_key,
    key_from_model,
    key_from_thing,
    property_alias,
    split_key,
)
from .values import (
    BooleanValue,
    EncodedStructuredValue,
    IntegerValue,
    NumericValue,
    PropertyValue,
    StringValue,
)

__all__ = [
    # Source Entities
    "Thing",
    "ThingProperty",
    "PropertyKind",
    "UpdateStrategy",
    "SeriesResponse",
    # Destination Entities
    "AssetModel",
    "ModelProperty",
    "ModelPropertyDefinition",
    "AssetSummary",
    "AssetDescription",
    "AssetProperty",
    "DataPoint",
    "EntryError",
    "Page",
    "Catalog",
    "TimeWindow",
    # Result Entities
    "SyncResult",
    "AlignStatistics",
    "ExportStatistics",
    # Values
    "PropertyValue",
    "NumericValue",
    "IntegerValue",
    "StringValue",
    "BooleanValue",
    "EncodedStructuredValue",
    # Schema keys
    "build_key",
    "split_key",
    "is_subset_key",
    "key_from_thing",
    "key_from_model",
    "property_alias",
    "compose_model_name",
    # Property types
    "classify",
    "data_type_for",
    "unit_for",
    "build_property_definitions",
    "coerce_value",
    # Ports
    "IThingSource",
    "IAssetStore",
]
