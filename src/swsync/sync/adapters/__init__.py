"""Adapters layer - Infrastructure implementations for sync operations.

This layer contains concrete implementations of the ports defined in the domain layer:
- IoTThingSource: IoT Cloud implementation of IThingSource
- SiteWiseAssetStore: AWS IoT SiteWise implementation of IAssetStore
- ThingFieldMapper: IoT Cloud JSON -> domain entities
- SiteWiseFieldMapper: SiteWise responses <-> domain entities and requests
"""

from .field_mapper import SiteWiseFieldMapper, ThingFieldMapper
from .iot_source_adapter import IoTThingSource
from .sitewise_store_adapter import SiteWiseAssetStore

__all__ = [
    # Source adapters
    "IoTThingSource",
    "ThingFieldMapper",
    # Store adapters
    "SiteWiseAssetStore",
    "SiteWiseFieldMapper",
]
