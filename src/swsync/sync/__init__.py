"""Sync module - Clean Architecture implementation of the IoT Cloud to SiteWise sync.

This module mirrors IoT Cloud things into AWS IoT SiteWise asset models and
assets, then copies their recent samples into the asset properties.

Architecture:
    domain/     - Pure domain entities, value types and port interfaces
    use_cases/  - Business logic orchestration (discovery, alignment, export)
    adapters/   - Infrastructure implementations (IoT Cloud API, SiteWise)
"""

from .domain.entities import (
    AlignStatistics,
    AssetDescription,
    AssetModel,
    AssetSummary,
    ExportStatistics,
    SyncResult,
    Thing,
    ThingProperty,
)
from .domain.ports import IAssetStore, IThingSource

__all__ = [
    # Source Entities
    "Thing",
    "ThingProperty",
    # Destination Entities
    "AssetModel",
    "AssetSummary",
    "AssetDescription",
    # Result Entities
    "SyncResult",
    "AlignStatistics",
    "ExportStatistics",
    # Ports
    "IThingSource",
    "IAssetStore",
]
