"""Use cases layer - Business logic orchestration for sync operations.

This layer contains use case classes that orchestrate the sync workflow:
- Index the SiteWise catalog (via the IAssetStore port)
- Mirror things into models and assets (via IAssetStore)
- Copy recent samples from things to assets (via IThingSource and IAssetStore)

Use cases depend only on ports, not concrete implementations.
"""

from .align_entities import AlignEntitiesUseCase
from .discover_catalog import DiscoverCatalogUseCase
from .export_timeseries import (
    ExportTimeSeriesUseCase,
    compute_time_window,
    partition_series,
)

__all__ = [
    "AlignEntitiesUseCase",
    "DiscoverCatalogUseCase",
    "ExportTimeSeriesUseCase",
    "compute_time_window",
    "partition_series",
]
