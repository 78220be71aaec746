"""Port interfaces for sync operations.

Ports define the contracts between the domain/use cases and the infrastructure.
These are abstract base classes that adapters must implement.

Following the Hexagonal Architecture (Ports and Adapters) pattern:
- Ports are interfaces defined in the domain layer
- Adapters implement these ports in the adapters layer
- Use cases depend only on ports, not concrete implementations
"""

from abc import ABC, abstractmethod
from collections.abc import Mapping
from datetime import datetime

from .entities import (
    AssetDescription,
    AssetModel,
    AssetSummary,
    DataPoint,
    EntryError,
    ModelPropertyDefinition,
    Page,
    SeriesResponse,
    Thing,
)
from .values import PropertyValue


class IThingSource(ABC):
    """Port for reading things and their samples.

    Implementations signal throttling by raising RateLimitError; retrying is
    the caller's decision.
    """

    @abstractmethod
    async def list_things(self, tags: Mapping[str, str] | None = None) -> list[Thing]:
        """List things with their properties expanded.

        Args:
            tags: Only return things carrying all of these tags

        Returns:
            List of Thing entities
        """
        ...

    @abstractmethod
    async def property_type_catalog(self) -> dict[str, list[str]]:
        """Map every property type tag to the units it accepts."""
        ...

    @abstractmethod
    async def fetch_series_by_thing(
        self,
        thing_id: str,
        start: datetime,
        end: datetime,
        interval: int,
    ) -> list[SeriesResponse]:
        """Aggregated series of every property of a thing.

        Args:
            thing_id: Thing to query
            start: Window start (inclusive)
            end: Window end
            interval: Aggregation interval in seconds

        Returns:
            One SeriesResponse per property, queries of the form property.<id>
        """
        ...

    @abstractmethod
    async def fetch_sampled_series(
        self,
        property_ids: list[str],
        start: datetime,
        end: datetime,
        interval: int,
    ) -> list[SeriesResponse]:
        """Raw (non aggregated) samples for the given properties."""
        ...


class IAssetStore(ABC):
    """Port for the model/asset/time-series store.

    Write operations return per-entry errors instead of raising when only
    some entries were rejected.
    """

    # ----------------------------------------
    # Catalog
    # ----------------------------------------

    @abstractmethod
    async def list_models(self, next_token: str | None = None) -> Page[str]:
        """One page of model ids."""
        ...

    @abstractmethod
    async def list_assets(
        self,
        model_id: str,
        next_token: str | None = None,
    ) -> Page[AssetSummary]:
        """One page of the assets instantiating a model."""
        ...

    @abstractmethod
    async def describe_model(self, model_id: str) -> AssetModel:
        ...

    @abstractmethod
    async def describe_asset(self, asset_id: str) -> AssetDescription:
        ...

    # ----------------------------------------
    # Structure
    # ----------------------------------------

    @abstractmethod
    async def create_model(
        self,
        name: str,
        definitions: list[ModelPropertyDefinition],
    ) -> str:
        """Create a model and return its id.

        Raises:
            ConflictError: If a model with this name already exists
        """
        ...

    @abstractmethod
    async def update_model(
        self,
        model: AssetModel,
        definitions: list[ModelPropertyDefinition],
    ) -> bool:
        """Add the definitions missing from the model.

        Existing properties are kept as they are; nothing is ever removed.

        Returns:
            True if an update was sent, False if the model already had them all
        """
        ...

    @abstractmethod
    async def create_asset(self, name: str, model_id: str, external_id: str) -> str:
        """Create an asset and return its id."""
        ...

    @abstractmethod
    async def update_asset_properties(
        self,
        asset_id: str,
        aliases: Mapping[str, str],
    ) -> int:
        """Bind aliases to asset properties by property name.

        Properties already carrying the right alias and names the asset
        does not have are skipped.

        Returns:
            Number of properties updated
        """
        ...

    # ----------------------------------------
    # Data
    # ----------------------------------------

    @abstractmethod
    async def put_values(
        self,
        alias: str,
        timestamps: list[int],
        values: list[PropertyValue],
    ) -> list[EntryError]:
        """Write up to 10 values of one alias as a single entry."""
        ...

    @abstractmethod
    async def batch_write(self, points: list[DataPoint]) -> list[EntryError]:
        """Write up to 10 single-value entries."""
        ...
