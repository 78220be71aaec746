"""IoT Cloud adapter for reading things and their samples.

This adapter implements IThingSource and wraps IoTClient to provide the
thing listing, the property type catalog and the two series queries.
"""

from collections.abc import Mapping
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

from ..domain.entities import SeriesResponse, Thing
from ..domain.ports import IThingSource
from .field_mapper import ThingFieldMapper

if TYPE_CHECKING:
    from ...api.iot_client import IoTClient


def _rfc3339(value: datetime) -> str:
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


class IoTThingSource(IThingSource):
    """IoT Cloud adapter for thing and series operations.

    Throttled requests surface as RateLimitError from IoTClient; the
    exporter decides whether to retry them.
    """

    # API endpoints
    THINGS_ENDPOINT = "/iot/v2/things"
    PROPERTY_TYPES_ENDPOINT = "/iot/v1/property_types"
    BATCH_QUERY_ENDPOINT = "/iot/v2/series/batch_query"
    BATCH_QUERY_SAMPLING_ENDPOINT = "/iot/v2/series/batch_query_sampling"

    def __init__(
        self,
        client: "IoTClient",
        mapper: ThingFieldMapper | None = None,
    ):
        """Initialize the source adapter.

        Args:
            client: Configured IoTClient instance (inside its context)
            mapper: Optional field mapper override
        """
        self.client = client
        self.mapper = mapper or ThingFieldMapper()

    async def list_things(self, tags: Mapping[str, str] | None = None) -> list[Thing]:
        """List things with expanded properties, filtered by tags.

        Tags are sent as repeated ``tags=key:value`` parameters; the API
        returns the things carrying all of them.
        """
        params: list[tuple[str, str]] = [("show_properties", "true")]
        for key, value in (tags or {}).items():
            params.append(("tags", f"{key}:{value}"))

        data = await self.client.get(self.THINGS_ENDPOINT, params=params)
        return [self.mapper.map_thing(raw) for raw in data or []]

    async def property_type_catalog(self) -> dict[str, list[str]]:
        data = await self.client.get(self.PROPERTY_TYPES_ENDPOINT)
        catalog: dict[str, list[str]] = {}
        for entry in data or []:
            type_tag = entry.get("type")
            if type_tag:
                catalog[type_tag] = list(entry.get("units") or [])
        return catalog

    async def fetch_series_by_thing(
        self,
        thing_id: str,
        start: datetime,
        end: datetime,
        interval: int,
    ) -> list[SeriesResponse]:
        if not thing_id:
            raise ValueError("thing_id is required")
        body = {"requests": [self._query(f"thing.{thing_id}", start, end, interval)]}
        data = await self.client.post(self.BATCH_QUERY_ENDPOINT, json_body=body)
        return self.mapper.map_series_batch(data)

    async def fetch_sampled_series(
        self,
        property_ids: list[str],
        start: datetime,
        end: datetime,
        interval: int,
    ) -> list[SeriesResponse]:
        if not property_ids:
            return []
        body = {
            "requests": [
                self._query(f"property.{pid}", start, end, interval)
                for pid in property_ids
            ]
        }
        data = await self.client.post(self.BATCH_QUERY_SAMPLING_ENDPOINT, json_body=body)
        return self.mapper.map_series_batch(data)

    @staticmethod
    def _query(q: str, start: datetime, end: datetime, interval: int) -> dict[str, Any]:
        return {
            "q": q,
            "from": _rfc3339(start),
            "to": _rfc3339(end),
            "interval": interval,
        }
