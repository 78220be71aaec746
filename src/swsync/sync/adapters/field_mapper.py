"""Field mapper adapter for transforming between API payloads and domain entities.

Two mappers, one per side of the synchronization:
- ThingFieldMapper: IoT Cloud JSON (things, series) -> domain entities
- SiteWiseFieldMapper: SiteWise responses <-> domain entities and request dicts
"""

import re
from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

from ..domain.entities import (
    AssetDescription,
    AssetModel,
    AssetProperty,
    AssetSummary,
    DataPoint,
    EntryError,
    ModelProperty,
    ModelPropertyDefinition,
    SeriesResponse,
    Thing,
    ThingProperty,
    UpdateStrategy,
)
from ..domain.values import (
    BooleanValue,
    EncodedStructuredValue,
    IntegerValue,
    NumericValue,
    PropertyValue,
    StringValue,
)

# fromisoformat() accepts at most microseconds
_FRACTION_RE = re.compile(r"\.(\d{6})\d+")


class ThingFieldMapper:
    """Maps IoT Cloud API responses to domain entities.

    This class handles:
    - Thing and property parsing (properties are expanded inline)
    - Update strategy normalization
    - Series timestamp parsing (RFC 3339 strings -> unix seconds)
    """

    def map_thing(self, raw: dict[str, Any]) -> Thing:
        """Transform a thing dictionary to a Thing entity.

        Args:
            raw: Thing from GET /iot/v2/things?show_properties=true

        Returns:
            Thing with its properties, in API order
        """
        properties = tuple(
            self.map_property(p) for p in raw.get("properties") or []
        )
        tags = raw.get("tags") or {}
        return Thing(
            id=raw["id"],
            name=raw.get("name") or "",
            properties=properties,
            tags={str(k): str(v) for k, v in tags.items()},
        )

    def map_property(self, raw: dict[str, Any]) -> ThingProperty:
        return ThingProperty(
            id=raw["id"],
            name=raw.get("name") or "",
            type=raw.get("type") or "",
            last_value=raw.get("last_value"),
            update_strategy=self._parse_strategy(raw.get("update_strategy")),
            value_updated_at=self._parse_timestamp(raw.get("value_updated_at")),
        )

    def map_series(self, raw: dict[str, Any]) -> SeriesResponse:
        """Transform one entry of a batch query ``responses`` array."""
        times = [self._to_unix(t) for t in raw.get("times") or []]
        values = list(raw.get("values") or [])
        count = raw.get("count_values")
        return SeriesResponse(
            query=raw.get("query") or "",
            times=times,
            values=values,
            count=len(times) if count is None else int(count),
        )

    def map_series_batch(self, raw: dict[str, Any] | None) -> list[SeriesResponse]:
        if not raw:
            return []
        return [self.map_series(r) for r in raw.get("responses") or []]

    @staticmethod
    def _parse_strategy(value: str | None) -> UpdateStrategy | None:
        if not value:
            return None
        try:
            return UpdateStrategy(value.upper())
        except ValueError:
            return None

    @staticmethod
    def _parse_timestamp(iso_string: str | None) -> datetime | None:
        """Parse an RFC 3339 timestamp string to an aware datetime.

        Handles the 'Z' suffix and nanosecond fractions returned by the API.

        Args:
            iso_string: RFC 3339 timestamp (may end with 'Z')

        Returns:
            datetime object or None if input is None/empty
        """
        if not iso_string:
            return None
        normalized = _FRACTION_RE.sub(r".\1", iso_string.replace("Z", "+00:00"))
        parsed = datetime.fromisoformat(normalized)
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed

    @classmethod
    def _to_unix(cls, value: Any) -> int:
        if isinstance(value, (int, float)):
            return int(value)
        return int(cls._parse_timestamp(value).timestamp())


class SiteWiseFieldMapper:
    """Maps SiteWise responses to domain entities, and domain objects to requests.

    This class handles:
    - Model and asset description parsing (the full model payload is kept)
    - Measurement detection (transforms and metrics are not measurements)
    - Property definitions -> AssetModelProperty request dicts
    - Property values -> Variant dicts and BatchPutAssetPropertyValue entries
    """

    # ----------------------------------------
    # Responses -> entities
    # ----------------------------------------

    def map_model(self, raw: dict[str, Any]) -> AssetModel:
        properties = [
            ModelProperty(
                name=p.get("name") or "",
                data_type=p.get("dataType") or "",
                id=p.get("id"),
                unit=p.get("unit"),
                is_measurement="measurement" in (p.get("type") or {}),
            )
            for p in raw.get("assetModelProperties") or []
        ]
        return AssetModel(
            id=raw["assetModelId"],
            name=raw.get("assetModelName") or "",
            state=(raw.get("assetModelStatus") or {}).get("state"),
            properties=properties,
            raw_data=raw,
        )

    def map_asset_summary(self, raw: dict[str, Any]) -> AssetSummary:
        return AssetSummary(
            id=raw["id"],
            name=raw.get("name") or "",
            model_id=raw.get("assetModelId") or "",
            external_id=raw.get("externalId") or None,
        )

    def map_asset(self, raw: dict[str, Any]) -> AssetDescription:
        properties = [
            AssetProperty(
                id=p["id"],
                name=p.get("name") or "",
                alias=p.get("alias"),
                data_type=p.get("dataType"),
            )
            for p in raw.get("assetProperties") or []
        ]
        return AssetDescription(
            id=raw["assetId"],
            name=raw.get("assetName") or "",
            model_id=raw.get("assetModelId") or "",
            external_id=raw.get("assetExternalId") or None,
            state=(raw.get("assetStatus") or {}).get("state"),
            properties=properties,
        )

    def map_entry_errors(self, raw: dict[str, Any]) -> list[EntryError]:
        """Flatten ``errorEntries`` of a batch write response."""
        errors = []
        for entry in raw.get("errorEntries") or []:
            for err in entry.get("errors") or []:
                errors.append(EntryError(
                    entry_id=entry.get("entryId") or "",
                    error_code=err.get("errorCode") or "",
                    message=err.get("errorMessage") or "",
                ))
        return errors

    # ----------------------------------------
    # Entities -> requests
    # ----------------------------------------

    def map_definition(self, definition: ModelPropertyDefinition) -> dict[str, Any]:
        """Build an AssetModelProperty declaring a measurement."""
        prop: dict[str, Any] = {
            "name": definition.name,
            "dataType": definition.data_type,
            "type": {"measurement": {}},
        }
        if definition.unit:
            prop["unit"] = definition.unit
        return prop

    def map_variant(self, value: PropertyValue) -> dict[str, Any]:
        if isinstance(value, BooleanValue):
            return {"doubleValue": value.as_double}
        if isinstance(value, NumericValue):
            return {"doubleValue": value.value}
        if isinstance(value, IntegerValue):
            return {"integerValue": value.value}
        if isinstance(value, (StringValue, EncodedStructuredValue)):
            return {"stringValue": value.value}
        raise TypeError(f"Unsupported property value: {value!r}")

    def map_entry(
        self,
        alias: str,
        timestamps: list[int],
        values: list[PropertyValue],
    ) -> dict[str, Any]:
        """Build one BatchPutAssetPropertyValue entry for an alias."""
        return {
            "entryId": uuid4().hex,
            "propertyAlias": alias,
            "propertyValues": [
                {
                    "value": self.map_variant(value),
                    "timestamp": {"timeInSeconds": ts, "offsetInNanos": 0},
                    "quality": "GOOD",
                }
                for ts, value in zip(timestamps, values)
            ],
        }

    def map_point(self, point: DataPoint) -> dict[str, Any]:
        return self.map_entry(point.alias, [point.timestamp], [point.value])
