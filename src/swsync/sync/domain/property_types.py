"""IoT Cloud property types and how they map onto SiteWise.

Every thing property carries a type tag (``FLOAT``, ``CHARSTRING``,
``HOME_SWITCH``...). The tag decides three things:

    - the PropertyKind, which routes the property to the aggregated
      (primary) or the sampled (char) series endpoint
    - the SiteWise data type of the model property (DOUBLE or STRING)
    - how raw JSON samples are converted into a PropertyValue

Units come from the IoT Cloud property type catalog, which lists the
accepted units per type; the first one is used.
"""

from collections.abc import Mapping
from typing import Any

from .entities import ModelPropertyDefinition, PropertyKind
from .values import (
    BooleanValue,
    EncodedStructuredValue,
    NumericValue,
    PropertyValue,
    StringValue,
)

DATA_TYPE_DOUBLE = "DOUBLE"
DATA_TYPE_STRING = "STRING"

STRING_TYPES = frozenset({"CHARSTRING"})

LOCATION_TYPES = frozenset({"LOCATION"})

BOOLEAN_TYPES = frozenset({
    "BOOL",
    "STATUS",
    "HOME_SWITCH",
    "HOME_CONTACT_SENSOR",
    "HOME_MOTION_SENSOR",
    "HOME_SMART_PLUG",
})

STRUCTURED_TYPES = frozenset({
    "COLOR",
    "COLOR_HSB",
    "COLOR_RGB",
    "HOME_COLORED_LIGHT",
    "HOME_DIMMED_LIGHT",
    "HOME_TELEVISION",
    "SCHEDULE",
})

# Kinds that may be re-sent as a last known value
FALLBACK_KINDS = frozenset({
    PropertyKind.NUMERIC,
    PropertyKind.BOOLEAN,
    PropertyKind.STRING,
    PropertyKind.LOCATION,
})


def classify(type_tag: str) -> PropertyKind:
    """Kind of a type tag; anything not otherwise known is numeric."""
    tag = (type_tag or "").upper()
    if tag in STRING_TYPES:
        return PropertyKind.STRING
    if tag in LOCATION_TYPES:
        return PropertyKind.LOCATION
    if tag in BOOLEAN_TYPES:
        return PropertyKind.BOOLEAN
    if tag in STRUCTURED_TYPES:
        return PropertyKind.STRUCTURED
    return PropertyKind.NUMERIC


def data_type_for(type_tag: str) -> str:
    """SiteWise data type for a type tag."""
    if classify(type_tag).is_primary:
        return DATA_TYPE_DOUBLE
    return DATA_TYPE_STRING


def unit_for(type_tag: str, units: Mapping[str, list[str]]) -> str | None:
    candidates = units.get(type_tag) or units.get((type_tag or "").upper())
    if candidates:
        return candidates[0]
    return None


def build_property_definitions(
    property_types: Mapping[str, str],
    units: Mapping[str, list[str]],
) -> list[ModelPropertyDefinition]:
    """Model property definitions for a property name -> type tag map.

    Entries with a blank name or an empty type are ignored. The result is
    sorted by name so repeated runs send identical requests.
    """
    return [
        ModelPropertyDefinition(
            name=name,
            data_type=data_type_for(type_tag),
            unit=unit_for(type_tag, units),
        )
        for name, type_tag in sorted(property_types.items())
        if name and name.strip() and type_tag
    ]


def coerce_value(raw: Any, kind: PropertyKind) -> PropertyValue | None:
    """Convert a raw sample into the value type declared for its kind.

    Returns None when the sample cannot be represented (null, or a value
    of the wrong shape for the kind).
    """
    if raw is None:
        return None

    if kind == PropertyKind.BOOLEAN:
        if isinstance(raw, bool):
            return BooleanValue(raw)
        if isinstance(raw, (int, float)):
            return BooleanValue(raw != 0)
        return None

    if kind == PropertyKind.NUMERIC:
        if isinstance(raw, bool):
            return BooleanValue(raw)
        if isinstance(raw, (int, float)):
            # DOUBLE properties reject integerValue
            return NumericValue(float(raw))
        return None

    if isinstance(raw, (dict, list)):
        return EncodedStructuredValue.encode(raw)
    if isinstance(raw, str):
        return StringValue(raw)
    if kind == PropertyKind.STRING and isinstance(raw, (int, float)):
        return StringValue(str(raw))
    return None
