"""Property values written to SiteWise.

Samples read from the IoT Cloud are untyped JSON. ``coerce_value`` in
property_types converts them once into a closed set of value types;
everything downstream works with these types only.

    NumericValue            -> doubleValue
    IntegerValue            -> integerValue
    StringValue             -> stringValue
    BooleanValue            -> doubleValue (1.0 / 0.0)
    EncodedStructuredValue  -> stringValue (canonical JSON)
"""

import json
from dataclasses import dataclass
from typing import Any, Union


@dataclass(frozen=True)
class NumericValue:
    value: float


@dataclass(frozen=True)
class IntegerValue:
    value: int


@dataclass(frozen=True)
class StringValue:
    value: str


@dataclass(frozen=True)
class BooleanValue:
    value: bool

    @property
    def as_double(self) -> float:
        return 1.0 if self.value else 0.0


@dataclass(frozen=True)
class EncodedStructuredValue:
    """A map or list value, stored as canonical JSON."""

    value: str

    @classmethod
    def encode(cls, data: Any) -> "EncodedStructuredValue":
        return cls(json.dumps(data, sort_keys=True, separators=(",", ":")))


PropertyValue = Union[
    NumericValue,
    IntegerValue,
    StringValue,
    BooleanValue,
    EncodedStructuredValue,
]
