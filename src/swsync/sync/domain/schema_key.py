"""Schema keys: the matching criterion between things and models.

A schema key is the sorted set of property names of a thing or of a model's
measurement properties, joined with a comma. Two entities with the same
property names produce the same key regardless of order and of property
types, and the key is the only thing compared when deciding which model a
thing belongs to.
"""

from collections.abc import Iterable

from .entities import AssetModel, Thing

KEY_SEPARATOR = ","


def build_key(names: Iterable[str]) -> str:
    """Canonical key for a set of property names.

    Blank names are dropped and duplicates collapse.

    >>> build_key(["b", "a", ""])
    'a,b'
    """
    return KEY_SEPARATOR.join(sorted({n for n in names if n and n.strip()}))


def split_key(key: str) -> list[str]:
    if not key:
        return []
    return key.split(KEY_SEPARATOR)


def is_subset_key(model_key: str, thing_key: str) -> bool:
    """True when every property named by thing_key is also in model_key."""
    return set(split_key(thing_key)) <= set(split_key(model_key))


def key_from_thing(thing: Thing) -> str:
    """Key of a thing's properties that have both a name and a type."""
    return build_key(thing.property_types.keys())


def key_from_model(model: AssetModel) -> str | None:
    """Key of a model's measurement properties, None if it has none."""
    names = model.measurement_names
    if not names:
        return None
    return build_key(names)


def property_alias(thing_id: str, property_name: str) -> str:
    """Alias binding an asset property to a thing property."""
    return f"/{thing_id}/{property_name}"


def compose_model_name(thing_name: str, attempt: int = 0) -> str:
    """Deterministic model name; attempts past the first get a numeric suffix."""
    if attempt == 0:
        return f"Thing Model from ({thing_name})"
    return f"Thing Model from ({thing_name}) - {attempt}"
