"""
Field naming shared by the query compiler and the codec.

Riak stores each map entry under ``<name>_<kind>`` and Riak Search indexes
nested entries as ``outer_map.inner_map.leaf_register``. This module owns the
suffix table and both directions of that naming.
"""

from enum import Enum

NEGATION_PREFIX = "-"
PATH_SEPARATOR = "."


class DataType(str, Enum):
    """Riak data type kinds that can live inside a map."""
    REGISTER = "register"
    MAP = "map"
    SET = "set"
    COUNTER = "counter"
    FLAG = "flag"


# Longest suffix first so stripping is a longest-match on the trailing token
SUFFIXES: tuple[tuple[str, DataType], ...] = tuple(
    sorted(
        ((f"_{kind.value}", kind) for kind in DataType),
        key=lambda item: len(item[0]),
        reverse=True,
    )
)


def storage_key(name: str, kind: DataType) -> str:
    """``("age", REGISTER)`` -> ``"age_register"``."""
    return f"{name}_{kind.value}"


def split_storage_key(key: str) -> tuple[str, DataType]:
    """
    Split a stored map key into field name and kind.

    Only the trailing suffix is removed, so ``"tag_set_register"`` yields
    ``("tag_set", REGISTER)``.

    Raises:
        ValueError: If the key carries no known suffix
    """
    for suffix, kind in SUFFIXES:
        if key.endswith(suffix) and len(key) > len(suffix):
            return key[: -len(suffix)], kind
    raise ValueError(f"map key {key!r} has no data type suffix")


def build_key(field: str, negate: bool = False) -> str:
    """
    Search index address for a (possibly dotted) field name.

    Example:
        >>> build_key("address.geo.lat")
        'address_map.geo_map.lat_register:'
        >>> build_key("age", negate=True)
        '-age_register:'
    """
    segments = field.split(PATH_SEPARATOR)
    parts = [storage_key(s, DataType.MAP) for s in segments[:-1]]
    parts.append(storage_key(segments[-1], DataType.REGISTER))
    address = PATH_SEPARATOR.join(parts) + ":"
    return NEGATION_PREFIX + address if negate else address
