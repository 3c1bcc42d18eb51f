"""
Riak data type values (the wide-column representation) and their text forms.

A document is stored as a Riak map whose entries are registers, nested maps,
sets, counters or flags. ``RiakMap.to_op`` produces the JSON body of a map
update over the HTTP data types API; ``RiakMap.from_json`` parses the
``value`` object of a fetch response.
"""

import base64
from dataclasses import dataclass, field
from datetime import date, datetime, time, timezone
from typing import Any, Union

from vertector_riakstore.fields import DataType, split_storage_key, storage_key

# Register text standing in for an explicit null
NIL = "$nil"

ISO8601_FORMAT = "%Y-%m-%dT%H:%M:%S"


@dataclass(frozen=True)
class Register:
    value: str


@dataclass(frozen=True)
class RiakSet:
    members: frozenset[str] = frozenset()


@dataclass(frozen=True)
class Counter:
    value: int = 0


@dataclass(frozen=True)
class Flag:
    value: bool = False


@dataclass
class RiakMap:
    """
    A Riak map: entries keyed by ``(field name, kind)``.

    Two entries with the same name but different kinds are distinct, as in
    Riak itself.
    """
    entries: dict[tuple[str, DataType], "WideColumnValue"] = field(default_factory=dict)

    def put(self, name: str, value: "WideColumnValue") -> "RiakMap":
        self.entries[(name, kind_of(value))] = value
        return self

    def get(self, name: str, kind: DataType) -> "WideColumnValue | None":
        return self.entries.get((name, kind))

    def items(self):
        return self.entries.items()

    def __len__(self) -> int:
        return len(self.entries)

    def to_op(self) -> dict[str, Any]:
        """
        JSON body for ``POST .../datatypes/<key>``.

        Example:
            >>> RiakMap().put("name", Register("Ann")).to_op()
            {'update': {'name_register': 'Ann'}}
        """
        update: dict[str, Any] = {}
        for (name, kind), value in self.entries.items():
            key = storage_key(name, kind)
            if kind is DataType.MAP:
                update[key] = value.to_op()
            elif kind is DataType.SET:
                update[key] = {"add_all": sorted(value.members)}
            elif kind is DataType.COUNTER:
                update[key] = value.value
            elif kind is DataType.FLAG:
                update[key] = "enable" if value.value else "disable"
            else:
                update[key] = value.value
        return {"update": update}

    @classmethod
    def from_json(cls, value: dict[str, Any]) -> "RiakMap":
        """Parse the ``value`` object of a fetched map."""
        rmap = cls()
        for key, raw in value.items():
            name, kind = split_storage_key(key)
            if kind is DataType.MAP:
                rmap.entries[(name, kind)] = cls.from_json(raw)
            elif kind is DataType.SET:
                rmap.entries[(name, kind)] = RiakSet(frozenset(raw))
            elif kind is DataType.COUNTER:
                rmap.entries[(name, kind)] = Counter(int(raw))
            elif kind is DataType.FLAG:
                rmap.entries[(name, kind)] = Flag(bool(raw))
            else:
                rmap.entries[(name, kind)] = Register(raw)
        return rmap


WideColumnValue = Union[Register, RiakMap, RiakSet, Counter, Flag]


def kind_of(value: WideColumnValue) -> DataType:
    if isinstance(value, RiakMap):
        return DataType.MAP
    if isinstance(value, RiakSet):
        return DataType.SET
    if isinstance(value, Counter):
        return DataType.COUNTER
    if isinstance(value, Flag):
        return DataType.FLAG
    if isinstance(value, Register):
        return DataType.REGISTER
    raise TypeError(f"not a Riak data type value: {value!r}")


def format_iso8601(value: date | datetime) -> str:
    """
    ISO-8601 UTC text for a date or datetime.

    Dates are written at midnight; aware datetimes are converted to UTC;
    microseconds are kept only when non-zero.
    """
    if not isinstance(value, datetime):
        value = datetime.combine(value, time())
    elif value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    text = value.strftime(ISO8601_FORMAT)
    if value.microsecond:
        text += f".{value.microsecond:06d}"
    return text + "Z"


def parse_iso8601(text: str) -> datetime:
    """
    Parse ISO-8601 text into a naive UTC datetime.

    Raises:
        ValueError: If the text is not ISO-8601
    """
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def to_text(value: Any) -> str:
    """Canonical register text for a scalar value."""
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (date, datetime)):
        return format_iso8601(value)
    if isinstance(value, float):
        return repr(value)
    if isinstance(value, (bytes, bytearray)):
        return base64.b64encode(bytes(value)).decode("ascii")
    return str(value)
