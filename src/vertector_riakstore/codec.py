"""
Document <-> Riak map codec.

Encoding is two steps: ``sleep`` turns domain values into register text
(dates become ISO-8601, ``None`` becomes the ``$nil`` sentinel, binaries
become base64), then ``doc_to_rmap`` lays the fields out as map entries:
nested dicts become nested maps, sequences become sets, everything else a
register.

Decoding reverses it: ``rmap_to_doc`` strips the kind suffixes, maps storage
names back to field names and runs ``wakeup``, which uses the schema's
declared types to parse text back into numbers, booleans and dates.
"""

import base64
import binascii
import logging
from typing import Any

from vertector_riakstore.datatypes import (
    NIL,
    Counter,
    Flag,
    Register,
    RiakMap,
    RiakSet,
    parse_iso8601,
    to_text,
)
from vertector_riakstore.exceptions import StoreDecodeError
from vertector_riakstore.schema import DocSchema, Document, FieldNameMap, FieldType, SchemaField

logger = logging.getLogger(__name__)

_SEQUENCE_TYPES = (list, tuple, set, frozenset)


# ============================================================================
# Encoding
# ============================================================================

def sleep(doc: Document, schema: DocSchema) -> Document:
    """
    Convert a document's values to their stored text forms.

    ``None`` becomes the sentinel for every field except the id field, which
    is left untouched so id assignment can still see that it is unset.
    """
    return Document(doc.schema_name, _sleep_fields(doc.fields, schema.names, schema.id_field))


def _sleep_fields(fields: dict[str, Any], names: FieldNameMap, id_field: str | None) -> dict[str, Any]:
    slept = {}
    for name, value in fields.items():
        if value is None:
            slept[name] = None if name == id_field else NIL
        elif isinstance(value, dict):
            schema_field = names.get(name)
            sub_names = FieldNameMap(schema_field.fields if schema_field else ())
            slept[name] = _sleep_fields(value, sub_names, None)
        elif isinstance(value, _SEQUENCE_TYPES):
            slept[name] = [to_text(v) for v in value]
        else:
            slept[name] = to_text(value)
    return slept


def doc_to_rmap(doc: Document, schema: DocSchema) -> RiakMap:
    """Lay out a slept document as a Riak map, using storage names."""
    fields = {name: value for name, value in doc.fields.items() if value is not None}
    return map_to_rmap(fields, schema.names)


def map_to_rmap(fields: dict[str, Any], names: FieldNameMap | None = None) -> RiakMap:
    """
    Build a Riak map from a (slept) field mapping.

    Example:
        >>> map_to_rmap({"name": "Ann", "tags": ["a", "b"]}).to_op()
        {'update': {'name_register': 'Ann', 'tags_set': {'add_all': ['a', 'b']}}}
    """
    names = names or FieldNameMap(())
    rmap = RiakMap()
    for name, value in fields.items():
        key = names.to_storage(name)
        if isinstance(value, dict):
            schema_field = names.get(name)
            rmap.put(key, map_to_rmap(value, FieldNameMap(schema_field.fields if schema_field else ())))
        elif isinstance(value, _SEQUENCE_TYPES):
            rmap.put(key, RiakSet(frozenset(to_text(v) for v in value)))
        else:
            rmap.put(key, Register(to_text(value)))
    return rmap


# ============================================================================
# Decoding
# ============================================================================

def rmap_to_map(rmap: RiakMap, names: FieldNameMap | None = None) -> dict[str, Any]:
    """Plain field mapping from a Riak map (no type coercion)."""
    names = names or FieldNameMap(())
    fields: dict[str, Any] = {}
    for (key, _kind), value in rmap.items():
        name = names.from_storage(key)
        if isinstance(value, RiakMap):
            schema_field = names.get(name)
            fields[name] = rmap_to_map(value, FieldNameMap(schema_field.fields if schema_field else ()))
        elif isinstance(value, RiakSet):
            fields[name] = sorted(value.members)
        elif isinstance(value, (Register, Counter, Flag)):
            fields[name] = value.value
    return fields


def rmap_to_doc(schema: DocSchema, rmap: RiakMap) -> Document:
    """
    Decode a fetched Riak map into a document of ``schema``.

    Declared fields missing from the map come back as ``None``.

    Raises:
        StoreDecodeError: If a stored value cannot be parsed as its declared type
    """
    return wakeup(schema.new_doc(rmap_to_map(rmap, schema.names)), schema)


def wakeup(doc: Document, schema: DocSchema) -> Document:
    """Coerce stored text back into the declared field types."""
    return Document(doc.schema_name, _wakeup_fields(doc.fields, schema.names))


def _wakeup_fields(fields: dict[str, Any], names: FieldNameMap) -> dict[str, Any]:
    return {name: _wakeup_value(names.get(name), name, value) for name, value in fields.items()}


def _wakeup_value(schema_field: SchemaField | None, name: str, value: Any) -> Any:
    if value == NIL:
        return None
    if isinstance(value, dict):
        return _wakeup_fields(value, FieldNameMap(schema_field.fields if schema_field else ()))
    if schema_field is None or value is None:
        return value

    field_type = schema_field.type
    try:
        if field_type is FieldType.DATETIME and isinstance(value, str):
            return parse_iso8601(value)
        if field_type is FieldType.DATE and isinstance(value, str):
            return parse_iso8601(value).date()
        if field_type is FieldType.INTEGER and isinstance(value, str):
            return int(value)
        if field_type is FieldType.FLOAT and isinstance(value, str):
            return float(value)
        if field_type is FieldType.BOOLEAN and isinstance(value, str):
            return _parse_bool(value)
        if field_type is FieldType.BINARY and isinstance(value, str):
            return base64.b64decode(value, validate=True)
    except (ValueError, binascii.Error) as e:
        raise StoreDecodeError(str(e), field=name, value=value, original_error=e)
    return value


def _parse_bool(value: str) -> bool:
    if value == "true":
        return True
    if value == "false":
        return False
    raise ValueError(f"not a boolean: {value!r}")
