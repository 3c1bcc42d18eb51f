"""
Document and schema model for the Riak document store.

A schema declares the fields of one document kind, which field is the
identifier, and under which name each field is stored in Riak. Documents are
transient: they are built per request and never persisted as objects.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterator

from vertector_riakstore.exceptions import StoreValidationError

logger = logging.getLogger(__name__)


class FieldType(str, Enum):
    """Declared field types understood by the wakeup pass."""
    INTEGER = "integer"
    FLOAT = "float"
    STRING = "string"
    BOOLEAN = "boolean"
    DATE = "date"
    DATETIME = "datetime"
    BINARY = "binary"
    DOCUMENT = "document"
    LIST = "list"


@dataclass(frozen=True)
class SchemaField:
    """
    One declared field of a schema.

    Fields:
        name: Field name as seen by callers
        type: Declared type (drives the wakeup coercion)
        id: Whether this is the identifier field
        stored_as: Name used in Riak (defaults to ``name``)
        fields: Sub-fields of a nested document, if declared
    """
    name: str
    type: FieldType = FieldType.STRING
    id: bool = False
    stored_as: str | None = None
    fields: tuple["SchemaField", ...] = ()

    @property
    def storage_name(self) -> str:
        return self.stored_as or self.name


class FieldNameMap:
    """Bidirectional field name <-> storage name table for one set of fields."""

    def __init__(self, fields: tuple[SchemaField, ...]):
        self._by_name: dict[str, SchemaField] = {}
        self._by_storage: dict[str, SchemaField] = {}
        for schema_field in fields:
            if schema_field.name in self._by_name:
                raise ValueError(f"duplicate field '{schema_field.name}'")
            if schema_field.storage_name in self._by_storage:
                raise ValueError(f"duplicate storage name '{schema_field.storage_name}'")
            self._by_name[schema_field.name] = schema_field
            self._by_storage[schema_field.storage_name] = schema_field

    def to_storage(self, name: str) -> str:
        """Storage name for a field; undeclared names are stored verbatim."""
        schema_field = self._by_name.get(name)
        return schema_field.storage_name if schema_field else name

    def from_storage(self, storage_name: str) -> str:
        """Field name for a storage name; unknown names are kept verbatim."""
        schema_field = self._by_storage.get(storage_name)
        return schema_field.name if schema_field else storage_name

    def get(self, name: str) -> SchemaField | None:
        return self._by_name.get(name)

    def __iter__(self) -> Iterator[SchemaField]:
        return iter(self._by_name.values())


class DocSchema:
    """
    Declared schema for one document kind.

    Example:
        >>> users = DocSchema("users", [
        ...     SchemaField("id", FieldType.STRING, id=True),
        ...     SchemaField("age", FieldType.INTEGER),
        ...     SchemaField("joined", FieldType.DATE),
        ... ])
        >>> users.id_field
        'id'
    """

    def __init__(self, name: str, fields: list[SchemaField] | tuple[SchemaField, ...]):
        if not name:
            raise StoreValidationError("Schema name must not be empty", field="name", value=name)

        fields = tuple(fields)
        id_fields = [f.name for f in fields if f.id]
        if len(id_fields) != 1:
            raise StoreValidationError(
                f"Schema '{name}' must declare exactly one id field, found {len(id_fields)}",
                field="fields",
                value=id_fields,
            )

        try:
            self.names = FieldNameMap(fields)
        except ValueError as e:
            raise StoreValidationError(f"Malformed schema '{name}': {e}", field="fields", original_error=e)

        self.name = name
        self.fields = fields
        self.id_field = id_fields[0]

    def field_type(self, name: str) -> FieldType | None:
        schema_field = self.names.get(name)
        return schema_field.type if schema_field else None

    def new_doc(self, fields: dict[str, Any] | None = None) -> "Document":
        """Create a document of this schema with every declared field present."""
        values = {f.name: None for f in self.fields}
        values.update(fields or {})
        return Document(self.name, values)

    def __repr__(self) -> str:
        return f"DocSchema(name={self.name!r}, id_field={self.id_field!r}, fields={len(self.fields)})"


@dataclass
class Document:
    """A schema name plus an ordered mapping of field name to value."""
    schema_name: str
    fields: dict[str, Any] = field(default_factory=dict)

    def get_field(self, name: str, default: Any = None) -> Any:
        return self.fields.get(name, default)

    def set_field(self, name: str, value: Any) -> "Document":
        """Return a copy of this document with ``name`` set to ``value``."""
        fields = dict(self.fields)
        fields[name] = value
        return Document(self.schema_name, fields)


class SchemaRegistry:
    """Schemas by name. ``create_schema`` on the store registers into this."""

    def __init__(self, schemas: list[DocSchema] | None = None):
        self._schemas: dict[str, DocSchema] = {}
        for schema in schemas or []:
            self.register(schema)

    def register(self, schema: DocSchema) -> None:
        if schema.name in self._schemas:
            logger.debug(f"Replacing schema '{schema.name}'")
        self._schemas[schema.name] = schema

    def get(self, name: str) -> DocSchema:
        schema = self._schemas.get(name)
        if schema is None:
            raise StoreValidationError(f"Unknown schema '{name}'", field="schema_name", value=name)
        return schema

    def __contains__(self, name: str) -> bool:
        return name in self._schemas

    def __len__(self) -> int:
        return len(self._schemas)
