"""Entity definitions parsed from ``name:type`` command-line specs.

Recognised field forms::

    title:string                 plain column
    body:text?                   optional (nullable) column
    slug:string[unique,searchable]
    author_id:uuid->User         belongs-to foreign key
    comments:has_many->Comment   reverse side, no column
    tags:m2m->Tag                many-to-many via a junction model
"""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from trellis.errors import EntityParseError
from trellis.utils import pascal_case, pluralize, snake_case


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class RelationKind(str, Enum):
    """Kinds of relation an entity can declare."""

    BELONGS_TO = "belongs_to"
    HAS_MANY = "has_many"
    MANY_TO_MANY = "many_to_many"


class FieldType(str, Enum):
    """Column types supported by the generated SQLAlchemy models."""

    STRING = "string"
    TEXT = "text"
    BOOL = "bool"
    INT = "int"
    BIGINT = "bigint"
    FLOAT = "float"
    DECIMAL = "decimal"
    UUID = "uuid"
    DATETIME = "datetime"
    DATE = "date"
    JSON = "json"

    @property
    def python_type(self) -> str:
        return _PYTHON_TYPES[self]

    @property
    def sqlalchemy_type(self) -> str:
        return _SQLALCHEMY_TYPES[self]


_PYTHON_TYPES: dict[FieldType, str] = {
    FieldType.STRING: "str",
    FieldType.TEXT: "str",
    FieldType.BOOL: "bool",
    FieldType.INT: "int",
    FieldType.BIGINT: "int",
    FieldType.FLOAT: "float",
    FieldType.DECIMAL: "Decimal",
    FieldType.UUID: "uuid.UUID",
    FieldType.DATETIME: "datetime.datetime",
    FieldType.DATE: "datetime.date",
    FieldType.JSON: "dict",
}

_SQLALCHEMY_TYPES: dict[FieldType, str] = {
    FieldType.STRING: "String(255)",
    FieldType.TEXT: "Text",
    FieldType.BOOL: "Boolean",
    FieldType.INT: "Integer",
    FieldType.BIGINT: "BigInteger",
    FieldType.FLOAT: "Float",
    FieldType.DECIMAL: "Numeric(12, 2)",
    FieldType.UUID: "Uuid",
    FieldType.DATETIME: "DateTime(timezone=True)",
    FieldType.DATE: "Date",
    FieldType.JSON: "JSON",
}

_TYPE_ALIASES: dict[str, FieldType] = {
    "string": FieldType.STRING,
    "str": FieldType.STRING,
    "text": FieldType.TEXT,
    "bool": FieldType.BOOL,
    "boolean": FieldType.BOOL,
    "int": FieldType.INT,
    "i32": FieldType.INT,
    "int32": FieldType.INT,
    "integer": FieldType.INT,
    "bigint": FieldType.BIGINT,
    "i64": FieldType.BIGINT,
    "int64": FieldType.BIGINT,
    "float": FieldType.FLOAT,
    "f64": FieldType.FLOAT,
    "float64": FieldType.FLOAT,
    "double": FieldType.FLOAT,
    "decimal": FieldType.DECIMAL,
    "money": FieldType.DECIMAL,
    "uuid": FieldType.UUID,
    "datetime": FieldType.DATETIME,
    "timestamp": FieldType.DATETIME,
    "date": FieldType.DATE,
    "json": FieldType.JSON,
    "jsonb": FieldType.JSON,
}


# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------


class FieldDefinition(BaseModel):
    """A single column on an entity."""

    name: str
    field_type: FieldType
    optional: bool = False
    unique: bool = False
    searchable: bool = False
    relation: Optional[str] = Field(default=None, description="Target entity for a FK column")


class RelationDefinition(BaseModel):
    """A relation declared by an entity."""

    name: str
    kind: RelationKind
    target_entity: str
    fk_column: Optional[str] = None
    optional: bool = False

    @property
    def backref_name(self) -> str:
        """Attribute name on the owning side, e.g. ``author`` for ``author_id``."""
        column = self.fk_column or self.name
        return column[: -len("_id")] if column.endswith("_id") else column


class EntityDefinition(BaseModel):
    """An entity to generate: its fields and its relations."""

    name: str
    fields: list[FieldDefinition] = Field(default_factory=list)
    relations: list[RelationDefinition] = Field(default_factory=list)

    @property
    def snake_name(self) -> str:
        return snake_case(self.name)

    @property
    def class_name(self) -> str:
        return pascal_case(self.name)

    @property
    def table_name(self) -> str:
        return pluralize(self.snake_name)

    def relations_of(self, kind: RelationKind) -> list[RelationDefinition]:
        return [rel for rel in self.relations if rel.kind == kind]


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


def parse_field_type(raw: str) -> FieldType:
    """Resolve a type name or alias (case-insensitive) to a ``FieldType``."""
    try:
        return _TYPE_ALIASES[raw.strip().lower()]
    except KeyError:
        raise EntityParseError(f"Unknown field type: '{raw}'") from None


def parse_entity(name: str, field_specs: list[str]) -> EntityDefinition:
    """Parse an entity name plus ``name:type`` specs into an ``EntityDefinition``.

    Raises:
        EntityParseError: On an empty entity name, a spec without ``:``, an
            unknown type, or a relation type missing its ``->Target``.
    """
    if not name.strip() or not pascal_case(name):
        raise EntityParseError("Entity name must not be empty")

    fields: list[FieldDefinition] = []
    relations: list[RelationDefinition] = []

    for spec in field_specs:
        optional = spec.endswith("?")
        if optional:
            spec = spec[:-1]

        field_name, sep, rest = spec.partition(":")
        if not sep or not field_name or not rest:
            raise EntityParseError(f"Invalid field format '{spec}'. Expected name:type")

        annotations: list[str] = []
        if "[" in rest and "]" in rest:
            start, end = rest.index("["), rest.index("]")
            annotations = [a.strip() for a in rest[start + 1 : end].split(",") if a.strip()]
            rest = rest[:start] + rest[end + 1 :]

        type_str, arrow, target = rest.partition("->")
        kind = type_str.strip().lower()

        if kind in ("has_many", "m2m"):
            if not arrow or not target.strip():
                raise EntityParseError(
                    f"{kind} requires a target entity: {field_name}:{kind}->Entity"
                )
            relations.append(
                RelationDefinition(
                    name=field_name,
                    kind=RelationKind.HAS_MANY if kind == "has_many" else RelationKind.MANY_TO_MANY,
                    target_entity=target.strip(),
                )
            )
            continue

        field_type = parse_field_type(type_str)
        relation_target = target.strip() if arrow else None
        if arrow and not relation_target:
            raise EntityParseError(f"Missing relation target in '{spec}'")

        fields.append(
            FieldDefinition(
                name=field_name,
                field_type=field_type,
                optional=optional,
                unique="unique" in annotations,
                searchable="searchable" in annotations,
                relation=relation_target,
            )
        )
        if relation_target:
            relations.append(
                RelationDefinition(
                    name=field_name,
                    kind=RelationKind.BELONGS_TO,
                    target_entity=relation_target,
                    fk_column=field_name,
                    optional=optional,
                )
            )

    return EntityDefinition(name=name.strip(), fields=fields, relations=relations)
