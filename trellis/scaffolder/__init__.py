"""Trellis scaffolder -- templates, entity definitions and marker injection.

Quick usage::

    from trellis.scaffolder import TemplateRenderer, parse_entity
    from trellis.scaffolder.generator import EntityGenerator

    entity = parse_entity("Post", ["title:string", "author_id:uuid->User"])
    EntityGenerator(project_root).generate(entity)

``trellis.scaffolder.generator`` is imported explicitly because it depends on
``trellis.tracking``, which in turn depends on this package.
"""

from trellis.scaffolder.entity import (
    EntityDefinition,
    FieldDefinition,
    FieldType,
    RelationDefinition,
    RelationKind,
    parse_entity,
)
from trellis.scaffolder.markers import (
    Marker,
    MarkerNotFoundError,
    MarkerValidationError,
    insert_before_marker,
    validate_markers,
    write_with_preserved_tail,
)
from trellis.scaffolder.templates import TemplateRenderer

__all__ = [
    "EntityDefinition",
    "FieldDefinition",
    "FieldType",
    "RelationDefinition",
    "RelationKind",
    "parse_entity",
    "Marker",
    "MarkerNotFoundError",
    "MarkerValidationError",
    "insert_before_marker",
    "validate_markers",
    "write_with_preserved_tail",
    "TemplateRenderer",
]
