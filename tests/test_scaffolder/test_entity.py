"""Tests for entity definitions and field-spec parsing (trellis.scaffolder.entity)."""

from __future__ import annotations

import pytest

from trellis.errors import EntityParseError
from trellis.scaffolder.entity import (
    FieldType,
    RelationDefinition,
    RelationKind,
    parse_entity,
    parse_field_type,
)

pytestmark = pytest.mark.unit


class TestParseFieldType:
    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("string", FieldType.STRING),
            ("String", FieldType.STRING),
            ("text", FieldType.TEXT),
            ("boolean", FieldType.BOOL),
            ("i32", FieldType.INT),
            ("int64", FieldType.BIGINT),
            ("double", FieldType.FLOAT),
            ("money", FieldType.DECIMAL),
            ("uuid", FieldType.UUID),
            ("timestamp", FieldType.DATETIME),
            ("date", FieldType.DATE),
            ("jsonb", FieldType.JSON),
        ],
    )
    def test_aliases(self, raw, expected):
        assert parse_field_type(raw) == expected

    def test_unknown_type(self):
        with pytest.raises(EntityParseError, match="Unknown field type"):
            parse_field_type("blob")

    def test_type_mappings(self):
        assert FieldType.UUID.python_type == "uuid.UUID"
        assert FieldType.STRING.sqlalchemy_type == "String(255)"
        assert FieldType.DATETIME.sqlalchemy_type == "DateTime(timezone=True)"


class TestParseEntity:
    def test_plain_fields(self):
        entity = parse_entity("Post", ["title:string", "views:int"])
        assert [f.name for f in entity.fields] == ["title", "views"]
        assert entity.fields[0].field_type == FieldType.STRING
        assert entity.fields[0].optional is False
        assert entity.relations == []

    def test_optional_field(self):
        entity = parse_entity("Post", ["body:text?"])
        assert entity.fields[0].optional is True
        assert entity.fields[0].field_type == FieldType.TEXT

    def test_annotations(self):
        entity = parse_entity("Post", ["slug:string[unique,searchable]"])
        field = entity.fields[0]
        assert field.unique is True
        assert field.searchable is True
        assert field.field_type == FieldType.STRING

    def test_belongs_to(self):
        entity = parse_entity("Post", ["author_id:uuid->User"])
        assert entity.fields[0].relation == "User"
        assert entity.relations == [
            RelationDefinition(
                name="author_id",
                kind=RelationKind.BELONGS_TO,
                target_entity="User",
                fk_column="author_id",
                optional=False,
            )
        ]
        assert entity.relations[0].backref_name == "author"

    def test_optional_belongs_to(self):
        entity = parse_entity("Post", ["editor_id:uuid->User?"])
        assert entity.fields[0].optional is True
        assert entity.relations[0].optional is True
        assert entity.relations[0].target_entity == "User"

    def test_has_many_creates_no_field(self):
        entity = parse_entity("User", ["posts:has_many->Post"])
        assert entity.fields == []
        assert entity.relations[0].kind == RelationKind.HAS_MANY
        assert entity.relations[0].target_entity == "Post"

    def test_many_to_many(self):
        entity = parse_entity("Post", ["tags:m2m->Tag"])
        assert entity.fields == []
        assert entity.relations_of(RelationKind.MANY_TO_MANY)[0].target_entity == "Tag"

    def test_names(self):
        entity = parse_entity("blog_post", [])
        assert entity.class_name == "BlogPost"
        assert entity.snake_name == "blog_post"
        assert entity.table_name == "blog_posts"

    def test_category_table_name(self):
        assert parse_entity("Category", []).table_name == "categories"

    @pytest.mark.parametrize(
        "spec",
        ["title", "title:", ":string", "tags:m2m", "posts:has_many->", "author_id:uuid->"],
    )
    def test_malformed_specs(self, spec):
        with pytest.raises(EntityParseError):
            parse_entity("Post", [spec])

    def test_empty_name(self):
        with pytest.raises(EntityParseError, match="must not be empty"):
            parse_entity("  ", ["title:string"])
