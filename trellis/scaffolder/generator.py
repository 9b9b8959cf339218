"""Project and entity generation.

``ProjectGenerator`` renders a new project from the scaffold templates and
writes the baseline manifest.  ``EntityGenerator`` adds one entity to an
existing project: it writes the model and router modules, registers them at
the project's markers, wires relations to entities that already exist and
defers the rest to the pending relation queue.
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Any

from trellis import __version__
from trellis.config import TrellisConfig
from trellis.errors import EntityParseError, TrellisError
from trellis.scaffolder.entity import EntityDefinition, FieldType, RelationKind
from trellis.scaffolder.markers import (
    Marker,
    MarkerCheck,
    check,
    insert_before_marker,
    remove_lines_containing,
    validate_markers,
    write_with_preserved_tail,
)
from trellis.scaffolder.templates import TemplateRenderer
from trellis.tracking.manifest import FileCategory, Manifest, normalize_output_path
from trellis.tracking.relations import (
    ENTITIES_DIR,
    PendingRelation,
    Replay,
    discard_pending,
    discover_entities,
    entity_exists,
    junction_name,
    load_pending,
    replaying,
    store_pending,
)
from trellis.tracking.updater import SCAFFOLD_MAPPINGS, build_template_context, category_for
from trellis.utils import (
    pascal_case,
    pluralize,
    print_action,
    print_success,
    print_warning,
    snake_case,
    write_file,
)


MODELS_INIT = f"{ENTITIES_DIR}/__init__.py"
ROUTES_DIR = "backend/app/routes"
ROUTES_INIT = f"{ROUTES_DIR}/__init__.py"
ADDONS_INIT = "backend/app/addons/__init__.py"
BACKEND_PYPROJECT = "backend/pyproject.toml"
JUNCTIONS_DIR = f"{ENTITIES_DIR}/junctions"


def model_path(entity_name: str) -> str:
    return f"{ENTITIES_DIR}/{snake_case(entity_name)}.py"


def routes_path(entity_name: str) -> str:
    return f"{ROUTES_DIR}/{snake_case(entity_name)}.py"


def project_marker_checks(project_root: str | Path) -> list[MarkerCheck]:
    """Every marker a healthy project carries, including per-entity ones."""
    root = Path(project_root)
    checks = [
        check(root / MODELS_INIT, Marker.MODS),
        check(root / ROUTES_INIT, Marker.MODS),
        check(root / ROUTES_INIT, Marker.ROUTES),
        check(root / ADDONS_INIT, Marker.MODS),
        check(root / ADDONS_INIT, Marker.ADDONS),
        check(root / BACKEND_PYPROJECT, Marker.DEPENDENCIES),
    ]
    for name in discover_entities(root):
        checks.append(check(root / model_path(name), Marker.RELATIONS))
        checks.append(check(root / routes_path(name), Marker.RELATION_ROUTES))
    return checks


# ---------------------------------------------------------------------------
# Write tracking
# ---------------------------------------------------------------------------


class GenerationTracker:
    """Remembers files created during a run so a failure can remove them."""

    def __init__(self) -> None:
        self.created: list[Path] = []

    def track(self, path: Path) -> None:
        self.created.append(path)

    def rollback(self) -> None:
        for path in reversed(self.created):
            if path.exists():
                path.unlink()
                print_action("remove", str(path), "rolled back")
        self.created.clear()


class GenerationSession:
    """File writes and marker injections for one run.

    Whole-file writes are recorded in the manifest (when the project has
    one).  After an injection into a tracked file, its record is refreshed
    so the baseline stays equal to what Trellis last wrote.
    """

    def __init__(self, project_root: Path, manifest: Manifest | None) -> None:
        self.project_root = project_root
        self.manifest = manifest
        self.tracker = GenerationTracker()

    def write(
        self,
        output_path: str,
        content: str,
        template_id: str | None,
        category: FileCategory,
        entity_name: str | None = None,
        preserve_tail: bool = False,
    ) -> str:
        full_path = self.project_root / output_path
        existed = full_path.exists()
        if not existed:
            self.tracker.track(full_path)

        if preserve_tail:
            content = write_with_preserved_tail(full_path, content)
        else:
            write_file(full_path, content)

        if self.manifest is not None:
            self.manifest.record(output_path, template_id, category, content, entity_name)
        print_action("update" if existed else "create", output_path)
        return content

    def inject(self, output_path: str, marker: str, line: str) -> bool:
        full_path = self.project_root / output_path
        if not insert_before_marker(full_path, marker, line):
            return False

        self._refresh(output_path)
        print_action("inject", output_path, line.strip().splitlines()[0])
        return True

    def rewrite(self, output_path: str, content: str) -> None:
        """Replace a file Trellis edits in place (such as ``trellis.toml``)."""
        write_file(self.project_root / output_path, content)
        self._refresh(output_path)
        print_action("update", output_path)

    def remove_lines(self, output_path: str, needle: str) -> bool:
        if not remove_lines_containing(self.project_root / output_path, needle):
            return False
        self._refresh(output_path)
        print_action("remove", output_path, needle.strip())
        return True

    def delete(self, output_path: str) -> bool:
        full_path = self.project_root / output_path
        if self.manifest is not None:
            self.manifest.forget(output_path)
        if not full_path.exists():
            return False
        full_path.unlink()
        print_action("remove", output_path)
        return True

    def _refresh(self, output_path: str) -> None:
        if self.manifest is None:
            return
        record = self.manifest.get(output_path)
        if record is not None:
            self.manifest.record(
                output_path,
                record.template,
                record.category,
                (self.project_root / output_path).read_text(encoding="utf-8"),
                record.entity_name,
            )

    @classmethod
    def open(cls, project_root: str | Path) -> "GenerationSession":
        """Session for *project_root*, tracking writes if it has a manifest."""
        root = Path(project_root)
        return cls(root, Manifest.load(root) if Manifest.exists(root) else None)

    def save(self) -> None:
        if self.manifest is not None:
            self.manifest.touch(__version__)
            self.manifest.save(self.project_root)


# ---------------------------------------------------------------------------
# Project scaffolding
# ---------------------------------------------------------------------------


class ProjectGenerator:
    """Scaffolds a new project and records every file as the baseline."""

    def __init__(self, config: TrellisConfig, renderer: TemplateRenderer | None = None) -> None:
        self.config = config
        self.renderer = renderer or TemplateRenderer()

    def generate(self, output_dir: str | Path) -> Path:
        """Generate the project under ``<output_dir>/<project name>``.

        Raises:
            TrellisError: If the target directory already exists and is not
                empty.
        """
        project_root = Path(output_dir) / self.config.project.name
        if project_root.exists() and any(project_root.iterdir()):
            raise TrellisError(f"Directory {project_root} already exists and is not empty")
        project_root.mkdir(parents=True, exist_ok=True)

        context = build_template_context(self.config)
        manifest = Manifest.new(self.config.project.name, __version__)

        for template_id, output_path in SCAFFOLD_MAPPINGS:
            content = self.renderer.render_to_file(template_id, project_root / output_path, context)
            manifest.record(output_path, template_id, category_for(output_path), content)
            print_action("create", output_path)

        manifest.save(project_root)
        print_action("create", normalize_output_path(Path(".trellis") / "manifest.json"))
        return project_root


# ---------------------------------------------------------------------------
# Entity generation
# ---------------------------------------------------------------------------

_SEARCHABLE_TYPES = (FieldType.STRING, FieldType.TEXT)


def _back_populates(child: EntityDefinition | str, parent: str, fk_base: str) -> str:
    """Name of the has-many collection a parent gets for a child's FK.

    ``Post.author_id -> User`` gives ``User.posts_by_author``; the plain
    ``Post.user_id -> User`` gives ``User.posts``.
    """
    child_table = pluralize(snake_case(child if isinstance(child, str) else child.name))
    if fk_base == snake_case(parent):
        return child_table
    return f"{child_table}_by_{fk_base}"


def _belongs_to_pattern(parent_class: str, child_class: str) -> re.Pattern[str]:
    return re.compile(
        rf'^    (\w+): Mapped\["{parent_class}(?: \| None)?"\] = '
        rf'relationship\(back_populates="(\w+)", foreign_keys="{child_class}\.(\w+)"\)$',
        re.MULTILINE,
    )


class EntityGenerator:
    """Adds an entity to an existing project."""

    def __init__(
        self,
        project_root: str | Path,
        renderer: TemplateRenderer | None = None,
        config: TrellisConfig | None = None,
    ) -> None:
        self.project_root = Path(project_root)
        self.renderer = renderer or TemplateRenderer()
        self.config = config or TrellisConfig.load_with_env(self.project_root)

    # -- Public API --------------------------------------------------------

    def generate(self, entity: EntityDefinition) -> None:
        """Generate *entity* and resolve every relation that involves it.

        All markers the run needs are checked before the first write.  If a
        later step fails, files created by this run are removed again and
        pending relations taken for replay are put back on the queue.

        Raises:
            MarkerValidationError: If required markers or files are missing.
            EntityParseError: For a self-referential many-to-many relation.
        """
        for rel in entity.relations_of(RelationKind.MANY_TO_MANY):
            if snake_case(rel.target_entity) == entity.snake_name:
                raise EntityParseError(
                    f"Self-referential many-to-many relation '{rel.name}' is not supported"
                )

        validate_markers(self._required_markers(entity))

        session = GenerationSession.open(self.project_root)
        stored: list[PendingRelation] = []

        # Relations taken for replay go back on the queue unless the whole
        # run, manifest included, is committed.
        with replaying(self.project_root, entity.name) as replay:
            try:
                self._write_entity_files(session, entity)
                self._register(session, entity)
                deferred = self._link_declared_relations(session, entity)
                self._replay_pending(session, replay)
                for pending in deferred:
                    if store_pending(self.project_root, pending):
                        stored.append(pending)
                        print_action(
                            "defer",
                            f"{pending.source_entity} -> {pending.target_entity}",
                            pending.relation_kind.value,
                        )
                session.save()
            except Exception:
                session.tracker.rollback()
                for pending in stored:
                    discard_pending(self.project_root, pending)
                raise
            for pending in replay:
                replay.mark_done(pending)

        print_success(f"Generated entity '{entity.class_name}'")

    # -- Pre-validation ----------------------------------------------------

    def _required_markers(self, entity: EntityDefinition) -> list[MarkerCheck]:
        root = self.project_root
        checks = [
            check(root / MODELS_INIT, Marker.MODS),
            check(root / ROUTES_INIT, Marker.MODS),
            check(root / ROUTES_INIT, Marker.ROUTES),
        ]

        others: list[str] = []
        for rel in entity.relations:
            if rel.kind == RelationKind.HAS_MANY:
                continue
            if snake_case(rel.target_entity) == entity.snake_name:
                continue
            if entity_exists(root, rel.target_entity):
                others.append(rel.target_entity)
        for pending in load_pending(root):
            if snake_case(pending.target_entity) == entity.snake_name:
                others.append(pending.source_entity)

        for name in dict.fromkeys(others):
            checks.append(check(root / model_path(name), Marker.RELATIONS))
            checks.append(check(root / routes_path(name), Marker.RELATION_ROUTES))
        return checks

    # -- Files -------------------------------------------------------------

    def _model_context(self, entity: EntityDefinition) -> dict[str, Any]:
        fields = [
            {
                "name": f.name,
                "python_type": f.field_type.python_type,
                "sqlalchemy_type": f.field_type.sqlalchemy_type,
                "optional": f.optional,
                "unique": f.unique,
                "searchable": f.searchable,
                "relation": f.relation,
                "relation_table": pluralize(snake_case(f.relation)) if f.relation else None,
            }
            for f in entity.fields
        ]

        belongs_to = []
        for rel in entity.relations_of(RelationKind.BELONGS_TO):
            fk_column = rel.fk_column or rel.name
            attribute = rel.backref_name if fk_column.endswith("_id") else f"{fk_column}_ref"
            self_referential = snake_case(rel.target_entity) == entity.snake_name
            belongs_to.append(
                {
                    "attribute": attribute,
                    "target_class": pascal_case(rel.target_entity),
                    "fk_column": fk_column,
                    "optional": rel.optional,
                    "back_populates": None
                    if self_referential
                    else _back_populates(entity, rel.target_entity, rel.backref_name),
                }
            )

        return {
            "class_name": entity.class_name,
            "snake_name": entity.snake_name,
            "table_name": entity.table_name,
            "fields": fields,
            "belongs_to": belongs_to,
            "soft_delete": self.config.has_feature("soft_delete"),
            "searchable_fields": [
                {"name": f.name}
                for f in entity.fields
                if f.searchable and f.field_type in _SEARCHABLE_TYPES
            ],
        }

    def _write_entity_files(self, session: GenerationSession, entity: EntityDefinition) -> None:
        context = self._model_context(entity)
        for template_id, output_path in (
            ("entity/model.py.j2", model_path(entity.name)),
            ("entity/routes.py.j2", routes_path(entity.name)),
        ):
            content = self.renderer.render(template_id, context)
            session.write(
                output_path,
                content,
                template_id,
                FileCategory.ENTITY,
                entity_name=entity.class_name,
                preserve_tail=True,
            )

    def _register(self, session: GenerationSession, entity: EntityDefinition) -> None:
        snake = entity.snake_name
        session.inject(MODELS_INIT, Marker.MODS, f"from app.models import {snake}  # noqa: F401")
        session.inject(ROUTES_INIT, Marker.MODS, f"from app.routes import {snake} as {snake}_routes")
        session.inject(ROUTES_INIT, Marker.ROUTES, f"api_router.include_router({snake}_routes.router)")

    # -- Relations ---------------------------------------------------------

    def _link_declared_relations(
        self, session: GenerationSession, entity: EntityDefinition
    ) -> list[PendingRelation]:
        """Wire relations whose target exists; return the ones to defer."""
        deferred: list[PendingRelation] = []
        for rel in entity.relations:
            target = rel.target_entity
            if rel.kind == RelationKind.HAS_MANY:
                # The reverse side is wired when the child declares its FK.
                continue
            if rel.kind == RelationKind.BELONGS_TO and snake_case(target) == entity.snake_name:
                continue

            if not entity_exists(self.project_root, target):
                deferred.append(
                    PendingRelation(
                        source_entity=entity.class_name,
                        target_entity=pascal_case(target),
                        relation_kind=rel.kind,
                    )
                )
                continue

            if rel.kind == RelationKind.BELONGS_TO:
                self._link_has_many(session, parent=target, child=entity.name)
            else:
                self._link_many_to_many(session, entity.name, target)
        return deferred

    def _replay_pending(self, session: GenerationSession, replay: Replay) -> None:
        for pending in replay:
            if pending.relation_kind == RelationKind.BELONGS_TO:
                self._link_has_many(session, parent=pending.target_entity, child=pending.source_entity)
            elif pending.relation_kind == RelationKind.MANY_TO_MANY:
                self._link_many_to_many(session, pending.source_entity, pending.target_entity)
            print_action(
                "inject",
                f"{pending.source_entity} -> {pending.target_entity}",
                f"pending {pending.relation_kind.value}",
            )

    def _link_has_many(self, session: GenerationSession, parent: str, child: str) -> None:
        """Give *parent* a collection and a route for each FK *child* holds to it.

        The child's FK relationships are read back from its generated model,
        which is what lets a deferred relation be replayed from the queue
        entry alone.
        """
        parent_class, child_class = pascal_case(parent), pascal_case(child)
        child_source = (self.project_root / model_path(child)).read_text(encoding="utf-8")

        links = _belongs_to_pattern(parent_class, child_class).findall(child_source)
        if not links:
            print_warning(
                f"No {parent_class} relationship found in {model_path(child)}; "
                f"{parent_class} was not given a {child_class} collection"
            )
        for attribute, collection, fk_column in links:
            session.inject(
                model_path(parent),
                Marker.RELATIONS,
                f'    {collection}: Mapped[list["{child_class}"]] = relationship('
                f'back_populates="{attribute}", foreign_keys="{child_class}.{fk_column}")',
            )
            route = self.renderer.render(
                "entity/has_many_route.py.j2",
                {
                    "handler_name": f"list_{collection}",
                    "url_suffix": collection.replace("_", "-"),
                    "child_snake": snake_case(child),
                    "child_class": child_class,
                    "fk_column": fk_column,
                },
            )
            session.inject(routes_path(parent), Marker.RELATION_ROUTES, route.rstrip("\n"))

    def _link_many_to_many(self, session: GenerationSession, entity_a: str, entity_b: str) -> None:
        """Create the junction table for two entities and wire both sides."""
        first, second = sorted((snake_case(entity_a), snake_case(entity_b)))
        junction = junction_name(first, second)

        init_path = f"{JUNCTIONS_DIR}/__init__.py"
        if not (self.project_root / init_path).exists():
            session.write(
                init_path,
                '"""Association tables for many-to-many relations."""\n',
                None,
                FileCategory.STATIC,
            )

        junction_path = f"{JUNCTIONS_DIR}/{junction}.py"
        if not (self.project_root / junction_path).exists():
            content = self.renderer.render(
                "entity/junction_model.py.j2",
                {
                    "entity_a": pascal_case(first),
                    "entity_b": pascal_case(second),
                    "junction_snake": junction,
                    "entity_a_snake": first,
                    "entity_b_snake": second,
                    "entity_a_table": pluralize(first),
                    "entity_b_table": pluralize(second),
                },
            )
            session.write(
                junction_path,
                content,
                "entity/junction_model.py.j2",
                FileCategory.ENTITY,
                entity_name=f"{pascal_case(first)}{pascal_case(second)}",
            )

        session.inject(
            MODELS_INIT, Marker.MODS, f"from app.models.junctions import {junction}  # noqa: F401"
        )

        for this, other in ((first, second), (second, first)):
            this_table, other_table = pluralize(this), pluralize(other)
            session.inject(
                model_path(this),
                Marker.RELATIONS,
                f'    {other_table}: Mapped[list["{pascal_case(other)}"]] = relationship('
                f'secondary="{junction}", back_populates="{this_table}")',
            )
            route = self.renderer.render(
                "entity/m2m_route.py.j2", {"other_table": other_table, "self_snake": this}
            )
            session.inject(routes_path(this), Marker.RELATION_ROUTES, route.rstrip("\n"))
