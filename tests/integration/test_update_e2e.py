"""End-to-end tests for the scaffold, generate and update lifecycle.

A project is scaffolded from a private template copy, grown with entities
and addons, and then updated after a template is changed, the way a user
upgrading Trellis would experience it.

No external services are required.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from trellis.addons import AddonKind, install
from trellis.config import TrellisConfig
from trellis.scaffolder.entity import parse_entity
from trellis.scaffolder.generator import EntityGenerator
from trellis.tracking.manifest import Manifest, content_hash
from trellis.tracking.relations import load_pending
from trellis.tracking.updater import ConflictResolution, apply_plan, plan_update

MAIN = "backend/app/main.py"
MAIN_TEMPLATE = "scaffold/backend/app/main.py.j2"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _bump(template_dir: Path, template_id: str, line: str) -> None:
    path = template_dir / template_id
    path.write_text(path.read_text(encoding="utf-8") + line, encoding="utf-8")


def _grow(project: Path) -> None:
    """Add entities (with a deferred relation) and an addon."""
    config = TrellisConfig.load(project)
    generator = EntityGenerator(project, config=config)
    generator.generate(parse_entity("Post", ["title:string[searchable]", "author_id:uuid->User", "tags:m2m->Tag"]))
    generator.generate(parse_entity("User", ["email:string[unique]"]))
    generator.generate(parse_entity("Tag", ["label:string"]))
    install(project, AddonKind.AUDIT_LOG)


# ---------------------------------------------------------------------------
# Tests
# ---------------------------------------------------------------------------


@pytest.mark.integration
class TestUpdateLifecycle:
    def test_grown_project_is_still_up_to_date(self, scaffolded_project: Path, renderer):
        _grow(scaffolded_project)

        assert load_pending(scaffolded_project) == []
        plan = plan_update(scaffolded_project, renderer=renderer)
        assert not plan.has_changes
        assert not plan.deleted

    def test_template_change_reaches_untouched_file(
        self, scaffolded_project: Path, renderer, template_dir
    ):
        _grow(scaffolded_project)
        models_init = (scaffolded_project / "backend/app/models/__init__.py").read_text(encoding="utf-8")
        _bump(template_dir, MAIN_TEMPLATE, "# health endpoint moved\n")

        plan = plan_update(scaffolded_project, renderer=renderer)
        assert [item.output_path for item in plan.auto_update] == [MAIN]
        assert not plan.conflicts

        report = apply_plan(
            scaffolded_project, plan, Manifest.load(scaffolded_project),
            lambda item: ConflictResolution.SKIP,
        )

        assert report.updated == [MAIN]
        main = (scaffolded_project / MAIN).read_text(encoding="utf-8")
        assert main.endswith("# health endpoint moved\n")
        assert Manifest.load(scaffolded_project).get(MAIN).content_hash == content_hash(main)
        # Marker-managed files keep their injected lines.
        assert (scaffolded_project / "backend/app/models/__init__.py").read_text(
            encoding="utf-8"
        ) == models_init
        assert not plan_update(scaffolded_project, renderer=renderer).has_changes

    @pytest.mark.parametrize("resolution", [ConflictResolution.SKIP, ConflictResolution.OVERWRITE])
    def test_user_edit_and_template_change_conflict(
        self, scaffolded_project: Path, renderer, template_dir, resolution
    ):
        main_path = scaffolded_project / MAIN
        original_baseline = Manifest.load(scaffolded_project).get(MAIN).content_hash
        edited = main_path.read_text(encoding="utf-8") + "\n\n@app.get('/ping')\ndef ping():\n    return 'pong'\n"
        main_path.write_text(edited, encoding="utf-8")
        _bump(template_dir, MAIN_TEMPLATE, "# health endpoint moved\n")

        plan = plan_update(scaffolded_project, renderer=renderer)
        assert [item.output_path for item in plan.conflicts] == [MAIN]
        assert not plan.auto_update
        prompted = []

        def resolve(item):
            prompted.append(item.output_path)
            return resolution

        apply_plan(scaffolded_project, plan, Manifest.load(scaffolded_project), resolve)

        assert prompted == [MAIN]
        record = Manifest.load(scaffolded_project).get(MAIN)
        current = main_path.read_text(encoding="utf-8")
        if resolution == ConflictResolution.SKIP:
            assert current == edited
            assert record.content_hash == original_baseline
        else:
            assert "ping" not in current
            assert current.endswith("# health endpoint moved\n")
            assert record.content_hash == content_hash(current)

    def test_regenerated_entity_keeps_custom_code(self, scaffolded_project: Path):
        config = TrellisConfig.load(scaffolded_project)
        generator = EntityGenerator(scaffolded_project, config=config)
        generator.generate(parse_entity("Post", ["title:string"]))

        model_path = scaffolded_project / "backend/app/models/post.py"
        custom = "\n    def headline(self) -> str:\n        return self.title.upper()\n"
        model_path.write_text(model_path.read_text(encoding="utf-8") + custom, encoding="utf-8")

        generator.generate(parse_entity("Post", ["title:string", "views:int"]))

        content = model_path.read_text(encoding="utf-8")
        assert "views" in content
        assert content.endswith(custom)
