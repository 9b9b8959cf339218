"""Tests for the command-line interface (trellis.cli)."""

from __future__ import annotations

import tomllib
from pathlib import Path

import pytest

from trellis import __version__
from trellis import cli
from trellis.cli import build_parser, main
from trellis.tracking.manifest import Manifest, manifest_path
from trellis.tracking.relations import load_pending

pytestmark = pytest.mark.unit

README = "README.md"


def _run(*argv: str) -> None:
    main(list(argv))


def _edit_readme(project: Path) -> str:
    path = project / README
    edited = path.read_text(encoding="utf-8") + "my notes\n"
    path.write_text(edited, encoding="utf-8")
    return edited


class TestParser:
    def test_global_project_dir(self):
        args = build_parser().parse_args(["-C", "/tmp/x", "check"])
        assert args.project_dir == "/tmp/x"
        assert args.func is cli.cmd_check

    def test_generate_entity_fields(self):
        args = build_parser().parse_args(
            ["generate", "entity", "Post", "title:string", "author_id:uuid->User", "--env", "production"]
        )
        assert args.name == "Post"
        assert args.fields == ["title:string", "author_id:uuid->User"]
        assert args.env == "production"

    def test_conflict_flags_are_exclusive(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["update", "--overwrite-conflicts", "--skip-conflicts"])

    def test_command_required(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args([])

    def test_version(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            build_parser().parse_args(["--version"])
        assert exc_info.value.code == 0
        assert __version__ in capsys.readouterr().out


class TestNew:
    def test_creates_project(self, tmp_path: Path):
        _run("new", "shop", "-o", str(tmp_path), "--port", "9000", "--description", "A shop")

        project = tmp_path / "shop"
        doc = tomllib.loads((project / "trellis.toml").read_text(encoding="utf-8"))
        assert doc["project"] == {"name": "shop", "description": "A shop"}
        assert doc["backend"]["port"] == 9000
        assert Manifest.exists(project)

    def test_non_empty_target_exits(self, tmp_path: Path):
        (tmp_path / "shop").mkdir()
        (tmp_path / "shop" / "keep.txt").write_text("x", encoding="utf-8")

        with pytest.raises(SystemExit) as exc_info:
            _run("new", "shop", "-o", str(tmp_path))
        assert exc_info.value.code == 1


class TestGenerateEntity:
    def test_generates_files(self, scaffolded_project: Path):
        _run("-C", str(scaffolded_project), "generate", "entity", "Post", "title:string")

        assert (scaffolded_project / "backend/app/models/post.py").is_file()
        assert (scaffolded_project / "backend/app/routes/post.py").is_file()

    def test_pending_relation_is_reported_by_check(self, scaffolded_project: Path, capsys):
        _run("-C", str(scaffolded_project), "generate", "entity", "Post", "tags:m2m->Tag")
        assert len(load_pending(scaffolded_project)) == 1

        capsys.readouterr()
        _run("-C", str(scaffolded_project), "check")
        out = capsys.readouterr().out
        assert "Pending relations" in out
        assert "many_to_many" in out

    def test_bad_field_exits(self, scaffolded_project: Path):
        with pytest.raises(SystemExit) as exc_info:
            _run("-C", str(scaffolded_project), "generate", "entity", "Post", "title:blob")
        assert exc_info.value.code == 1

    def test_outside_project_exits(self, tmp_project_dir: Path):
        with pytest.raises(SystemExit) as exc_info:
            _run("-C", str(tmp_project_dir), "generate", "entity", "Post", "title:string")
        assert exc_info.value.code == 1


class TestUpdate:
    def test_up_to_date(self, scaffolded_project: Path, capsys):
        _run("-C", str(scaffolded_project), "update")
        assert "up to date" in capsys.readouterr().out

    def test_skip_conflicts(self, scaffolded_project: Path):
        edited = _edit_readme(scaffolded_project)
        _run("-C", str(scaffolded_project), "update", "--skip-conflicts")
        assert (scaffolded_project / README).read_text(encoding="utf-8") == edited

    def test_overwrite_conflicts(self, scaffolded_project: Path):
        _edit_readme(scaffolded_project)
        _run("-C", str(scaffolded_project), "update", "--overwrite-conflicts")
        assert "my notes" not in (scaffolded_project / README).read_text(encoding="utf-8")

    def test_dry_run_writes_nothing(self, scaffolded_project: Path):
        edited = _edit_readme(scaffolded_project)
        manifest_before = manifest_path(scaffolded_project).read_text(encoding="utf-8")

        _run("-C", str(scaffolded_project), "update", "--dry-run", "--overwrite-conflicts")

        assert (scaffolded_project / README).read_text(encoding="utf-8") == edited
        assert manifest_path(scaffolded_project).read_text(encoding="utf-8") == manifest_before

    def test_interactive_diff_then_overwrite(self, scaffolded_project: Path, monkeypatch, capsys):
        _edit_readme(scaffolded_project)
        answers = iter(["diff", "overwrite"])
        monkeypatch.setattr(cli.Prompt, "ask", lambda *args, **kwargs: next(answers))

        _run("-C", str(scaffolded_project), "update")

        out = capsys.readouterr().out
        assert "--- a/README.md" in out
        assert "-my notes" in out
        assert "my notes" not in (scaffolded_project / README).read_text(encoding="utf-8")

    def test_init_creates_baseline(self, scaffolded_project: Path):
        manifest_path(scaffolded_project).unlink()
        _run("-C", str(scaffolded_project), "update", "--init")
        assert Manifest.exists(scaffolded_project)

    def test_init_with_existing_manifest(self, scaffolded_project: Path, capsys):
        before = manifest_path(scaffolded_project).read_text(encoding="utf-8")
        _run("-C", str(scaffolded_project), "update", "--init")
        assert "already exists" in capsys.readouterr().out
        assert manifest_path(scaffolded_project).read_text(encoding="utf-8") == before

    def test_missing_manifest_exits(self, scaffolded_project: Path, capsys):
        manifest_path(scaffolded_project).unlink()
        with pytest.raises(SystemExit) as exc_info:
            _run("-C", str(scaffolded_project), "update")
        assert exc_info.value.code == 1
        assert "No manifest found" in capsys.readouterr().out


class TestAddonAndCheck:
    def test_add_and_remove(self, scaffolded_project: Path):
        _run("-C", str(scaffolded_project), "addon", "add", "search")
        assert (scaffolded_project / "backend/app/addons/search.py").is_file()

        _run("-C", str(scaffolded_project), "addon", "remove", "search")
        assert not (scaffolded_project / "backend/app/addons/search.py").exists()

    def test_unknown_addon_exits(self, scaffolded_project: Path):
        with pytest.raises(SystemExit) as exc_info:
            _run("-C", str(scaffolded_project), "addon", "add", "graphql")
        assert exc_info.value.code == 1

    def test_check_passes_on_fresh_project(self, scaffolded_project: Path, capsys):
        _run("-C", str(scaffolded_project), "check")
        assert "All markers present" in capsys.readouterr().out

    def test_check_reports_missing_marker(self, scaffolded_project: Path, capsys):
        init_path = scaffolded_project / "backend/app/routes/__init__.py"
        init_path.write_text(
            init_path.read_text(encoding="utf-8").replace("# === TRELLIS:ROUTES ===", ""),
            encoding="utf-8",
        )

        with pytest.raises(SystemExit) as exc_info:
            _run("-C", str(scaffolded_project), "check")
        assert exc_info.value.code == 1
        assert "TRELLIS:ROUTES" in capsys.readouterr().out
