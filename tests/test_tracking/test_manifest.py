"""Tests for the fingerprint store (trellis.tracking.manifest)."""

from __future__ import annotations

import hashlib
import json
from pathlib import Path

import pytest

from trellis import __version__
from trellis.tracking.manifest import (
    FileCategory,
    Manifest,
    ManifestCorruptError,
    ManifestNotFoundError,
    content_hash,
    manifest_path,
)

pytestmark = pytest.mark.unit


class TestContentHash:
    def test_format(self):
        expected = "sha256:" + hashlib.sha256("hello\n".encode("utf-8")).hexdigest()
        assert content_hash("hello\n") == expected

    def test_utf8_bytes(self):
        assert content_hash("café") == "sha256:" + hashlib.sha256("café".encode("utf-8")).hexdigest()

    def test_whitespace_matters(self):
        assert content_hash("a") != content_hash("a\n")


class TestRecord:
    def test_record_stores_hash_and_metadata(self):
        manifest = Manifest.new("blog")
        record = manifest.record("backend/app/main.py", "scaffold/backend/app/main.py.j2", FileCategory.SCAFFOLD, "x")
        assert record.content_hash == content_hash("x")
        assert record.generated_by_version == __version__
        assert record.template == "scaffold/backend/app/main.py.j2"
        assert manifest.get("backend/app/main.py") is record

    def test_record_replaces_previous(self):
        manifest = Manifest.new("blog")
        manifest.record("README.md", "scaffold/README.md.j2", FileCategory.SCAFFOLD, "v1")
        manifest.record("README.md", "scaffold/README.md.j2", FileCategory.SCAFFOLD, "v2")
        assert len(manifest.files) == 1
        assert manifest.get("README.md").content_hash == content_hash("v2")

    def test_entity_name(self):
        manifest = Manifest.new("blog")
        manifest.record("backend/app/models/post.py", "entity/model.py.j2", FileCategory.ENTITY, "x", "Post")
        assert manifest.get("backend/app/models/post.py").entity_name == "Post"

    def test_forget(self):
        manifest = Manifest.new("blog")
        manifest.record("a.txt", None, FileCategory.STATIC, "x")
        assert manifest.forget("a.txt") is True
        assert manifest.forget("a.txt") is False
        assert manifest.get("a.txt") is None

    def test_touch_updates_version_and_time(self):
        manifest = Manifest.new("blog", tool_version="0.0.1")
        manifest.updated_at = "2000-01-01T00:00:00+00:00"
        manifest.touch("9.9.9")
        assert manifest.tool_version == "9.9.9"
        assert manifest.updated_at != "2000-01-01T00:00:00+00:00"


class TestPersistence:
    def test_save_and_load_round_trip(self, tmp_path: Path):
        manifest = Manifest.new("blog")
        manifest.record("README.md", "scaffold/README.md.j2", FileCategory.SCAFFOLD, "readme")
        manifest.record("backend/app/models/__init__.py", "t", FileCategory.MARKER, "init")
        manifest.save(tmp_path)

        loaded = Manifest.load(tmp_path)
        assert loaded == manifest

    def test_saved_json_is_pretty_and_sorted(self, tmp_path: Path):
        manifest = Manifest.new("blog")
        manifest.record("z.txt", None, FileCategory.STATIC, "z")
        manifest.record("a.txt", None, FileCategory.STATIC, "a")
        path = manifest.save(tmp_path)

        raw = path.read_text(encoding="utf-8")
        assert raw.startswith("{\n  ")
        data = json.loads(raw)
        assert list(data["files"]) == ["a.txt", "z.txt"]
        assert "template" not in data["files"]["a.txt"]
        assert data["files"]["a.txt"]["category"] == "static"

    def test_save_location(self, tmp_path: Path):
        Manifest.new("blog").save(tmp_path)
        assert manifest_path(tmp_path) == tmp_path / ".trellis" / "manifest.json"
        assert Manifest.exists(tmp_path)

    def test_no_temp_files_left(self, tmp_path: Path):
        Manifest.new("blog").save(tmp_path)
        assert [p.name for p in (tmp_path / ".trellis").iterdir()] == ["manifest.json"]

    def test_load_missing(self, tmp_path: Path):
        assert not Manifest.exists(tmp_path)
        with pytest.raises(ManifestNotFoundError, match="trellis update --init"):
            Manifest.load(tmp_path)

    def test_load_invalid_json(self, tmp_path: Path):
        path = manifest_path(tmp_path)
        path.parent.mkdir(parents=True)
        path.write_text("{ not json", encoding="utf-8")
        with pytest.raises(ManifestCorruptError):
            Manifest.load(tmp_path)

    def test_load_invalid_utf8(self, tmp_path: Path):
        path = manifest_path(tmp_path)
        path.parent.mkdir(parents=True)
        path.write_bytes(b"\xff\xfe{")
        with pytest.raises(ManifestCorruptError) as exc_info:
            Manifest.load(tmp_path)
        assert exc_info.value.path == path

    def test_load_schema_violation(self, tmp_path: Path):
        path = manifest_path(tmp_path)
        path.parent.mkdir(parents=True)
        path.write_text(json.dumps({"files": {"a": {"category": "bogus"}}}), encoding="utf-8")
        with pytest.raises(ManifestCorruptError) as exc_info:
            Manifest.load(tmp_path)
        assert exc_info.value.path == path
