"""Fingerprint store for generated files.

The manifest at ``.trellis/manifest.json`` records, for every file Trellis
writes, which template produced it and a SHA-256 hash of the exact content
written.  That hash is the baseline against which drift is measured: it is
only ever updated when Trellis itself writes the file, never to absorb a
user edit.
"""

from __future__ import annotations

import hashlib
import json
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, ValidationError

from trellis import __version__
from trellis.errors import TrellisError
from trellis.utils import atomic_write_text

TRELLIS_DIR = ".trellis"
MANIFEST_FILENAME = "manifest.json"


def manifest_path(project_root: str | Path) -> Path:
    """Return ``<project_root>/.trellis/manifest.json``."""
    return Path(project_root) / TRELLIS_DIR / MANIFEST_FILENAME


def content_hash(content: str) -> str:
    """Return the ``sha256:<hex>`` digest of *content* encoded as UTF-8."""
    return "sha256:" + hashlib.sha256(content.encode("utf-8")).hexdigest()


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class ManifestNotFoundError(TrellisError):
    """Raised when an operation needs a manifest and none exists."""

    def __init__(self, path: Path) -> None:
        self.path = path
        super().__init__(
            f"No manifest found at {path}. Run `trellis update --init` to create a baseline."
        )


class ManifestCorruptError(TrellisError):
    """Raised when the manifest exists but cannot be parsed."""

    def __init__(self, path: Path, reason: str) -> None:
        self.path = path
        super().__init__(f"Manifest at {path} is unreadable: {reason}")


# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------


class FileCategory(str, Enum):
    """How a tracked file came to exist."""

    SCAFFOLD = "scaffold"
    ENTITY = "entity"
    MARKER = "marker"
    STATIC = "static"


class FileRecord(BaseModel):
    """Generation fingerprint for one output path."""

    template: Optional[str] = Field(default=None, description="Template id that produced the file")
    category: FileCategory
    entity_name: Optional[str] = Field(default=None)
    content_hash: str = Field(..., description="sha256 of the content Trellis last wrote")
    generated_at: str
    generated_by_version: str


class Manifest(BaseModel):
    """Per-project record of every generated file."""

    tool_version: str = Field(default=__version__)
    created_at: str = Field(default_factory=_now)
    updated_at: str = Field(default_factory=_now)
    project_name: str
    files: dict[str, FileRecord] = Field(default_factory=dict)

    @classmethod
    def new(cls, project_name: str, tool_version: str = __version__) -> "Manifest":
        """Create an empty manifest stamped with *tool_version*."""
        now = _now()
        return cls(
            tool_version=tool_version,
            created_at=now,
            updated_at=now,
            project_name=project_name,
        )

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    @staticmethod
    def exists(project_root: str | Path) -> bool:
        """Return ``True`` if the project has a manifest."""
        return manifest_path(project_root).is_file()

    @classmethod
    def load(cls, project_root: str | Path) -> "Manifest":
        """Load the manifest for *project_root*.

        Raises:
            ManifestNotFoundError: If no manifest exists.
            ManifestCorruptError: If it cannot be read as UTF-8 JSON or fails
                validation.
        """
        path = manifest_path(project_root)
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError as exc:
            raise ManifestNotFoundError(path) from exc
        except (UnicodeDecodeError, OSError) as exc:
            raise ManifestCorruptError(path, str(exc)) from exc
        try:
            return cls.model_validate_json(raw)
        except ValidationError as exc:
            raise ManifestCorruptError(path, str(exc)) from exc

    def save(self, project_root: str | Path) -> Path:
        """Serialise the full manifest atomically (temp file + rename)."""
        data = self.model_dump(mode="json", exclude_none=True)
        data["files"] = dict(sorted(data["files"].items()))
        content = json.dumps(data, indent=2, ensure_ascii=False) + "\n"
        return atomic_write_text(manifest_path(project_root), content)

    # ------------------------------------------------------------------
    # Records
    # ------------------------------------------------------------------

    def record(
        self,
        output_path: str,
        template: str | None,
        category: FileCategory,
        content: str,
        entity_name: str | None = None,
    ) -> FileRecord:
        """Store (replacing any previous) fingerprint for *output_path*."""
        record = FileRecord(
            template=template,
            category=category,
            entity_name=entity_name,
            content_hash=content_hash(content),
            generated_at=_now(),
            generated_by_version=__version__,
        )
        self.files[normalize_output_path(output_path)] = record
        return record

    def get(self, output_path: str) -> FileRecord | None:
        return self.files.get(normalize_output_path(output_path))

    def forget(self, output_path: str) -> bool:
        """Drop the record for *output_path*; returns ``True`` if one existed."""
        return self.files.pop(normalize_output_path(output_path), None) is not None

    def touch(self, tool_version: str = __version__) -> None:
        """Stamp the manifest with the running tool version and time."""
        self.tool_version = tool_version
        self.updated_at = _now()


def normalize_output_path(output_path: str | Path) -> str:
    """Manifest keys are project-relative POSIX paths."""
    return Path(output_path).as_posix()
