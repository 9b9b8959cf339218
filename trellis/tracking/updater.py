"""Update planner and applier for scaffolded files.

An update run re-renders every updatable scaffold template with the current
project configuration and compares three hashes per file:

* the *baseline*: what Trellis last wrote (from the manifest),
* the *template*: what Trellis would write now,
* the *current*: what is on disk.

Files the user never touched are updated silently; files where both sides
moved are conflicts and need an explicit decision.  Marker-managed files and
user-owned configuration are never part of an update, since entity and addon
generation edit them incrementally.
"""

from __future__ import annotations

import difflib
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Optional

from trellis import __version__
from trellis.config import TrellisConfig
from trellis.scaffolder.templates import TemplateRenderer
from trellis.tracking.manifest import FileCategory, Manifest, content_hash
from trellis.utils import print_action, read_text_or_none, snake_case, slugify, write_file


# ---------------------------------------------------------------------------
# Template mappings
# ---------------------------------------------------------------------------

# Marker-managed outputs: entity and addon generation inject into these.
MARKER_FILES: tuple[str, ...] = (
    "backend/pyproject.toml",
    "backend/app/models/__init__.py",
    "backend/app/routes/__init__.py",
    "backend/app/addons/__init__.py",
)

# Outputs owned by the user once created.
USER_OWNED_FILES: tuple[str, ...] = ("trellis.toml",)

SCAFFOLD_MAPPINGS: tuple[tuple[str, str], ...] = (
    ("scaffold/trellis.toml.j2", "trellis.toml"),
    ("scaffold/README.md.j2", "README.md"),
    ("scaffold/backend/pyproject.toml.j2", "backend/pyproject.toml"),
    ("scaffold/backend/env.example.j2", "backend/.env.example"),
    ("scaffold/backend/app/__init__.py.j2", "backend/app/__init__.py"),
    ("scaffold/backend/app/config.py.j2", "backend/app/config.py"),
    ("scaffold/backend/app/db.py.j2", "backend/app/db.py"),
    ("scaffold/backend/app/pagination.py.j2", "backend/app/pagination.py"),
    ("scaffold/backend/app/main.py.j2", "backend/app/main.py"),
    ("scaffold/backend/app/models/__init__.py.j2", "backend/app/models/__init__.py"),
    ("scaffold/backend/app/routes/__init__.py.j2", "backend/app/routes/__init__.py"),
    ("scaffold/backend/app/addons/__init__.py.j2", "backend/app/addons/__init__.py"),
    ("scaffold/docker/Dockerfile.j2", "Dockerfile"),
    ("scaffold/docker/docker-compose.yml.j2", "docker-compose.yml"),
    ("scaffold/docker/dockerignore.j2", ".dockerignore"),
    ("scaffold/ci/github-actions.yml.j2", ".github/workflows/ci.yml"),
)

UPDATABLE_MAPPINGS: tuple[tuple[str, str], ...] = tuple(
    (template_id, output_path)
    for template_id, output_path in SCAFFOLD_MAPPINGS
    if output_path not in MARKER_FILES and output_path not in USER_OWNED_FILES
)


def category_for(output_path: str) -> FileCategory:
    """Manifest category for a scaffold output."""
    if output_path in MARKER_FILES:
        return FileCategory.MARKER
    return FileCategory.SCAFFOLD


def build_template_context(config: TrellisConfig) -> dict[str, Any]:
    """Template variables shared by every scaffold template."""
    name = config.project.name
    return {
        "project_name": name,
        "project_name_snake": snake_case(name),
        "project_slug": slugify(name),
        "description": config.project.description or "",
        "backend_port": config.backend.port,
        "database_url": config.backend.database_url,
        "api_prefix": config.api_prefix,
        "cors_origins": config.security.cors_origins,
        "rate_limit_rpm": config.security.rate_limit_rpm,
        "generate_openapi": config.codegen.generate_openapi,
        "features": config.features.model_dump(),
        "environment": config.environment.active,
    }


# ---------------------------------------------------------------------------
# Plan types
# ---------------------------------------------------------------------------


class UpdateStatus(str, Enum):
    NEW = "new"
    USER_DELETED = "user_deleted"
    UNCHANGED = "unchanged"
    AUTO_UPDATE = "auto_update"
    CONFLICT = "conflict"


class ConflictResolution(str, Enum):
    OVERWRITE = "overwrite"
    SKIP = "skip"


@dataclass
class UpdateItem:
    """One scaffold file considered by an update run."""

    output_path: str
    template_id: str
    new_content: str
    baseline_hash: Optional[str]
    user_modified: bool
    template_changed: bool
    current_content: Optional[str]
    status: UpdateStatus


@dataclass
class UpdatePlan:
    """Every updatable file, bucketed by classification."""

    auto_update: list[UpdateItem] = field(default_factory=list)
    conflicts: list[UpdateItem] = field(default_factory=list)
    unchanged: list[UpdateItem] = field(default_factory=list)
    new_files: list[UpdateItem] = field(default_factory=list)
    deleted: list[UpdateItem] = field(default_factory=list)

    @property
    def new_but_present(self) -> list[UpdateItem]:
        """NEW items whose output already exists on disk (untracked files)."""
        return [item for item in self.new_files if item.current_content is not None]

    @property
    def has_changes(self) -> bool:
        return bool(self.auto_update or self.conflicts or self.new_files)

    def counts(self) -> dict[str, int]:
        return {
            "Auto-update": len(self.auto_update),
            "Conflicts": len(self.conflicts),
            "Unchanged": len(self.unchanged),
            "New": len(self.new_files),
            "Deleted by user": len(self.deleted),
        }

    def add(self, item: UpdateItem) -> None:
        bucket = {
            UpdateStatus.AUTO_UPDATE: self.auto_update,
            UpdateStatus.CONFLICT: self.conflicts,
            UpdateStatus.UNCHANGED: self.unchanged,
            UpdateStatus.NEW: self.new_files,
            UpdateStatus.USER_DELETED: self.deleted,
        }[item.status]
        bucket.append(item)


@dataclass
class UpdateReport:
    """What ``apply_plan`` actually did."""

    updated: list[str] = field(default_factory=list)
    created: list[str] = field(default_factory=list)
    overwritten: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)

    @property
    def written(self) -> int:
        return len(self.updated) + len(self.created) + len(self.overwritten)


# ---------------------------------------------------------------------------
# Planning
# ---------------------------------------------------------------------------


def classify(
    baseline_hash: str | None, template_hash: str, current_hash: str | None
) -> UpdateStatus:
    """Classify one file from its three hashes.

    Any drift of the live file from the baseline is a conflict, whether or
    not the template changed: overwriting it would discard a user edit.
    """
    if baseline_hash is None:
        return UpdateStatus.NEW
    if current_hash is None:
        return UpdateStatus.USER_DELETED
    if current_hash != baseline_hash:
        return UpdateStatus.CONFLICT
    if template_hash != baseline_hash:
        return UpdateStatus.AUTO_UPDATE
    return UpdateStatus.UNCHANGED


def plan_update(
    project_root: str | Path,
    renderer: TemplateRenderer | None = None,
    config: TrellisConfig | None = None,
) -> UpdatePlan:
    """Build an update plan for every file in ``UPDATABLE_MAPPINGS``.

    Templates are rendered with the base ``trellis.toml`` only, never an
    environment overlay, so the result is comparable with the baseline.

    Raises:
        ManifestNotFoundError: If the project has no manifest.
        TemplateRenderError: If any template fails to render.
    """
    root = Path(project_root)
    manifest = Manifest.load(root)
    if config is None:
        config = TrellisConfig.load(root)
    if renderer is None:
        renderer = TemplateRenderer()

    context = build_template_context(config)
    plan = UpdatePlan()

    for template_id, output_path in UPDATABLE_MAPPINGS:
        new_content = renderer.render(template_id, context)
        template_hash = content_hash(new_content)
        current_content = read_text_or_none(root / output_path)
        current_hash = content_hash(current_content) if current_content is not None else None

        record = manifest.get(output_path)
        baseline_hash = record.content_hash if record else None
        status = classify(baseline_hash, template_hash, current_hash)

        plan.add(
            UpdateItem(
                output_path=output_path,
                template_id=template_id,
                new_content=new_content,
                baseline_hash=baseline_hash,
                user_modified=baseline_hash is not None and current_hash != baseline_hash,
                template_changed=template_hash != baseline_hash,
                current_content=current_content,
                status=status,
            )
        )

    return plan


# ---------------------------------------------------------------------------
# Applying
# ---------------------------------------------------------------------------


def apply_update(project_root: str | Path, manifest: Manifest, item: UpdateItem) -> None:
    """Write *item*'s new content and record it as the new baseline."""
    write_file(Path(project_root) / item.output_path, item.new_content)
    manifest.record(item.output_path, item.template_id, FileCategory.SCAFFOLD, item.new_content)


def apply_plan(
    project_root: str | Path,
    plan: UpdatePlan,
    manifest: Manifest,
    resolve_conflict: Callable[[UpdateItem], ConflictResolution],
    confirm_existing: Callable[[UpdateItem], bool] | None = None,
) -> UpdateReport:
    """Apply *plan* and persist the manifest once.

    Args:
        resolve_conflict: Called for every conflict before anything is
            written for it; only ``OVERWRITE`` replaces the file.
        confirm_existing: Called for NEW items whose output already exists
            untracked on disk.  Without it such files are left alone.
    """
    report = UpdateReport()

    for item in plan.auto_update:
        apply_update(project_root, manifest, item)
        report.updated.append(item.output_path)
        print_action("update", item.output_path)

    for item in plan.new_files:
        if item.current_content is not None and not (
            confirm_existing is not None and confirm_existing(item)
        ):
            report.skipped.append(item.output_path)
            print_action("skip", item.output_path, "exists, not tracked")
            continue
        apply_update(project_root, manifest, item)
        report.created.append(item.output_path)
        print_action("create", item.output_path)

    for item in plan.conflicts:
        if resolve_conflict(item) == ConflictResolution.OVERWRITE:
            apply_update(project_root, manifest, item)
            report.overwritten.append(item.output_path)
            print_action("overwrite", item.output_path)
        else:
            report.skipped.append(item.output_path)
            print_action("skip", item.output_path, "conflict")

    for item in plan.deleted:
        print_action("skip", item.output_path, "deleted by user")

    manifest.touch(__version__)
    manifest.save(project_root)
    return report


# ---------------------------------------------------------------------------
# Baseline
# ---------------------------------------------------------------------------


def initialize_baseline(project_root: str | Path, config: TrellisConfig) -> Manifest | None:
    """Create a manifest from the files currently on disk.

    Every existing ``SCAFFOLD_MAPPINGS`` output is recorded with its present
    content, so the next update treats today's files as what Trellis wrote.
    No project file is modified.

    Returns:
        The new manifest, or ``None`` if the project already has one.
    """
    root = Path(project_root)
    if Manifest.exists(root):
        return None

    manifest = Manifest.new(config.project.name, __version__)
    for template_id, output_path in SCAFFOLD_MAPPINGS:
        content = read_text_or_none(root / output_path)
        if content is None:
            continue
        manifest.record(output_path, template_id, category_for(output_path), content)

    manifest.save(root)
    return manifest


def generate_diff(old: str, new: str, path: str) -> str:
    """Unified diff of *old* against *new* with three lines of context."""
    return "".join(
        difflib.unified_diff(
            old.splitlines(keepends=True),
            new.splitlines(keepends=True),
            fromfile=f"a/{path}",
            tofile=f"b/{path}",
            n=3,
        )
    )
