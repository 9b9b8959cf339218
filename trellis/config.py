"""Trellis project configuration.

Typed configuration for a generated project, read from ``trellis.toml`` at
the project root.  An optional environment overlay (``trellis.<env>.toml``)
is deep-merged on top of the base document before validation, so a
production overlay only has to state the keys it changes.

The merge itself (``deep_merge``, ``resolve_environment`` and
``load_config_documents``) is a pure function of its input documents; only
``TrellisConfig.load`` / ``TrellisConfig.load_with_env`` touch the file system
or the environment.
"""

from __future__ import annotations

import copy
import os
import tomllib
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, Field, ValidationError

from trellis.errors import ConfigError

CONFIG_FILENAME = "trellis.toml"
ENV_VAR = "TRELLIS_ENV"
DEFAULT_ENVIRONMENT = "development"


# ---------------------------------------------------------------------------
# Sections
# ---------------------------------------------------------------------------


class ProjectSection(BaseModel):
    """Identity of the generated project."""

    name: str = Field(..., min_length=1)
    description: Optional[str] = Field(default=None)


class BackendSection(BaseModel):
    """Settings rendered into the FastAPI backend."""

    port: int = Field(default=8000, ge=1, le=65535)
    database_url: str = Field(default="sqlite:///./app.db")
    api_prefix: Optional[str] = Field(
        default=None, description="Route prefix for the API router, e.g. '/api/v1'"
    )


class CodegenSection(BaseModel):
    """Optional generated artefacts."""

    generate_openapi: bool = Field(default=True)


class FeaturesSection(BaseModel):
    """Feature flags toggled by addons."""

    validation: bool = False
    soft_delete: bool = False
    audit_log: bool = False
    search: bool = False
    multitenancy: bool = False


class SecuritySection(BaseModel):
    rate_limit_rpm: int = Field(default=60, ge=1)
    cors_origins: list[str] = Field(default_factory=lambda: ["http://localhost:5173"])
    csrf: bool = False


class StorageSection(BaseModel):
    backend: str = Field(default="local")
    upload_dir: str = Field(default="./uploads")
    max_file_size: str = Field(default="10MB")


class EnvironmentSection(BaseModel):
    """Which overlay is active when no runtime override is given."""

    active: str = Field(default=DEFAULT_ENVIRONMENT)


class TrellisConfig(BaseModel):
    """Validated contents of ``trellis.toml`` (after overlay merging)."""

    project: ProjectSection
    backend: BackendSection = Field(default_factory=BackendSection)
    codegen: CodegenSection = Field(default_factory=CodegenSection)
    features: FeaturesSection = Field(default_factory=FeaturesSection)
    security: SecuritySection = Field(default_factory=SecuritySection)
    storage: StorageSection = Field(default_factory=StorageSection)
    environment: EnvironmentSection = Field(default_factory=EnvironmentSection)

    @property
    def api_prefix(self) -> str:
        """The API route prefix, defaulting to ``/api``."""
        return self.backend.api_prefix or "/api"

    def has_feature(self, feature: str) -> bool:
        """Return ``True`` if the named feature flag is enabled.

        Unknown feature names are reported as disabled.
        """
        return bool(getattr(self.features, feature.replace("-", "_"), False))

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    @classmethod
    def load(cls, project_root: str | Path) -> "TrellisConfig":
        """Load ``trellis.toml`` without applying any overlay."""
        base_doc = read_toml(Path(project_root) / CONFIG_FILENAME)
        return load_config_documents(base_doc, None, source=Path(project_root) / CONFIG_FILENAME)

    @classmethod
    def load_with_env(
        cls, project_root: str | Path, environment: str | None = None
    ) -> "TrellisConfig":
        """Load ``trellis.toml`` and merge the active environment overlay.

        The overlay name is resolved with this precedence: the *environment*
        argument, then ``$TRELLIS_ENV``, then ``[environment] active`` from
        the base document, then ``"development"``.  A missing overlay file is
        not an error.
        """
        root = Path(project_root)
        base_path = root / CONFIG_FILENAME
        base_doc = read_toml(base_path)

        override = environment or os.environ.get(ENV_VAR) or None
        env_name = resolve_environment(base_doc, override)

        overlay_path = overlay_path_for(root, env_name)
        overlay_doc = read_toml(overlay_path) if overlay_path.is_file() else None
        return load_config_documents(base_doc, overlay_doc, source=base_path)


# ---------------------------------------------------------------------------
# Pure merge helpers
# ---------------------------------------------------------------------------


def deep_merge(base: dict[str, Any], overlay: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge *overlay* on top of *base*.

    Tables present on both sides are merged key by key; every other value in
    *overlay* (scalars, arrays, or a value whose type differs from the base)
    replaces the base value outright.  Neither input is modified.

    Example::

        deep_merge({"a": {"x": 1, "y": 2}}, {"a": {"x": 10}})
        -> {"a": {"x": 10, "y": 2}}
    """
    merged = copy.deepcopy(base)
    for key, override_value in overlay.items():
        base_value = merged.get(key)
        if isinstance(base_value, dict) and isinstance(override_value, dict):
            merged[key] = deep_merge(base_value, override_value)
        else:
            merged[key] = copy.deepcopy(override_value)
    return merged


def resolve_environment(base_doc: dict[str, Any], override: str | None = None) -> str:
    """Pick the active overlay name.

    Precedence: explicit *override* > ``[environment] active`` in *base_doc*
    > ``"development"``.
    """
    if override:
        return override
    environment = base_doc.get("environment")
    if isinstance(environment, dict):
        active = environment.get("active")
        if isinstance(active, str) and active:
            return active
    return DEFAULT_ENVIRONMENT


def load_config_documents(
    base_doc: dict[str, Any],
    overlay_doc: dict[str, Any] | None,
    *,
    source: str | Path = CONFIG_FILENAME,
) -> TrellisConfig:
    """Merge *overlay_doc* onto *base_doc* and validate the result.

    Raises:
        ConfigError: If the merged document does not describe a valid config.
    """
    merged = deep_merge(base_doc, overlay_doc) if overlay_doc else copy.deepcopy(base_doc)
    try:
        return TrellisConfig.model_validate(merged)
    except ValidationError as exc:
        raise ConfigError(source, f"invalid configuration:\n{exc}") from exc


# ---------------------------------------------------------------------------
# File helpers
# ---------------------------------------------------------------------------


def overlay_path_for(project_root: str | Path, environment: str) -> Path:
    """Return the overlay path for *environment*, e.g. ``trellis.production.toml``."""
    return Path(project_root) / f"trellis.{environment}.toml"


def read_toml(path: str | Path) -> dict[str, Any]:
    """Parse a TOML document.

    Raises:
        ConfigError: If the file is missing or is not valid TOML.
    """
    file_path = Path(path)
    try:
        with file_path.open("rb") as handle:
            return tomllib.load(handle)
    except FileNotFoundError as exc:
        raise ConfigError(file_path, "file not found (is this a Trellis project?)") from exc
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(file_path, f"invalid TOML: {exc}") from exc


def is_trellis_project(project_root: str | Path) -> bool:
    """Return ``True`` if *project_root* contains a ``trellis.toml``."""
    return (Path(project_root) / CONFIG_FILENAME).is_file()
