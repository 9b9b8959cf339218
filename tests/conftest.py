"""Shared pytest fixtures for the Trellis test suite.

Provides reusable fixtures for:
- Temporary project directories
- A fully scaffolded project (with manifest)
- Minimal configuration documents
- A template renderer over a private, editable template directory
"""

from __future__ import annotations

import shutil
from pathlib import Path

import pytest

from trellis.config import ProjectSection, TrellisConfig
from trellis.scaffolder.generator import ProjectGenerator
from trellis.scaffolder.templates import TemplateRenderer, _DEFAULT_TEMPLATE_DIR


# ---------------------------------------------------------------------------
# Paths & Directories
# ---------------------------------------------------------------------------


@pytest.fixture
def tmp_project_dir(tmp_path: Path) -> Path:
    """Empty temporary directory used as a project root."""
    project_dir = tmp_path / "test-project"
    project_dir.mkdir()
    yield project_dir


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


BASE_TOML = """\
[project]
name = "blog"

[backend]
port = 8000
database_url = "sqlite:///./app.db"

[features]
soft_delete = false
"""


@pytest.fixture
def sample_config() -> TrellisConfig:
    """In-memory configuration for a project called ``blog``."""
    return TrellisConfig(project=ProjectSection(name="blog", description="A test blog"))


@pytest.fixture
def config_project(tmp_project_dir: Path) -> Path:
    """A directory holding only a minimal ``trellis.toml``."""
    (tmp_project_dir / "trellis.toml").write_text(BASE_TOML, encoding="utf-8")
    return tmp_project_dir


# ---------------------------------------------------------------------------
# Templates
# ---------------------------------------------------------------------------


@pytest.fixture
def template_dir(tmp_path: Path) -> Path:
    """A private copy of the bundled templates that tests may edit."""
    target = tmp_path / "templates"
    shutil.copytree(_DEFAULT_TEMPLATE_DIR, target)
    return target


@pytest.fixture
def renderer(template_dir: Path) -> TemplateRenderer:
    """Renderer over the editable template copy."""
    return TemplateRenderer(template_dir)


# ---------------------------------------------------------------------------
# Scaffolded project
# ---------------------------------------------------------------------------


@pytest.fixture
def scaffolded_project(tmp_path: Path, sample_config: TrellisConfig, renderer: TemplateRenderer) -> Path:
    """A freshly generated ``blog`` project with a manifest.

    Generated with the editable template copy, so tests can change a
    template afterwards to simulate a newer Trellis release.
    """
    return ProjectGenerator(sample_config, renderer=renderer).generate(tmp_path / "out")
