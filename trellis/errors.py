"""Exception hierarchy for Trellis.

Every error raised by the scaffolder, tracking and addon layers derives from
``TrellisError`` so the CLI can report them uniformly.  Errors carry the
context (paths, markers, template ids) a user needs to fix the problem by
hand.
"""

from __future__ import annotations

from pathlib import Path


class TrellisError(Exception):
    """Base class for all Trellis failures."""


class ConfigError(TrellisError):
    """Raised when ``trellis.toml`` (or an overlay) is missing or invalid."""

    def __init__(self, path: str | Path, message: str) -> None:
        self.path = Path(path)
        super().__init__(f"{self.path}: {message}")


class TemplateRenderError(TrellisError):
    """Raised when a template cannot be loaded or rendered."""

    def __init__(self, template_id: str, message: str) -> None:
        self.template_id = template_id
        super().__init__(f"Failed to render template '{template_id}': {message}")


class EntityParseError(TrellisError):
    """Raised for malformed ``name:type`` field specifications."""


class AddonError(TrellisError):
    """Raised when an addon cannot be installed or removed."""
