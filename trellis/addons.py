"""Optional addons that extend a generated backend.

Each addon is one ``AddonKind`` with a row in ``ADDONS`` describing what it
contributes: a module rendered into ``backend/app/addons/``, an optional
backend dependency and the feature flag it turns on in ``trellis.toml``.
Installing wires the module in at the addon markers; uninstalling removes
exactly what installing added.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional

from trellis.config import CONFIG_FILENAME, TrellisConfig, is_trellis_project
from trellis.errors import AddonError
from trellis.scaffolder.generator import ADDONS_INIT, BACKEND_PYPROJECT, GenerationSession
from trellis.scaffolder.markers import Marker, check, validate_markers
from trellis.scaffolder.templates import TemplateRenderer
from trellis.tracking.manifest import FileCategory
from trellis.tracking.updater import build_template_context
from trellis.utils import console, print_success


class AddonKind(str, Enum):
    SOFT_DELETE = "soft-delete"
    VALIDATION = "validation"
    AUDIT_LOG = "audit-log"
    SEARCH = "search"


@dataclass(frozen=True)
class AddonSpec:
    """Everything an addon adds to a project."""

    kind: AddonKind
    module: str
    feature: str
    dependency: Optional[str] = None
    requires: tuple[AddonKind, ...] = ()

    @property
    def template_id(self) -> str:
        return f"addon/{self.module}.py.j2"

    @property
    def output_path(self) -> str:
        return f"backend/app/addons/{self.module}.py"

    @property
    def import_line(self) -> str:
        return f"from app.addons import {self.module}"

    @property
    def install_line(self) -> str:
        return f"    {self.module}.install(app)"

    @property
    def dependency_line(self) -> str | None:
        return f'    "{self.dependency}",' if self.dependency else None


ADDONS: dict[AddonKind, AddonSpec] = {
    AddonKind.SOFT_DELETE: AddonSpec(
        kind=AddonKind.SOFT_DELETE,
        module="soft_delete",
        feature="soft_delete",
    ),
    AddonKind.VALIDATION: AddonSpec(
        kind=AddonKind.VALIDATION,
        module="validation",
        feature="validation",
        dependency="email-validator>=2.1",
    ),
    AddonKind.AUDIT_LOG: AddonSpec(
        kind=AddonKind.AUDIT_LOG,
        module="audit_log",
        feature="audit_log",
        requires=(AddonKind.SOFT_DELETE,),
    ),
    AddonKind.SEARCH: AddonSpec(
        kind=AddonKind.SEARCH,
        module="search",
        feature="search",
    ),
}


def parse_addon(name: str) -> AddonKind:
    """Resolve a CLI addon name such as ``soft-delete`` or ``soft_delete``."""
    try:
        return AddonKind(name.strip().lower().replace("_", "-"))
    except ValueError:
        available = ", ".join(kind.value for kind in AddonKind)
        raise AddonError(f"Unknown addon '{name}'. Available addons: {available}") from None


def is_installed(project_root: str | Path, kind: AddonKind) -> bool:
    return (Path(project_root) / ADDONS[kind].output_path).is_file()


# ---------------------------------------------------------------------------
# Feature flags
# ---------------------------------------------------------------------------

_SECTION_RE = re.compile(r"^\s*\[([^\]]+)\]\s*$")


def set_feature_flag(content: str, feature: str, enabled: bool) -> str:
    """Return *content* with ``[features] <feature>`` set to *enabled*.

    Only the flag's own line changes.  A missing line is added at the top of
    the ``[features]`` table, and a missing table is appended.
    """
    value = "true" if enabled else "false"
    lines = content.splitlines()
    flag_re = re.compile(rf"^\s*{re.escape(feature)}\s*=")

    section: str | None = None
    header_index: int | None = None
    for index, line in enumerate(lines):
        match = _SECTION_RE.match(line)
        if match:
            section = match.group(1).strip()
            if section == "features":
                header_index = index
            continue
        if section == "features" and flag_re.match(line):
            lines[index] = f"{feature} = {value}"
            return "\n".join(lines) + "\n"

    if header_index is None:
        return content.rstrip("\n") + f"\n\n[features]\n{feature} = {value}\n"
    lines.insert(header_index + 1, f"{feature} = {value}")
    return "\n".join(lines) + "\n"


def update_feature_flag(session: GenerationSession, feature: str, enabled: bool) -> None:
    path = session.project_root / CONFIG_FILENAME
    content = path.read_text(encoding="utf-8")
    updated = set_feature_flag(content, feature, enabled)
    if updated != content:
        session.rewrite(CONFIG_FILENAME, updated)


# ---------------------------------------------------------------------------
# Install / uninstall
# ---------------------------------------------------------------------------


def _require_project(project_root: Path) -> None:
    if not is_trellis_project(project_root):
        raise AddonError(f"Not a Trellis project ({CONFIG_FILENAME} not found in {project_root})")


def install(
    project_root: str | Path, kind: AddonKind, renderer: TemplateRenderer | None = None
) -> list[AddonKind]:
    """Install *kind* and any addon it requires.

    Returns:
        The addons actually installed, dependencies first.  Empty when
        *kind* was already installed.

    Raises:
        AddonError: If *project_root* is not a Trellis project.
        MarkerValidationError: If the addon markers are missing.
    """
    root = Path(project_root)
    _require_project(root)
    if is_installed(root, kind):
        console.print(f"[dim]'{kind.value}' is already installed, skipping.[/dim]")
        return []

    validate_markers(
        [
            check(root / ADDONS_INIT, Marker.MODS),
            check(root / ADDONS_INIT, Marker.ADDONS),
            check(root / BACKEND_PYPROJECT, Marker.DEPENDENCIES),
        ]
    )

    renderer = renderer or TemplateRenderer()
    installed: list[AddonKind] = []
    for dependency in ADDONS[kind].requires:
        if not is_installed(root, dependency):
            console.print(f"[dim]Installing dependency: {dependency.value}...[/dim]")
            installed.extend(install(root, dependency, renderer))

    spec = ADDONS[kind]
    context = build_template_context(TrellisConfig.load(root))
    session = GenerationSession.open(root)

    session.write(
        spec.output_path,
        renderer.render(spec.template_id, context),
        spec.template_id,
        FileCategory.STATIC,
    )
    session.inject(ADDONS_INIT, Marker.MODS, spec.import_line)
    session.inject(ADDONS_INIT, Marker.ADDONS, spec.install_line)
    if spec.dependency_line:
        session.inject(BACKEND_PYPROJECT, Marker.DEPENDENCIES, spec.dependency_line)
    update_feature_flag(session, spec.feature, True)
    session.save()

    installed.append(kind)
    print_success(f"Installed addon '{kind.value}'")
    return installed


def uninstall(project_root: str | Path, kind: AddonKind) -> bool:
    """Remove *kind* from the project.

    Returns:
        ``False`` if the addon was not installed.

    Raises:
        AddonError: If another installed addon requires *kind*.
    """
    root = Path(project_root)
    _require_project(root)
    if not is_installed(root, kind):
        console.print(f"[dim]'{kind.value}' is not installed, nothing to remove.[/dim]")
        return False

    dependents = [
        other.kind.value
        for other in ADDONS.values()
        if kind in other.requires and is_installed(root, other.kind)
    ]
    if dependents:
        raise AddonError(
            f"Cannot remove '{kind.value}': required by {', '.join(dependents)}"
        )

    spec = ADDONS[kind]
    session = GenerationSession.open(root)
    session.delete(spec.output_path)
    session.remove_lines(ADDONS_INIT, spec.import_line)
    session.remove_lines(ADDONS_INIT, spec.install_line)
    if spec.dependency_line:
        session.remove_lines(BACKEND_PYPROJECT, spec.dependency_line.strip())
    update_feature_flag(session, spec.feature, False)
    session.save()

    print_success(f"Removed addon '{kind.value}'")
    return True
