"""Marker-based text injection.

Generated files carry fixed sentinel comments (``# === TRELLIS:MODS ===`` and
friends).  ``insert_before_marker`` is the single write path for incremental
edits to those files: it places a line immediately before the sentinel and
keeps the sentinel in place so later insertions compose.  Because each new
line lands directly above the marker, repeated insertions read in reverse
chronological order relative to the marker (the newest line sits closest to
it).  Downstream code relies on that ordering, so it must not change.

``write_with_preserved_tail`` regenerates a whole file while keeping any
hand-written code below the ``CUSTOM`` marker.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from trellis.errors import TrellisError
from trellis.utils import atomic_write_text, read_text_or_none, write_file


class Marker:
    """Every sentinel string Trellis writes into generated files."""

    MODS = "# === TRELLIS:MODS ==="
    ROUTES = "# === TRELLIS:ROUTES ==="
    RELATIONS = "# === TRELLIS:RELATIONS ==="
    RELATION_ROUTES = "# === TRELLIS:RELATION_ROUTES ==="
    ADDONS = "# === TRELLIS:ADDONS ==="
    DEPENDENCIES = "# === TRELLIS:DEPENDENCIES ==="
    CUSTOM = "# === TRELLIS:CUSTOM ==="


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class MarkerNotFoundError(TrellisError):
    """Raised when an injection target does not contain its sentinel."""

    def __init__(self, path: str | Path, marker: str) -> None:
        self.path = Path(path)
        self.marker = marker
        super().__init__(
            f"Marker '{marker}' not found in {self.path}. "
            "Restore the marker line (or remove the customisation that replaced it) "
            "and run the command again."
        )


class MarkerValidationError(TrellisError):
    """Raised by ``validate_markers`` listing every missing file and marker."""

    def __init__(self, problems: list[str]) -> None:
        self.problems = problems
        details = "\n  ".join(problems)
        super().__init__(
            f"Pre-validation failed: {len(problems)} missing marker(s):\n  {details}"
        )


# ---------------------------------------------------------------------------
# Injection
# ---------------------------------------------------------------------------


def insert_before_marker(path: str | Path, marker: str, line: str) -> bool:
    """Insert *line* immediately before the first occurrence of *marker*.

    Args:
        path: File to modify.
        marker: Sentinel string that must already be present in the file.
        line: Text to insert (may itself span several lines).

    Returns:
        ``True`` if the file was rewritten, ``False`` if *line* was already
        present and nothing was written.

    Raises:
        MarkerNotFoundError: If *marker* does not occur in the file.  The
            line is never appended elsewhere, since the marker position is
            what gives the insertion its meaning.
    """
    file_path = Path(path)
    content = file_path.read_text(encoding="utf-8")

    if line in content:
        return False
    if marker not in content:
        raise MarkerNotFoundError(file_path, marker)

    new_content = content.replace(marker, f"{line}\n{marker}", 1)
    atomic_write_text(file_path, new_content)
    return True


def split_at_tail_marker(
    path: str | Path, tail_marker: str = Marker.CUSTOM
) -> tuple[str, str] | None:
    """Split a file into ``(generated_prefix, tail)`` at *tail_marker*.

    The tail includes the marker itself.  Returns ``None`` if the file does
    not exist or carries no marker.
    """
    content = read_text_or_none(path)
    if content is None:
        return None
    position = content.find(tail_marker)
    if position == -1:
        return None
    return content[:position], content[position:]


def write_with_preserved_tail(
    path: str | Path, generated: str, tail_marker: str = Marker.CUSTOM
) -> str:
    """Write *generated*, keeping an existing hand-edited tail.

    If the current file contains *tail_marker*, everything from the marker
    onward is appended verbatim after *generated* (which is expected to end
    just before its own copy of the marker, or to omit it).  Otherwise the
    file is replaced wholesale.

    Returns:
        The content actually written.
    """
    split = split_at_tail_marker(path, tail_marker)
    if split is not None:
        _, tail = split
        position = generated.find(tail_marker)
        prefix = generated[:position] if position != -1 else generated
        content = prefix + tail
    else:
        content = generated
    write_file(path, content)
    return content


def remove_lines_containing(path: str | Path, needle: str) -> bool:
    """Remove every line containing *needle*; keep the trailing newline.

    Returns ``True`` if anything was removed.  A missing file is a no-op.
    """
    content = read_text_or_none(path)
    if content is None:
        return False
    lines = content.splitlines()
    kept = [line for line in lines if needle not in line]
    if len(kept) == len(lines):
        return False
    new_content = "\n".join(kept)
    if content.endswith("\n"):
        new_content += "\n"
    atomic_write_text(path, new_content)
    return True


# ---------------------------------------------------------------------------
# Pre-validation
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class MarkerCheck:
    """A marker that must be present in a file before generation starts."""

    path: Path
    marker: str


def check(path: str | Path, marker: str) -> MarkerCheck:
    """Shorthand constructor for ``MarkerCheck``."""
    return MarkerCheck(Path(path), marker)


def validate_markers(checks: list[MarkerCheck]) -> None:
    """Verify every check up front so a run never fails half-way.

    Raises:
        MarkerValidationError: Listing all missing files and markers.
    """
    problems: list[str] = []
    cache: dict[Path, str | None] = {}

    for item in checks:
        if item.path not in cache:
            cache[item.path] = read_text_or_none(item.path)
        content = cache[item.path]
        if content is None:
            problems.append(
                f"File '{item.path}' does not exist (expected marker '{item.marker}')"
            )
        elif item.marker not in content:
            problems.append(f"Marker '{item.marker}' not found in '{item.path}'")

    if problems:
        raise MarkerValidationError(problems)
