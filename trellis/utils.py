"""Shared utility functions for Trellis.

Provides atomic JSON/text I/O, identifier case conversion, pluralisation and
the Rich-based console helpers used to report every file action.
"""

from __future__ import annotations

import json
import os
import re
import tempfile
from pathlib import Path
from typing import Any

from rich.console import Console
from rich.markup import escape
from rich.table import Table

console = Console()

# ---------------------------------------------------------------------------
# String / name helpers
# ---------------------------------------------------------------------------


def snake_case(value: str) -> str:
    """Convert ``SomeThing``, ``some-thing`` or ``Some Thing`` to ``some_thing``.

    Examples::

        snake_case("BlogPost")  -> "blog_post"
        snake_case("blog-post") -> "blog_post"
        snake_case("HTTPClient") -> "http_client"
    """
    s1 = re.sub(r"(.)([A-Z][a-z]+)", r"\1_\2", value.strip())
    s2 = re.sub(r"([a-z0-9])([A-Z])", r"\1_\2", s1)
    s3 = re.sub(r"[-\s]+", "_", s2).lower()
    return re.sub(r"_+", "_", s3).strip("_")


def pascal_case(value: str) -> str:
    """Convert ``some_thing`` or ``some-thing`` to ``SomeThing``."""
    return "".join(word[:1].upper() + word[1:] for word in snake_case(value).split("_") if word)


def camel_case(value: str) -> str:
    """Convert ``some_thing`` to ``someThing``."""
    pascal = pascal_case(value)
    if pascal:
        return pascal[0].lower() + pascal[1:]
    return ""


def title_case(value: str) -> str:
    """Convert ``blog_post`` to ``Blog Post``."""
    return " ".join(word.capitalize() for word in snake_case(value).split("_") if word)


def pluralize(word: str) -> str:
    """Pluralise an English identifier with the same rules as the ``plural`` filter.

    Examples::

        pluralize("post")     -> "posts"
        pluralize("box")      -> "boxes"
        pluralize("category") -> "categories"
        pluralize("day")      -> "days"
    """
    if word.endswith(("s", "x", "ch", "sh")):
        return f"{word}es"
    if word.endswith("y") and not word.endswith(("ay", "ey", "oy", "uy")):
        return f"{word[:-1]}ies"
    return f"{word}s"


def slugify(value: str) -> str:
    """Convert a string to a URL/filename-safe slug."""
    slug = re.sub(r"[^a-z0-9]+", "-", value.lower().strip())
    return slug.strip("-")


# ---------------------------------------------------------------------------
# File I/O
# ---------------------------------------------------------------------------


def write_file(path: str | Path, content: str) -> Path:
    """Write *content* to *path*, creating parent directories as needed."""
    file_path = Path(path)
    file_path.parent.mkdir(parents=True, exist_ok=True)
    file_path.write_text(content, encoding="utf-8")
    return file_path


def atomic_write_text(path: str | Path, content: str) -> Path:
    """Write *content* so readers only ever see the old or the new file.

    The data goes to a temporary file in the destination directory which is
    then moved over the target with ``os.replace``.
    """
    file_path = Path(path)
    file_path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(
        prefix=f".{file_path.name}.", suffix=".tmp", dir=str(file_path.parent)
    )
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(content)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_name, file_path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise
    return file_path


def read_text_or_none(path: str | Path) -> str | None:
    """Return the file's text, or ``None`` if it does not exist."""
    file_path = Path(path)
    if not file_path.is_file():
        return None
    return file_path.read_text(encoding="utf-8")


def save_json(data: dict[str, Any] | list[Any], path: str | Path) -> Path:
    """Save data as pretty-printed JSON, atomically."""
    content = json.dumps(data, indent=2, ensure_ascii=False, default=str) + "\n"
    return atomic_write_text(path, content)


# ---------------------------------------------------------------------------
# Rich output helpers
# ---------------------------------------------------------------------------

ACTION_COLORS: dict[str, str] = {
    "create": "green",
    "update": "cyan",
    "overwrite": "green",
    "inject": "magenta",
    "skip": "yellow",
    "remove": "red",
    "defer": "blue",
}


def print_action(action: str, target: str, detail: str = "") -> None:
    """Print one file action, e.g. ``  create backend/app/main.py``."""
    color = ACTION_COLORS.get(action, "white")
    suffix = f" [dim]({escape(detail)})[/dim]" if detail else ""
    console.print(f"  [{color}]{action:>9}[/{color}] {escape(target)}{suffix}")


def print_section(title: str) -> None:
    """Print a bold section heading preceded by a blank line."""
    console.print()
    console.print(f"[bold]{title}[/bold]")


def print_summary_table(data: dict[str, Any], title: str = "Summary") -> None:
    """Print a two-column key/value summary table."""
    table = Table(title=title, show_header=True, header_style="bold cyan")
    table.add_column("Item", style="dim", no_wrap=True)
    table.add_column("Value")

    for key, value in data.items():
        table.add_row(key, str(value))

    console.print(table)


def print_success(message: str) -> None:
    """Print a green success message."""
    console.print(f"[bold green]{escape(message)}[/bold green]")


def print_error(message: str) -> None:
    """Print a red error message."""
    console.print(f"[bold red]{escape(message)}[/bold red]")


def print_warning(message: str) -> None:
    """Print a yellow warning message."""
    console.print(f"[bold yellow]{escape(message)}[/bold yellow]")
