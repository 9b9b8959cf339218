"""Template loading and rendering.

Every file Trellis writes comes from a ``.j2`` template under
``trellis/scaffolder/templates/``.  Template ids are paths relative to that
directory, e.g. ``scaffold/backend/app/main.py.j2``; the same id is stored in
the manifest so an update run can re-render exactly the template that
produced a file.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from jinja2 import Environment, FileSystemLoader, StrictUndefined, TemplateError

from trellis.errors import TemplateRenderError
from trellis.utils import camel_case, pascal_case, pluralize, slugify, snake_case, title_case, write_file


_DEFAULT_TEMPLATE_DIR = Path(__file__).parent / "templates"


class TemplateRenderer:
    """Jinja2 environment over one template directory.

    Tests point it at a private copy of the bundled templates.  Undefined
    variables are errors rather than empty strings, so a template change that
    needs new context fails loudly instead of silently producing a different
    hash.
    """

    def __init__(self, template_dir: str | Path | None = None) -> None:
        if template_dir is None:
            template_dir = _DEFAULT_TEMPLATE_DIR
        self.template_dir = Path(template_dir)
        self.env = Environment(
            loader=FileSystemLoader(str(self.template_dir)),
            autoescape=False,
            keep_trailing_newline=True,
            trim_blocks=True,
            lstrip_blocks=True,
            undefined=StrictUndefined,
        )
        # Register custom filters
        self.env.filters["slugify"] = slugify
        self.env.filters["snake_case"] = snake_case
        self.env.filters["pascal_case"] = pascal_case
        self.env.filters["camel_case"] = camel_case
        self.env.filters["title_case"] = title_case
        self.env.filters["plural"] = pluralize

    # -- Rendering ---------------------------------------------------------

    def render(self, template_id: str, context: dict[str, Any]) -> str:
        """Render *template_id* with *context*.

        Args:
            template_id: Path relative to the template directory (e.g.
                ``"scaffold/backend/app/main.py.j2"``).
            context: Template variables, usually from
                ``build_template_context``.

        Raises:
            TemplateRenderError: If the template is missing or fails to render.
        """
        try:
            template = self.env.get_template(template_id)
            return template.render(**context)
        except TemplateError as exc:
            raise TemplateRenderError(template_id, str(exc)) from exc

    def render_string(self, template_string: str, context: dict[str, Any]) -> str:
        """Render an inline template; errors are reported as ``<string>``."""
        try:
            return self.env.from_string(template_string).render(**context)
        except TemplateError as exc:
            raise TemplateRenderError("<string>", str(exc)) from exc

    def render_to_file(
        self,
        template_id: str,
        output_path: str | Path,
        context: dict[str, Any],
    ) -> str:
        """Render *template_id* into *output_path*, creating parent directories.

        Returns the content written, which callers hash into the manifest.
        """
        content = self.render(template_id, context)
        write_file(output_path, content)
        return content

    # -- Utility -----------------------------------------------------------

    def list_templates(self, prefix: str = "") -> list[str]:
        """Return a sorted list of all ``.j2`` template ids under *prefix*."""
        search_dir = self.template_dir / prefix if prefix else self.template_dir
        if not search_dir.is_dir():
            return []
        return sorted(
            p.relative_to(self.template_dir).as_posix()
            for p in search_dir.rglob("*.j2")
        )

    def exists(self, template_id: str) -> bool:
        return (self.template_dir / template_id).is_file()
