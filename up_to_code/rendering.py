"""Sandboxed Jinja2 rendering of review request bodies.

Commit titles and author names come from the package's repository and
are untrusted, so templates render in a SandboxedEnvironment with
StrictUndefined: a missing variable fails the render instead of
producing an empty link.

Example:
    >>> renderer = TemplateRenderer()
    >>> renderer.render("change_note.md.j2", {"base": "v1.0.0", ...})
"""

from pathlib import Path
from typing import Any

from jinja2 import FileSystemLoader, StrictUndefined
from jinja2.sandbox import SandboxedEnvironment

TEMPLATE_DIR = Path(__file__).parent / "templates"


class TemplateRenderer:
    """Render the markdown templates shipped with the package.

    Attributes:
        template_dir: Resolved path to the template directory.
        env: The SandboxedEnvironment instance.
    """

    def __init__(self, template_dir: Path | None = None) -> None:
        self.template_dir = (template_dir or TEMPLATE_DIR).resolve()
        if not self.template_dir.is_dir():
            raise ValueError(f"Template directory does not exist: {self.template_dir}")

        self.env = SandboxedEnvironment(
            loader=FileSystemLoader(str(self.template_dir)),
            undefined=StrictUndefined,
            autoescape=False,  # markdown, not HTML
            trim_blocks=True,
            lstrip_blocks=True,
            keep_trailing_newline=True,
        )

    def render(self, template_name: str, context: dict[str, Any]) -> str:
        """Render a template and strip surrounding blank lines.

        Raises:
            jinja2.TemplateNotFound: If the template does not exist
            jinja2.UndefinedError: If the context misses a variable
        """
        template = self.env.get_template(template_name)
        return template.render(**context).strip()
