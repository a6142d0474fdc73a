"""Jinja2 rendering of copied template files.

Provides the TemplateRenderer class which renders a template's files in
place once they have been copied into the target directory.  Expressions use
``<%= ... %>`` (or ``<%- ... %>``) and statements ``<% ... %>`` so that templates
for frontend projects (whose sources are full of ``{{ }}``) pass through
untouched.  The ``-%>``, ``<%_`` and ``_%>`` trim forms are honoured too.
"""

from __future__ import annotations

import asyncio
import re
from collections.abc import Iterable
from pathlib import Path
from typing import Any

from jinja2 import Environment, StrictUndefined, TemplateError

from stencil.errors import TemplateRenderError
from stencil.utils import list_files

DEFAULT_IGNORE: tuple[str, ...] = ("**/node_modules/**",)

_TAG_REWRITES: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"[ \t]*<%_"), "<%"),
    (re.compile(r"_%>[ \t]*(?:\r\n|\r|\n)?"), "%>"),
    (re.compile(r"-%>(?:\r\n|\r|\n)?"), "%>"),
    (re.compile(r"<%-"), "<%="),
)


def normalize_tags(source: str) -> str:
    """Reduce the remaining EJS tag forms to the three the environment knows.

    ``<%- x %>`` (raw output) becomes ``<%= x %>``; nothing is escaped
    anyway.  ``-%>`` drops the newline that follows it.  ``<%_`` and ``_%>``
    also drop the spaces and tabs around the tag.
    """
    for pattern, replacement in _TAG_REWRITES:
        source = pattern.sub(replacement, source)
    return source


# ---------------------------------------------------------------------------
# TemplateRenderer
# ---------------------------------------------------------------------------


class TemplateRenderer:
    """Renders template files with project-specific context data.

    Undefined variables are errors, so a typo in a template fails the run
    instead of silently producing an empty string.
    """

    def __init__(self) -> None:
        self.env = Environment(
            block_start_string="<%",
            block_end_string="%>",
            variable_start_string="<%=",
            variable_end_string="%>",
            comment_start_string="<%#",
            comment_end_string="%>",
            autoescape=False,
            keep_trailing_newline=True,
            undefined=StrictUndefined,
        )

    # -- String rendering --------------------------------------------------

    def render_string(self, template_string: str, context: dict[str, Any]) -> str:
        """Render an inline template string with the provided context."""
        template = self.env.from_string(normalize_tags(template_string))
        return template.render(**context)

    # -- File-based rendering (async) --------------------------------------

    def _render_in_place(self, path: Path, context: dict[str, Any]) -> None:
        try:
            source = path.read_text(encoding="utf-8")
            rendered = self.render_string(source, context)
            path.write_text(rendered, encoding="utf-8")
        except (TemplateError, UnicodeDecodeError, OSError) as exc:
            raise TemplateRenderError(f"Failed to render {path}: {exc}", path=str(path)) from exc

    async def render_file(self, path: str | Path, context: dict[str, Any]) -> Path:
        """Render *path* and overwrite it with the result."""
        target = Path(path)
        await asyncio.to_thread(self._render_in_place, target, context)
        return target

    async def render_directory(
        self,
        root: str | Path,
        context: dict[str, Any],
        *,
        ignore: Iterable[str] = (),
    ) -> list[Path]:
        """Render every file under *root* in place, concurrently.

        ``node_modules`` and dot entries are always skipped; *ignore* adds further globs
        relative to *root* (e.g. ``["**/*.png", "public/**"]``).  The first
        failure fails the whole batch; files already rendered are not
        restored.

        Returns:
            The rendered file paths.
        """
        patterns = [*DEFAULT_IGNORE, *ignore]
        files = await asyncio.to_thread(list_files, root, patterns)
        await asyncio.gather(*(self.render_file(f, context) for f in files))
        return files
