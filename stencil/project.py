"""Project metadata collected before scaffolding.

``ProjectInfo`` is the validated record that drives rendering and the custom
installer handoff.  ``ProjectInfoCollector`` fills it in from CLI arguments
and interactive Rich prompts, asking again whenever a value is rejected.
"""

from __future__ import annotations

import re
from collections.abc import Sequence
from enum import Enum
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, Field, field_validator, model_validator
from rich.console import Console
from rich.prompt import Confirm, Prompt
from rich.table import Table

from stencil.errors import TemplateNotFoundError

if TYPE_CHECKING:
    from stencil.templates.catalog import TemplateMetadata


# ---------------------------------------------------------------------------
# Validators
# ---------------------------------------------------------------------------

_NAME_RE = re.compile(
    r"^[a-zA-Z]+([-][a-zA-Z][a-zA-Z0-9]*|[_][a-zA-Z][a-zA-Z0-9]*|[a-zA-Z0-9])*$"
)

# https://semver.org/#is-there-a-suggested-regular-expression-regex-to-check-a-semver-string
_SEMVER_RE = re.compile(
    r"^(0|[1-9]\d*)\.(0|[1-9]\d*)\.(0|[1-9]\d*)"
    r"(?:-((?:0|[1-9]\d*|\d*[a-zA-Z-][0-9a-zA-Z-]*)"
    r"(?:\.(?:0|[1-9]\d*|\d*[a-zA-Z-][0-9a-zA-Z-]*))*))?"
    r"(?:\+([0-9a-zA-Z-]+(?:\.[0-9a-zA-Z-]+)*))?$"
)

_PREFIX_RE = re.compile(r"^=?v?")


def is_valid_name(value: str) -> bool:
    """Return ``True`` for names like ``my-app``, ``my_app2`` or ``myApp``.

    The first character must be a letter and every ``-``/``_`` must be
    followed by a letter.
    """
    return bool(_NAME_RE.match(value or ""))


def clean_version(value: str) -> str | None:
    """Return the normalised semver string, or ``None`` if *value* is not one.

    Surrounding whitespace, one leading ``=`` and one leading ``v`` are
    dropped, so ``" v1.2.3"`` becomes ``"1.2.3"`` but ``"vv1.2.3"`` is rejected.
    """
    candidate = _PREFIX_RE.sub("", (value or "").strip(), count=1)
    return candidate if _SEMVER_RE.match(candidate) else None


def kebab_case(value: str) -> str:
    """``MyApp`` -> ``my-app``; a single leading dash is removed."""
    dashed = re.sub(r"[A-Z]", lambda m: f"-{m.group(0).lower()}", value)
    return re.sub(r"^-", "", dashed)


# ---------------------------------------------------------------------------
# Model
# ---------------------------------------------------------------------------


class ProjectKind(str, Enum):
    PROJECT = "project"
    COMPONENT = "component"


class ProjectInfo(BaseModel):
    """Validated scaffolding parameters for one run."""

    kind: ProjectKind = Field(default=ProjectKind.PROJECT)
    name: str = Field(..., description="Project or component name")
    version: str = Field(default="1.0.0", description="Initial semver version")
    template_id: str = Field(..., description="npm name of the chosen template")
    description: str | None = Field(default=None)

    @field_validator("name")
    @classmethod
    def _check_name(cls, value: str) -> str:
        if not is_valid_name(value):
            raise ValueError(f"invalid name: {value!r}")
        return value

    @field_validator("version")
    @classmethod
    def _check_version(cls, value: str) -> str:
        cleaned = clean_version(value)
        if cleaned is None:
            raise ValueError(f"invalid version: {value!r}")
        return cleaned

    @model_validator(mode="after")
    def _component_needs_description(self) -> "ProjectInfo":
        if self.kind is ProjectKind.COMPONENT and not (self.description or "").strip():
            raise ValueError("components require a description")
        return self

    @property
    def class_name(self) -> str:
        return kebab_case(self.name)

    def render_context(self) -> dict[str, Any]:
        """Variables exposed to template files and custom installers.

        Both the short names and the ``project*`` aliases are provided so
        templates can use either spelling.
        """
        context: dict[str, Any] = {
            "type": self.kind.value,
            "name": self.name,
            "projectName": self.name,
            "className": self.class_name,
            "class_name": self.class_name,
            "version": self.version,
            "projectVersion": self.version,
            "projectTemplate": self.template_id,
            "description": self.description or "",
        }
        if self.kind is ProjectKind.COMPONENT:
            context["componentDescription"] = self.description or ""
        return context


# ---------------------------------------------------------------------------
# Interactive collection
# ---------------------------------------------------------------------------


class ProjectInfoCollector:
    """Gather ``ProjectInfo`` and directory confirmations from the terminal."""

    def __init__(self, console: Console) -> None:
        self.console = console

    def confirm_continue(self) -> bool:
        return Confirm.ask(
            "The current directory is not empty. Continue creating the project?",
            default=False,
            console=self.console,
        )

    def confirm_empty(self) -> bool:
        return Confirm.ask(
            "Really delete every file in the current directory?",
            default=False,
            console=self.console,
        )

    def ask_kind(self) -> ProjectKind:
        answer = Prompt.ask(
            "Initialise a",
            choices=[k.value for k in ProjectKind],
            default=ProjectKind.PROJECT.value,
            console=self.console,
        )
        return ProjectKind(answer)

    def ask_name(self, kind: ProjectKind) -> str:
        while True:
            value = Prompt.ask(f"{kind.value.capitalize()} name", console=self.console)
            if is_valid_name(value):
                return value
            self.console.print(f"[red]Please enter a valid {kind.value} name[/red]")

    def ask_version(self, kind: ProjectKind) -> str:
        while True:
            value = Prompt.ask(
                f"{kind.value.capitalize()} version", default="1.0.0", console=self.console
            )
            cleaned = clean_version(value)
            if cleaned:
                return cleaned
            self.console.print(f"[red]Please enter a valid {kind.value} version[/red]")

    def ask_template(self, kind: ProjectKind, templates: Sequence[TemplateMetadata]) -> str:
        table = Table(title=f"{kind.value.capitalize()} templates", header_style="bold cyan")
        table.add_column("#", style="dim", no_wrap=True)
        table.add_column("Template")
        table.add_column("Package", style="dim")
        for index, template in enumerate(templates, start=1):
            table.add_row(str(index), template.name, template.npm_name)
        self.console.print(table)

        choices = [str(i) for i in range(1, len(templates) + 1)]
        answer = Prompt.ask("Template", choices=choices, default="1", console=self.console)
        return templates[int(answer) - 1].npm_name

    def ask_description(self) -> str:
        while True:
            value = Prompt.ask("Component description", console=self.console).strip()
            if value:
                return value
            self.console.print("[red]Please enter a component description[/red]")

    def collect(
        self,
        templates: Sequence[TemplateMetadata],
        project_name: str = "",
    ) -> tuple[ProjectInfo, list[TemplateMetadata]]:
        """Prompt for every missing field and return the info plus the
        templates matching the chosen kind.

        A *project_name* given on the command line is used as-is when valid,
        otherwise it is asked for again.
        """
        from stencil.templates.catalog import filter_by_kind

        kind = self.ask_kind()
        matching = filter_by_kind(templates, kind.value)
        if not matching:
            raise TemplateNotFoundError(f"No {kind.value} templates are available")

        name = project_name if is_valid_name(project_name) else self.ask_name(kind)
        version = self.ask_version(kind)
        template_id = self.ask_template(kind, matching)
        description = self.ask_description() if kind is ProjectKind.COMPONENT else None

        info = ProjectInfo(
            kind=kind,
            name=name,
            version=version,
            template_id=template_id,
            description=description,
        )
        return info, matching
