"""Template catalog.

Loads the list of available templates from the template source (an HTTP
endpoint or a local JSON file) and narrows it down by kind.  Records use the
source's camelCase keys (``npmName``, ``tag``, ``installCommand`` ...) and
are validated into immutable ``TemplateMetadata`` models.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from enum import Enum
from pathlib import Path
from typing import Any

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from stencil.errors import RegistryError, TemplateNotFoundError
from stencil.utils import load_json, log


class TemplateType(str, Enum):
    NORMAL = "normal"
    CUSTOM = "custom"


class TemplateMetadata(BaseModel):
    """One entry of the template catalog."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    npm_name: str = Field(..., alias="npmName", min_length=1)
    name: str = Field(..., min_length=1)
    version: str = Field(default="latest")
    type: str = Field(default=TemplateType.NORMAL.value)
    tags: frozenset[str] = Field(default_factory=frozenset, alias="tag")
    ignore: tuple[str, ...] = Field(default=())
    install_command: str | None = Field(default=None, alias="installCommand")
    start_command: str | None = Field(default=None, alias="startCommand")

    @field_validator("type", mode="before")
    @classmethod
    def _default_type(cls, value: Any) -> Any:
        # An unset type means normal; unknown values are kept so the
        # installer can reject them explicitly.
        return value or TemplateType.NORMAL.value

    @field_validator("tags", mode="before")
    @classmethod
    def _coerce_tags(cls, value: Any) -> Any:
        if value is None:
            return frozenset()
        if isinstance(value, str):
            return frozenset({value})
        return value

    @field_validator("ignore", mode="before")
    @classmethod
    def _coerce_ignore(cls, value: Any) -> Any:
        if value is None:
            return ()
        if isinstance(value, str):
            return (value,)
        return value

    def to_payload(self) -> dict[str, Any]:
        """JSON-serialisable form using the catalog's own key names."""
        data = self.model_dump(by_alias=True, mode="json")
        data["tag"] = sorted(self.tags)
        return data


def filter_by_kind(templates: Iterable[TemplateMetadata], kind: str) -> list[TemplateMetadata]:
    """Keep the templates tagged with *kind* (``"project"`` or ``"component"``)."""
    return [t for t in templates if kind in t.tags]


def parse_templates(data: Any, source: str = "") -> list[TemplateMetadata]:
    """Validate raw catalog data (a list, or ``{"data": [...]}``).

    Raises:
        RegistryError: If the payload has the wrong shape, an entry is
            invalid, or the list is empty.
    """
    if isinstance(data, dict):
        data = data.get("data")
    if not isinstance(data, list):
        raise RegistryError(f"Template source returned an unexpected payload: {source}", url=source)
    try:
        templates = [TemplateMetadata.model_validate(item) for item in data]
    except ValidationError as exc:
        raise RegistryError(f"Template source returned an invalid entry: {exc}", url=source) from exc
    if not templates:
        raise RegistryError("No project templates are available", url=source)
    return templates


class TemplateCatalog:
    """Fetch the template list from an ``http(s)://`` URL or a JSON file."""

    def __init__(self, source: str, timeout: float = 30.0) -> None:
        self.source = source
        self.timeout = timeout

    @property
    def is_remote(self) -> bool:
        return self.source.startswith(("http://", "https://"))

    async def _fetch_remote(self) -> Any:
        try:
            async with httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout, connect=10.0),
                follow_redirects=True,
            ) as client:
                response = await client.get(self.source)
                response.raise_for_status()
                return response.json()
        except httpx.HTTPStatusError as exc:
            raise RegistryError(
                f"Template source returned HTTP {exc.response.status_code}",
                url=self.source,
                status_code=exc.response.status_code,
            ) from exc
        except httpx.HTTPError as exc:
            raise RegistryError(f"Cannot reach template source {self.source}: {exc}", url=self.source) from exc
        except ValueError as exc:
            raise RegistryError("Template source returned malformed JSON", url=self.source) from exc

    def _read_local(self) -> Any:
        path = Path(self.source).expanduser()
        try:
            return load_json(path)
        except FileNotFoundError as exc:
            raise RegistryError(f"Template list not found: {path}", url=str(path)) from exc
        except (OSError, ValueError) as exc:
            raise RegistryError(f"Cannot read template list {path}: {exc}", url=str(path)) from exc

    async def list_templates(self) -> list[TemplateMetadata]:
        """Return every available template.

        Raises:
            RegistryError: If the source is unreachable, malformed or empty.
        """
        data = await self._fetch_remote() if self.is_remote else self._read_local()
        templates = parse_templates(data, self.source)
        log.verbose("templates", ", ".join(t.npm_name for t in templates))
        return templates

    @staticmethod
    def find(templates: Sequence[TemplateMetadata], npm_name: str) -> TemplateMetadata:
        """Return the template published as *npm_name*."""
        for template in templates:
            if template.npm_name == npm_name:
                return template
        raise TemplateNotFoundError(f"Project template does not exist: {npm_name}")
