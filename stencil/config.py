"""stencil configuration.

Centralised, typed configuration for a single CLI run.  All settings use
Pydantic v2 models so they can be validated at construction time and
serialised to/from JSON or environment variables without boiler-plate.

A ``Config`` is built once by the CLI entry point and handed explicitly to
every component that needs it; nothing downstream reads ``os.environ``.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field

PRIMARY_REGISTRY = "https://registry.npmjs.org"
MIRROR_REGISTRY = "https://registry.npmmirror.com"
PYPI_SIMPLE_INDEX = "https://pypi.org/simple"

DEFAULT_CLI_HOME = ".stencil-cli"
DEFAULT_TEMPLATE_SOURCE = "https://stencil-templates.dev/api/templates"


def _truthy(value: str | None) -> bool:
    if value is None:
        return False
    return value.strip().lower() in {"1", "true", "yes", "on"}


class RegistryConfig(BaseModel):
    """Where template packages and version listings come from."""

    use_mirror: bool = Field(default=False, description="Use the regional mirror instead of npmjs")
    timeout: float = Field(default=30.0, ge=1.0, description="Per-request timeout in seconds")
    update_index_url: str = Field(
        default=PYPI_SIMPLE_INDEX,
        description="Index queried for the self-update notice",
    )

    @property
    def url(self) -> str:
        """The npm-compatible registry endpoint selected by ``use_mirror``."""
        return MIRROR_REGISTRY if self.use_mirror else PRIMARY_REGISTRY


class Config(BaseModel):
    """Global configuration for one ``stencil`` invocation.

    Holds every tuneable parameter and derived path used by the init
    pipeline.  Instances are created by ``stencil.pipeline.main`` and then
    passed through the rest of the system.
    """

    home: Path = Field(default_factory=Path.home)
    cli_home_dir: str = Field(default=DEFAULT_CLI_HOME)
    template_source: str = Field(default=DEFAULT_TEMPLATE_SOURCE)
    target_path: Path | None = Field(
        default=None,
        description="Local template package directory; bypasses the cache when set",
    )
    cwd: Path = Field(default_factory=Path.cwd)
    force: bool = Field(default=False)
    debug: bool = Field(default=False)
    command_timeout: int = Field(
        default=1800, ge=1, description="Install/start command timeout in seconds"
    )
    registry: RegistryConfig = Field(default_factory=RegistryConfig)

    # ------------------------------------------------------------------
    # Derived paths (read-only properties)
    # ------------------------------------------------------------------

    @property
    def cli_home(self) -> Path:
        """Root of the per-user stencil directory."""
        return self.home / self.cli_home_dir

    @property
    def template_dir(self) -> Path:
        """Install root for template packages."""
        return self.cli_home / "template"

    @property
    def template_store_dir(self) -> Path:
        """Cache root holding one directory per (package, version)."""
        return self.template_dir / "node_modules"

    @property
    def registry_url(self) -> str:
        return self.registry.url

    # ------------------------------------------------------------------
    # Serialisation helpers
    # ------------------------------------------------------------------

    def save(self, path: Path | None = None) -> Path:
        """Persist the configuration to a JSON file.

        Args:
            path: Destination file. Defaults to ``<cli_home>/config.json``.

        Returns:
            The path where the file was written.
        """
        target = path or (self.cli_home / "config.json")
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(self.model_dump_json(indent=2), encoding="utf-8")
        return target

    @classmethod
    def load(cls, path: Path) -> "Config":
        """Load a previously-saved configuration from JSON."""
        raw = Path(path).read_text(encoding="utf-8")
        return cls.model_validate_json(raw)

    @classmethod
    def from_env(cls, **overrides: Any) -> "Config":
        """Build a ``Config`` from environment variables.

        Recognised variables (all optional):
            STENCIL_CLI_HOME, STENCIL_TEMPLATE_SOURCE, STENCIL_USE_MIRROR,
            STENCIL_DEBUG, STENCIL_REGISTRY_TIMEOUT.

        Keyword *overrides* (typically parsed CLI flags) win over the
        environment.
        """
        kwargs: dict[str, Any] = {}
        if os.environ.get("STENCIL_CLI_HOME"):
            kwargs["cli_home_dir"] = os.environ["STENCIL_CLI_HOME"]
        if os.environ.get("STENCIL_TEMPLATE_SOURCE"):
            kwargs["template_source"] = os.environ["STENCIL_TEMPLATE_SOURCE"]
        if _truthy(os.environ.get("STENCIL_DEBUG")):
            kwargs["debug"] = True

        registry_kwargs: dict[str, Any] = {}
        if _truthy(os.environ.get("STENCIL_USE_MIRROR")):
            registry_kwargs["use_mirror"] = True
        if os.environ.get("STENCIL_REGISTRY_TIMEOUT"):
            registry_kwargs["timeout"] = float(os.environ["STENCIL_REGISTRY_TIMEOUT"])
        kwargs["registry"] = RegistryConfig(**registry_kwargs)

        kwargs.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**kwargs)

    def ensure_directories(self) -> None:
        """Create the cache directories that must exist before downloading."""
        for directory in (self.cli_home, self.template_dir, self.template_store_dir):
            directory.mkdir(parents=True, exist_ok=True)
