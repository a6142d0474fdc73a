"""Versioned package cache.

A ``Package`` models one template package on local disk.  In cached mode
(a ``cache_root_dir`` is configured) every resolved version lives in its own
deterministic directory under the cache root, so a version is stored at most
once and existence checks are idempotent.  In non-cached mode the package is
simply whatever lives at ``target_path`` (a local checkout, typically passed
with ``--targetPath``).

Lifecycle per descriptor::

    Unresolved --prepare()--> Resolved --exists()--> Absent | Present
"""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, Field

from stencil.errors import RegistryError
from stencil.package.installer import InstallRequest, PackageInstaller, PackageSpec, store_path
from stencil.registry_client import VersionResolver
from stencil.utils import find_up, format_path, load_json, log

LATEST = "latest"
MANIFEST_FILE = "package.json"


class PackageDescriptor(BaseModel):
    """Identity and location of one package for the duration of a run."""

    name: str = Field(..., min_length=1)
    requested_version: str = Field(default=LATEST)
    resolved_version: str | None = Field(default=None)
    target_path: Path
    cache_root_dir: Path | None = Field(default=None)

    @property
    def cached(self) -> bool:
        return self.cache_root_dir is not None


class Package:
    """A cached, versioned registry package.

    Args:
        descriptor: What to fetch and where.
        resolver: Used to turn ``"latest"`` into a concrete version.
        installer: Fetches packages into the cache root.
        registry: Registry endpoint handed to the installer.
    """

    def __init__(
        self,
        descriptor: PackageDescriptor,
        resolver: VersionResolver,
        installer: PackageInstaller,
        registry: str,
    ) -> None:
        self.descriptor = descriptor
        self.resolver = resolver
        self.installer = installer
        self.registry = registry

    @property
    def name(self) -> str:
        return self.descriptor.name

    @property
    def version(self) -> str | None:
        return self.descriptor.resolved_version

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    async def _latest_version(self) -> str:
        latest = await self.resolver.resolve_latest(self.name)
        if latest is None:
            raise RegistryError(f"Package not found: {self.name}")
        return latest

    async def prepare(self) -> None:
        """Ensure the cache root exists and pin a concrete version."""
        root = self.descriptor.cache_root_dir
        if root is not None:
            root.mkdir(parents=True, exist_ok=True)
        if self.descriptor.resolved_version is not None:
            return
        if self.descriptor.requested_version == LATEST:
            self.descriptor.resolved_version = await self._latest_version()
        else:
            self.descriptor.resolved_version = self.descriptor.requested_version

    # ------------------------------------------------------------------
    # Cache paths
    # ------------------------------------------------------------------

    def specific_cache_file_path(self, version: str) -> Path:
        """Cache directory for *version* of this package."""
        if self.descriptor.cache_root_dir is None:
            raise ValueError("Package has no cache root")
        return store_path(self.descriptor.cache_root_dir, self.name, version)

    @property
    def cache_file_path(self) -> Path:
        """Cache directory for the resolved version."""
        if self.version is None:
            raise ValueError(f"{self.name} has not been prepared yet")
        return self.specific_cache_file_path(self.version)

    @property
    def package_path(self) -> Path:
        """Where the package's files live: the cache entry, or ``target_path``."""
        if self.descriptor.cached:
            return self.cache_file_path
        return self.descriptor.target_path

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def exists(self) -> bool:
        """Return ``True`` if the resolved version is present on disk."""
        if self.descriptor.cached:
            await self.prepare()
            return self.cache_file_path.exists()
        return self.descriptor.target_path.exists()

    async def _install_version(self, version: str) -> None:
        if self.descriptor.cache_root_dir is None:
            raise ValueError("Package has no cache root")
        await self.installer.install(
            InstallRequest(
                root=self.descriptor.target_path,
                store_dir=self.descriptor.cache_root_dir,
                registry=self.registry,
                packages=[PackageSpec(name=self.name, version=version)],
            )
        )

    async def install(self) -> None:
        """Fetch the resolved version into the cache.

        Not guarded against re-installing a present version; callers check
        ``exists()`` first.
        """
        await self.prepare()
        if self.version is None:
            raise ValueError(f"{self.name} has no resolved version")
        log.verbose("install", f"{self.name}@{self.version}")
        await self._install_version(self.version)

    async def update(self) -> None:
        """Move to the newest published version, fetching it if absent."""
        await self.prepare()
        latest = await self._latest_version()
        if not self.specific_cache_file_path(latest).exists():
            log.verbose("update", f"{self.name}@{latest}")
            await self._install_version(latest)
        self.descriptor.resolved_version = latest

    # ------------------------------------------------------------------
    # Entry point discovery
    # ------------------------------------------------------------------

    def get_entry_point_path(self) -> str | None:
        """Return the absolute, ``/``-separated path of the manifest's ``main``.

        The manifest is the nearest ``package.json`` at or above the package
        path.  ``None`` if there is no manifest, it is unreadable, or it
        declares no ``main``.
        """
        start = self.package_path
        if not start.exists():
            return None
        directory = find_up(start, MANIFEST_FILE)
        if directory is None:
            return None
        try:
            manifest = load_json(directory / MANIFEST_FILE)
        except (OSError, ValueError):
            return None
        main = manifest.get("main") if isinstance(manifest, dict) else None
        if not main or not isinstance(main, str):
            return None
        return format_path((directory / main).resolve())
