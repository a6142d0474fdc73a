"""Async client for npm-compatible package registries.

Wraps ``GET {registry}/{package}`` with proper timeout handling and turns
every transport or protocol failure into ``RegistryError``.  On top of the
raw client, ``VersionResolver`` answers the two version questions the CLI
asks: "what is the newest published version?" and "what is the newest
version compatible with the one I have?".

Typical usage::

    resolver = VersionResolver(RegistryClient(get_default_registry()))
    version = await resolver.resolve_latest("@stencil/template-vue")
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any
from urllib.parse import quote

import httpx
import semver

from stencil.config import MIRROR_REGISTRY, PRIMARY_REGISTRY
from stencil.errors import RegistryError
from stencil.utils import log


def get_default_registry(use_mirror: bool = False) -> str:
    """Return the primary public registry, or the regional mirror."""
    return MIRROR_REGISTRY if use_mirror else PRIMARY_REGISTRY


# ---------------------------------------------------------------------------
# Version helpers
# ---------------------------------------------------------------------------


def parse_version(value: str) -> semver.Version | None:
    """Parse *value* as a semver version, or return ``None`` if it is not one."""
    try:
        return semver.Version.parse(value)
    except (TypeError, ValueError):
        return None


def _release3(version: semver.Version) -> tuple[int, int, int]:
    return version.major, version.minor, version.patch


def sort_versions(versions: Iterable[str], reverse: bool = False) -> list[str]:
    """Sort version strings by semver precedence, dropping unparseable entries.

    The original strings are returned untouched so they can still be used to
    build cache paths and download URLs.
    """
    parsed = [(parse_version(v), v) for v in versions]
    valid = [(p, v) for p, v in parsed if p is not None]
    valid.sort(key=lambda pair: pair[0], reverse=reverse)
    return [v for _, v in valid]


def satisfies_caret(version: str, base: str) -> bool:
    """Return ``True`` if *version* lies in the caret range ``^base``.

    The range allows changes that do not modify the left-most non-zero
    component: ``^1.2.3`` is ``>=1.2.3 <2.0.0``, ``^0.2.3`` is
    ``>=0.2.3 <0.3.0`` and ``^0.0.3`` is ``>=0.0.3 <0.0.4``.  Pre-releases
    only match when *base* is a pre-release of the same release tuple.
    """
    candidate = parse_version(version)
    floor = parse_version(base)
    if candidate is None or floor is None or candidate < floor:
        return False

    c_major, c_minor, c_patch = _release3(candidate)
    b_major, b_minor, b_patch = _release3(floor)

    if candidate.prerelease and not (
        floor.prerelease and (c_major, c_minor, c_patch) == (b_major, b_minor, b_patch)
    ):
        return False

    if b_major > 0:
        return c_major == b_major
    if b_minor > 0:
        return c_major == 0 and c_minor == b_minor
    return (c_major, c_minor, c_patch) == (0, 0, b_patch)


# ---------------------------------------------------------------------------
# RegistryClient
# ---------------------------------------------------------------------------


class RegistryClient:
    """Async client for an npm-style registry.

    The client uses ``httpx.AsyncClient`` for non-blocking HTTP.  A fresh
    client is opened per request; a CLI run only makes a handful of them.
    """

    def __init__(
        self,
        registry: str = PRIMARY_REGISTRY,
        timeout: float = 30.0,
        headers: dict[str, str] | None = None,
    ) -> None:
        self.registry = registry.rstrip("/")
        self.timeout = timeout
        self.headers = headers or {}

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _client(self) -> httpx.AsyncClient:
        """Return a fresh ``AsyncClient`` configured with our base URL and timeout."""
        return httpx.AsyncClient(
            base_url=self.registry,
            timeout=httpx.Timeout(self.timeout, connect=10.0),
            headers=self.headers,
            follow_redirects=True,
        )

    def package_url(self, name: str) -> str:
        """Return the document URL for *name*; scoped names keep their ``@``."""
        return f"{self.registry}/{quote(name, safe='@')}"

    async def _get(self, url: str) -> httpx.Response:
        try:
            async with self._client() as client:
                response = await client.get(url)
                response.raise_for_status()
                return response
        except httpx.ConnectError as exc:
            raise RegistryError(f"Cannot connect to registry at {self.registry}: {exc}", url=url) from exc
        except httpx.TimeoutException as exc:
            raise RegistryError(f"Request to {url} timed out after {self.timeout}s", url=url) from exc
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            raise RegistryError(
                f"Registry returned HTTP {status} for {url}",
                url=url,
                status_code=status,
            ) from exc
        except httpx.HTTPError as exc:
            raise RegistryError(f"Registry request to {url} failed: {exc}", url=url) from exc

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def get_package_document(self, name: str) -> dict[str, Any]:
        """Fetch the full registry document for *name*.

        Raises:
            RegistryError: If the registry is unreachable, answers with a
                non-2xx status, or the body is not a JSON object.
        """
        if not name:
            raise RegistryError("Package name must not be empty")
        url = self.package_url(name)
        response = await self._get(url)
        try:
            data = response.json()
        except ValueError as exc:
            raise RegistryError(f"Registry returned malformed JSON for {name}", url=url) from exc
        if not isinstance(data, dict):
            raise RegistryError(f"Registry returned an unexpected document for {name}", url=url)
        return data

    async def get_versions(self, name: str) -> list[str]:
        """Return every published version string of *name*."""
        data = await self.get_package_document(name)
        versions = data.get("versions")
        if isinstance(versions, dict):
            return list(versions.keys())
        if isinstance(versions, list):
            return [str(v) for v in versions]
        raise RegistryError(
            f"Registry document for {name} has no versions",
            url=self.package_url(name),
        )

    async def get_version_manifest(self, name: str, version: str) -> dict[str, Any]:
        """Return the manifest of one published version (holds ``dist``)."""
        data = await self.get_package_document(name)
        versions = data.get("versions")
        manifest = versions.get(version) if isinstance(versions, dict) else None
        if not isinstance(manifest, dict):
            raise RegistryError(
                f"Version {version} of {name} is not published",
                url=self.package_url(name),
            )
        return manifest

    async def fetch_bytes(self, url: str) -> bytes:
        """Download an arbitrary (absolute) URL such as a package tarball."""
        response = await self._get(url)
        return response.content


# ---------------------------------------------------------------------------
# VersionResolver
# ---------------------------------------------------------------------------


class VersionResolver:
    """Resolve concrete versions from a registry's version list.

    Resolution is read-only: it never mutates the client or any cache.
    """

    def __init__(self, client: RegistryClient) -> None:
        self.client = client

    @staticmethod
    def latest_of(versions: Iterable[str]) -> str | None:
        """Return the highest version by precedence, or ``None`` if empty."""
        ordered = sort_versions(versions)
        return ordered[-1] if ordered else None

    @staticmethod
    def satisfying_of(base: str, versions: Iterable[str]) -> str | None:
        """Return the highest version in ``^base``, or ``None``."""
        matching = sort_versions((v for v in versions if satisfies_caret(v, base)), reverse=True)
        return matching[0] if matching else None

    async def resolve_latest(self, name: str) -> str | None:
        """Return the newest published version of *name*.

        ``None`` means the registry knows the package but lists no usable
        version; callers treat that as "package not found".
        """
        versions = await self.client.get_versions(name)
        latest = self.latest_of(versions)
        log.verbose("latest version", f"{name}@{latest}")
        return latest

    async def resolve_satisfying(self, base: str, name: str) -> str | None:
        """Return the newest version of *name* compatible with *base*."""
        versions = await self.client.get_versions(name)
        return self.satisfying_of(base, versions)
