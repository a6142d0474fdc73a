"""Registry tarball installer.

Fetches published package tarballs and unpacks each one into its own
``_<name>@<version>@<name>`` directory under the store.  Only the package
itself is materialised; its dependencies are never resolved.
"""

from __future__ import annotations

import asyncio
import base64
import hashlib
import io
import shutil
import tarfile
import tempfile
from pathlib import Path, PurePosixPath

from pydantic import BaseModel, Field

from stencil.errors import InstallError, RegistryError
from stencil.registry_client import RegistryClient
from stencil.utils import log


class PackageSpec(BaseModel):
    """One ``name@version`` to install."""

    name: str
    version: str


class InstallRequest(BaseModel):
    """Arguments of a single installer invocation."""

    root: Path = Field(..., description="Install root the store belongs to")
    store_dir: Path = Field(..., description="Directory holding versioned package copies")
    registry: str = Field(..., description="Registry endpoint to download from")
    packages: list[PackageSpec] = Field(default_factory=list)


def store_path(store_dir: Path, name: str, version: str) -> Path:
    """Return the store directory for ``name@version``.

    ``/`` is flattened in the prefix only, so ``@scope/name`` versions share
    one ``_@scope_name@<version>@@scope`` parent.  The ``_`` prefix and ``@``
    separators keep versions side by side.
    """
    prefix = name.replace("/", "_")
    return Path(store_dir) / f"_{prefix}@{version}@{name}"


def verify_digest(data: bytes, dist: dict) -> None:
    """Check *data* against the ``integrity`` or ``shasum`` of a dist record.

    Raises:
        InstallError: If a declared digest does not match.
    """
    integrity = (dist.get("integrity") or "").split(" ")[0]
    if integrity and "-" in integrity:
        algorithm, _, expected = integrity.partition("-")
        if algorithm in hashlib.algorithms_available:
            actual = base64.b64encode(hashlib.new(algorithm, data).digest()).decode("ascii")
            if actual != expected:
                raise InstallError(f"Integrity check failed ({algorithm})")
            return
    shasum = dist.get("shasum")
    if shasum and hashlib.sha1(data).hexdigest() != shasum:
        raise InstallError("Integrity check failed (sha1)")


def _safe_member_path(member_name: str) -> PurePosixPath | None:
    """Strip the tarball's top-level folder; ``None`` for unsafe or empty names."""
    parts = PurePosixPath(member_name).parts
    if not parts or parts[0] == "/":
        return None
    relative = parts[1:]
    if not relative or any(p in ("..", "") for p in relative):
        return None
    return PurePosixPath(*relative)


def extract_tarball(data: bytes, destination: Path) -> None:
    """Unpack a gzipped npm tarball into *destination*.

    The tarball's top-level folder (``package/`` for npm) is stripped.  Only
    regular files and directories are written; links and members that would
    escape *destination* are skipped.  Extraction goes to a sibling temp
    directory which is renamed into place, so a half-written package never
    appears under its final name.
    """
    destination.parent.mkdir(parents=True, exist_ok=True)
    staging = Path(tempfile.mkdtemp(prefix=".staging-", dir=destination.parent))
    try:
        with tarfile.open(fileobj=io.BytesIO(data), mode="r:*") as archive:
            for member in archive.getmembers():
                relative = _safe_member_path(member.name)
                if relative is None:
                    continue
                target = staging.joinpath(*relative.parts)
                if member.isdir():
                    target.mkdir(parents=True, exist_ok=True)
                elif member.isfile():
                    source = archive.extractfile(member)
                    if source is None:
                        continue
                    target.parent.mkdir(parents=True, exist_ok=True)
                    target.write_bytes(source.read())
                    if member.mode & 0o111:
                        target.chmod(0o755)
        if destination.exists():
            shutil.rmtree(staging)
            return
        staging.rename(destination)
    except BaseException:
        shutil.rmtree(staging, ignore_errors=True)
        raise


class PackageInstaller:
    """Install packages from an npm-compatible registry into a store."""

    def __init__(self, timeout: float = 30.0) -> None:
        self.timeout = timeout

    def _client_for(self, registry: str) -> RegistryClient:
        return RegistryClient(registry=registry, timeout=self.timeout)

    async def install(self, request: InstallRequest) -> list[Path]:
        """Download and unpack every package of *request*.

        Returns:
            The store directories of the installed packages.

        Raises:
            InstallError: If any package cannot be fetched, verified or
                unpacked.  Packages installed before the failure are kept.
        """
        request.root.mkdir(parents=True, exist_ok=True)
        request.store_dir.mkdir(parents=True, exist_ok=True)
        client = self._client_for(request.registry)

        installed: list[Path] = []
        for spec in request.packages:
            destination = store_path(request.store_dir, spec.name, spec.version)
            try:
                manifest = await client.get_version_manifest(spec.name, spec.version)
                dist = manifest.get("dist") or {}
                tarball = dist.get("tarball")
                if not tarball:
                    raise InstallError(f"{spec.name}@{spec.version} has no tarball")
                log.verbose("download", tarball)
                data = await client.fetch_bytes(tarball)
                verify_digest(data, dist)
                await asyncio.to_thread(extract_tarball, data, destination)
            except RegistryError as exc:
                raise InstallError(f"Failed to install {spec.name}@{spec.version}: {exc}") from exc
            except (tarfile.TarError, OSError) as exc:
                raise InstallError(
                    f"Failed to unpack {spec.name}@{spec.version}: {exc}"
                ) from exc
            installed.append(destination)
        return installed
