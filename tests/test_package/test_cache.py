"""Unit tests for the versioned package cache (stencil.package.cache).

Tests cover:
- store_path determinism and scoped-name flattening
- Package.prepare (latest resolution, pinned versions, idempotence)
- Package.exists / install / update in cached mode
- Non-cached mode (target_path only)
- Package.get_entry_point_path
"""

from __future__ import annotations

import json
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

from stencil.errors import RegistryError
from stencil.package import LATEST, Package, PackageDescriptor, PackageInstaller, store_path
from stencil.registry_client import VersionResolver


def _resolver(latest: str | None = "2.0.0") -> MagicMock:
    resolver = MagicMock(spec=VersionResolver)
    resolver.resolve_latest = AsyncMock(return_value=latest)
    return resolver


def _installer() -> MagicMock:
    """Installer double that materialises the requested store directories."""
    installer = MagicMock(spec=PackageInstaller)

    async def fake_install(request):
        paths = []
        for spec in request.packages:
            path = store_path(request.store_dir, spec.name, spec.version)
            path.mkdir(parents=True, exist_ok=True)
            (path / "package.json").write_text(
                json.dumps({"name": spec.name, "version": spec.version, "main": "index.js"}),
                encoding="utf-8",
            )
            (path / "index.js").write_text("", encoding="utf-8")
            paths.append(path)
        return paths

    installer.install = AsyncMock(side_effect=fake_install)
    return installer


@pytest.fixture
def cache_root(tmp_path: Path) -> Path:
    return tmp_path / "template" / "node_modules"


def _package(cache_root: Path, version: str = LATEST, latest: str | None = "2.0.0"):
    descriptor = PackageDescriptor(
        name="@stencil/template-vue",
        requested_version=version,
        target_path=cache_root.parent,
        cache_root_dir=cache_root,
    )
    return Package(descriptor, _resolver(latest), _installer(), "https://registry.test")


# ---------------------------------------------------------------------------
# store_path
# ---------------------------------------------------------------------------


class TestStorePath:
    @pytest.mark.unit
    def test_scoped_name(self, tmp_path: Path):
        path = store_path(tmp_path, "@stencil/template-vue", "1.0.0")
        assert path == tmp_path / "_@stencil_template-vue@1.0.0@@stencil/template-vue"

    @pytest.mark.unit
    def test_plain_name(self, tmp_path: Path):
        assert store_path(tmp_path, "tpl", "0.1.0").name == "_tpl@0.1.0@tpl"

    @pytest.mark.unit
    def test_deterministic(self, tmp_path: Path):
        assert store_path(tmp_path, "tpl", "1.0.0") == store_path(tmp_path, "tpl", "1.0.0")
        assert store_path(tmp_path, "tpl", "1.0.0") != store_path(tmp_path, "tpl", "1.0.1")


# ---------------------------------------------------------------------------
# Package (cached mode)
# ---------------------------------------------------------------------------


class TestPrepare:
    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_latest_is_resolved(self, cache_root: Path):
        package = _package(cache_root)
        await package.prepare()
        assert package.version == "2.0.0"
        assert cache_root.is_dir()

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_pinned_version_is_used_as_is(self, cache_root: Path):
        package = _package(cache_root, version="1.0.0")
        await package.prepare()
        assert package.version == "1.0.0"
        package.resolver.resolve_latest.assert_not_awaited()

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_prepare_only_resolves_once(self, cache_root: Path):
        package = _package(cache_root)
        await package.prepare()
        await package.prepare()
        assert package.resolver.resolve_latest.await_count == 1

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_unknown_package(self, cache_root: Path):
        package = _package(cache_root, latest=None)
        with pytest.raises(RegistryError, match="Package not found"):
            await package.prepare()

    @pytest.mark.unit
    def test_cache_path_requires_prepare(self, cache_root: Path):
        with pytest.raises(ValueError):
            _ = _package(cache_root).cache_file_path


class TestExistsInstallUpdate:
    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_absent_then_installed(self, cache_root: Path):
        package = _package(cache_root, version="1.0.0")
        assert await package.exists() is False
        await package.install()
        assert await package.exists() is True
        assert package.package_path == store_path(cache_root, package.name, "1.0.0")
        request = package.installer.install.await_args.args[0]
        assert request.store_dir == cache_root
        assert request.registry == "https://registry.test"
        assert [(s.name, s.version) for s in request.packages] == [(package.name, "1.0.0")]

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_exists_is_idempotent(self, cache_root: Path):
        package = _package(cache_root, version="1.0.0")
        await package.install()
        assert await package.exists() is True
        assert await package.exists() is True
        assert package.installer.install.await_count == 1

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_update_installs_newer_version(self, cache_root: Path):
        package = _package(cache_root, version="1.0.0", latest="1.2.0")
        await package.install()
        await package.update()
        assert package.version == "1.2.0"
        assert store_path(cache_root, package.name, "1.2.0").is_dir()
        # The old version stays in the cache next to the new one.
        assert store_path(cache_root, package.name, "1.0.0").is_dir()
        assert package.installer.install.await_count == 2

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_update_when_latest_already_cached(self, cache_root: Path):
        package = _package(cache_root, version="1.2.0", latest="1.2.0")
        await package.install()
        await package.update()
        assert package.version == "1.2.0"
        assert package.installer.install.await_count == 1


# ---------------------------------------------------------------------------
# Package (non-cached mode)
# ---------------------------------------------------------------------------


class TestNonCached:
    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_target_path_is_the_package(self, template_package: Path):
        descriptor = PackageDescriptor(name="local", target_path=template_package)
        package = Package(descriptor, _resolver(), _installer(), "https://registry.test")
        assert descriptor.cached is False
        assert await package.exists() is True
        assert package.package_path == template_package
        package.resolver.resolve_latest.assert_not_awaited()

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_missing_target_path(self, tmp_path: Path):
        descriptor = PackageDescriptor(name="local", target_path=tmp_path / "nope")
        package = Package(descriptor, _resolver(), _installer(), "https://registry.test")
        assert await package.exists() is False

    @pytest.mark.unit
    def test_no_cache_root(self, tmp_path: Path):
        descriptor = PackageDescriptor(name="local", target_path=tmp_path)
        package = Package(descriptor, _resolver(), _installer(), "https://registry.test")
        with pytest.raises(ValueError):
            package.specific_cache_file_path("1.0.0")

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_install_without_cache_root(self, tmp_path: Path):
        descriptor = PackageDescriptor(name="local", requested_version="1.0.0", target_path=tmp_path)
        package = Package(descriptor, _resolver(), _installer(), "https://registry.test")
        with pytest.raises(ValueError, match="no cache root"):
            await package.install()
        package.installer.install.assert_not_awaited()


# ---------------------------------------------------------------------------
# Entry point discovery
# ---------------------------------------------------------------------------


class TestEntryPoint:
    @pytest.mark.unit
    def test_main_from_manifest(self, template_package: Path):
        descriptor = PackageDescriptor(name="local", target_path=template_package)
        package = Package(descriptor, _resolver(), _installer(), "")
        entry = package.get_entry_point_path()
        assert entry == (template_package / "index.js").resolve().as_posix()

    @pytest.mark.unit
    def test_no_main(self, tmp_path: Path):
        (tmp_path / "package.json").write_text(json.dumps({"name": "x"}), encoding="utf-8")
        package = Package(PackageDescriptor(name="x", target_path=tmp_path), _resolver(), _installer(), "")
        assert package.get_entry_point_path() is None

    @pytest.mark.unit
    def test_unreadable_manifest(self, tmp_path: Path):
        (tmp_path / "package.json").write_text("{not json", encoding="utf-8")
        package = Package(PackageDescriptor(name="x", target_path=tmp_path), _resolver(), _installer(), "")
        assert package.get_entry_point_path() is None

    @pytest.mark.unit
    def test_missing_package_path(self, tmp_path: Path):
        package = Package(
            PackageDescriptor(name="x", target_path=tmp_path / "gone"), _resolver(), _installer(), ""
        )
        assert package.get_entry_point_path() is None

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_cached_entry_point(self, cache_root: Path):
        package = _package(cache_root, version="1.0.0")
        await package.install()
        entry = package.get_entry_point_path()
        assert entry is not None
        assert entry.endswith("@1.0.0@@stencil/template-vue/index.js")
