"""Shared pytest fixtures for the stencil test suite.

Provides reusable fixtures for:
- Isolated configuration rooted in a temporary home directory
- Registry documents and gzipped package tarballs
- A ready-made template package on disk
- Mocked httpx clients and subprocess helpers
"""

from __future__ import annotations

import io
import json
import tarfile
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from stencil.config import Config
from stencil.templates.catalog import TemplateMetadata


# ---------------------------------------------------------------------------
# Paths & Configuration
# ---------------------------------------------------------------------------

@pytest.fixture
def tmp_home(tmp_path: Path) -> Path:
    """Temporary stand-in for the user's home directory."""
    home = tmp_path / "home"
    home.mkdir()
    return home


@pytest.fixture
def workdir(tmp_path: Path) -> Path:
    """Empty working directory the CLI is "run" from."""
    cwd = tmp_path / "work"
    cwd.mkdir()
    return cwd


@pytest.fixture
def config(tmp_home: Path, workdir: Path) -> Config:
    """A Config whose cache and working directory live under tmp_path."""
    return Config(home=tmp_home, cwd=workdir, template_source=str(tmp_home / "templates.json"))


# ---------------------------------------------------------------------------
# Registry data
# ---------------------------------------------------------------------------

@pytest.fixture
def registry_document() -> dict[str, Any]:
    """Abbreviated registry document with a mix of stable and pre-releases."""
    versions = ["1.0.0", "1.1.0", "1.2.0", "1.3.0-beta.1", "2.0.0", "0.9.0"]
    return {
        "name": "@stencil/template-vue",
        "dist-tags": {"latest": "2.0.0"},
        "versions": {
            v: {
                "name": "@stencil/template-vue",
                "version": v,
                "dist": {"tarball": f"https://registry.test/@stencil/template-vue/-/template-vue-{v}.tgz"},
            }
            for v in versions
        },
    }


def build_tarball(files: dict[str, str | bytes], top: str = "package") -> bytes:
    """Build an in-memory ``.tgz`` laid out like an npm tarball."""
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w:gz") as archive:
        for name, content in files.items():
            data = content.encode("utf-8") if isinstance(content, str) else content
            info = tarfile.TarInfo(f"{top}/{name}" if top else name)
            info.size = len(data)
            info.mode = 0o644
            archive.addfile(info, io.BytesIO(data))
    return buffer.getvalue()


@pytest.fixture
def tarball_factory():
    """Factory fixture around :func:`build_tarball`."""
    return build_tarball


# ---------------------------------------------------------------------------
# Templates
# ---------------------------------------------------------------------------

@pytest.fixture
def template_records() -> list[dict[str, Any]]:
    """Raw catalog records as served by the template source."""
    return [
        {
            "npmName": "@stencil/template-vue",
            "name": "Vue project",
            "version": "1.0.0",
            "type": "normal",
            "tag": ["project"],
            "ignore": ["**/public/**"],
            "installCommand": "npm install",
            "startCommand": "npm run serve",
        },
        {
            "npmName": "@stencil/template-widget",
            "name": "Widget component",
            "version": "latest",
            "type": "normal",
            "tag": ["component"],
        },
        {
            "npmName": "@stencil/template-custom",
            "name": "Custom project",
            "version": "latest",
            "type": "custom",
            "tag": ["project"],
        },
    ]


@pytest.fixture
def templates(template_records: list[dict[str, Any]]) -> list[TemplateMetadata]:
    return [TemplateMetadata.model_validate(r) for r in template_records]


@pytest.fixture
def template_package(tmp_path: Path) -> Path:
    """A template package on disk: ``package.json`` plus a ``template/`` tree."""
    root = tmp_path / "pkg"
    (root / "template" / "src").mkdir(parents=True)
    (root / "template" / "public").mkdir()
    (root / "template" / "node_modules" / "dep").mkdir(parents=True)
    (root / "package.json").write_text(
        json.dumps({"name": "@stencil/template-vue", "version": "1.0.0", "main": "index.js"}),
        encoding="utf-8",
    )
    (root / "index.js").write_text("console.log('install')\n", encoding="utf-8")
    (root / "template" / "package.json").write_text(
        '{"name": "<%= projectName %>", "version": "<%= projectVersion %>"}\n',
        encoding="utf-8",
    )
    (root / "template" / "src" / "App.vue").write_text(
        "<template><div>{{ msg }}</div></template>\n<!-- <%= className %> -->\n",
        encoding="utf-8",
    )
    (root / "template" / "public" / "index.html").write_text(
        "<title><%= projectName %></title>\n", encoding="utf-8"
    )
    (root / "template" / "node_modules" / "dep" / "index.js").write_text(
        "module.exports = '<%= untouched %>'\n", encoding="utf-8"
    )
    return root


# ---------------------------------------------------------------------------
# HTTP & subprocess mocks
# ---------------------------------------------------------------------------

def make_response(json_data: Any = None, content: bytes = b"", status_code: int = 200) -> MagicMock:
    """Build a MagicMock that quacks like an ``httpx.Response``."""
    response = MagicMock()
    response.status_code = status_code
    response.json.return_value = json_data
    response.content = content
    response.raise_for_status = MagicMock()
    return response


def make_async_client(get: AsyncMock) -> AsyncMock:
    """Wrap *get* in an AsyncMock usable as ``async with httpx.AsyncClient()``."""
    mock_client = AsyncMock()
    mock_client.get = get
    mock_client.__aenter__ = AsyncMock(return_value=mock_client)
    mock_client.__aexit__ = AsyncMock(return_value=False)
    return mock_client


@pytest.fixture
def mock_subprocess():
    """Mock asyncio subprocess for testing command execution.

    Returns a factory that creates mock subprocess instances with configurable
    stdout, stderr, and return codes.

    Usage:
        def test_command(mock_subprocess):
            proc = mock_subprocess(stdout="output", returncode=0)
            with patch("asyncio.create_subprocess_exec", return_value=proc):
                ...
    """
    def factory(
        stdout: str = "",
        stderr: str = "",
        returncode: int = 0,
    ) -> AsyncMock:
        mock_proc = AsyncMock()
        mock_proc.communicate = AsyncMock(
            return_value=(stdout.encode("utf-8"), stderr.encode("utf-8"))
        )
        mock_proc.returncode = returncode
        mock_proc.pid = 99999
        mock_proc.kill = MagicMock()
        mock_proc.wait = AsyncMock(return_value=returncode)
        return mock_proc

    return factory


@pytest.fixture
def http_response():
    """Factory fixture around :func:`make_response`."""
    return make_response


@pytest.fixture
def async_client():
    """Factory fixture around :func:`make_async_client`."""
    return make_async_client
