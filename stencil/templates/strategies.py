"""Template installation strategies.

A template is materialised in one of two ways, chosen by its declared type:

* ``normal``  - copy ``<package>/template`` into the target directory, render
  every copied file with the project info, then run the template's
  whitelisted install and start commands.
* ``custom``  - hand everything to the template's own entry point, run in a
  separate process with the options bundle as its only argument.
"""

from __future__ import annotations

import asyncio
import json
import shutil
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from stencil.errors import (
    CommandFailedError,
    CustomInstallError,
    MissingEntryPointError,
    UnknownTemplateTypeError,
)
from stencil.guard import CommandWhitelistGuard
from stencil.package import Package
from stencil.project import ProjectInfo
from stencil.templates.catalog import TemplateMetadata, TemplateType
from stencil.templates.renderer import TemplateRenderer
from stencil.utils import format_path, log, run_command, spinner

TEMPLATE_SUBDIR = "template"


@dataclass
class InstallContext:
    """Everything a strategy needs to materialise one template."""

    template: TemplateMetadata
    package: Package
    project: ProjectInfo
    target_dir: Path

    @property
    def source_dir(self) -> Path:
        return self.package.package_path / TEMPLATE_SUBDIR


class InstallStrategy(Protocol):
    async def install(self, context: InstallContext) -> int | None: ...


def _copy_tree(source: Path, target: Path) -> None:
    source.mkdir(parents=True, exist_ok=True)
    target.mkdir(parents=True, exist_ok=True)
    shutil.copytree(source, target, dirs_exist_ok=True)


# ---------------------------------------------------------------------------
# Normal
# ---------------------------------------------------------------------------


class NormalInstallStrategy:
    """Copy + render, followed by the template's install/start commands."""

    def __init__(
        self,
        renderer: TemplateRenderer | None = None,
        guard: CommandWhitelistGuard | None = None,
        command_timeout: int = 1800,
    ) -> None:
        self.renderer = renderer or TemplateRenderer()
        self.guard = guard or CommandWhitelistGuard()
        self.command_timeout = command_timeout

    async def install(self, context: InstallContext) -> int | None:
        """Materialise the template and return the last command's exit code.

        ``None`` means neither an install nor a start command was declared.
        """
        with spinner("Installing template..."):
            await asyncio.to_thread(_copy_tree, context.source_dir, context.target_dir)
        log.success("Template installed")

        await self.renderer.render_directory(
            context.target_dir,
            context.project.render_context(),
            ignore=context.template.ignore,
        )
        log.verbose("rendered", str(context.target_dir))

        install_code = await self.exec_command(
            context.template.install_command,
            context.target_dir,
            "Running install command...",
            "Dependency installation failed",
        )
        start_code = await self.exec_command(
            context.template.start_command,
            context.target_dir,
            "Running start command...",
            "Project start failed",
        )
        return start_code if start_code is not None else install_code

    async def exec_command(
        self,
        command: str | None,
        cwd: Path,
        start_message: str,
        error_message: str,
    ) -> int | None:
        """Run one whitelisted command with inherited stdio.

        Returns ``None`` when *command* is empty, otherwise the exit code
        (always ``0``; anything else raises).

        Raises:
            ForbiddenCommandError: The executable is not whitelisted.
            CommandFailedError: The command exited non-zero.
        """
        if not command:
            return None
        argv = self.guard.check(command)
        log.info(start_message)
        code, _, stderr = await run_command(
            argv, cwd=cwd, timeout=self.command_timeout, capture=False
        )
        if code != 0:
            detail = f": {stderr}" if stderr else ""
            raise CommandFailedError(
                f"{error_message} (exit {code}){detail}", command=command, returncode=code
            )
        return code


# ---------------------------------------------------------------------------
# Custom
# ---------------------------------------------------------------------------


def interpreter_for(entry_point: str) -> list[str]:
    """Return the argv prefix needed to run *entry_point*."""
    suffix = Path(entry_point).suffix.lower()
    if suffix in (".js", ".cjs", ".mjs"):
        return ["node"]
    if suffix == ".py":
        return [sys.executable]
    return []


class CustomInstallStrategy:
    """Delegate materialisation to the template's entry point."""

    def __init__(self, timeout: int = 1800) -> None:
        self.timeout = timeout

    @staticmethod
    def build_options(context: InstallContext) -> dict:
        return {
            "templateInfo": context.template.to_payload(),
            "projectInfo": context.project.render_context(),
            "sourcePath": format_path(context.source_dir),
            "targetPath": format_path(context.target_dir),
        }

    async def install(self, context: InstallContext) -> int | None:
        """Run the entry point and return its exit code (``0``).

        Raises:
            MissingEntryPointError: The package is absent or has no entry
                point file.  Nothing has been written at that point.
            CustomInstallError: The entry point could not be started or
                exited non-zero.
        """
        if not await context.package.exists():
            raise MissingEntryPointError(
                f"Custom template package is not installed: {context.package.name}"
            )
        entry_point = context.package.get_entry_point_path()
        if not entry_point or not Path(entry_point).is_file():
            raise MissingEntryPointError(
                f"Custom template entry point does not exist: {context.package.name}"
            )

        log.notice("Running custom template installer")
        log.verbose("entry point", entry_point)
        argv = [*interpreter_for(entry_point), entry_point, json.dumps(self.build_options(context))]
        code, _, stderr = await run_command(
            argv, cwd=context.target_dir, timeout=self.timeout, capture=False
        )
        if code != 0:
            detail = f": {stderr}" if stderr else ""
            raise CustomInstallError(
                f"Custom template installer failed (exit {code}){detail}", returncode=code
            )
        log.success("Custom template installed")
        return code


# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------


def template_type_of(template: TemplateMetadata) -> TemplateType:
    try:
        return TemplateType(template.type)
    except ValueError as exc:
        raise UnknownTemplateTypeError(
            f"Unrecognised template type: {template.type!r}"
        ) from exc


def select_strategy(
    template: TemplateMetadata,
    strategies: dict[TemplateType, InstallStrategy],
) -> InstallStrategy:
    """Pick the strategy registered for the template's type."""
    return strategies[template_type_of(template)]


def default_strategies(
    renderer: TemplateRenderer | None = None,
    guard: CommandWhitelistGuard | None = None,
    command_timeout: int = 1800,
) -> dict[TemplateType, InstallStrategy]:
    return {
        TemplateType.NORMAL: NormalInstallStrategy(renderer, guard, command_timeout),
        TemplateType.CUSTOM: CustomInstallStrategy(command_timeout),
    }


async def install_template(
    context: InstallContext,
    strategies: dict[TemplateType, InstallStrategy] | None = None,
) -> int | None:
    """Select and run the strategy for ``context.template``."""
    strategy = select_strategy(context.template, strategies or default_strategies())
    return await strategy.install(context)
