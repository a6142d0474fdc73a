"""stencil init pipeline.

Implements ``stencil init`` as three stages run strictly in order:

Stage PREPARE  -- Load the template catalog, guard the target directory,
                  collect the project info and pick the template.
Stage DOWNLOAD -- Install the template package into the cache, or update it
                  to the newest version when a copy is already cached.
Stage INSTALL  -- Materialise the template (normal or custom strategy) and
                  run its whitelisted install/start commands.

Usage::

    stencil init my-app
    stencil --debug init my-app --force
    stencil -tp ./local-template init my-app
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any

from rich.panel import Panel

from stencil import DIST_NAME, __version__
from stencil.config import Config
from stencil.errors import CommandFailedError, InstallError, ScaffoldError
from stencil.guard import CommandWhitelistGuard
from stencil.package import Package, PackageDescriptor, PackageInstaller
from stencil.project import ProjectInfo, ProjectInfoCollector
from stencil.registry_client import RegistryClient, VersionResolver, parse_version
from stencil.templates import TemplateCatalog, TemplateMetadata, TemplateRenderer
from stencil.templates.catalog import TemplateType
from stencil.templates.strategies import (
    InstallContext,
    InstallStrategy,
    default_strategies,
    install_template,
)
from stencil.utils import (
    console,
    empty_dir,
    is_dir_empty,
    log,
    print_summary_table,
    spinner,
)

PYPI_SIMPLE_JSON = "application/vnd.pypi.simple.v1+json"


class PipelineStage(str, Enum):
    PREPARE = "prepare"
    DOWNLOAD = "download"
    INSTALL = "install"


# ---------------------------------------------------------------------------
# Pipeline Orchestrator
# ---------------------------------------------------------------------------


class InitPipeline:
    """Orchestrates one ``stencil init`` run.

    Every collaborator can be injected, which is how the tests replace the
    interactive collector, the template source and the registry.

    Attributes:
        config: Configuration for this run.
        state: Dictionary that accumulates results from each stage.
    """

    STAGES: tuple[PipelineStage, ...] = (
        PipelineStage.PREPARE,
        PipelineStage.DOWNLOAD,
        PipelineStage.INSTALL,
    )

    _STAGE_METHODS: dict[PipelineStage, str] = {
        PipelineStage.PREPARE: "stage_prepare",
        PipelineStage.DOWNLOAD: "stage_download",
        PipelineStage.INSTALL: "stage_install",
    }

    def __init__(
        self,
        config: Config,
        project_name: str = "",
        *,
        collector: ProjectInfoCollector | None = None,
        catalog: TemplateCatalog | None = None,
        resolver: VersionResolver | None = None,
        installer: PackageInstaller | None = None,
        strategies: dict[TemplateType, InstallStrategy] | None = None,
    ) -> None:
        self.config = config
        self.project_name = project_name
        self.collector = collector or ProjectInfoCollector(console)
        self.catalog = catalog or TemplateCatalog(
            config.template_source, timeout=config.registry.timeout
        )
        self.resolver = resolver or VersionResolver(
            RegistryClient(config.registry_url, timeout=config.registry.timeout)
        )
        self.installer = installer or PackageInstaller(timeout=config.registry.timeout)
        self.strategies = strategies or default_strategies(
            TemplateRenderer(), CommandWhitelistGuard(), config.command_timeout
        )

        self.templates: list[TemplateMetadata] = []
        self.project_info: ProjectInfo | None = None
        self.template_info: TemplateMetadata | None = None
        self.package: Package | None = None
        self.state: dict[str, Any] = {
            "started_at": datetime.now(timezone.utc).isoformat(),
            "stages_completed": [],
            "halted": False,
            "success": False,
            "exit_code": 0,
        }

    # ------------------------------------------------------------------
    # Stage dispatch
    # ------------------------------------------------------------------

    async def run(self) -> dict[str, Any]:
        """Execute every stage in order.

        Returns:
            The final state dictionary, including a top-level ``success``
            boolean and the ``exit_code`` the process should end with.
        """
        log.verbose("target directory", str(self.config.cwd))
        try:
            for stage in self.STAGES:
                method = getattr(self, self._STAGE_METHODS[stage])
                proceed = await method()
                self.state["stages_completed"].append(stage.value)
                if proceed is False:
                    self.state["halted"] = True
                    log.warn("Initialisation cancelled")
                    return self.state
        except ScaffoldError as exc:
            self.state["error"] = str(exc)
            self.state["error_type"] = type(exc).__name__
            self.state["exit_code"] = _exit_code_for(exc)
            log.error(str(exc))
            if self.config.debug:
                console.print_exception()
            return self.state

        self.state["success"] = True
        self._print_final_summary()
        return self.state

    # ------------------------------------------------------------------
    # PREPARE
    # ------------------------------------------------------------------

    async def stage_prepare(self) -> bool:
        """Load templates, guard the target directory, collect project info.

        Returns ``False`` if the user declined to continue in a non-empty
        directory; nothing on disk has been touched in that case.
        """
        self.templates = await self.catalog.list_templates()

        target = self.config.cwd
        if not is_dir_empty(target):
            if not (self.config.force or self.collector.confirm_continue()):
                return False
            if self.collector.confirm_empty():
                empty_dir(target)
                log.verbose("emptied", str(target))

        info, matching = self.collector.collect(self.templates, self.project_name)
        self.project_info = info
        self.template_info = TemplateCatalog.find(matching, info.template_id)
        log.verbose("project", info.model_dump_json())
        return True

    # ------------------------------------------------------------------
    # DOWNLOAD
    # ------------------------------------------------------------------

    def _build_package(self, template: TemplateMetadata) -> Package:
        if self.config.target_path is not None:
            descriptor = PackageDescriptor(
                name=template.npm_name,
                requested_version=template.version,
                target_path=self.config.target_path,
            )
        else:
            descriptor = PackageDescriptor(
                name=template.npm_name,
                requested_version=template.version,
                target_path=self.config.template_dir,
                cache_root_dir=self.config.template_store_dir,
            )
        return Package(descriptor, self.resolver, self.installer, self.config.registry_url)

    async def stage_download(self) -> bool:
        """Make the chosen template package available on disk."""
        if self.template_info is None:
            raise ScaffoldError("No template selected; the prepare stage must run first")
        package = self._build_package(self.template_info)
        self.package = package

        if not package.descriptor.cached:
            if not await package.exists():
                raise InstallError(f"Local template package not found: {package.descriptor.target_path}")
            log.notice("Using local template package", str(package.descriptor.target_path))
            return True

        self.config.ensure_directories()
        if not await package.exists():
            with spinner("Downloading template..."):
                await package.install()
            log.success("Template downloaded", f"{package.name}@{package.version}")
        else:
            with spinner("Updating template..."):
                await package.update()
            log.success("Template updated", f"{package.name}@{package.version}")
        return True

    # ------------------------------------------------------------------
    # INSTALL
    # ------------------------------------------------------------------

    async def stage_install(self) -> bool:
        """Materialise the template into the working directory."""
        if self.template_info is None or self.project_info is None or self.package is None:
            raise ScaffoldError("The install stage needs the prepare and download stages first")
        context = InstallContext(
            template=self.template_info,
            package=self.package,
            project=self.project_info,
            target_dir=self.config.cwd,
        )
        code = await install_template(context, self.strategies)
        self.state["exit_code"] = code or 0
        return True

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    def _print_final_summary(self) -> None:
        if self.project_info is None or self.template_info is None:
            return
        print_summary_table(
            {
                "Name": self.project_info.name,
                "Version": self.project_info.version,
                "Template": self.template_info.name,
                "Package": f"{self.package.name}@{self.package.version}" if self.package else "-",
                "Directory": str(self.config.cwd),
            },
            title=f"{self.project_info.kind.value.capitalize()} created",
        )


# ---------------------------------------------------------------------------
# Module-level helpers
# ---------------------------------------------------------------------------


def _exit_code_for(exc: ScaffoldError) -> int:
    """A failed install/start command ends the CLI with the command's code."""
    if isinstance(exc, CommandFailedError) and exc.returncode and exc.returncode > 0:
        return exc.returncode
    return 1


def check_user_home(config: Config) -> None:
    """Refuse to run without a usable home directory for the cache."""
    if not config.home.exists():
        raise ScaffoldError(f"Home directory of the current user does not exist: {config.home}")


async def check_for_update(config: Config, current_version: str = __version__) -> str | None:
    """Warn when a newer compatible release of stencil is published.

    Advisory only: registry problems are logged at verbose level and the run
    continues.  Returns the newer version, if any.
    """
    resolver = VersionResolver(
        RegistryClient(
            config.registry.update_index_url,
            timeout=config.registry.timeout,
            headers={"Accept": PYPI_SIMPLE_JSON},
        )
    )
    try:
        latest = await resolver.resolve_satisfying(current_version, DIST_NAME)
    except ScaffoldError as exc:
        log.verbose("update check skipped", str(exc))
        return None
    current = parse_version(current_version)
    candidate = parse_version(latest) if latest else None
    if candidate is None or current is None or candidate <= current:
        return None
    log.warn(
        f"Update available for {DIST_NAME}: {current_version} -> {latest}. "
        f"Run: pip install -U {DIST_NAME}"
    )
    return latest


async def _run_init(config: Config, project_name: str) -> dict[str, Any]:
    await check_for_update(config)
    console.print(
        Panel(
            f"[bold bright_cyan]stencil {__version__}[/bold bright_cyan]\n"
            f"Directory : {config.cwd}\n"
            f"Templates : {config.template_source}\n"
            f"Registry  : {config.registry_url}",
            title="[bold]init[/bold]",
            border_style="bright_cyan",
        )
    )
    pipeline = InitPipeline(config, project_name)
    return await pipeline.run()


# ---------------------------------------------------------------------------
# CLI entry point
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    """Build the ``stencil`` argument parser.

    Global flags are accepted both before and after the sub-command.
    """
    shared = argparse.ArgumentParser(add_help=False)
    shared.add_argument(
        "-d", "--debug", action="store_true", default=argparse.SUPPRESS,
        help="Enable debug output",
    )
    shared.add_argument(
        "-tp", "--targetPath", dest="target_path", default=argparse.SUPPRESS,
        help="Use a local template package directory instead of the registry",
    )

    parser = argparse.ArgumentParser(
        prog="stencil",
        description="stencil -- scaffold projects from registry templates",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=(
            "Examples:\n"
            "  stencil init my-app\n"
            "  stencil init my-app --force\n"
            "  stencil --debug -tp ./my-template init my-app\n"
        ),
    )
    parser.add_argument("-V", "--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("-d", "--debug", action="store_true", default=False, help="Enable debug output")
    parser.add_argument(
        "-tp", "--targetPath", dest="target_path", default=None,
        help="Use a local template package directory instead of the registry",
    )

    commands = parser.add_subparsers(dest="command", metavar="<command>")
    init = commands.add_parser("init", parents=[shared], help="Initialise a project or component")
    init.add_argument("project_name", nargs="?", default="", help="Project name")
    init.add_argument("-f", "--force", action="store_true", help="Initialise even if the directory is not empty")
    return parser


def main(argv: list[str] | None = None) -> None:
    """CLI entry point for ``stencil`` / ``python -m stencil.pipeline``."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    config = Config.from_env(
        debug=True if args.debug else None,
        force=args.force,
        target_path=Path(args.target_path).resolve() if args.target_path else None,
    )
    log.set_level("verbose" if config.debug else "info")

    try:
        check_user_home(config)
    except ScaffoldError as exc:
        log.error(str(exc))
        sys.exit(1)

    result = asyncio.run(_run_init(config, args.project_name))
    sys.exit(result["exit_code"])


if __name__ == "__main__":
    main()
