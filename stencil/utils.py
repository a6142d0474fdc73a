"""Shared utility functions for stencil.

Provides the Rich-based leveled logger, async process execution, JSON
and file-system helpers, and the glob matching used when rendering template
files.
"""

from __future__ import annotations

import asyncio
import json
import os
import re
import shutil
from collections.abc import Iterable
from functools import lru_cache
from pathlib import Path
from typing import Any

from rich.console import Console
from rich.status import Status
from rich.table import Table

console = Console()

# ---------------------------------------------------------------------------
# Leveled logging
# ---------------------------------------------------------------------------

LOG_LEVELS: dict[str, int] = {
    "verbose": 1000,
    "info": 2000,
    "success": 2000,
    "notice": 3500,
    "warn": 4000,
    "error": 5000,
}

_LEVEL_STYLES: dict[str, str] = {
    "verbose": "dim",
    "info": "green",
    "success": "bold green",
    "notice": "bold blue",
    "warn": "bold yellow",
    "error": "bold red",
}


class Log:
    """npmlog-style leveled logger rendered through a Rich console.

    Every line is prefixed with a heading and the level name.  Messages below
    the current threshold are dropped; ``verbose`` is hidden unless debug
    mode switched the threshold down.
    """

    heading = "stencil"

    def __init__(self, console: Console, level: str = "info") -> None:
        self.console = console
        self.level = level

    @property
    def is_verbose(self) -> bool:
        return LOG_LEVELS[self.level] <= LOG_LEVELS["verbose"]

    def set_level(self, level: str) -> None:
        if level not in LOG_LEVELS:
            raise ValueError(f"Unknown log level: {level}")
        self.level = level

    def _emit(self, level: str, message: str, *details: Any) -> None:
        if LOG_LEVELS[level] < LOG_LEVELS[self.level]:
            return
        style = _LEVEL_STYLES[level]
        extra = " ".join(str(d) for d in details)
        text = f"{message} {extra}" if extra else message
        self.console.print(
            f"[white on black]{self.heading}[/white on black] "
            f"[{style}]{level}[/{style}] {text}",
            highlight=False,
        )

    def verbose(self, message: str, *details: Any) -> None:
        self._emit("verbose", message, *details)

    def info(self, message: str, *details: Any) -> None:
        self._emit("info", message, *details)

    def notice(self, message: str, *details: Any) -> None:
        self._emit("notice", message, *details)

    def warn(self, message: str, *details: Any) -> None:
        self._emit("warn", message, *details)

    def error(self, message: str, *details: Any) -> None:
        self._emit("error", message, *details)

    def success(self, message: str, *details: Any) -> None:
        self._emit("success", message, *details)


log = Log(console)


def spinner(message: str = "loading...") -> Status:
    """Return a Rich status spinner to wrap a slow step in a ``with`` block."""
    return console.status(message, spinner="line")


def print_summary_table(data: dict[str, str], title: str = "Summary") -> None:
    """Print a two-column key/value summary table."""
    table = Table(title=title, show_header=True, header_style="bold cyan")
    table.add_column("Item", style="dim", no_wrap=True)
    table.add_column("Value")

    for key, value in data.items():
        table.add_row(key, str(value))

    console.print(table)
    console.print()


# ---------------------------------------------------------------------------
# Async command execution
# ---------------------------------------------------------------------------


async def run_command(
    cmd: list[str],
    cwd: str | Path | None = None,
    timeout: int = 120,
    capture: bool = True,
    env: dict[str, str] | None = None,
) -> tuple[int, str, str]:
    """Run a command asynchronously without a shell.

    Args:
        cmd: Program and arguments.
        cwd: Working directory for the child process.
        timeout: Maximum wall-clock seconds before the process is killed.
        capture: Whether to capture stdout/stderr (if ``False`` the child
            inherits the parent's streams, so interactive output is visible).
        env: Optional extra environment variables merged on top of ``os.environ``.

    Returns:
        A ``(returncode, stdout, stderr)`` tuple.  If *capture* is ``False``
        the stdout/stderr strings will be empty.  A program that cannot be
        started yields returncode 127 with the OS error in *stderr*.
    """
    merged_env: dict[str, str] | None = None
    if env:
        merged_env = {**os.environ, **env}

    stdout_pipe = asyncio.subprocess.PIPE if capture else None
    stderr_pipe = asyncio.subprocess.PIPE if capture else None

    try:
        process = await asyncio.create_subprocess_exec(
            *cmd,
            stdout=stdout_pipe,
            stderr=stderr_pipe,
            cwd=str(cwd) if cwd else None,
            env=merged_env,
        )
    except OSError as exc:
        return (127, "", f"Failed to start {cmd[0]}: {exc}")

    try:
        stdout_bytes, stderr_bytes = await asyncio.wait_for(
            process.communicate(), timeout=timeout
        )
    except asyncio.TimeoutError:
        process.kill()
        await process.wait()
        return (-1, "", f"Command timed out after {timeout}s: {' '.join(cmd)}")

    stdout_str = (stdout_bytes or b"").decode("utf-8", errors="replace").strip()
    stderr_str = (stderr_bytes or b"").decode("utf-8", errors="replace").strip()
    return (process.returncode or 0, stdout_str, stderr_str)


# ---------------------------------------------------------------------------
# Path helpers
# ---------------------------------------------------------------------------


def format_path(path: str | Path | None) -> str | None:
    """Normalise path separators to forward slashes.

    Examples::

        format_path("C:\\\\tpl\\\\index.js") -> "C:/tpl/index.js"
        format_path("/tmp/tpl/index.js")  -> "/tmp/tpl/index.js"
    """
    if path is None:
        return None
    return str(path).replace("\\", "/")


def is_dir_empty(path: str | Path) -> bool:
    """Return ``True`` if *path* holds nothing but dot-files and ``node_modules``.

    A directory that does not exist counts as empty.
    """
    dir_path = Path(path)
    if not dir_path.exists():
        return True
    visible = [
        entry.name
        for entry in dir_path.iterdir()
        if not entry.name.startswith(".") and entry.name != "node_modules"
    ]
    return not visible


def empty_dir(path: str | Path) -> None:
    """Delete everything inside *path*, keeping the directory itself."""
    dir_path = Path(path)
    if not dir_path.exists():
        dir_path.mkdir(parents=True)
        return
    for entry in dir_path.iterdir():
        if entry.is_dir() and not entry.is_symlink():
            shutil.rmtree(entry)
        else:
            entry.unlink()


def find_up(start: str | Path, filename: str) -> Path | None:
    """Return the nearest directory at or above *start* containing *filename*."""
    current = Path(start).resolve()
    for directory in (current, *current.parents):
        if (directory / filename).is_file():
            return directory
    return None


# ---------------------------------------------------------------------------
# JSON I/O
# ---------------------------------------------------------------------------


def load_json(path: str | Path) -> Any:
    """Load and parse a JSON file.

    Raises:
        FileNotFoundError: If the file does not exist.
        json.JSONDecodeError: If the file is not valid JSON.
    """
    raw = Path(path).read_text(encoding="utf-8")
    return json.loads(raw)


# ---------------------------------------------------------------------------
# Glob matching
# ---------------------------------------------------------------------------


@lru_cache(maxsize=256)
def compile_glob(pattern: str) -> re.Pattern[str]:
    """Translate a ``/``-separated glob into a compiled regular expression.

    ``**/`` matches zero or more directories, ``**`` matches anything,
    ``*`` and ``?`` never cross a ``/``.
    """
    parts: list[str] = []
    i = 0
    while i < len(pattern):
        if pattern.startswith("**/", i):
            parts.append("(?:.*/)?")
            i += 3
        elif pattern.startswith("**", i):
            parts.append(".*")
            i += 2
        elif pattern[i] == "*":
            parts.append("[^/]*")
            i += 1
        elif pattern[i] == "?":
            parts.append("[^/]")
            i += 1
        else:
            parts.append(re.escape(pattern[i]))
            i += 1
    return re.compile("".join(parts))


def matches_any(relative_path: str, patterns: Iterable[str]) -> bool:
    """Return ``True`` if the posix *relative_path* matches one of *patterns*."""
    return any(compile_glob(p).fullmatch(relative_path) for p in patterns)


def list_files(root: str | Path, ignore: Iterable[str] = ()) -> list[Path]:
    """Return every file under *root* whose relative path matches no ignore glob.

    Dot-files and anything inside a dot-directory (``.git``, ``.venv``) are
    never listed.
    """
    root_path = Path(root)
    ignore = list(ignore)
    files: list[Path] = []
    for path in sorted(root_path.rglob("*")):
        relative = path.relative_to(root_path)
        if any(part.startswith(".") for part in relative.parts):
            continue
        if not path.is_file():
            continue
        rel = relative.as_posix()
        if matches_any(rel, ignore):
            continue
        files.append(path)
    return files
