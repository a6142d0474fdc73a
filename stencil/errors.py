"""Error taxonomy for the stencil CLI.

Every fatal condition raised by the template pipeline derives from
``ScaffoldError`` so the top-level handler in ``stencil.pipeline`` can report
it uniformly.  Malformed user input is *not* part of this hierarchy: it is
rejected by the pydantic models in ``stencil.project`` with
``pydantic.ValidationError`` and the collector simply asks again.
"""

from __future__ import annotations


class ScaffoldError(Exception):
    """Base class for all fatal scaffolding errors."""


class RegistryError(ScaffoldError):
    """Raised when a registry or template source is unreachable or malformed."""

    def __init__(self, message: str, url: str = "", status_code: int | None = None) -> None:
        self.url = url
        self.status_code = status_code
        super().__init__(message)


class InstallError(ScaffoldError):
    """Raised when a package could not be fetched into the cache."""


class CustomInstallError(ScaffoldError):
    """Raised when a custom template's entry point fails."""

    def __init__(self, message: str, returncode: int | None = None) -> None:
        self.returncode = returncode
        super().__init__(message)


class ForbiddenCommandError(ScaffoldError):
    """Raised when a template asks to run an executable outside the whitelist."""

    def __init__(self, command: str) -> None:
        self.command = command
        super().__init__(f"Command is not whitelisted: {command!r}")


class CommandFailedError(ScaffoldError):
    """Raised when a whitelisted install/start command exits non-zero."""

    def __init__(self, message: str, command: str = "", returncode: int | None = None) -> None:
        self.command = command
        self.returncode = returncode
        super().__init__(message)


class UnknownTemplateTypeError(ScaffoldError):
    """Raised when a template declares a type other than normal/custom."""


class MissingEntryPointError(ScaffoldError):
    """Raised when a custom template has no resolvable entry point."""


class TemplateNotFoundError(ScaffoldError):
    """Raised when no template matches the user's selection."""


class TemplateRenderError(ScaffoldError):
    """Raised when a file of a normal template fails to render."""

    def __init__(self, message: str, path: str = "") -> None:
        self.path = path
        super().__init__(message)
