"""Whitelist gate for template-declared shell commands.

Templates may declare install/start commands.  Those strings come from the
template registry, so before anything is spawned the executable must be one
of a fixed set of package managers; anything else (``rm -rf ~`` and friends)
is refused outright.
"""

from __future__ import annotations

import shlex

from stencil.errors import ForbiddenCommandError

WHITELISTED_COMMANDS: frozenset[str] = frozenset({"npm", "cnpm"})


class CommandWhitelistGuard:
    """Set-membership check against an immutable whitelist."""

    def __init__(self, allowed: frozenset[str] = WHITELISTED_COMMANDS) -> None:
        self._allowed = frozenset(allowed)

    @property
    def allowed(self) -> frozenset[str]:
        return self._allowed

    def is_allowed(self, executable: str) -> bool:
        return executable in self._allowed

    def check(self, command: str) -> list[str]:
        """Split *command* into argv and verify its executable.

        Raises:
            ForbiddenCommandError: If the command is empty, cannot be
                tokenised, or its first token is not whitelisted.
        """
        try:
            argv = shlex.split(command)
        except ValueError as exc:
            raise ForbiddenCommandError(command) from exc
        if not argv or not self.is_allowed(argv[0]):
            raise ForbiddenCommandError(command)
        return argv
