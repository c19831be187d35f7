"""Errors raised while reconciling the registry with remote stores."""

from __future__ import annotations

import typing as typ

if typ.TYPE_CHECKING:
    import collections.abc as cabc


class ReconcileError(Exception):
    """Base class for reconciliation errors."""


class NotInitializedError(ReconcileError):
    """Raised when syncing before a gist has been created."""

    def __init__(self) -> None:
        """Initialise with the setup hint."""
        super().__init__("Use command 'init' to initialize a new remote gist")


class NothingTrackedError(ReconcileError):
    """Raised when a command needs at least one tracked item."""

    def __init__(self) -> None:
        """Initialise with the setup hint."""
        super().__init__(
            "No mods registered, use the command 'add' to register a mod"
        )


class SyncConflictError(ReconcileError):
    """Raised when every fetch-merge-write attempt lost a revision race.

    The caller's registry value is untouched; re-running the command is safe.
    """

    def __init__(self, gist_id: str, attempts: int) -> None:
        """Initialise with the contended gist and the attempts made."""
        self.gist_id = gist_id
        self.attempts = attempts
        super().__init__(
            f"Gist {gist_id} changed during each of {attempts} update attempts"
        )


class MirrorTooLargeError(ReconcileError):
    """Raised when a mirrored variable exceeds the Actions size limit."""

    def __init__(self, name: str, size: int, limit: int) -> None:
        """Initialise with the variable name, encoded size and limit."""
        self.name = name
        self.size = size
        self.limit = limit
        super().__init__(
            f"Repository variable {name} would be {size} bytes (limit {limit})"
        )


class AutomationPushError(ReconcileError):
    """Raised when an explicit mirror push leaves some values unwritten."""

    def __init__(self, failures: cabc.Sequence[str]) -> None:
        """Initialise with one description per failed secret or variable."""
        self.failures = tuple(failures)
        super().__init__("Automation update incomplete: " + "; ".join(self.failures))
