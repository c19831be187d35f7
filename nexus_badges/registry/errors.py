"""Errors specific to the local registry."""

from __future__ import annotations

import typing as typ

if typ.TYPE_CHECKING:
    from pathlib import Path

    from .models import TrackedItem


class RegistryError(Exception):
    """Base class for registry errors."""


class RegistryNotFoundError(RegistryError):
    """Raised when no registry file exists yet."""

    def __init__(self, path: Path) -> None:
        """Initialise with the missing registry path."""
        self.path = path
        super().__init__(f"Registry not found: {path}")


class RegistryFormatError(RegistryError):
    """Raised when the registry file cannot be decoded."""

    def __init__(self, path: Path, reason: str) -> None:
        """Initialise with the registry path and decoder message."""
        self.path = path
        self.reason = reason
        super().__init__(f"Registry {path} is not valid: {reason}")


class DuplicateItemError(RegistryError):
    """Raised when adding an item that is already tracked."""

    def __init__(self, item: TrackedItem) -> None:
        """Initialise with the duplicate item."""
        self.item = item
        super().__init__(f"Mod already tracked: {item.key}")


class ItemNotTrackedError(RegistryError):
    """Raised when removing an item that is not tracked."""

    def __init__(self, item: TrackedItem) -> None:
        """Initialise with the missing item."""
        self.item = item
        super().__init__(f"Mod is not tracked: {item.key}")
