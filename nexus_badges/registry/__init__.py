"""Local registry of tracked mods, credentials and automation settings.

Usage
-----
Track a new mod and persist the result::

    from nexus_badges.registry import store

    registry = store.load_or_default(path)
    registry = store.add_item(registry, "eldenring", 4825)
    store.save(path, registry)

"""

from nexus_badges.registry.errors import (
    DuplicateItemError,
    ItemNotTrackedError,
    RegistryError,
    RegistryFormatError,
    RegistryNotFoundError,
)
from nexus_badges.registry.models import (
    AutomationTarget,
    BadgeStyle,
    Credentials,
    ItemCounts,
    Registry,
    TrackedItem,
    parse_color,
)

__all__ = [
    "AutomationTarget",
    "BadgeStyle",
    "Credentials",
    "DuplicateItemError",
    "ItemCounts",
    "ItemNotTrackedError",
    "Registry",
    "RegistryError",
    "RegistryFormatError",
    "RegistryNotFoundError",
    "TrackedItem",
    "parse_color",
]
