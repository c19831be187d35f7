"""Load, save and mutate the registry file.

The registry is a plain value: commands load it once, thread it explicitly
through the reconciliation calls, and save it once at the end. Saving writes
to a temporary sibling file and renames it over the target, so an interrupted
save leaves either the previous or the new registry on disk.
"""

from __future__ import annotations

import typing as typ

import msgspec

from nexus_badges.common.fs import write_atomic

from .errors import (
    DuplicateItemError,
    ItemNotTrackedError,
    RegistryFormatError,
    RegistryNotFoundError,
)
from .models import Registry, TrackedItem

if typ.TYPE_CHECKING:
    from pathlib import Path


def encode_registry(registry: Registry) -> bytes:
    """Return the on-disk representation of ``registry``."""
    return msgspec.json.format(msgspec.json.encode(registry), indent=2) + b"\n"


def decode_registry(raw: bytes, *, path: Path) -> Registry:
    """Decode registry bytes read from ``path``."""
    try:
        return msgspec.json.decode(raw, type=Registry)
    except (msgspec.DecodeError, ValueError) as exc:
        raise RegistryFormatError(path, str(exc)) from exc


def load(path: Path) -> Registry:
    """Read the registry at ``path``.

    Raises
    ------
    RegistryNotFoundError
        If the file does not exist.
    RegistryFormatError
        If the file is not a valid registry document.

    """
    try:
        raw = path.read_bytes()
    except FileNotFoundError as exc:
        raise RegistryNotFoundError(path) from exc
    return decode_registry(raw, path=path)


def load_or_default(path: Path) -> Registry:
    """Read the registry, returning an empty one on first run."""
    try:
        return load(path)
    except RegistryNotFoundError:
        return Registry()


def save(path: Path, registry: Registry) -> None:
    """Atomically replace the registry at ``path``."""
    write_atomic(path, encode_registry(registry))


def add_item(registry: Registry, domain: str, mod_id: int) -> Registry:
    """Return ``registry`` with ``(domain, mod_id)`` appended.

    Raises
    ------
    DuplicateItemError
        If the item is already tracked.

    """
    item = TrackedItem(domain=domain, mod_id=mod_id)
    if registry.tracks(item):
        raise DuplicateItemError(item)
    return msgspec.structs.replace(registry, items=(*registry.items, item))


def remove_item(registry: Registry, domain: str, mod_id: int) -> Registry:
    """Return ``registry`` without ``(domain, mod_id)``.

    The item's key stays in ``published`` so the next sync deletes its
    document entry.

    Raises
    ------
    ItemNotTrackedError
        If the item is not tracked.

    """
    item = TrackedItem(domain=domain, mod_id=mod_id)
    if not registry.tracks(item):
        raise ItemNotTrackedError(item)
    remaining = tuple(existing for existing in registry.items if existing != item)
    counts = {k: v for k, v in registry.counts.items() if k != item.key}
    return msgspec.structs.replace(registry, items=remaining, counts=counts)
