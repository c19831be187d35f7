"""Pure overlay of registry-owned entries onto the remote document.

The merge only touches keys owned by this installation: keys of tracked
items (upserted) and keys it previously published for items that have since
been removed (deleted). Every other key is carried over verbatim.
"""

from __future__ import annotations

import typing as typ

import msgspec

from nexus_badges.badges.counts import format_download_count
from nexus_badges.nexus.client import mod_page_url

from .models import DocumentEntry

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    from nexus_badges.github.gist import Document
    from nexus_badges.registry.models import ItemCounts, Registry, TrackedItem


def entry_for(item: TrackedItem, counts: ItemCounts) -> DocumentEntry:
    """Build the document entry for freshly fetched counts."""
    return DocumentEntry(
        label=counts.name,
        url=mod_page_url(item),
        total=counts.total,
        unique=counts.unique,
        total_display=format_download_count(counts.total),
        unique_display=format_download_count(counts.unique),
    )


def removed_keys(registry: Registry) -> frozenset[str]:
    """Return published keys whose items are no longer tracked."""
    return frozenset(registry.published) - registry.item_keys


def merge_document(
    document: Document,
    upserts: cabc.Mapping[str, DocumentEntry],
    removed: cabc.Iterable[str],
) -> Document:
    """Return a new document with ``upserts`` applied and ``removed`` dropped.

    ``document`` is not modified.
    """
    merged = dict(document)
    for key in removed:
        merged.pop(key, None)
    for key, entry in upserts.items():
        merged[key] = msgspec.to_builtins(entry)
    return merged


def owned_entries(
    document: Document, items: cabc.Iterable[TrackedItem]
) -> dict[str, DocumentEntry]:
    """Return parsed entries for ``items`` present in ``document``.

    Entries that do not match :class:`DocumentEntry` are skipped.
    """
    entries: dict[str, DocumentEntry] = {}
    for item in items:
        raw = document.get(item.key)
        if raw is None:
            continue
        try:
            entries[item.key] = msgspec.convert(raw, type=DocumentEntry)
        except msgspec.ValidationError:
            continue
    return entries
