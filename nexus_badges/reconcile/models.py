"""Value types produced by the reconciliation engine."""

from __future__ import annotations

import dataclasses
import typing as typ

import msgspec

if typ.TYPE_CHECKING:
    from nexus_badges.common.http import ErrorKind
    from nexus_badges.github.gist import GistSnapshot
    from nexus_badges.registry.models import Registry, TrackedItem


class DocumentEntry(msgspec.Struct, frozen=True, kw_only=True):
    """Value stored under an item's key in the remote document.

    ``total``/``unique`` carry the raw counters; the ``*_display`` fields hold
    the compact text the badges show.
    """

    label: str
    url: str
    total: int
    unique: int
    total_display: str
    unique_display: str


@dataclasses.dataclass(frozen=True, slots=True)
class ItemFailure:
    """A tracked item whose counts could not be refreshed."""

    item: TrackedItem
    reason: str
    kind: ErrorKind | None = None


@dataclasses.dataclass(slots=True)
class SyncReport:
    """Summary of one reconciliation run.

    Attributes
    ----------
    updated
        Items whose document entries were refreshed.
    failed
        Items skipped because their count fetch failed.
    removed
        Document keys deleted because their items are no longer tracked.
    document_written
        False when the merged document matched the remote one.
    automation_pushed
        True when a registry change was mirrored to the Actions host.
    attempts
        Fetch-merge-write cycles used.
    warnings
        Non-fatal problems, e.g. a failed mirror push.

    """

    updated: list[TrackedItem] = dataclasses.field(default_factory=list)
    failed: list[ItemFailure] = dataclasses.field(default_factory=list)
    removed: list[str] = dataclasses.field(default_factory=list)
    document_written: bool = False
    automation_pushed: bool = False
    attempts: int = 0
    warnings: list[str] = dataclasses.field(default_factory=list)

    @property
    def partial(self) -> bool:
        """Return True when the run succeeded with warnings."""
        return bool(self.failed or self.warnings)


@dataclasses.dataclass(frozen=True, slots=True)
class SyncOutcome:
    """Result of :meth:`ReconciliationEngine.sync` and ``initialize``."""

    registry: Registry
    report: SyncReport
    snapshot: GistSnapshot
    entries: dict[str, DocumentEntry]


@dataclasses.dataclass(frozen=True, slots=True)
class MirrorPushResult:
    """Outcome of propagating a mirror delta to the Actions host."""

    pushed: tuple[str, ...] = ()
    failures: tuple[str, ...] = ()

    @property
    def ok(self) -> bool:
        """Return True when every value in the delta was written."""
        return not self.failures
