"""Reconciliation engine keeping the registry, document and mirror in step.

A sync run refreshes counts for every tracked item, merges the fresh entries
into the remote document on top of whatever other writers put there, writes
the result back under a revision check, and (after a registry mutation)
propagates the changed values to the Actions host.

Example
-------
>>> engine = ReconciliationEngine(gist=gist, counts=nexus)  # doctest: +SKIP
>>> outcome = await engine.sync(registry)  # doctest: +SKIP
>>> outcome.report.partial  # doctest: +SKIP
False

"""

from __future__ import annotations

import asyncio
import datetime as dt
import typing as typ

import msgspec

from nexus_badges.common.http import ErrorKind
from nexus_badges.github.errors import (
    GitHubAPIError,
    GitHubConfigError,
    GitHubError,
)
from nexus_badges.nexus.errors import (
    NexusAPIError,
    NexusConfigError,
    NexusResponseShapeError,
)

from .errors import AutomationPushError, NotInitializedError, SyncConflictError
from .merge import entry_for, merge_document, owned_entries, removed_keys
from .mirror import AutomationMirror, diff, push_delta
from .models import ItemFailure, MirrorPushResult, SyncOutcome, SyncReport
from .observability import SyncEventLogger
from .retry import DEFAULT_ATTEMPTS, retry_bounded

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    from nexus_badges.github.gist import Document, GistSnapshot
    from nexus_badges.nexus.client import CountFetcher
    from nexus_badges.registry.models import ItemCounts, Registry, TrackedItem

    from .mirror import AutomationConfigurator
    from .models import DocumentEntry


class DocumentStore(typ.Protocol):
    """Revision-checked storage for the remote document."""

    async def create(self, document: Document) -> GistSnapshot:
        """Create a new document and return its first snapshot."""
        ...

    async def fetch(self, gist_id: str) -> GistSnapshot:
        """Return the current document with its revision."""
        ...

    async def write(
        self,
        gist_id: str,
        document: Document,
        *,
        expected_revision: str,
    ) -> GistSnapshot:
        """Replace the document if it is still at ``expected_revision``."""
        ...


def is_retryable_write_error(exc: Exception) -> bool:
    """Return True for revision conflicts and transient write failures."""
    if not isinstance(exc, GitHubAPIError):
        return False
    if exc.kind is ErrorKind.CONFLICT:
        return True
    return exc.kind is ErrorKind.TRANSIENT and exc.operation == "gist.write"


def _is_conflict(exc: BaseException) -> bool:
    return isinstance(exc, GitHubAPIError) and exc.kind is ErrorKind.CONFLICT


class ReconciliationEngine:
    """Run sync, init and mirror operations against injected collaborators.

    Parameters
    ----------
    gist
        Remote document store (normally :class:`GistClient`).
    counts
        Download-count source (normally :class:`NexusClient`); may be
        ``None`` for operations that never fetch counts.
    actions
        Actions host for the automation mirror; ``None`` disables mirroring.
    max_attempts
        Fetch-merge-write attempts before giving up on a contended document.
    event_logger
        Structured event sink; a default logger is used when omitted.

    """

    def __init__(
        self,
        *,
        gist: DocumentStore,
        counts: CountFetcher | None,
        actions: AutomationConfigurator | None = None,
        max_attempts: int = DEFAULT_ATTEMPTS,
        event_logger: SyncEventLogger | None = None,
    ) -> None:
        """Initialise the engine with its collaborators."""
        self._gist = gist
        self._counts = counts
        self._actions = actions
        self._max_attempts = max_attempts
        self._events = event_logger or SyncEventLogger()

    async def sync(
        self, registry: Registry, *, previous: Registry | None = None
    ) -> SyncOutcome:
        """Refresh counts and merge them into the remote document.

        Parameters
        ----------
        registry
            Current registry value. It is never modified; the updated value is
            returned in the outcome.
        previous
            Registry before the mutating command that triggered this sync.
            When given (and automation is configured) the difference is pushed
            to the Actions host after the document is written.

        Raises
        ------
        NotInitializedError
            If no gist has been created yet.
        NexusAPIError
            With kind ``unauthorized`` when the Nexus key is rejected.
        SyncConflictError
            When every attempt lost a revision race.
        GitHubAPIError
            For unrecoverable document read or write failures.

        """
        if not registry.gist_id:
            raise NotInitializedError

        gist_id = registry.gist_id
        started_at = dt.datetime.now(dt.UTC)
        self._events.log_run_started(gist_id, len(registry.items))
        report = SyncReport()

        try:
            fetched = await self._fetch_counts(registry.items, report)
            upserts = {
                item.key: entry_for(item, fetched[item.key])
                for item in registry.items
                if item.key in fetched
            }
            removed = removed_keys(registry)
            report.removed = sorted(removed)
            snapshot = await self._merge_with_retry(gist_id, upserts, removed, report)
        except Exception as exc:
            self._events.log_run_failed(
                gist_id, exc, dt.datetime.now(dt.UTC) - started_at
            )
            raise

        updated = _apply_counts(registry, fetched, upserts.keys(), removed)
        if previous is not None:
            await self._push_after_sync(previous, updated, report)

        self._events.log_run_completed(
            gist_id, report, dt.datetime.now(dt.UTC) - started_at
        )
        return SyncOutcome(
            registry=updated,
            report=report,
            snapshot=snapshot,
            entries=owned_entries(snapshot.document, updated.items),
        )

    async def initialize(self, registry: Registry) -> SyncOutcome:
        """Create a new gist seeded with fresh counts for every tracked item.

        A previously stored gist id is replaced and reported as a warning; the
        old gist itself is left alone.
        """
        report = SyncReport()
        fetched = await self._fetch_counts(registry.items, report)
        upserts = {
            item.key: entry_for(item, fetched[item.key])
            for item in registry.items
            if item.key in fetched
        }
        snapshot = await self._gist.create(merge_document({}, upserts, ()))
        report.document_written = True
        report.attempts = 1

        if registry.gist_id and registry.gist_id != snapshot.gist_id:
            report.warnings.append(
                f"Previous gist_id: {registry.gist_id}, was replaced"
            )

        counted = _apply_counts(registry, fetched, upserts.keys(), ())
        updated = msgspec.structs.replace(
            counted, gist_id=snapshot.gist_id, published=tuple(sorted(upserts))
        )
        await self._push_after_sync(registry, updated, report)
        return SyncOutcome(
            registry=updated,
            report=report,
            snapshot=snapshot,
            entries=owned_entries(snapshot.document, updated.items),
        )

    async def push_mirror(
        self, previous: Registry | None, current: Registry
    ) -> MirrorPushResult:
        """Push the values that differ between ``previous`` and ``current``.

        With ``previous=None`` every mirrored value is pushed. Nothing is sent
        when automation is not configured.

        Raises
        ------
        MirrorTooLargeError
            If the tracked-item list exceeds the variable size limit.

        """
        if self._actions is None or not current.automation.configured:
            return MirrorPushResult()

        old = AutomationMirror.from_registry(previous) if previous else None
        delta = diff(old, AutomationMirror.from_registry(current))
        result = await push_delta(self._actions, delta)

        repository = current.automation.slug
        if result.pushed:
            self._events.log_mirror_pushed(repository, result.pushed)
        for failure in result.failures:
            self._events.log_mirror_failed(repository, failure)
        return result

    async def init_actions(self, registry: Registry) -> MirrorPushResult:
        """Push the full mirror and enable the scheduled workflow.

        Raises
        ------
        AutomationPushError
            If any secret or variable could not be written; the workflow is
            left in its previous state.

        """
        result = await self.push_mirror(None, registry)
        if not result.ok:
            raise AutomationPushError(result.failures)
        await self.set_automation(registry, enabled=True)
        return result

    async def set_automation(self, registry: Registry, *, enabled: bool) -> None:
        """Enable or disable the scheduled workflow."""
        if self._actions is None or not registry.automation.configured:
            raise GitHubConfigError.missing_repository()
        await self._actions.set_workflow_enabled(enabled=enabled)

    async def _push_after_sync(
        self, previous: Registry, current: Registry, report: SyncReport
    ) -> None:
        try:
            result = await self.push_mirror(previous, current)
        except GitHubError as exc:
            result = MirrorPushResult(failures=(str(exc),))
        report.automation_pushed = bool(result.pushed) and result.ok
        report.warnings.extend(
            f"Automation not updated: {failure}" for failure in result.failures
        )

    async def _fetch_counts(
        self, items: cabc.Sequence[TrackedItem], report: SyncReport
    ) -> dict[str, ItemCounts]:
        if not items:
            return {}
        if self._counts is None:
            raise NexusConfigError.missing_key()
        counts = self._counts
        results = await asyncio.gather(
            *(counts.fetch_counts(item) for item in items),
            return_exceptions=True,
        )

        fetched: dict[str, ItemCounts] = {}
        for item, result in zip(items, results, strict=True):
            if isinstance(result, NexusAPIError):
                if result.kind is ErrorKind.UNAUTHORIZED:
                    raise result
                failure = ItemFailure(item=item, reason=str(result), kind=result.kind)
            elif isinstance(result, NexusResponseShapeError):
                failure = ItemFailure(
                    item=item, reason=str(result), kind=ErrorKind.INVALID
                )
            elif isinstance(result, BaseException):
                raise result
            else:
                fetched[item.key] = result
                report.updated.append(item)
                self._events.log_item_refreshed(item)
                continue
            report.failed.append(failure)
            self._events.log_item_failed(failure)
        return fetched

    async def _merge_with_retry(
        self,
        gist_id: str,
        upserts: dict[str, DocumentEntry],
        removed: frozenset[str],
        report: SyncReport,
    ) -> GistSnapshot:
        async def cycle(attempt: int) -> GistSnapshot:
            report.attempts = attempt
            current = await self._gist.fetch(gist_id)
            merged = merge_document(current.document, upserts, removed)
            if merged == current.document:
                report.document_written = False
                self._events.log_write_skipped(gist_id)
                return current
            written = await self._gist.write(
                gist_id, merged, expected_revision=current.revision
            )
            report.document_written = True
            return written

        def on_retry(attempt: int, exc: Exception) -> None:
            if _is_conflict(exc):
                self._events.log_write_conflict(gist_id, attempt)

        try:
            return await retry_bounded(
                cycle,
                attempts=self._max_attempts,
                should_retry=is_retryable_write_error,
                on_retry=on_retry,
            )
        except GitHubAPIError as exc:
            if exc.kind is ErrorKind.CONFLICT:
                raise SyncConflictError(gist_id, report.attempts) from exc
            raise


def _apply_counts(
    registry: Registry,
    fetched: cabc.Mapping[str, ItemCounts],
    written_keys: cabc.Iterable[str],
    removed: cabc.Iterable[str],
) -> Registry:
    """Return ``registry`` with refreshed counts and published keys."""
    tracked = registry.item_keys
    counts = {key: value for key, value in registry.counts.items() if key in tracked}
    counts.update(fetched)
    published = (set(registry.published) - set(removed)) | set(written_keys)
    return msgspec.structs.replace(
        registry, counts=counts, published=tuple(sorted(published))
    )
