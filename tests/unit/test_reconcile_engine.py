"""Unit tests for the reconciliation engine."""

from __future__ import annotations

import json

import msgspec
import pytest

from nexus_badges.common.http import ErrorKind
from nexus_badges.github import GitHubAPIError, GitHubConfigError
from nexus_badges.nexus import NexusAPIError, NexusConfigError
from nexus_badges.reconcile import (
    AutomationPushError,
    NotInitializedError,
    ReconciliationEngine,
    SyncConflictError,
    is_retryable_write_error,
)
from nexus_badges.registry import AutomationTarget, Credentials
from tests.unit.reconcile_test_helpers import (
    ELDEN_RING,
    SKYRIM,
    FakeActions,
    FakeCountFetcher,
    FakeGist,
    counts,
    make_registry,
)

AUTOMATION = AutomationTarget(owner="alice", repo="nexus_badges")


def _engine(
    gist: FakeGist,
    fetcher: FakeCountFetcher | None = None,
    actions: FakeActions | None = None,
) -> ReconciliationEngine:
    return ReconciliationEngine(gist=gist, counts=fetcher, actions=actions)


class TestSync:
    """Tests for ReconciliationEngine.sync."""

    @pytest.mark.asyncio
    async def test_first_sync_publishes_entry(self) -> None:
        """A tracked item's counts are written under its key."""
        gist = FakeGist()
        fetcher = FakeCountFetcher({ELDEN_RING.key: counts("Seamless", 10_110, 5)})

        outcome = await _engine(gist, fetcher).sync(make_registry(ELDEN_RING))

        entry = gist.document["eldenring:4825"]
        assert entry["total"] == 10_110, "Expected the raw total."
        assert entry["total_display"] == "10.1k", "Expected the compact total."
        assert outcome.registry.published == ("eldenring:4825",), (
            "Expected the key recorded as published."
        )
        assert outcome.registry.counts[ELDEN_RING.key].total == 10_110, (
            "Expected refreshed counts in the registry."
        )
        assert outcome.report.document_written, "Expected a write."
        assert outcome.report.attempts == 1, "Expected a single attempt."
        assert set(outcome.entries) == {"eldenring:4825"}, "Expected owned entry."

    @pytest.mark.asyncio
    async def test_second_sync_with_same_counts_skips_write(self) -> None:
        """Re-running with unchanged counts does not write the document."""
        gist = FakeGist()
        fetcher = FakeCountFetcher({ELDEN_RING.key: counts("Seamless", 42, 7)})
        engine = _engine(gist, fetcher)

        first = await engine.sync(make_registry(ELDEN_RING))
        document_after_first = json.dumps(gist.document, sort_keys=True)
        second = await engine.sync(first.registry)

        assert len(gist.writes) == 1, "Expected only the first sync to write."
        assert json.dumps(gist.document, sort_keys=True) == document_after_first, (
            "Expected the document unchanged by the second sync."
        )
        assert not second.report.document_written, "Expected the write skipped."
        assert second.registry == first.registry, "Expected a stable registry."

    @pytest.mark.asyncio
    async def test_foreign_keys_survive(self) -> None:
        """Entries written by other installations are left alone."""
        foreign = {"label": "Someone else", "total": 1}
        gist = FakeGist({"fallout4:1": foreign})
        fetcher = FakeCountFetcher({ELDEN_RING.key: counts("Seamless", 1, 1)})

        await _engine(gist, fetcher).sync(make_registry(ELDEN_RING))

        assert gist.document["fallout4:1"] == foreign, "Expected foreign key kept."

    @pytest.mark.asyncio
    async def test_removed_item_deletes_exactly_its_key(self) -> None:
        """An untracked, previously published key is the only deletion."""
        gist = FakeGist(
            {
                ELDEN_RING.key: {"label": "old"},
                SKYRIM.key: {"label": "old"},
                "fallout4:1": {"label": "foreign"},
            }
        )
        fetcher = FakeCountFetcher({ELDEN_RING.key: counts("Seamless", 3, 2)})
        registry = make_registry(ELDEN_RING, published=(ELDEN_RING.key, SKYRIM.key))

        outcome = await _engine(gist, fetcher).sync(registry)

        assert set(gist.document) == {ELDEN_RING.key, "fallout4:1"}, (
            "Expected only the removed item's key to disappear."
        )
        assert outcome.report.removed == [SKYRIM.key], "Expected the removal noted."
        assert outcome.registry.published == (ELDEN_RING.key,), (
            "Expected the removed key no longer published."
        )

    @pytest.mark.asyncio
    async def test_conflicts_exhaust_after_three_attempts(self) -> None:
        """Losing every revision race raises after exactly three attempts."""
        gist = FakeGist()
        gist.conflicts_remaining = 10
        fetcher = FakeCountFetcher({ELDEN_RING.key: counts("Seamless", 1, 1)})
        registry = make_registry(ELDEN_RING)
        snapshot = msgspec.json.encode(registry)

        with pytest.raises(SyncConflictError) as excinfo:
            await _engine(gist, fetcher).sync(registry)

        assert excinfo.value.attempts == 3, "Expected three attempts reported."
        assert gist.fetches == 3, "Expected one read per attempt."
        assert gist.writes == [], "Expected no successful write."
        assert msgspec.json.encode(registry) == snapshot, (
            "Expected the caller's registry untouched."
        )

    @pytest.mark.asyncio
    async def test_conflict_then_success_merges_concurrent_write(self) -> None:
        """A retried merge keeps the entry another writer added meanwhile."""
        gist = FakeGist()
        gist.conflicts_remaining = 1
        fetcher = FakeCountFetcher({ELDEN_RING.key: counts("Seamless", 1, 1)})

        outcome = await _engine(gist, fetcher).sync(make_registry(ELDEN_RING))

        assert outcome.report.attempts == 2, "Expected a second attempt."
        assert set(gist.document) == {ELDEN_RING.key, "other:1"}, (
            "Expected the concurrent writer's entry preserved."
        )

    @pytest.mark.asyncio
    async def test_transient_write_failure_is_retried(self) -> None:
        """A transient failure during the write phase earns another attempt."""
        gist = FakeGist()
        failures = [GitHubAPIError.http_error("gist.write", 502)]

        def flaky(store: FakeGist) -> None:
            del store
            if failures:
                raise failures.pop()

        gist.before_write = flaky
        fetcher = FakeCountFetcher({ELDEN_RING.key: counts("Seamless", 1, 1)})

        outcome = await _engine(gist, fetcher).sync(make_registry(ELDEN_RING))

        assert outcome.report.attempts == 2, "Expected the write retried once."
        assert len(gist.writes) == 1, "Expected one successful write."

    @pytest.mark.asyncio
    async def test_read_failure_is_not_retried(self) -> None:
        """A failure reading the document aborts immediately."""
        gist = FakeGist()
        gist.fetch_error = GitHubAPIError.http_error("gist.read", 404)
        fetcher = FakeCountFetcher({ELDEN_RING.key: counts("Seamless", 1, 1)})

        with pytest.raises(GitHubAPIError):
            await _engine(gist, fetcher).sync(make_registry(ELDEN_RING))

        assert gist.fetches == 1, "Expected a single read."

    @pytest.mark.asyncio
    async def test_failed_item_is_skipped_and_reported(self) -> None:
        """One item's fetch failure does not block the others."""
        gist = FakeGist({SKYRIM.key: {"label": "previous"}})
        fetcher = FakeCountFetcher(
            {
                ELDEN_RING.key: counts("Seamless", 9, 9),
                SKYRIM.key: NexusAPIError.http_error(SKYRIM.key, 404),
            }
        )
        registry = make_registry(ELDEN_RING, SKYRIM, published=(SKYRIM.key,))

        outcome = await _engine(gist, fetcher).sync(registry)

        assert outcome.report.partial, "Expected a partial result."
        assert [f.item for f in outcome.report.failed] == [SKYRIM], (
            "Expected the failing item reported."
        )
        assert outcome.report.failed[0].kind is ErrorKind.NOT_FOUND, (
            "Expected the failure kind recorded."
        )
        assert gist.document[SKYRIM.key] == {"label": "previous"}, (
            "Expected the failed item's entry left as it was."
        )
        assert gist.document[ELDEN_RING.key]["total"] == 9, (
            "Expected the healthy item refreshed."
        )
        assert set(outcome.registry.published) == {ELDEN_RING.key, SKYRIM.key}, (
            "Expected the failed item to stay published."
        )

    @pytest.mark.asyncio
    async def test_unauthorized_aborts_before_writing(self) -> None:
        """A rejected Nexus key fails the whole run."""
        gist = FakeGist()
        fetcher = FakeCountFetcher(
            {ELDEN_RING.key: NexusAPIError.http_error(ELDEN_RING.key, 401)}
        )

        with pytest.raises(NexusAPIError) as excinfo:
            await _engine(gist, fetcher).sync(make_registry(ELDEN_RING))

        assert excinfo.value.kind is ErrorKind.UNAUTHORIZED, "Expected 401 raised."
        assert gist.fetches == 0, "Expected the document never read."

    @pytest.mark.asyncio
    async def test_requires_gist(self) -> None:
        """Syncing before init raises NotInitializedError."""
        with pytest.raises(NotInitializedError, match="init"):
            await _engine(FakeGist()).sync(make_registry(ELDEN_RING, gist_id=""))

    @pytest.mark.asyncio
    async def test_missing_nexus_key_raises_on_fetch(self) -> None:
        """Fetching counts without a count source is a configuration error."""
        with pytest.raises(NexusConfigError):
            await _engine(FakeGist()).sync(make_registry(ELDEN_RING))

    @pytest.mark.asyncio
    async def test_removal_only_sync_needs_no_count_source(self) -> None:
        """With no tracked items the removal still happens without Nexus."""
        gist = FakeGist({SKYRIM.key: {"label": "old"}})

        outcome = await _engine(gist).sync(make_registry(published=(SKYRIM.key,)))

        assert gist.document == {}, "Expected the removed key deleted."
        assert outcome.registry.published == (), "Expected nothing published."

    @pytest.mark.asyncio
    async def test_change_pushes_mirror_delta(self) -> None:
        """A sync after a registry change pushes only the changed values."""
        gist = FakeGist()
        fetcher = FakeCountFetcher({ELDEN_RING.key: counts("Seamless", 1, 1)})
        actions = FakeActions()
        previous = make_registry(
            automation=AUTOMATION, credentials=Credentials(nexus_key="n")
        )
        current = msgspec.structs.replace(previous, items=(ELDEN_RING,))

        outcome = await _engine(gist, fetcher, actions).sync(
            current, previous=previous
        )

        assert set(actions.variables) == {"TRACKED_MODS"}, (
            "Expected only the item list pushed."
        )
        assert actions.secrets == {}, "Expected unchanged secrets left alone."
        assert outcome.report.automation_pushed, "Expected the push reported."

    @pytest.mark.asyncio
    async def test_mirror_failure_is_a_warning(self) -> None:
        """A rejected mirror value does not fail the sync."""
        gist = FakeGist()
        fetcher = FakeCountFetcher({ELDEN_RING.key: counts("Seamless", 1, 1)})
        actions = FakeActions(failing={"TRACKED_MODS"})
        previous = make_registry(automation=AUTOMATION)
        current = msgspec.structs.replace(previous, items=(ELDEN_RING,))

        outcome = await _engine(gist, fetcher, actions).sync(
            current, previous=previous
        )

        assert outcome.report.document_written, "Expected the document written."
        assert outcome.report.partial, "Expected a partial result."
        assert any("TRACKED_MODS" in w for w in outcome.report.warnings), (
            "Expected the failed variable named in a warning."
        )


class TestInitialize:
    """Tests for ReconciliationEngine.initialize."""

    @pytest.mark.asyncio
    async def test_creates_gist_with_entries(self) -> None:
        """A new gist is created holding every fetched entry."""
        gist = FakeGist()
        fetcher = FakeCountFetcher({ELDEN_RING.key: counts("Seamless", 5, 4)})

        outcome = await _engine(gist, fetcher).initialize(
            make_registry(ELDEN_RING, gist_id="")
        )

        assert outcome.registry.gist_id == "created-gist", "Expected new gist id."
        assert list(gist.created[0]) == [ELDEN_RING.key], "Expected seeded entry."
        assert outcome.registry.published == (ELDEN_RING.key,), (
            "Expected the seeded key published."
        )
        assert outcome.report.warnings == [], "Expected no warnings."

    @pytest.mark.asyncio
    async def test_replacing_gist_warns(self) -> None:
        """Re-initialising reports the replaced gist id."""
        gist = FakeGist()
        fetcher = FakeCountFetcher({ELDEN_RING.key: counts("Seamless", 5, 4)})

        outcome = await _engine(gist, fetcher).initialize(
            make_registry(ELDEN_RING, gist_id="old-gist")
        )

        assert outcome.report.warnings == [
            "Previous gist_id: old-gist, was replaced"
        ], "Expected the replacement warning."

    @pytest.mark.asyncio
    async def test_pushes_new_gist_id(self) -> None:
        """The new gist id is mirrored to the Actions host."""
        actions = FakeActions()
        fetcher = FakeCountFetcher({ELDEN_RING.key: counts("Seamless", 5, 4)})

        await _engine(FakeGist(), fetcher, actions).initialize(
            make_registry(ELDEN_RING, gist_id="", automation=AUTOMATION)
        )

        assert actions.variables.get("GIST_ID") == "created-gist", (
            "Expected GIST_ID pushed."
        )


class TestAutomation:
    """Tests for init_actions, set_automation and push_mirror."""

    @pytest.mark.asyncio
    async def test_init_actions_pushes_everything_then_enables(self) -> None:
        """A full push precedes enabling the workflow."""
        actions = FakeActions()
        registry = make_registry(
            ELDEN_RING,
            automation=AUTOMATION,
            credentials=Credentials(nexus_key="n", git_token="g"),
        )

        result = await _engine(FakeGist(), actions=actions).init_actions(registry)

        assert result.ok, "Expected a complete push."
        assert set(actions.secrets) == {"NEXUS_KEY", "GIT_TOKEN"}, "Expected secrets."
        assert set(actions.variables) == {"TRACKED_MODS", "GIST_ID"}, (
            "Expected variables."
        )
        assert actions.workflow_enabled is True, "Expected the workflow enabled."

    @pytest.mark.asyncio
    async def test_init_actions_incomplete_leaves_workflow(self) -> None:
        """A failed value prevents enabling the workflow."""
        actions = FakeActions(failing={"NEXUS_KEY"})
        registry = make_registry(
            automation=AUTOMATION, credentials=Credentials(nexus_key="n")
        )

        with pytest.raises(AutomationPushError, match="NEXUS_KEY"):
            await _engine(FakeGist(), actions=actions).init_actions(registry)

        assert actions.workflow_enabled is None, "Expected the workflow untouched."

    @pytest.mark.asyncio
    async def test_set_automation_requires_repository(self) -> None:
        """Toggling without a configured repository fails."""
        with pytest.raises(GitHubConfigError):
            await _engine(FakeGist(), actions=FakeActions()).set_automation(
                make_registry(), enabled=False
            )

    @pytest.mark.asyncio
    async def test_push_mirror_without_actions_is_noop(self) -> None:
        """No Actions host means nothing to push."""
        result = await _engine(FakeGist()).push_mirror(
            None, make_registry(automation=AUTOMATION)
        )

        assert result.pushed == (), "Expected nothing pushed."


@pytest.mark.parametrize(
    ("error", "expected"),
    [
        (GitHubAPIError.revision_conflict("gist.write", "1", "2"), True),
        (GitHubAPIError.http_error("gist.write", 503), True),
        (GitHubAPIError.http_error("gist.read", 503), False),
        (GitHubAPIError.http_error("gist.write", 401), False),
        (ValueError("boom"), False),
    ],
)
def test_is_retryable_write_error(error: Exception, *, expected: bool) -> None:
    """Conflicts and transient write failures are retryable."""
    assert is_retryable_write_error(error) is expected, (
        f"Expected retryable={expected} for {error!r}."
    )
