"""Behavioural coverage for cache-key rotation."""

from __future__ import annotations

import asyncio
import typing as typ

import pytest
from pytest_bdd import given, parsers, scenario, then, when

from nexus_badges.cache import CacheKeyManager, RotationAbortedError
from tests.unit.reconcile_test_helpers import (
    FakeCacheIndex,
    FakeKeyRecord,
    FakeStager,
    version_source,
)

if typ.TYPE_CHECKING:
    from nexus_badges.cache import CacheDecision

OLD_BASE = "Linux-binary-nexus-badges-100-1"
NEW_BASE = "Linux-binary-nexus-badges-200-1"


class RotationContext(typ.TypedDict, total=False):
    """Shared mutable scenario state."""

    index: FakeCacheIndex
    record: FakeKeyRecord
    stager: FakeStager
    old_key: str
    latest_version: str
    decision: CacheDecision


@pytest.fixture
def rotation_context() -> RotationContext:
    """Provide empty scenario state."""
    return {}


@scenario("../cache_rotation.feature", "A stale cached tool is replaced")
def test_stale_cache_is_rotated() -> None:
    """Wrap the pytest-bdd scenario."""


@scenario("../cache_rotation.feature", "A current cached tool is kept")
def test_current_cache_is_kept() -> None:
    """Wrap the pytest-bdd scenario."""


@scenario(
    "../cache_rotation.feature", "A failed download keeps the old cache in service"
)
def test_failed_download_keeps_cache() -> None:
    """Wrap the pytest-bdd scenario."""


def _manager(context: RotationContext) -> CacheKeyManager:
    return CacheKeyManager(
        index=context["index"],
        record=context["record"],
        stager=context["stager"],
        latest_version=version_source(context["latest_version"]),
        key_factory=lambda current, version: f"{NEW_BASE}@{version}",
    )


@given(parsers.parse('a cached tool built from version "{version}"'))
def given_cached_tool(rotation_context: RotationContext, version: str) -> None:
    """Record an existing cache entry whose key names ``version``."""
    old_key = f"{OLD_BASE}@{version}"
    index = FakeCacheIndex({old_key})
    rotation_context["index"] = index
    rotation_context["record"] = FakeKeyRecord(old_key)
    rotation_context["stager"] = FakeStager(index)
    rotation_context["old_key"] = old_key


@given(parsers.parse('the latest release is "{version}"'))
def given_latest_release(rotation_context: RotationContext, version: str) -> None:
    """Set the published release version."""
    rotation_context["latest_version"] = version


@given("downloads fail")
def given_downloads_fail(rotation_context: RotationContext) -> None:
    """Make staging fail."""
    rotation_context["stager"].fail = True


@when("rotation is requested")
def when_rotation_requested(rotation_context: RotationContext) -> None:
    """Run a rotation check against the recorded key."""
    manager = _manager(rotation_context)
    rotation_context["decision"] = asyncio.run(
        manager.rotate_if_stale(rotation_context["old_key"])
    )


@when("rotation is requested expecting an abort")
def when_rotation_aborts(rotation_context: RotationContext) -> None:
    """Run a rotation that must abort."""
    manager = _manager(rotation_context)
    with pytest.raises(RotationAbortedError):
        asyncio.run(manager.rotate_if_stale(rotation_context["old_key"]))


@then("the record names a new key")
def then_record_is_new(rotation_context: RotationContext) -> None:
    """The record switched to a key naming the latest release."""
    new_key = f"{NEW_BASE}@{rotation_context['latest_version']}"
    assert rotation_context["record"].key == new_key, "Expected the new key."
    assert new_key in rotation_context["index"].entries, "Expected it confirmed."


@then("the old cache entry is deleted")
def then_old_deleted(rotation_context: RotationContext) -> None:
    """The replaced entry was cleaned up."""
    old_key = rotation_context["old_key"]
    assert old_key not in rotation_context["index"].entries, "Expected it deleted."


@then("the record still names the old key")
def then_record_is_old(rotation_context: RotationContext) -> None:
    """The record was not switched."""
    old_key = rotation_context["old_key"]
    assert rotation_context["record"].key == old_key, "Expected the old key."


@then("the old cache entry still exists")
def then_old_exists(rotation_context: RotationContext) -> None:
    """The entry in service was not touched."""
    assert rotation_context["old_key"] in rotation_context["index"].entries, (
        "Expected it kept."
    )
