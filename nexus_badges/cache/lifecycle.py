"""Two-phase rotation of the key naming the workflow's cached tool.

The scheduled workflow restores a cached copy of nexus-badges by the key
stored in the ``CACHED_BIN`` record. Replacing that copy is done in three
independently callable transitions::

    NO_CACHE --stage--> ROTATING --commit--> CACHED
    CACHED   --stage--> ROTATING --commit--> CACHED --cleanup(old)

``stage`` stores the new artifact under a new key and confirms it through the
cache index; ``commit`` switches the record; ``cleanup`` deletes the old
entry. The record therefore never names an artifact that was not confirmed
first, and a failure before ``commit`` leaves the old cache in service.

Keys carry the release version of the artifact they name (see
:func:`~nexus_badges.cache.keys.mint_cache_key`), which is what staleness is
judged against.
"""

from __future__ import annotations

import dataclasses
import enum
import typing as typ

from nexus_badges.config import WorkflowEnvironment
from nexus_badges.github.errors import GitHubError
from nexus_badges.logging import get_logger, log_info, log_warning
from nexus_badges.version import VersionCheckError

from .errors import CacheBackendError, RotationAbortedError
from .keys import mint_cache_key, version_from_key

if typ.TYPE_CHECKING:
    import collections.abc as cabc

logger = get_logger(__name__)

_BACKEND_ERRORS: tuple[type[Exception], ...] = (
    CacheBackendError,
    GitHubError,
    OSError,
)


class CacheState(enum.StrEnum):
    """Lifecycle state of the cached tool."""

    NO_CACHE = "no_cache"
    CACHED = "cached"
    ROTATING = "rotating"


class CacheIndex(typ.Protocol):
    """Lookup and deletion of cache entries by key."""

    async def exists(self, key: str) -> bool:
        """Return True when an entry named ``key`` exists."""
        ...

    async def delete(self, key: str) -> None:
        """Delete the entry named ``key``; absent keys succeed."""
        ...


class ArtifactStager(typ.Protocol):
    """Stores the latest artifact under a given key."""

    async def stage(self, key: str) -> None:
        """Fetch the latest artifact and store it as ``key``."""
        ...


class KeyRecord(typ.Protocol):
    """Durable pointer to the cache key in service."""

    async def get(self) -> str | None:
        """Return the recorded key, or None when unset."""
        ...

    async def set(self, key: str) -> None:
        """Point the record at ``key``."""
        ...


@dataclasses.dataclass(frozen=True, slots=True)
class NoAction:
    """Rotation was not needed."""

    key: str | None
    reason: str


@dataclasses.dataclass(frozen=True, slots=True)
class Rotated:
    """The record now names ``new_key``.

    ``old_key_deleted`` is False when there was no old key or when deleting
    it failed; the latter leaves an orphaned but unreferenced entry.
    """

    new_key: str
    old_key: str | None
    old_key_deleted: bool

    @property
    def partial(self) -> bool:
        """Return True when an old entry was left behind."""
        return self.old_key is not None and not self.old_key_deleted


type CacheDecision = NoAction | Rotated


class CacheKeyManager:
    """Drive the cache-key state machine against injected backends.

    Parameters
    ----------
    index
        Cache index used to confirm and delete entries.
    record
        Store holding the key in service.
    stager
        Artifact source; required only for :meth:`stage`.
    latest_version
        Coroutine returning the latest published version.
    embedded_version
        Version of the artifact in service when known directly, e.g. by the
        cached tool itself. Defaults to the version recorded in the key.
    key_factory
        Callable minting a key distinct from its first argument that records
        the release version given as its second.

    """

    def __init__(  # noqa: PLR0913
        self,
        *,
        index: CacheIndex,
        record: KeyRecord,
        stager: ArtifactStager | None = None,
        latest_version: cabc.Callable[[], cabc.Awaitable[str]] | None = None,
        embedded_version: str | None = None,
        key_factory: cabc.Callable[[str | None, str | None], str] | None = None,
    ) -> None:
        """Initialise the manager with its backends."""
        self._index = index
        self._record = record
        self._stager = stager
        self._latest_version = latest_version
        self._embedded_version = embedded_version
        self._key_factory = key_factory or _default_key_factory
        self._current: str | None = None
        self._staged: str | None = None
        self._state = CacheState.NO_CACHE

    @property
    def state(self) -> CacheState:
        """Return the state as last observed or transitioned."""
        return self._state

    @property
    def current_key(self) -> str | None:
        """Return the key the record named when last observed."""
        return self._current

    async def observe(self) -> CacheState:
        """Read the record and derive the current state."""
        self._current = await self._record.get() or None
        if self._staged is not None:
            self._state = CacheState.ROTATING
        elif self._current is None:
            self._state = CacheState.NO_CACHE
        else:
            self._state = CacheState.CACHED
        return self._state

    async def is_stale(self, embedded_version: str | None = None) -> bool:
        """Return True when the latest release differs from the cached one.

        The cached version is ``embedded_version`` when given, else the one
        passed at construction, else the one recorded in the current key. A
        failing version check or an unknown cached version counts as stale.
        """
        latest = await self._fetch_latest()
        return self._differs(latest, embedded_version)

    async def stage(self, new_key: str) -> None:
        """Store the latest artifact as ``new_key`` and confirm it.

        Raises
        ------
        RotationAbortedError
            If the artifact could not be stored or confirmed; the record and
            the old entry are untouched.

        """
        if self._stager is None:
            msg = "stage requires an artifact stager"
            raise RuntimeError(msg)
        if new_key == self._current:
            msg = f"new key must differ from the current key {new_key!r}"
            raise ValueError(msg)

        try:
            await self._stager.stage(new_key)
        except _BACKEND_ERRORS as exc:
            raise RotationAbortedError.stage_failed(new_key, str(exc)) from exc
        await self._confirm(new_key)

        self._staged = new_key
        self._state = CacheState.ROTATING
        log_info(logger, "[cache.rotation.staged] key=%s", new_key)

    async def commit(self, new_key: str) -> None:
        """Point the record at ``new_key``.

        Raises
        ------
        RotationAbortedError
            If the record could not be written; it still names the old entry.

        """
        try:
            await self._record.set(new_key)
        except _BACKEND_ERRORS as exc:
            raise RotationAbortedError.commit_failed(new_key, str(exc)) from exc

        self._current = new_key
        self._staged = None
        self._state = CacheState.CACHED
        log_info(logger, "[cache.rotation.committed] key=%s", new_key)

    async def cleanup(self, old_key: str) -> bool:
        """Delete ``old_key``; return False (and log) when deletion fails."""
        try:
            await self._index.delete(old_key)
        except _BACKEND_ERRORS as exc:
            log_warning(
                logger,
                "[cache.rotation.partial] old_key=%s error=%s",
                old_key,
                exc,
            )
            return False
        log_info(logger, "[cache.rotation.cleaned] old_key=%s", old_key)
        return True

    async def rotate_if_stale(self, current_record: str | None) -> CacheDecision:
        """Rotate when the cached tool is stale, missing or never cached.

        A record whose entry no longer exists (e.g. evicted) is replaced
        without a cleanup step.

        Raises
        ------
        RotationAbortedError
            When staging or committing fails.

        """
        old_key = current_record or None
        self._current = old_key
        latest = await self._fetch_latest()
        if old_key is not None:
            if not await self._entry_exists(old_key):
                log_warning(logger, "[cache.rotation.missing] key=%s", old_key)
                old_key = None
            elif not self._differs(latest):
                log_info(logger, "[cache.rotation.skipped] key=%s", old_key)
                return NoAction(key=old_key, reason="cached tool is current")

        new_key = self._key_factory(current_record or None, latest)
        log_info(
            logger,
            "[cache.rotation.started] old_key=%s new_key=%s",
            old_key or "",
            new_key,
        )
        await self.stage(new_key)
        await self.commit(new_key)
        deleted = await self.cleanup(old_key) if old_key is not None else False
        return Rotated(new_key=new_key, old_key=old_key, old_key_deleted=deleted)

    async def promote(self, new_key: str, old_key: str | None = None) -> Rotated:
        """Commit a key staged outside this process and clean up ``old_key``.

        Used after the workflow's own cache step has saved ``new_key``.

        Raises
        ------
        RotationAbortedError
            If ``new_key`` cannot be confirmed or the record not written.

        """
        await self._confirm(new_key)
        self._staged = new_key
        self._state = CacheState.ROTATING
        await self.commit(new_key)
        if old_key is None or old_key == new_key:
            return Rotated(new_key=new_key, old_key=None, old_key_deleted=False)
        deleted = await self.cleanup(old_key)
        return Rotated(new_key=new_key, old_key=old_key, old_key_deleted=deleted)

    async def _fetch_latest(self) -> str | None:
        if self._latest_version is None:
            return None
        try:
            return await self._latest_version()
        except VersionCheckError as exc:
            log_warning(logger, "[cache.version.check_failed] error=%s", exc)
            return None

    def _differs(self, latest: str | None, override: str | None = None) -> bool:
        cached = (
            override or self._embedded_version or version_from_key(self._current)
        )
        return latest is None or cached is None or latest != cached

    async def _confirm(self, key: str) -> None:
        try:
            exists = await self._index.exists(key)
        except _BACKEND_ERRORS as exc:
            raise RotationAbortedError.not_durable(key, str(exc)) from exc
        if not exists:
            raise RotationAbortedError.not_durable(key)

    async def _entry_exists(self, key: str) -> bool:
        try:
            return await self._index.exists(key)
        except _BACKEND_ERRORS as exc:
            log_warning(logger, "[cache.index.unavailable] key=%s error=%s", key, exc)
            return True


def _default_key_factory(current: str | None, version: str | None) -> str:
    return mint_cache_key(
        WorkflowEnvironment.from_env(), current=current, version=version
    )
