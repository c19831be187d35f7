"""Cache index and key-record backends.

The Actions backends use the repository caches API as the index and the
``CACHED_BIN`` repository variable as the record. :class:`DirectoryArtifactCache`
keeps release wheels in a local directory and serves as both stager and
index; :class:`MemoryKeyRecord` holds the record in the registry for local
runs. The Actions backends are only used to promote keys the workflow saved
itself, so the record and the index always describe the same store.
"""

from __future__ import annotations

import typing as typ
from pathlib import Path

import httpx

from nexus_badges.common.fs import write_atomic
from nexus_badges.common.http import describe_transport_error, is_error_status
from nexus_badges.config import ENV_CACHED_BIN
from nexus_badges.logging import get_logger, log_debug
from nexus_badges.version import wheel_url

from .errors import CacheBackendError
from .keys import version_from_key

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    from nexus_badges.github.actions import ActionsClient

logger = get_logger(__name__)

ARTIFACT_SUFFIX = ".whl"


class ActionsCacheIndex:
    """Actions caches API as a :class:`CacheIndex`."""

    def __init__(self, actions: ActionsClient) -> None:
        """Initialise with an Actions client for the target repository."""
        self._actions = actions

    async def exists(self, key: str) -> bool:
        """Return True when a cache entry named exactly ``key`` exists."""
        return await self._actions.cache_exists(key)

    async def delete(self, key: str) -> None:
        """Delete the cache entries named ``key``."""
        await self._actions.delete_cache(key)


class ActionsKeyRecord:
    """The ``CACHED_BIN`` repository variable as a :class:`KeyRecord`."""

    def __init__(self, actions: ActionsClient, *, name: str = ENV_CACHED_BIN) -> None:
        """Initialise with an Actions client and the variable name."""
        self._actions = actions
        self._name = name

    async def get(self) -> str | None:
        """Return the variable value, or None when unset or blank."""
        value = await self._actions.get_variable(self._name)
        return value.strip() if value and value.strip() else None

    async def set(self, key: str) -> None:
        """Create or update the variable."""
        await self._actions.set_variable(self._name, key)


class MemoryKeyRecord:
    """In-process record, persisted by the caller (e.g. in the registry)."""

    def __init__(self, key: str | None = None) -> None:
        """Initialise with the currently recorded key."""
        self.key = key or None

    async def get(self) -> str | None:
        """Return the recorded key."""
        return self.key

    async def set(self, key: str) -> None:
        """Record ``key``."""
        self.key = key


class DirectoryArtifactCache:
    """Store release wheels as ``{root}/{key}.whl``.

    Implements both :class:`ArtifactStager` and :class:`CacheIndex`. A key
    must name its release version (see :func:`mint_cache_key`); staging
    downloads exactly that release. Downloads land in a temporary file in
    ``root`` and are renamed into place, so an entry either exists completely
    or not at all.
    """

    def __init__(
        self,
        root: Path,
        *,
        asset_url: cabc.Callable[[str], str] = wheel_url,
        timeout_s: float = 20.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialise the cache rooted at ``root``."""
        self._root = root
        self._asset_url = asset_url
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(
            timeout=timeout_s, follow_redirects=True
        )

    async def aclose(self) -> None:
        """Close any owned HTTP resources."""
        if self._owns_client:
            await self._client.aclose()

    def path_for(self, key: str) -> Path:
        """Return the artifact path for ``key``."""
        if not key or Path(key).name != key:
            msg = f"cache key must be a plain file name, got {key!r}"
            raise ValueError(msg)
        return self._root / f"{key}{ARTIFACT_SUFFIX}"

    async def stage(self, key: str) -> None:
        """Download the release named by ``key`` and store it under ``key``.

        Raises
        ------
        CacheBackendError
            If the key names no version, the download fails or the file
            cannot be written.

        """
        target = self.path_for(key)
        version = version_from_key(key)
        if version is None:
            raise CacheBackendError.unversioned(key)

        url = self._asset_url(version)
        try:
            response = await self._client.get(url)
        except httpx.TransportError as exc:
            raise CacheBackendError.download_failed(
                url, describe_transport_error(exc)
            ) from exc
        if is_error_status(response.status_code):
            raise CacheBackendError.download_failed(
                url, f"HTTP {response.status_code}"
            )

        try:
            write_atomic(target, response.content)
        except OSError as exc:
            raise CacheBackendError.storage_failed(key, str(exc)) from exc
        log_debug(logger, "Stored %d bytes at %s", len(response.content), target)

    async def exists(self, key: str) -> bool:
        """Return True when the artifact file for ``key`` exists."""
        return self.path_for(key).is_file()

    async def delete(self, key: str) -> None:
        """Remove the artifact file for ``key``; absent files succeed."""
        try:
            self.path_for(key).unlink(missing_ok=True)
        except OSError as exc:
            raise CacheBackendError.storage_failed(key, str(exc)) from exc
