"""Lifecycle of the cache key naming the scheduled workflow's cached tool."""

from nexus_badges.cache.backends import (
    ActionsCacheIndex,
    ActionsKeyRecord,
    DirectoryArtifactCache,
    MemoryKeyRecord,
)
from nexus_badges.cache.errors import (
    CacheBackendError,
    CacheError,
    RotationAbortedError,
    RotationPhase,
)
from nexus_badges.cache.keys import mint_cache_key, version_from_key
from nexus_badges.cache.lifecycle import (
    ArtifactStager,
    CacheDecision,
    CacheIndex,
    CacheKeyManager,
    CacheState,
    KeyRecord,
    NoAction,
    Rotated,
)

__all__ = [
    "ActionsCacheIndex",
    "ActionsKeyRecord",
    "ArtifactStager",
    "CacheBackendError",
    "CacheDecision",
    "CacheError",
    "CacheIndex",
    "CacheKeyManager",
    "CacheState",
    "DirectoryArtifactCache",
    "KeyRecord",
    "MemoryKeyRecord",
    "NoAction",
    "Rotated",
    "RotationAbortedError",
    "RotationPhase",
    "mint_cache_key",
    "version_from_key",
]
