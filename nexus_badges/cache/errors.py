"""Cache-key rotation errors."""

from __future__ import annotations

import enum


class RotationPhase(enum.StrEnum):
    """Transition during which a rotation was aborted."""

    STAGE = "stage"
    CONFIRM = "confirm"
    COMMIT = "commit"


class CacheError(Exception):
    """Base class for cache lifecycle errors."""


class CacheBackendError(CacheError):
    """Raised when an artifact store or cache index operation fails."""

    @classmethod
    def download_failed(cls, url: str, detail: str) -> CacheBackendError:
        """Return an error for a failed artifact download."""
        return cls(f"Failed to download {url}: {detail}")

    @classmethod
    def unversioned(cls, key: str) -> CacheBackendError:
        """Return an error for a key that names no release version."""
        return cls(f"Cache key {key!r} does not name a release version")

    @classmethod
    def storage_failed(cls, key: str, detail: str) -> CacheBackendError:
        """Return an error for a failed local write or delete."""
        return cls(f"Failed to store artifact for {key}: {detail}")


class RotationAbortedError(CacheError):
    """Raised when rotation stops before the record was switched.

    The record still names the previous (existing) artifact, so the cache is
    usable exactly as before the attempt.

    Attributes
    ----------
    phase
        Transition that failed.
    key
        Newly minted key that was being staged or committed.

    """

    def __init__(self, message: str, *, phase: RotationPhase, key: str) -> None:
        """Initialise with the failing phase and the new key."""
        self.phase = phase
        self.key = key
        super().__init__(message)

    @classmethod
    def stage_failed(cls, key: str, detail: str) -> RotationAbortedError:
        """Return an error for an artifact that could not be staged."""
        return cls(
            f"Could not stage artifact under {key}: {detail}",
            phase=RotationPhase.STAGE,
            key=key,
        )

    @classmethod
    def not_durable(cls, key: str, detail: str = "") -> RotationAbortedError:
        """Return an error for a staged artifact the index cannot confirm."""
        suffix = f": {detail}" if detail else ""
        return cls(
            f"Cache entry {key} could not be confirmed{suffix}",
            phase=RotationPhase.CONFIRM,
            key=key,
        )

    @classmethod
    def commit_failed(cls, key: str, detail: str) -> RotationAbortedError:
        """Return an error for a record that could not be updated."""
        return cls(
            f"Could not point the cache-key record at {key}: {detail}",
            phase=RotationPhase.COMMIT,
            key=key,
        )
