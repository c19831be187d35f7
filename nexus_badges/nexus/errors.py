"""Nexus Mods API errors."""

from __future__ import annotations

from nexus_badges.common.http import ErrorKind, classify_status


class NexusError(Exception):
    """Base class for Nexus Mods client errors."""


class NexusAPIError(NexusError):
    """Raised when a count fetch fails.

    Attributes
    ----------
    kind
        Failure category driving the caller's skip-or-abort decision.
    status_code
        HTTP status code, when a response was received.

    """

    def __init__(
        self,
        message: str,
        *,
        kind: ErrorKind,
        status_code: int | None = None,
    ) -> None:
        """Initialise with a message, failure kind and optional status."""
        self.kind = kind
        self.status_code = status_code
        super().__init__(message)

    @classmethod
    def http_error(cls, key: str, status_code: int) -> NexusAPIError:
        """Return an error for a non-2xx response while fetching ``key``."""
        return cls(
            f"Nexus API HTTP {status_code} for {key}",
            kind=classify_status(status_code),
            status_code=status_code,
        )

    @classmethod
    def transport(cls, key: str, detail: str) -> NexusAPIError:
        """Return a transient error for a timeout or network failure."""
        return cls(f"Nexus API {detail} for {key}", kind=ErrorKind.TRANSIENT)


class NexusResponseShapeError(NexusError):
    """Raised when a mod info payload lacks the expected fields."""

    @classmethod
    def missing(cls, key: str, field: str) -> NexusResponseShapeError:
        """Return an error for a missing field in the payload for ``key``."""
        return cls(f"Nexus response for {key} missing expected field: {field}")


class NexusConfigError(NexusError):
    """Raised when the Nexus client is misconfigured."""

    @classmethod
    def missing_key(cls) -> NexusConfigError:
        """Return an error when no API key is available."""
        return cls("Nexus API key missing. Use command 'set --nexus' to store it")
