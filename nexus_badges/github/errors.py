"""GitHub REST API errors."""

from __future__ import annotations

from nexus_badges.common.http import ErrorKind, classify_status


class GitHubError(Exception):
    """Base class for GitHub client errors."""


class GitHubAPIError(GitHubError):
    """Raised when a GitHub REST call fails.

    Attributes
    ----------
    kind
        Failure category (unauthorized, not found, conflict, transient,
        invalid).
    status_code
        HTTP status code, when a response was received.
    operation
        Short name of the failed call, e.g. ``gist.write``. The reconciliation
        engine uses it to tell write failures from read failures.

    """

    def __init__(
        self,
        message: str,
        *,
        kind: ErrorKind,
        operation: str,
        status_code: int | None = None,
    ) -> None:
        """Initialise with a message, failure kind, operation and status."""
        self.kind = kind
        self.operation = operation
        self.status_code = status_code
        super().__init__(message)

    @classmethod
    def http_error(
        cls, operation: str, status_code: int, detail: str = ""
    ) -> GitHubAPIError:
        """Return an error for a non-2xx response."""
        message = f"GitHub {operation} HTTP {status_code}"
        if detail:
            message = f"{message}: {detail}"
        return cls(
            message,
            kind=classify_status(status_code),
            operation=operation,
            status_code=status_code,
        )

    @classmethod
    def transport(cls, operation: str, detail: str) -> GitHubAPIError:
        """Return a transient error for a timeout or network failure."""
        return cls(
            f"GitHub {operation} {detail}",
            kind=ErrorKind.TRANSIENT,
            operation=operation,
        )

    @classmethod
    def revision_conflict(
        cls, operation: str, expected: str, actual: str
    ) -> GitHubAPIError:
        """Return a conflict error when a document changed underneath a write."""
        return cls(
            f"GitHub {operation} conflict: "
            f"expected revision {expected}, found {actual}",
            kind=ErrorKind.CONFLICT,
            operation=operation,
        )

    @classmethod
    def unexpected_status(cls, operation: str, status_code: int) -> GitHubAPIError:
        """Return an error for a 2xx status the operation does not accept."""
        return cls(
            f"GitHub {operation} returned unexpected status {status_code}",
            kind=ErrorKind.INVALID,
            operation=operation,
            status_code=status_code,
        )


class GitHubResponseShapeError(GitHubError):
    """Raised when GitHub responses are missing expected fields."""

    @classmethod
    def missing(cls, field: str) -> GitHubResponseShapeError:
        """Return an error for a missing response field."""
        return cls(f"GitHub response missing expected field: {field}")


class GitHubConfigError(GitHubError):
    """Raised when GitHub client configuration is invalid."""

    @classmethod
    def missing_token(cls) -> GitHubConfigError:
        """Return an error when no GitHub token is configured."""
        return cls(
            "Git fine-grained token missing. Use command 'set --git' to store it"
        )

    @classmethod
    def missing_repository(cls) -> GitHubConfigError:
        """Return an error when the automation repository is unknown."""
        return cls(
            "Automation repository unknown. Use 'set --owner' and 'set --repo' "
            "to name your fork of nexus_badges"
        )


class SecretEncryptionError(GitHubError):
    """Raised when a secret cannot be sealed with the repository key."""

    @classmethod
    def invalid_key(cls, detail: str) -> SecretEncryptionError:
        """Return an error for an unusable repository public key."""
        return cls(f"Invalid repository public key: {detail}")
