"""HTTP status classification shared by the API clients.

Each client maps transport outcomes onto the same small taxonomy so that the
reconciliation engine can decide between retrying, skipping and aborting
without knowing which service failed.
"""

from __future__ import annotations

import enum

import httpx

_HTTP_CLIENT_ERROR_THRESHOLD = 400
_HTTP_SERVER_ERROR_THRESHOLD = 500
_HTTP_RATE_LIMITED = 429


class ErrorKind(enum.StrEnum):
    """Failure categories surfaced by remote operations."""

    UNAUTHORIZED = "unauthorized"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    TRANSIENT = "transient"
    INVALID = "invalid"


_STATUS_KINDS: dict[int, ErrorKind] = {
    httpx.codes.UNAUTHORIZED: ErrorKind.UNAUTHORIZED,
    httpx.codes.FORBIDDEN: ErrorKind.UNAUTHORIZED,
    httpx.codes.NOT_FOUND: ErrorKind.NOT_FOUND,
    httpx.codes.CONFLICT: ErrorKind.CONFLICT,
    httpx.codes.PRECONDITION_FAILED: ErrorKind.CONFLICT,
    _HTTP_RATE_LIMITED: ErrorKind.TRANSIENT,
}


def is_error_status(status_code: int) -> bool:
    """Return True for 4xx and 5xx responses."""
    return status_code >= _HTTP_CLIENT_ERROR_THRESHOLD


def classify_status(status_code: int) -> ErrorKind:
    """Map an error status code onto an :class:`ErrorKind`.

    Examples
    --------
    >>> classify_status(403)
    <ErrorKind.UNAUTHORIZED: 'unauthorized'>
    >>> classify_status(502)
    <ErrorKind.TRANSIENT: 'transient'>

    """
    if status_code >= _HTTP_SERVER_ERROR_THRESHOLD:
        return ErrorKind.TRANSIENT
    return _STATUS_KINDS.get(status_code, ErrorKind.INVALID)


def describe_transport_error(exc: httpx.TransportError) -> str:
    """Return a short description of a timeout or connection failure."""
    if isinstance(exc, httpx.TimeoutException):
        return "request timed out"
    return f"network error: {exc}"
