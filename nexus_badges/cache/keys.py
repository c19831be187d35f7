"""Cache key minting.

A key names one cached artifact. When the release version of that artifact is
known it is appended after ``@``, so the version of the copy in service can be
read back from the record alone.
"""

from __future__ import annotations

import secrets
import typing as typ

if typ.TYPE_CHECKING:
    from nexus_badges.config import WorkflowEnvironment

KEY_INFIX = "binary-nexus-badges"
VERSION_SEPARATOR = "@"
_RANDOM_SUFFIX_BYTES = 6


def _with_version(key: str, version: str | None) -> str:
    return f"{key}{VERSION_SEPARATOR}{version}" if version else key


def mint_cache_key(
    env: WorkflowEnvironment,
    *,
    current: str | None = None,
    version: str | None = None,
) -> str:
    """Return a fresh cache key that differs from ``current``.

    Inside a workflow run the key is derived from the run identifiers, e.g.
    ``Linux-binary-nexus-badges-9876543210-1``; elsewhere a random suffix is
    used. ``version`` is appended when given.

    >>> from nexus_badges.config import WorkflowEnvironment
    >>> env = WorkflowEnvironment(runner_os="Linux", run_id="42", run_attempt="2")
    >>> mint_cache_key(env)
    'Linux-binary-nexus-badges-42-2'
    >>> mint_cache_key(env, version="0.2.0")
    'Linux-binary-nexus-badges-42-2@0.2.0'
    """
    prefix = env.runner_os or "local"
    if env.in_workflow:
        base = f"{prefix}-{KEY_INFIX}-{env.run_id}-{env.run_attempt or '1'}"
        key = _with_version(base, version)
        if key != current:
            return key
    while True:
        base = f"{prefix}-{KEY_INFIX}-{secrets.token_hex(_RANDOM_SUFFIX_BYTES)}"
        key = _with_version(base, version)
        if key != current:
            return key


def version_from_key(key: str | None) -> str | None:
    """Return the release version recorded in ``key``, if any.

    >>> version_from_key("local-binary-nexus-badges-ab12@0.2.0")
    '0.2.0'
    >>> version_from_key("Linux-binary-nexus-badges-42-1") is None
    True
    """
    if not key:
        return None
    _, sep, version = key.rpartition(VERSION_SEPARATOR)
    return (version.strip() or None) if sep else None
