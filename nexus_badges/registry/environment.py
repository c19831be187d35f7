"""Build a registry from the scheduled workflow's environment.

The workflow has no registry file; it receives the mirrored values as
secrets and variables instead.
"""

from __future__ import annotations

import os
import typing as typ
from pathlib import Path

import msgspec

from nexus_badges.config import (
    ENV_GIST_ID,
    ENV_GIT_TOKEN,
    ENV_NEXUS_KEY,
    ENV_TRACKED_MODS,
)

from .errors import RegistryFormatError
from .models import AutomationTarget, Credentials, Registry, TrackedItem

if typ.TYPE_CHECKING:
    import collections.abc as cabc

ENV_REPOSITORY = "GITHUB_REPOSITORY"


def decode_tracked_items(raw: str) -> tuple[TrackedItem, ...]:
    """Decode a ``TRACKED_MODS`` value; blank input yields no items.

    >>> decode_tracked_items('[{"domain": "eldenring", "mod_id": 4825}]')
    (TrackedItem(domain='eldenring', mod_id=4825),)
    """
    if not raw.strip():
        return ()
    try:
        return msgspec.json.decode(raw, type=tuple[TrackedItem, ...])
    except (msgspec.DecodeError, ValueError) as exc:
        raise RegistryFormatError(Path(f"${ENV_TRACKED_MODS}"), str(exc)) from exc


def parse_repository(raw: str) -> AutomationTarget:
    """Split ``owner/repo``; anything else yields an unconfigured target."""
    owner, sep, repo = raw.strip().partition("/")
    if not sep or not owner or not repo or "/" in repo:
        return AutomationTarget()
    return AutomationTarget(owner=owner, repo=repo)


def registry_from_env(environ: cabc.Mapping[str, str] | None = None) -> Registry:
    """Return the registry described by workflow environment variables.

    Reads ``NEXUS_KEY``, ``GIT_TOKEN``, ``GIST_ID``, ``TRACKED_MODS`` and
    ``GITHUB_REPOSITORY``.

    Raises
    ------
    RegistryFormatError
        If ``TRACKED_MODS`` is not a JSON list of items.

    """
    env = os.environ if environ is None else environ
    return Registry(
        items=decode_tracked_items(env.get(ENV_TRACKED_MODS, "")),
        credentials=Credentials(
            nexus_key=env.get(ENV_NEXUS_KEY, "").strip(),
            git_token=env.get(ENV_GIT_TOKEN, "").strip(),
        ),
        gist_id=env.get(ENV_GIST_ID, "").strip(),
        automation=parse_repository(env.get(ENV_REPOSITORY, "")),
    )
