"""Mirror the registry into the Actions host's secrets and variables.

The scheduled workflow reads ``TRACKED_MODS`` and ``GIST_ID`` as repository
variables and ``NEXUS_KEY``/``GIT_TOKEN`` as secrets. Only the values that
changed between two registry states are pushed: secrets when a credential
changed, variables when the item list or gist id changed.
"""

from __future__ import annotations

import asyncio
import dataclasses
import typing as typ

import msgspec

from nexus_badges.config import (
    ENV_GIST_ID,
    ENV_GIT_TOKEN,
    ENV_NEXUS_KEY,
    ENV_TRACKED_MODS,
)
from nexus_badges.github.errors import GitHubError

from .errors import MirrorTooLargeError
from .models import MirrorPushResult

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    from nexus_badges.github.actions import RepositoryPublicKey
    from nexus_badges.registry.models import Registry

VARIABLE_SIZE_LIMIT = 48 * 1024


class AutomationConfigurator(typ.Protocol):
    """Secrets, variables and workflow toggle of one repository."""

    async def get_public_key(self) -> RepositoryPublicKey:
        """Return the key used to seal secrets."""
        ...

    async def set_secret(
        self,
        name: str,
        value: str,
        *,
        public_key: RepositoryPublicKey | None = None,
    ) -> bool:
        """Create or update a secret."""
        ...

    async def set_variable(self, name: str, value: str) -> bool:
        """Create or update a variable."""
        ...

    async def set_workflow_enabled(self, *, enabled: bool) -> None:
        """Enable or disable the scheduled workflow."""
        ...


def encode_tracked_items(registry: Registry) -> str:
    """Return the ``TRACKED_MODS`` value for ``registry``.

    Raises
    ------
    MirrorTooLargeError
        If the encoded list exceeds the Actions variable size limit.

    """
    encoded = msgspec.json.encode(registry.items)
    if len(encoded) > VARIABLE_SIZE_LIMIT:
        raise MirrorTooLargeError(ENV_TRACKED_MODS, len(encoded), VARIABLE_SIZE_LIMIT)
    return encoded.decode("utf-8")


@dataclasses.dataclass(frozen=True, slots=True)
class AutomationMirror:
    """The values the scheduled workflow needs from a registry."""

    tracked_mods: str
    gist_id: str
    nexus_key: str
    git_token: str

    @classmethod
    def from_registry(cls, registry: Registry) -> AutomationMirror:
        """Project ``registry`` onto the mirrored values."""
        return cls(
            tracked_mods=encode_tracked_items(registry),
            gist_id=registry.gist_id,
            nexus_key=registry.credentials.nexus_key,
            git_token=registry.credentials.git_token,
        )

    def secrets(self) -> dict[str, str]:
        """Return non-empty secrets by name."""
        values = {ENV_NEXUS_KEY: self.nexus_key, ENV_GIT_TOKEN: self.git_token}
        return {name: value for name, value in values.items() if value}

    def variables(self) -> dict[str, str]:
        """Return variables by name; an unset gist id is omitted."""
        values = {ENV_TRACKED_MODS: self.tracked_mods}
        if self.gist_id:
            values[ENV_GIST_ID] = self.gist_id
        return values


@dataclasses.dataclass(frozen=True, slots=True)
class MirrorDelta:
    """Secrets and variables that must be written."""

    secrets: dict[str, str] = dataclasses.field(default_factory=dict)
    variables: dict[str, str] = dataclasses.field(default_factory=dict)

    @property
    def empty(self) -> bool:
        """Return True when nothing needs pushing."""
        return not (self.secrets or self.variables)

    @property
    def names(self) -> tuple[str, ...]:
        """Return every name in the delta, secrets first."""
        return (*self.secrets, *self.variables)


def _changed(
    previous: dict[str, str] | None, current: dict[str, str]
) -> dict[str, str]:
    if previous is None:
        return dict(current)
    return {
        name: value for name, value in current.items() if previous.get(name) != value
    }


def diff(previous: AutomationMirror | None, current: AutomationMirror) -> MirrorDelta:
    """Return the values in ``current`` that differ from ``previous``.

    With no ``previous`` state every value is included.
    """
    return MirrorDelta(
        secrets=_changed(previous.secrets() if previous else None, current.secrets()),
        variables=_changed(
            previous.variables() if previous else None, current.variables()
        ),
    )


async def push_delta(
    actions: AutomationConfigurator, delta: MirrorDelta
) -> MirrorPushResult:
    """Write ``delta`` to the Actions host.

    Each value is an independent request. Failures are collected rather than
    raised, so one rejected value does not prevent the others from landing.
    """
    if delta.empty:
        return MirrorPushResult()

    failures: list[str] = []
    public_key = None
    if delta.secrets:
        try:
            public_key = await actions.get_public_key()
        except GitHubError as exc:
            failures.extend(f"{name}: {exc}" for name in delta.secrets)

    names: list[str] = []
    calls: list[cabc.Awaitable[bool]] = []
    if public_key is not None:
        for name, value in delta.secrets.items():
            names.append(name)
            calls.append(actions.set_secret(name, value, public_key=public_key))
    for name, value in delta.variables.items():
        names.append(name)
        calls.append(actions.set_variable(name, value))

    results = await asyncio.gather(*calls, return_exceptions=True)
    pushed: list[str] = []
    for name, result in zip(names, results, strict=True):
        if isinstance(result, GitHubError):
            failures.append(f"{name}: {result}")
        elif isinstance(result, BaseException):
            raise result
        else:
            pushed.append(name)
    return MirrorPushResult(pushed=tuple(pushed), failures=tuple(failures))
