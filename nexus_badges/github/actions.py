"""GitHub Actions configuration client.

Wraps the repository secrets, variables, workflow toggle and cache endpoints
used to mirror the registry into the scheduled workflow. Every method is a
single idempotent HTTP operation (plus the public-key lookup needed to seal a
secret); callers must tolerate partial application across methods.
"""

from __future__ import annotations

import base64
import binascii
import dataclasses
import typing as typ

import httpx
from nacl import encoding, exceptions, public

from nexus_badges.common.http import ErrorKind

from .client import required_str, response_object
from .errors import GitHubAPIError, GitHubConfigError, SecretEncryptionError

if typ.TYPE_CHECKING:
    from .client import GitHubRestClient

WORKFLOW_FILE = "automation.yml"


@dataclasses.dataclass(frozen=True, slots=True)
class RepositoryPublicKey:
    """Public key used to seal Actions secrets."""

    key_id: str
    key: str


def seal_secret(value: str, public_key: str) -> str:
    """Encrypt ``value`` with a base64 libsodium public key.

    Returns the base64 sealed box expected by the secrets endpoint.

    Raises
    ------
    SecretEncryptionError
        If ``public_key`` is not a valid base64 Curve25519 key.

    """
    try:
        key = public.PublicKey(public_key.encode("utf-8"), encoding.Base64Encoder)
    except (exceptions.CryptoError, binascii.Error, TypeError, ValueError) as exc:
        raise SecretEncryptionError.invalid_key(str(exc)) from exc
    sealed = public.SealedBox(key).encrypt(value.encode("utf-8"))
    return base64.b64encode(sealed).decode("ascii")


class ActionsClient:
    """Secrets, variables, workflow state and caches for one repository."""

    def __init__(self, rest: GitHubRestClient, *, owner: str, repo: str) -> None:
        """Initialise for ``owner/repo`` with a shared REST transport."""
        if not owner or not repo:
            raise GitHubConfigError.missing_repository()
        self._rest = rest
        self._prefix = f"/repos/{owner}/{repo}/actions"

    async def get_public_key(self) -> RepositoryPublicKey:
        """Fetch the repository's secret-sealing public key."""
        response = await self._rest.request(
            "GET",
            f"{self._prefix}/secrets/public-key",
            operation="actions.public_key",
        )
        payload = response_object(response, field="public key")
        return RepositoryPublicKey(
            key_id=required_str(payload, "key_id"),
            key=required_str(payload, "key"),
        )

    async def set_secret(
        self,
        name: str,
        value: str,
        *,
        public_key: RepositoryPublicKey | None = None,
    ) -> bool:
        """Create or update secret ``name``.

        Returns True when the secret was created, False when updated.
        """
        key = public_key or await self.get_public_key()
        response = await self._rest.request(
            "PUT",
            f"{self._prefix}/secrets/{name}",
            operation="actions.set_secret",
            json_body={
                "encrypted_value": seal_secret(value, key.key),
                "key_id": key.key_id,
            },
        )
        return response.status_code == httpx.codes.CREATED

    async def set_variable(self, name: str, value: str) -> bool:
        """Update variable ``name``, creating it when absent.

        Returns True when the variable was created, False when updated.
        """
        body = {"name": name, "value": value}
        try:
            await self._rest.request(
                "PATCH",
                f"{self._prefix}/variables/{name}",
                operation="actions.set_variable",
                json_body=body,
            )
        except GitHubAPIError as exc:
            if exc.kind is not ErrorKind.NOT_FOUND:
                raise
        else:
            return False

        await self._rest.request(
            "POST",
            f"{self._prefix}/variables",
            operation="actions.set_variable",
            json_body=body,
        )
        return True

    async def get_variable(self, name: str) -> str | None:
        """Return the value of variable ``name``, or None when absent."""
        try:
            response = await self._rest.request(
                "GET",
                f"{self._prefix}/variables/{name}",
                operation="actions.get_variable",
            )
        except GitHubAPIError as exc:
            if exc.kind is ErrorKind.NOT_FOUND:
                return None
            raise
        payload = response_object(response, field="variable")
        return required_str(payload, "value")

    async def delete_variable(self, name: str) -> None:
        """Delete variable ``name``; deleting an absent variable succeeds."""
        try:
            await self._rest.request(
                "DELETE",
                f"{self._prefix}/variables/{name}",
                operation="actions.delete_variable",
            )
        except GitHubAPIError as exc:
            if exc.kind is not ErrorKind.NOT_FOUND:
                raise

    async def set_workflow_enabled(self, *, enabled: bool) -> None:
        """Enable or disable the scheduled ``automation.yml`` workflow."""
        state = "enable" if enabled else "disable"
        await self._rest.request(
            "PUT",
            f"{self._prefix}/workflows/{WORKFLOW_FILE}/{state}",
            operation="actions.set_workflow",
        )

    async def cache_exists(self, key: str) -> bool:
        """Return True when a cache entry with exactly ``key`` exists."""
        response = await self._rest.request(
            "GET",
            f"{self._prefix}/caches",
            operation="actions.list_caches",
            params={"key": key},
        )
        payload = response_object(response, field="caches")
        entries = payload.get("actions_caches")
        if not isinstance(entries, list):
            return False
        return any(
            isinstance(entry, dict) and entry.get("key") == key for entry in entries
        )

    async def delete_cache(self, key: str) -> None:
        """Delete cache entries named ``key``; an absent key succeeds."""
        try:
            await self._rest.request(
                "DELETE",
                f"{self._prefix}/caches",
                operation="actions.delete_cache",
                params={"key": key},
            )
        except GitHubAPIError as exc:
            if exc.kind is not ErrorKind.NOT_FOUND:
                raise
