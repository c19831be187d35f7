"""Release metadata published alongside nexus-badges.

Every GitHub release carries a ``release.json`` asset holding
``{"latest": "x.y.z", "message": "..."}`` next to the wheel built from the same
tag, so the version check and the downloaded artifact always describe the same
release. The CLI prints the message when the running version is behind, and
the scheduled workflow uses ``version --remote`` to decide whether the cached
copy of the tool must be replaced.
"""

from __future__ import annotations

import enum

import httpx
import msgspec

from nexus_badges.common.http import describe_transport_error, is_error_status

__version__ = "0.1.0"

RELEASE_REPOSITORY = "WardLordRuby/nexus_badges"
RELEASES_URL = f"https://github.com/{RELEASE_REPOSITORY}/releases"
VERSION_URL = f"{RELEASES_URL}/latest/download/release.json"
WHEEL_URL_TEMPLATE = (
    f"{RELEASES_URL}/download/v{{version}}/nexus_badges-{{version}}-py3-none-any.whl"
)


class RemoteVersionExit(enum.IntEnum):
    """Exit codes of ``version --remote`` consumed by the workflow."""

    CURRENT = 0
    CHECK_FAILED = 20
    STALE = 70


class ReleaseInfo(msgspec.Struct, frozen=True, kw_only=True):
    """Latest published release and the upgrade notice to show."""

    latest: str
    message: str = ""

    def is_newer_than(self, version: str) -> bool:
        """Return True when ``version`` differs from the published release."""
        return self.latest != version

    def notice_for(self, version: str) -> str | None:
        """Return the upgrade notice for ``version``, or None when current."""
        if not self.is_newer_than(version):
            return None
        return self.message or f"nexus-badges {self.latest} is available"


class VersionCheckError(Exception):
    """Raised when the release metadata cannot be retrieved."""

    @classmethod
    def http_error(cls, status_code: int) -> VersionCheckError:
        """Return an error for a non-2xx response."""
        return cls(f"Version check failed: HTTP {status_code}")

    @classmethod
    def transport(cls, detail: str) -> VersionCheckError:
        """Return an error for a timeout or network failure."""
        return cls(f"Version check failed: {detail}")

    @classmethod
    def malformed(cls, detail: str) -> VersionCheckError:
        """Return an error for an undecodable payload."""
        return cls(f"Version check returned malformed data: {detail}")


class ReleaseInfoClient:
    """Fetch :class:`ReleaseInfo` over HTTP."""

    def __init__(
        self,
        *,
        url: str = VERSION_URL,
        timeout_s: float = 20.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialise the client; an owned HTTP client is created if needed."""
        self._url = url
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(
            timeout=timeout_s, follow_redirects=True
        )

    async def aclose(self) -> None:
        """Close any owned HTTP resources."""
        if self._owns_client:
            await self._client.aclose()

    async def fetch(self) -> ReleaseInfo:
        """Return the published release metadata.

        Raises
        ------
        VersionCheckError
            On any transport, HTTP or decoding failure.

        """
        try:
            response = await self._client.get(self._url)
        except httpx.TransportError as exc:
            raise VersionCheckError.transport(describe_transport_error(exc)) from exc

        if is_error_status(response.status_code):
            raise VersionCheckError.http_error(response.status_code)

        try:
            return msgspec.json.decode(response.content, type=ReleaseInfo)
        except msgspec.DecodeError as exc:
            raise VersionCheckError.malformed(str(exc)) from exc

    async def latest_version(self) -> str:
        """Return only the latest published version string."""
        return (await self.fetch()).latest


def wheel_url(version: str) -> str:
    """Return the wheel download URL of release ``version``.

    >>> wheel_url("0.2.0").rsplit("/", 2)[-2:]
    ['v0.2.0', 'nexus_badges-0.2.0-py3-none-any.whl']
    """
    return WHEEL_URL_TEMPLATE.format(version=version)


def remote_exit_code(info: ReleaseInfo | None, version: str) -> RemoteVersionExit:
    """Map a check result to the workflow exit code; ``None`` means failure."""
    if info is None:
        return RemoteVersionExit.CHECK_FAILED
    if info.is_newer_than(version):
        return RemoteVersionExit.STALE
    return RemoteVersionExit.CURRENT
