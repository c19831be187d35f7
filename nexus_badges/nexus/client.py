"""Nexus Mods REST client used to fetch download counts."""

from __future__ import annotations

import dataclasses
import json
import typing as typ

import httpx

from nexus_badges.common.http import describe_transport_error, is_error_status
from nexus_badges.registry.models import ItemCounts

from .errors import NexusAPIError, NexusConfigError, NexusResponseShapeError

if typ.TYPE_CHECKING:
    from nexus_badges.registry.models import TrackedItem

NEXUS_SITE_URL = "https://www.nexusmods.com"


class CountFetcher(typ.Protocol):
    """Interface for anything that can report counts for a tracked item."""

    async def fetch_counts(self, item: TrackedItem) -> ItemCounts:
        """Return current counts or raise :class:`NexusAPIError`."""
        ...


@dataclasses.dataclass(frozen=True, slots=True)
class NexusConfig:
    """Configuration for the Nexus Mods REST API client."""

    api_key: str
    base_url: str = "https://api.nexusmods.com"
    timeout_s: float = 20.0
    user_agent: str = "nexus-badges"


def mod_page_url(item: TrackedItem) -> str:
    """Return the public page for ``item``.

    >>> from nexus_badges.registry.models import TrackedItem
    >>> mod_page_url(TrackedItem(domain="eldenring", mod_id=4825))
    'https://www.nexusmods.com/eldenring/mods/4825'
    """
    return f"{NEXUS_SITE_URL}/{item.domain}/mods/{item.mod_id}"


def _required_int(payload: dict[str, typ.Any], field: str, key: str) -> int:
    value = payload.get(field)
    if not isinstance(value, int) or isinstance(value, bool):
        raise NexusResponseShapeError.missing(key, field)
    return value


def _parse_counts(payload: object, key: str) -> ItemCounts:
    if not isinstance(payload, dict):
        raise NexusResponseShapeError.missing(key, "response")
    name = payload.get("name")
    return ItemCounts(
        name=name if isinstance(name, str) else key,
        total=_required_int(payload, "mod_downloads", key),
        unique=_required_int(payload, "mod_unique_downloads", key),
    )


class NexusClient:
    """REST implementation of :class:`CountFetcher`."""

    def __init__(
        self,
        config: NexusConfig,
        *,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialise the client with the provided API configuration."""
        if not config.api_key.strip():
            raise NexusConfigError.missing_key()

        self._config = config
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(
            timeout=config.timeout_s,
            headers={
                "apikey": config.api_key,
                "User-Agent": config.user_agent,
                "Accept": "application/json",
            },
        )

    async def aclose(self) -> None:
        """Close any owned HTTP resources."""
        if self._owns_client:
            await self._client.aclose()

    def _info_endpoint(self, item: TrackedItem) -> str:
        return f"{self._config.base_url}/v1/games/{item.domain}/mods/{item.mod_id}.json"

    async def fetch_counts(self, item: TrackedItem) -> ItemCounts:
        """Return the current download counts for ``item``.

        Raises
        ------
        NexusAPIError
            On any HTTP error or transport failure; ``kind`` tells the caller
            whether the failure is specific to this item.
        NexusResponseShapeError
            If the payload lacks the download counters.

        """
        try:
            response = await self._client.get(self._info_endpoint(item))
        except httpx.TransportError as exc:
            raise NexusAPIError.transport(
                item.key, describe_transport_error(exc)
            ) from exc

        if is_error_status(response.status_code):
            raise NexusAPIError.http_error(item.key, response.status_code)

        try:
            payload = response.json()
        except json.JSONDecodeError as exc:
            raise NexusResponseShapeError.missing(item.key, "json body") from exc
        return _parse_counts(payload, item.key)
