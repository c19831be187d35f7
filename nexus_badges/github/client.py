"""Shared GitHub REST transport used by the gist and Actions clients."""

from __future__ import annotations

import dataclasses
import json
import typing as typ

import httpx

from nexus_badges.common.http import describe_transport_error, is_error_status

from .errors import GitHubAPIError, GitHubConfigError, GitHubResponseShapeError

_ERROR_DETAIL_LIMIT = 200


@dataclasses.dataclass(frozen=True, slots=True)
class GitHubConfig:
    """Configuration for the GitHub REST API."""

    token: str
    base_url: str = "https://api.github.com"
    api_version: str = "2022-11-28"
    timeout_s: float = 20.0
    user_agent: str = "nexus-badges"


def _error_detail(response: httpx.Response) -> str:
    """Return the API ``message`` field, or a truncated body."""
    try:
        payload = response.json()
    except json.JSONDecodeError:
        return response.text[:_ERROR_DETAIL_LIMIT]
    if isinstance(payload, dict):
        message = payload.get("message")
        if isinstance(message, str):
            return message
    return ""


class GitHubRestClient:
    """Thin wrapper that maps GitHub REST outcomes onto :class:`GitHubAPIError`."""

    def __init__(
        self,
        config: GitHubConfig,
        *,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialise the transport with the provided API configuration."""
        if not config.token.strip():
            raise GitHubConfigError.missing_token()

        self._config = config
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(
            timeout=config.timeout_s,
            headers={
                "Authorization": f"Bearer {config.token}",
                "User-Agent": config.user_agent,
                "Accept": "application/vnd.github+json",
                "X-GitHub-Api-Version": config.api_version,
            },
        )

    @property
    def base_url(self) -> str:
        """Return the API root URL."""
        return self._config.base_url

    async def aclose(self) -> None:
        """Close any owned HTTP resources."""
        if self._owns_client:
            await self._client.aclose()

    async def request(
        self,
        method: str,
        path: str,
        *,
        operation: str,
        json_body: dict[str, typ.Any] | None = None,
        params: dict[str, str] | None = None,
    ) -> httpx.Response:
        """Send a request and raise :class:`GitHubAPIError` on failure.

        Parameters
        ----------
        method
            HTTP method.
        path
            Path relative to the API root, starting with ``/``.
        operation
            Name recorded on raised errors.
        json_body
            Optional JSON payload.
        params
            Optional query parameters.

        Returns
        -------
        httpx.Response
            The successful (2xx/3xx) response.

        """
        try:
            response = await self._client.request(
                method,
                f"{self._config.base_url}{path}",
                json=json_body,
                params=params,
            )
        except httpx.TransportError as exc:
            raise GitHubAPIError.transport(
                operation, describe_transport_error(exc)
            ) from exc

        if is_error_status(response.status_code):
            raise GitHubAPIError.http_error(
                operation, response.status_code, _error_detail(response)
            )
        return response


def response_object(response: httpx.Response, *, field: str) -> dict[str, typ.Any]:
    """Decode a JSON object body or raise :class:`GitHubResponseShapeError`."""
    try:
        payload = response.json()
    except json.JSONDecodeError as exc:
        raise GitHubResponseShapeError.missing(field) from exc
    if not isinstance(payload, dict):
        raise GitHubResponseShapeError.missing(field)
    return payload


def required_str(payload: dict[str, typ.Any], field: str) -> str:
    """Return ``payload[field]`` when it is a string."""
    value = payload.get(field)
    if not isinstance(value, str):
        raise GitHubResponseShapeError.missing(field)
    return value
