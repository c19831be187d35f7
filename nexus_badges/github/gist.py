"""Read and write the gist that backs the badge JSON endpoint.

The client is a dumb primitive: it reads the document together with a
revision token and writes a complete document back only if the revision is
still the one the caller read. Merging is the reconciliation engine's job.
"""

from __future__ import annotations

import dataclasses
import typing as typ

import msgspec

from nexus_badges.common.http import ErrorKind

from .client import required_str, response_object
from .errors import GitHubAPIError, GitHubResponseShapeError

if typ.TYPE_CHECKING:
    import httpx

    from .client import GitHubRestClient

GIST_FILE_NAME = "nexus_badges.json"
GIST_DESCRIPTION = (
    "Private gist to be used as a json endpoint for badge download counters"
)
_RAW_SEGMENT = "/raw/"

type Document = dict[str, typ.Any]


def encode_document(document: Document) -> str:
    """Serialise a document deterministically (sorted keys, 2-space indent)."""
    raw = msgspec.json.encode(document, order="sorted")
    return msgspec.json.format(raw, indent=2).decode("utf-8")


def decode_document(content: str) -> Document:
    """Parse gist file content into a document; blank content is empty."""
    if not content.strip():
        return {}
    try:
        decoded = msgspec.json.decode(content)
    except msgspec.DecodeError as exc:
        raise GitHubResponseShapeError.missing(f"{GIST_FILE_NAME} JSON") from exc
    if not isinstance(decoded, dict):
        raise GitHubResponseShapeError.missing(f"{GIST_FILE_NAME} object")
    return decoded


@dataclasses.dataclass(frozen=True, slots=True)
class GistSnapshot:
    """A document as read from (or written to) the gist.

    Attributes
    ----------
    gist_id
        Gist identifier.
    document
        Decoded JSON object stored in ``nexus_badges.json``.
    revision
        Version token of the gist at the time of the read.
    raw_url
        Revision-pinned raw URL of the file.

    """

    gist_id: str
    document: Document
    revision: str
    raw_url: str

    @property
    def json_url(self) -> str:
        """Return the raw URL that always serves the latest revision."""
        index = self.raw_url.find(_RAW_SEGMENT)
        if index < 0:
            return self.raw_url
        return f"{self.raw_url[: index + len(_RAW_SEGMENT)]}{GIST_FILE_NAME}"


def _revision(payload: dict[str, typ.Any], response: httpx.Response) -> str:
    history = payload.get("history")
    if isinstance(history, list) and history and isinstance(history[0], dict):
        version = history[0].get("version")
        if isinstance(version, str) and version:
            return version
    etag = response.headers.get("ETag")
    if etag:
        return etag
    raise GitHubResponseShapeError.missing("history[0].version")


def _snapshot(response: httpx.Response) -> GistSnapshot:
    payload = response_object(response, field="gist")
    files = payload.get("files")
    if not isinstance(files, dict):
        raise GitHubResponseShapeError.missing("files")
    entry = files.get(GIST_FILE_NAME)
    if not isinstance(entry, dict):
        raise GitHubResponseShapeError.missing(f"files.{GIST_FILE_NAME}")
    content = entry.get("content")
    return GistSnapshot(
        gist_id=required_str(payload, "id"),
        document=decode_document(content if isinstance(content, str) else ""),
        revision=_revision(payload, response),
        raw_url=required_str(entry, "raw_url"),
    )


def _file_payload(document: Document) -> dict[str, typ.Any]:
    return {GIST_FILE_NAME: {"content": encode_document(document)}}


class GistClient:
    """Create, read and conditionally update the badge gist."""

    def __init__(self, rest: GitHubRestClient) -> None:
        """Initialise with a shared GitHub REST transport."""
        self._rest = rest

    async def create(self, document: Document) -> GistSnapshot:
        """Create a private gist holding ``document``."""
        response = await self._rest.request(
            "POST",
            "/gists",
            operation="gist.create",
            json_body={
                "description": GIST_DESCRIPTION,
                "public": False,
                "files": _file_payload(document),
            },
        )
        return _snapshot(response)

    async def fetch(self, gist_id: str) -> GistSnapshot:
        """Read the current document and its revision.

        Raises
        ------
        GitHubAPIError
            ``not_found`` when the gist does not exist, ``unauthorized`` for a
            rejected token, ``transient`` for network or server failures.

        """
        return await self._read(gist_id, operation="gist.read")

    async def write(
        self,
        gist_id: str,
        document: Document,
        *,
        expected_revision: str,
    ) -> GistSnapshot:
        """Replace the document if the gist is still at ``expected_revision``.

        The gist API offers no compare-and-swap, so the revision is re-read
        immediately before the update; a 409/412 from the server is reported
        the same way.

        Raises
        ------
        GitHubAPIError
            ``conflict`` when another writer got there first; other kinds as
            for :meth:`fetch`, with ``operation == "gist.write"``.

        """
        current = await self._read(gist_id, operation="gist.write")
        if current.revision != expected_revision:
            raise GitHubAPIError.revision_conflict(
                "gist.write", expected_revision, current.revision
            )
        response = await self._rest.request(
            "PATCH",
            f"/gists/{gist_id}",
            operation="gist.write",
            json_body={"files": _file_payload(document)},
        )
        return _snapshot(response)

    async def _read(self, gist_id: str, *, operation: str) -> GistSnapshot:
        if not gist_id:
            msg = "gist_id must be non-empty"
            raise GitHubAPIError(msg, kind=ErrorKind.NOT_FOUND, operation=operation)
        response = await self._rest.request(
            "GET", f"/gists/{gist_id}", operation=operation
        )
        return _snapshot(response)
