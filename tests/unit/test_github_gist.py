"""Unit tests for the revision-checked gist client."""

from __future__ import annotations

import json
import typing as typ

import httpx
import pytest

from nexus_badges.common.http import ErrorKind
from nexus_badges.github import (
    GIST_FILE_NAME,
    GistClient,
    GitHubAPIError,
    GitHubConfig,
    GitHubConfigError,
    GitHubResponseShapeError,
    GitHubRestClient,
    decode_document,
    encode_document,
)
from nexus_badges.github.gist import GistSnapshot

RAW_URL = (
    "https://gist.githubusercontent.com/alice/abc123/raw/"
    "0f1e2d/nexus_badges.json"
)


def _gist_payload(document: dict[str, typ.Any], version: str) -> dict[str, typ.Any]:
    return {
        "id": "abc123",
        "files": {
            GIST_FILE_NAME: {
                "content": json.dumps(document),
                "raw_url": RAW_URL,
            }
        },
        "history": [{"version": version}],
    }


def _make_client(
    handler: typ.Callable[[httpx.Request], httpx.Response],
) -> tuple[GistClient, httpx.AsyncClient]:
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    rest = GitHubRestClient(GitHubConfig(token="token"), http_client=http_client)
    return GistClient(rest), http_client


@pytest.mark.asyncio
async def test_fetch_returns_document_and_revision() -> None:
    """Reading a gist yields the decoded file and the latest history version."""

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=_gist_payload({"other:1": {"x": 1}}, "v7"))

    client, http_client = _make_client(handler)
    try:
        snapshot = await client.fetch("abc123")
    finally:
        await http_client.aclose()

    assert snapshot.document == {"other:1": {"x": 1}}, "Expected decoded content."
    assert snapshot.revision == "v7", "Expected history[0].version as revision."
    assert snapshot.json_url == (
        "https://gist.githubusercontent.com/alice/abc123/raw/nexus_badges.json"
    ), "Expected the unpinned raw URL."


@pytest.mark.asyncio
async def test_fetch_falls_back_to_etag() -> None:
    """Without history the ETag header is the revision."""

    def handler(request: httpx.Request) -> httpx.Response:
        payload = _gist_payload({}, "unused")
        del payload["history"]
        return httpx.Response(200, json=payload, headers={"ETag": '"etag-1"'})

    client, http_client = _make_client(handler)
    try:
        snapshot = await client.fetch("abc123")
    finally:
        await http_client.aclose()

    assert snapshot.revision == '"etag-1"', "Expected the ETag as revision."


@pytest.mark.asyncio
async def test_fetch_missing_file_is_shape_error() -> None:
    """A gist without nexus_badges.json is rejected."""

    def handler(request: httpx.Request) -> httpx.Response:
        payload = _gist_payload({}, "v1")
        payload["files"] = {"other.json": {"content": "{}", "raw_url": RAW_URL}}
        return httpx.Response(200, json=payload)

    client, http_client = _make_client(handler)
    try:
        with pytest.raises(GitHubResponseShapeError, match=GIST_FILE_NAME):
            await client.fetch("abc123")
    finally:
        await http_client.aclose()


@pytest.mark.asyncio
async def test_fetch_not_found() -> None:
    """A missing gist surfaces as a not_found GitHubAPIError."""

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404, json={"message": "Not Found"})

    client, http_client = _make_client(handler)
    try:
        with pytest.raises(GitHubAPIError) as excinfo:
            await client.fetch("abc123")
    finally:
        await http_client.aclose()

    assert excinfo.value.kind is ErrorKind.NOT_FOUND, "Expected not_found."
    assert excinfo.value.operation == "gist.read", "Expected the read operation."
    assert "Not Found" in str(excinfo.value), "Expected the API message."


@pytest.mark.asyncio
async def test_write_patches_when_revision_matches() -> None:
    """A write at the expected revision sends the sorted document."""
    patches: list[dict[str, typ.Any]] = []

    def handler(request: httpx.Request) -> httpx.Response:
        if request.method == "PATCH":
            body = json.loads(request.content)
            patches.append(body)
            content = json.loads(body["files"][GIST_FILE_NAME]["content"])
            return httpx.Response(200, json=_gist_payload(content, "v2"))
        return httpx.Response(200, json=_gist_payload({}, "v1"))

    client, http_client = _make_client(handler)
    try:
        snapshot = await client.write(
            "abc123", {"b": 1, "a": 2}, expected_revision="v1"
        )
    finally:
        await http_client.aclose()

    assert len(patches) == 1, "Expected exactly one PATCH."
    content = patches[0]["files"][GIST_FILE_NAME]["content"]
    assert content == encode_document({"a": 2, "b": 1}), (
        "Expected deterministic content."
    )
    assert content.index('"a"') < content.index('"b"'), "Expected sorted keys."
    assert snapshot.revision == "v2", "Expected the new revision."


@pytest.mark.asyncio
async def test_write_detects_stale_revision() -> None:
    """A write whose base revision moved raises a conflict without patching."""
    methods: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        methods.append(request.method)
        return httpx.Response(200, json=_gist_payload({}, "v2"))

    client, http_client = _make_client(handler)
    try:
        with pytest.raises(GitHubAPIError) as excinfo:
            await client.write("abc123", {"a": 1}, expected_revision="v1")
    finally:
        await http_client.aclose()

    assert excinfo.value.kind is ErrorKind.CONFLICT, "Expected a conflict."
    assert excinfo.value.operation == "gist.write", "Expected the write operation."
    assert methods == ["GET"], "Expected no PATCH after a conflict."


@pytest.mark.asyncio
@pytest.mark.parametrize("status", [409, 412])
async def test_write_maps_precondition_statuses_to_conflict(status: int) -> None:
    """Server-side concurrency rejections are conflicts too."""

    def handler(request: httpx.Request) -> httpx.Response:
        if request.method == "PATCH":
            return httpx.Response(status, json={"message": "changed"})
        return httpx.Response(200, json=_gist_payload({}, "v1"))

    client, http_client = _make_client(handler)
    try:
        with pytest.raises(GitHubAPIError) as excinfo:
            await client.write("abc123", {}, expected_revision="v1")
    finally:
        await http_client.aclose()

    assert excinfo.value.kind is ErrorKind.CONFLICT, f"Expected {status} conflict."


@pytest.mark.asyncio
async def test_create_posts_private_gist() -> None:
    """Creating a gist posts a private gist holding the document."""
    bodies: list[dict[str, typ.Any]] = []

    def handler(request: httpx.Request) -> httpx.Response:
        bodies.append(json.loads(request.content))
        return httpx.Response(201, json=_gist_payload({"a": 1}, "v1"))

    client, http_client = _make_client(handler)
    try:
        snapshot = await client.create({"a": 1})
    finally:
        await http_client.aclose()

    assert bodies[0]["public"] is False, "Expected a private gist."
    assert snapshot.gist_id == "abc123", "Expected the created gist id."


def test_decode_document_rejects_non_object() -> None:
    """Gist content must be a JSON object."""
    with pytest.raises(GitHubResponseShapeError):
        decode_document("[1, 2]")


def test_decode_document_blank_is_empty() -> None:
    """Blank content decodes as an empty document."""
    assert decode_document("  \n") == {}, "Expected an empty document."


def test_json_url_without_raw_segment_is_unchanged() -> None:
    """URLs without /raw/ are returned as-is."""
    snapshot = GistSnapshot(
        gist_id="g", document={}, revision="r", raw_url="https://example.test/x"
    )
    assert snapshot.json_url == "https://example.test/x", "Expected the raw URL."


def test_rest_client_requires_token() -> None:
    """A blank token is rejected at construction."""
    with pytest.raises(GitHubConfigError, match="set --git"):
        GitHubRestClient(GitHubConfig(token=""))
