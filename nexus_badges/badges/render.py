"""Render shields.io dynamic-JSON badge snippets.

Badges point at the gist's latest-revision raw URL and select a per-item
field with a JSONPath query, so they stay current without being regenerated.
Rendering is pure; only :func:`write_badges` touches the filesystem.
"""

from __future__ import annotations

import typing as typ
from urllib.parse import quote

if typ.TYPE_CHECKING:
    from pathlib import Path

    from nexus_badges.reconcile.models import DocumentEntry
    from nexus_badges.registry.models import BadgeStyle

SHIELDS_DYNAMIC_JSON = "https://img.shields.io/badge/dynamic/json"
IMAGE_ALT_TEXT = "Nexus Downloads"
_DEFAULT_STYLE = "flat"


def _encode(value: str) -> str:
    return quote(value, safe="")


def display_field(style: BadgeStyle) -> str:
    """Return the document field shown by the badge."""
    return f"{style.count}_display"


def badge_query(key: str, style: BadgeStyle) -> str:
    """Return the JSONPath selecting the displayed count for ``key``.

    >>> from nexus_badges.registry.models import BadgeStyle
    >>> badge_query("eldenring:4825", BadgeStyle())
    "$['eldenring:4825'].total_display"
    """
    return f"$['{key}'].{display_field(style)}"


def _optional_params(style: BadgeStyle) -> str:
    params = ""
    if style.style != _DEFAULT_STYLE:
        params += f"&style={style.style}"
    if style.label_color is not None:
        params += f"&labelColor={_encode(style.label_color)}"
    if style.color is not None:
        params += f"&color={_encode(style.color)}"
    return params


def badge_url(json_url: str, key: str, style: BadgeStyle, *, link: str = "") -> str:
    """Build the shields.io image URL for one document entry."""
    url = (
        f"{SHIELDS_DYNAMIC_JSON}?url={_encode(json_url)}"
        f"&query={_encode(badge_query(key, style))}"
        f"&label={_encode(style.label)}"
        f"{_optional_params(style)}"
    )
    if link:
        url += f"&link={_encode(link)}"
    return url


def render_snippet(json_url: str, key: str, page_url: str, style: BadgeStyle) -> str:
    """Render a single badge in ``style.format``.

    Markdown wraps the image in a hyperlink; other formats embed the link in
    the badge URL itself.
    """
    if style.format == "markdown":
        image = f"![{IMAGE_ALT_TEXT}]({badge_url(json_url, key, style)})"
        return f"[{image}]({page_url})" if page_url else image

    url = badge_url(json_url, key, style, link=page_url)
    match style.format:
        case "asciidoc":
            return f"image:{url}[{IMAGE_ALT_TEXT}]"
        case "html":
            return f'<img alt="{IMAGE_ALT_TEXT}" src="{url}">'
        case "rst":
            return f".. image:: {url}\n  :alt: {IMAGE_ALT_TEXT}"
        case _:
            return url


def render_badges(
    entries: typ.Mapping[str, DocumentEntry],
    style: BadgeStyle,
    json_url: str,
) -> str:
    """Render every entry as a fenced snippet preceded by the mod name."""
    blocks = [
        (
            f"<!-- {entry.label} -->\n"
            f"```{style.format}\n"
            f"{render_snippet(json_url, key, entry.url, style)}\n"
            "```\n"
        )
        for key, entry in entries.items()
    ]
    return "\n".join(blocks)


def write_badges(path: Path, text: str) -> None:
    """Write rendered badges to ``path``."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
