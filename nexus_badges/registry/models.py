"""Typed structures persisted in the local registry file."""

from __future__ import annotations

import typing as typ

import msgspec

CountField = typ.Literal["total", "unique"]
StyleName = typ.Literal["flat", "flat-square", "plastic", "for-the-badge", "social"]
BadgeFormat = typ.Literal["markdown", "url", "rst", "asciidoc", "html"]

_HEX_COLOR_LENGTH = 6


class TrackedItem(msgspec.Struct, frozen=True, kw_only=True):
    """A Nexus Mods page whose download counts are published.

    Identity is the exact ``(domain, mod_id)`` pair; no case folding or other
    normalisation is applied to ``domain``.

    Attributes
    ----------
    domain : str
        Game domain as it appears in Nexus URLs, e.g. ``eldenring``.
    mod_id : int
        Numeric mod identifier within the domain.

    """

    domain: str
    mod_id: int

    def __post_init__(self) -> None:
        """Reject empty domains and negative identifiers."""
        if not self.domain:
            msg = "domain must be non-empty"
            raise ValueError(msg)
        if self.mod_id < 0:
            msg = f"mod_id must be non-negative, got {self.mod_id}"
            raise ValueError(msg)

    @property
    def key(self) -> str:
        """Return the document key, ``"{domain}:{mod_id}"``."""
        return f"{self.domain}:{self.mod_id}"


class ItemCounts(msgspec.Struct, frozen=True, kw_only=True):
    """Download counts last fetched for a tracked item."""

    name: str
    total: int
    unique: int


class BadgeStyle(msgspec.Struct, frozen=True, kw_only=True):
    """Badge rendering preferences.

    Attributes
    ----------
    label : str
        Left-hand badge text.
    count : {"total", "unique"}
        Which download counter the badge displays.
    style : str
        shields.io style name; ``flat`` is the service default and is omitted
        from generated URLs.
    format : str
        Output snippet format written to ``badges.md``.
    label_color, color : str, optional
        ``#rrggbb`` colours, ``None`` for the service default.

    """

    label: str = "Nexus Downloads"
    count: CountField = "total"
    style: StyleName = "flat"
    format: BadgeFormat = "markdown"
    label_color: str | None = None
    color: str | None = None


class Credentials(msgspec.Struct, frozen=True, kw_only=True):
    """API credentials. Empty strings mean "not configured"."""

    nexus_key: str = ""
    git_token: str = ""


class AutomationTarget(msgspec.Struct, frozen=True, kw_only=True):
    """GitHub repository hosting the scheduled workflow."""

    owner: str = ""
    repo: str = ""

    @property
    def configured(self) -> bool:
        """Return True when both owner and repository are known."""
        return bool(self.owner and self.repo)

    @property
    def slug(self) -> str:
        """Return ``owner/repo``."""
        return f"{self.owner}/{self.repo}"


class Registry(msgspec.Struct, frozen=True, kw_only=True):
    """The complete local state of one installation.

    Attributes
    ----------
    items : tuple[TrackedItem, ...]
        Tracked items in insertion order.
    counts : dict[str, ItemCounts]
        Last successful fetch per item key.
    style : BadgeStyle
        Badge preferences.
    credentials : Credentials
        Nexus API key and GitHub token.
    gist_id : str
        Identifier of the remote document; empty until ``init``.
    automation : AutomationTarget
        Repository whose Actions configuration mirrors this registry.
    cache_key : str
        Last observed cache-key record.
    published : tuple[str, ...]
        Document keys written by the last successful sync. Keys listed here
        but no longer tracked are deleted from the document on the next sync.

    """

    items: tuple[TrackedItem, ...] = ()
    counts: dict[str, ItemCounts] = msgspec.field(default_factory=dict)
    style: BadgeStyle = msgspec.field(default_factory=BadgeStyle)
    credentials: Credentials = msgspec.field(default_factory=Credentials)
    gist_id: str = ""
    automation: AutomationTarget = msgspec.field(default_factory=AutomationTarget)
    cache_key: str = ""
    published: tuple[str, ...] = ()

    def tracks(self, item: TrackedItem) -> bool:
        """Return True when ``item`` is already tracked."""
        return item in self.items

    @property
    def item_keys(self) -> frozenset[str]:
        """Return the document keys owned by the tracked items."""
        return frozenset(item.key for item in self.items)


def parse_color(raw: str) -> str | None:
    """Validate a hex colour, returning ``#rrggbb`` or ``None`` for default.

    Raises
    ------
    ValueError
        If ``raw`` is neither ``default`` nor six hex digits.

    Examples
    --------
    >>> parse_color("23282e")
    '#23282e'
    >>> parse_color("Default") is None
    True

    """
    if raw.strip().lower() == "default":
        return None
    hex_digits = raw.strip().removeprefix("#")
    if len(hex_digits) != _HEX_COLOR_LENGTH:
        msg = f"Color must be 6 hex digits, got {raw!r}"
        raise ValueError(msg)
    if any(c not in "0123456789abcdefABCDEF" for c in hex_digits):
        msg = f"Color must contain only hex digits, got {raw!r}"
        raise ValueError(msg)
    return f"#{hex_digits}"
