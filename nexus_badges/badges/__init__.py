"""Badge text generation from published download counts."""

from nexus_badges.badges.counts import format_download_count
from nexus_badges.badges.render import (
    badge_query,
    badge_url,
    render_badges,
    render_snippet,
    write_badges,
)

__all__ = [
    "badge_query",
    "badge_url",
    "format_download_count",
    "render_badges",
    "render_snippet",
    "write_badges",
]
