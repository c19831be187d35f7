"""Nexus Mods API access for download counts."""

from nexus_badges.nexus.client import (
    CountFetcher,
    NexusClient,
    NexusConfig,
    mod_page_url,
)
from nexus_badges.nexus.errors import (
    NexusAPIError,
    NexusConfigError,
    NexusError,
    NexusResponseShapeError,
)

__all__ = [
    "CountFetcher",
    "NexusAPIError",
    "NexusClient",
    "NexusConfig",
    "NexusConfigError",
    "NexusError",
    "NexusResponseShapeError",
    "mod_page_url",
]
