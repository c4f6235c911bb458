"""Port: remote registry catalog fetcher."""

from __future__ import annotations

from typing import Protocol

from mcp_mirror.models import FetchedServer


class RegistryFetcherPort(Protocol):
    """Port for pulling the complete server catalog of one registry."""

    async def fetch_all(self, base_url: str) -> list[FetchedServer]:
        """Drain every page of ``base_url`` and return the active entries.

        Raises RegistryFetchError if any page fails; no partial list is returned.
        """
        ...
