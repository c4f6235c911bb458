"""Cursor-paginated HTTP client for MCP registry catalog endpoints.

Wire format of one page::

    GET {base_url}?limit=100&cursor=<nextCursor of the previous page>

    {
      "servers": [{"server": {...}, "_meta": {...}}, ...],
      "metadata": {"count": 100, "nextCursor": "..."}
    }

The first request carries no cursor. An empty or missing ``nextCursor``
ends the listing.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

import httpx

from mcp_mirror.errors import RegistryFetchError
from mcp_mirror.models import ACTIVE_STATUSES, FetchedServer

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 100
DEFAULT_TIMEOUT_SECONDS = 30.0
_RETRY_DELAY_SECONDS = 2.0


@dataclass
class RegistryFetchClient:
    """Async client that drains a registry's server listing.

    ``max_pages`` of 0 means no cap. ``page_retries`` bounds how often one
    page is re-requested after a transport error or HTTP 429; every other
    failure aborts the fetch immediately. ``timeout`` bounds each whole
    request, response body included; per-phase limits such as the connect
    timeout come from the ``http`` client itself.
    """

    http: httpx.AsyncClient
    page_size: int = DEFAULT_PAGE_SIZE
    timeout: float = DEFAULT_TIMEOUT_SECONDS
    max_pages: int = 0
    page_retries: int = 0
    retry_delay: float = _RETRY_DELAY_SECONDS

    async def fetch_all(self, base_url: str) -> list[FetchedServer]:
        """Fetch every page of ``base_url`` and return the active entries.

        Entries keep the order in which pages arrived and, within a page,
        the order the registry returned them.

        Raises:
            RegistryFetchError: On the first page that fails to transfer,
                returns a non-200 status, or does not decode. Entries from
                earlier pages are discarded.
        """
        entries: list[FetchedServer] = []
        cursor = ""
        page = 0

        while True:
            page += 1
            if self.max_pages and page > self.max_pages:
                raise RegistryFetchError(
                    f"Registry {base_url} exceeded the limit of {self.max_pages} pages",
                    page=page,
                    url=base_url,
                )

            logger.info("Fetching page %d from %s", page, base_url)
            data = await self._get_page(base_url, cursor, page)
            active = self._parse_page(data, base_url, page)
            entries.extend(active)
            logger.info("Found %d active servers on page %d", len(active), page)

            cursor = self._next_cursor(data)
            if not cursor:
                break

        return entries

    # ── HTTP helpers ──────────────────────────────────────────

    async def _get_page(self, base_url: str, cursor: str, page: int) -> dict:
        """GET one page with bounded retry on transport errors and 429."""
        params: dict[str, object] = {"limit": self.page_size}
        if cursor:
            params["cursor"] = cursor

        last_error = ""
        for attempt in range(self.page_retries + 1):
            try:
                async with asyncio.timeout(self.timeout or None):
                    response = await self.http.get(base_url, params=params)
            except TimeoutError:
                last_error = f"failed to fetch page {page}: no response within {self.timeout}s"
            except httpx.HTTPError as exc:
                last_error = f"failed to fetch page {page}: {exc}"
            else:
                if response.status_code == 429:
                    last_error = f"rate limited on page {page} (HTTP 429)"
                elif response.status_code != 200:
                    raise RegistryFetchError(
                        f"Unexpected status code on page {page} from {base_url}: "
                        f"{response.status_code}",
                        page=page,
                        url=base_url,
                    )
                else:
                    return self._decode(response, base_url, page)

            if attempt < self.page_retries:
                logger.warning(
                    "Retrying page %d from %s (%d/%d): %s",
                    page,
                    base_url,
                    attempt + 1,
                    self.page_retries,
                    last_error,
                )
                await asyncio.sleep(self.retry_delay)

        raise RegistryFetchError(
            f"Registry {base_url}: {last_error}",
            page=page,
            url=base_url,
        )

    @staticmethod
    def _decode(response: httpx.Response, base_url: str, page: int) -> dict:
        try:
            data = response.json()
        except ValueError as exc:
            raise RegistryFetchError(
                f"Failed to parse JSON on page {page} from {base_url}: {exc}",
                page=page,
                url=base_url,
            ) from exc
        if not isinstance(data, dict):
            raise RegistryFetchError(
                f"Failed to parse JSON on page {page} from {base_url}: "
                f"expected an object, got {type(data).__name__}",
                page=page,
                url=base_url,
            )
        return data

    # ── Parsing helpers ──────────────────────────────────────────

    @staticmethod
    def _parse_page(data: dict, base_url: str, page: int) -> list[FetchedServer]:
        """Return the entries of one page whose status is active or unset."""
        servers_raw = data.get("servers") or []
        if not isinstance(servers_raw, list):
            raise RegistryFetchError(
                f"Malformed page {page} from {base_url}: 'servers' is not a list",
                page=page,
                url=base_url,
            )

        active: list[FetchedServer] = []
        for index, item in enumerate(servers_raw):
            server = item.get("server") if isinstance(item, dict) else None
            if not isinstance(server, dict):
                raise RegistryFetchError(
                    f"Malformed page {page} from {base_url}: "
                    f"entry {index} has no 'server' object",
                    page=page,
                    url=base_url,
                )
            meta = item.get("_meta")
            entry = FetchedServer(server=server, meta=meta if isinstance(meta, dict) else {})
            if entry.status not in ACTIVE_STATUSES:
                logger.debug(
                    "Skipping %s@%s with status '%s'", entry.name, entry.version, entry.status
                )
                continue
            active.append(entry)
        return active

    @staticmethod
    def _next_cursor(data: dict) -> str:
        metadata = data.get("metadata")
        if not isinstance(metadata, dict):
            return ""
        cursor = metadata.get("nextCursor")
        return cursor if isinstance(cursor, str) else ""
