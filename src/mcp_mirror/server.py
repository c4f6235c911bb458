"""MCP server exposing the local registry mirror."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from functools import partial

import httpx
from mcp.server.fastmcp import FastMCP
from mcp.types import ToolAnnotations

from mcp_mirror.api import register_api_routes
from mcp_mirror.registry.base import RegistryFetcherPort
from mcp_mirror.registry.client import RegistryFetchClient
from mcp_mirror.settings import Settings, load_settings
from mcp_mirror.store.sqlite import SqliteStore
from mcp_mirror.tools.catalog import list_installations, list_servers, list_skills
from mcp_mirror.tools.refresh import refresh_registries
from mcp_mirror.tools.registries import connect_registry, disconnect_registry, list_registries


@dataclass(frozen=True, slots=True)
class AppContext:
    """Shared state across all tool invocations.

    The store handle is opened once per server lifespan and passed to every
    tool; nothing in the package holds it globally.
    """

    settings: Settings
    http_client: httpx.AsyncClient
    store: SqliteStore
    fetcher: RegistryFetcherPort


def build_http_client(settings: Settings) -> httpx.AsyncClient:
    """Create the shared HTTP client used for registry fetches."""
    return httpx.AsyncClient(
        timeout=httpx.Timeout(settings.request_timeout, connect=settings.connect_timeout),
        follow_redirects=True,
        limits=httpx.Limits(max_connections=10, max_keepalive_connections=5),
    )


def build_fetcher(http_client: httpx.AsyncClient, settings: Settings) -> RegistryFetchClient:
    return RegistryFetchClient(
        http_client,
        page_size=settings.page_size,
        timeout=settings.request_timeout,
        max_pages=settings.max_pages,
        page_retries=settings.page_retries,
        retry_delay=settings.retry_delay,
    )


@asynccontextmanager
async def app_lifespan(
    server: FastMCP, settings: Settings | None = None
) -> AsyncIterator[AppContext]:
    """Open the store and HTTP client for the server lifespan."""
    settings = settings or load_settings()
    store = SqliteStore(settings.db_path)
    store.initialize()
    try:
        async with build_http_client(settings) as http_client:
            yield AppContext(
                settings=settings,
                http_client=http_client,
                store=store,
                fetcher=build_fetcher(http_client, settings),
            )
    finally:
        store.close()


_INSTRUCTIONS = (
    "mcp-mirror keeps a local mirror of remote MCP registries.\n\n"
    "### Workflow\n"
    "1. **connect_registry** — Register a registry endpoint under a unique name.\n"
    "2. **refresh_registries** — Pull every page of each registry and replace "
    "its local servers. A registry that fails keeps its previous servers.\n"
    "3. **list_servers** / **list_skills** — Read the mirror. Use `query` to "
    "filter servers and `registry` to scope to one registry.\n\n"
    "### Other tools\n"
    "- **list_registries** — Show registered registries.\n"
    "- **list_installations** — Show locally installed resources.\n"
    "- **disconnect_registry** — Remove a registry and everything mirrored from it.\n"
)


def create_server(settings: Settings | None = None) -> FastMCP:
    """Build the MCP server with its tools and HTTP API.

    With explicit ``settings`` the lifespan and the API routes use that data
    directory; otherwise each resolves settings from the environment.
    """
    server = FastMCP(
        "mcp-mirror",
        instructions=_INSTRUCTIONS,
        lifespan=partial(app_lifespan, settings=settings),
    )

    # ─── Read-only tools ──────────────────────────────────────
    server.tool(annotations=ToolAnnotations(readOnlyHint=True))(list_registries)
    server.tool(annotations=ToolAnnotations(readOnlyHint=True))(list_servers)
    server.tool(annotations=ToolAnnotations(readOnlyHint=True))(list_skills)
    server.tool(annotations=ToolAnnotations(readOnlyHint=True))(list_installations)

    # ─── Mutating tools ───────────────────────────────────────
    server.tool(annotations=ToolAnnotations(destructiveHint=False))(connect_registry)
    server.tool(annotations=ToolAnnotations(destructiveHint=True))(refresh_registries)
    server.tool(annotations=ToolAnnotations(destructiveHint=True))(disconnect_registry)

    # ─── HTTP API (streamable-http / sse transports) ─────────
    register_api_routes(server, settings)
    return server


mcp = create_server()
