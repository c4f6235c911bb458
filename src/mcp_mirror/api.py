"""Read-only JSON endpoints over the local mirror.

Mounted on the FastMCP app as custom routes, so they are served whenever
the server runs with an HTTP transport::

    GET /api/registries
    GET /api/servers
    GET /api/skills
    GET /api/installations
    GET /api/health
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from pathlib import Path

from mcp.server.fastmcp import FastMCP
from starlette.requests import Request
from starlette.responses import JSONResponse

from mcp_mirror.errors import McpMirrorError
from mcp_mirror.settings import Settings, load_settings
from mcp_mirror.store.sqlite import SqliteStore
from mcp_mirror.tools._helpers import (
    installation_to_dict,
    registry_to_dict,
    server_to_dict,
    skill_to_dict,
)

logger = logging.getLogger(__name__)

Endpoint = Callable[[Request], Awaitable[JSONResponse]]
Loader = Callable[[SqliteStore], list[dict[str, object]]]


def _list_response(db_path: Path, loader: Loader) -> JSONResponse:
    try:
        with SqliteStore(db_path) as store:
            payload = loader(store)
    except McpMirrorError as exc:
        logger.warning("API request failed: %s", exc)
        return JSONResponse({"error": str(exc)}, status_code=500)
    return JSONResponse(payload)


def api_endpoints(settings: Settings | None = None) -> dict[str, Endpoint]:
    """Build the endpoint handlers, keyed by path.

    Each request opens its own store on ``settings.db_path``. Without
    explicit settings they are resolved per request from the environment.
    """

    def listing(loader: Loader) -> Endpoint:
        async def endpoint(request: Request) -> JSONResponse:
            resolved = settings or load_settings()
            return _list_response(resolved.db_path, loader)

        return endpoint

    async def health_check(request: Request) -> JSONResponse:
        return JSONResponse({"status": "ok", "message": "mcp-mirror API is running"})

    return {
        "/api/registries": listing(
            lambda store: [registry_to_dict(r) for r in store.list_registries()]
        ),
        "/api/servers": listing(lambda store: [server_to_dict(s) for s in store.list_servers()]),
        "/api/skills": listing(lambda store: [skill_to_dict(s) for s in store.list_skills()]),
        "/api/installations": listing(
            lambda store: [installation_to_dict(i) for i in store.list_installations()]
        ),
        "/api/health": health_check,
    }


def register_api_routes(server: FastMCP, settings: Settings | None = None) -> None:
    """Attach the read-only endpoints to ``server``."""
    for path, endpoint in api_endpoints(settings).items():
        server.custom_route(path, methods=["GET"])(endpoint)
