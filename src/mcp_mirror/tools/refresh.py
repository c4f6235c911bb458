"""refresh_registries tool -- pull fresh catalogs into the local mirror."""

from __future__ import annotations

from mcp.server.fastmcp import Context

from mcp_mirror.errors import McpMirrorError
from mcp_mirror.sync.synchronizer import sync_registries
from mcp_mirror.tools._helpers import get_context


async def refresh_registries(ctx: Context, registry: str = "") -> dict[str, object]:
    """Re-fetch registries and replace their mirrored servers.

    Each registry is refreshed independently: one that cannot be reached
    is reported as failed and keeps its previous servers, while the others
    are still refreshed.

    Args:
        registry: Refresh only this registry. Empty refreshes all of them.

    Returns:
        Totals plus one result per registry with fetched, stored and
        failed counts and the error message of failed registries.
    """
    try:
        app = get_context(ctx)
        summary = await sync_registries(app.store, app.fetcher, registry_name=registry)
        for result in summary.results:
            if result.success:
                await ctx.info(f"Stored {result.stored} servers from {result.registry_name}")
            else:
                await ctx.info(f"Failed to refresh {result.registry_name}: {result.error}")
        return summary.to_dict()
    except McpMirrorError as exc:
        return {"success": False, "error": str(exc)}
    except Exception as exc:
        await ctx.error(f"Unexpected error in refresh_registries: {exc}")
        return {"success": False, "error": f"Internal error: {type(exc).__name__}"}
