"""list_servers / list_skills / list_installations tools."""

from __future__ import annotations

from mcp.server.fastmcp import Context

from mcp_mirror.errors import McpMirrorError
from mcp_mirror.models import ServerEntry
from mcp_mirror.tools._helpers import (
    get_context,
    installation_to_dict,
    resolve_registry_id,
    server_to_dict,
    skill_to_dict,
)


def _matches(server: ServerEntry, query: str) -> bool:
    """Case-insensitive substring match on name, title and description."""
    needle = query.lower()
    return any(needle in text.lower() for text in (server.name, server.title, server.description))


async def list_servers(
    ctx: Context,
    registry: str = "",
    query: str = "",
    include_data: bool = False,
) -> dict[str, object]:
    """List MCP servers from the local mirror.

    Reads only local state; run refresh_registries first to update it.
    Servers are ordered by name, newest version first.

    Args:
        registry: Only servers mirrored from this registry. Empty for all.
        query: Optional substring filter on name, title and description.
        include_data: Include the full upstream server.json document.
    """
    try:
        app = get_context(ctx)
        registry_id = resolve_registry_id(app.store, registry)
        servers = app.store.list_servers(registry_id)
        if query:
            servers = [s for s in servers if _matches(s, query)]
        return {
            "success": True,
            "count": len(servers),
            "servers": [server_to_dict(s, include_data=include_data) for s in servers],
        }
    except McpMirrorError as exc:
        return {"success": False, "error": str(exc)}
    except Exception as exc:
        await ctx.error(f"Unexpected error in list_servers: {exc}")
        return {"success": False, "error": f"Internal error: {type(exc).__name__}"}


async def list_skills(
    ctx: Context,
    registry: str = "",
    include_data: bool = False,
) -> dict[str, object]:
    """List skills from the local mirror, ordered by name then version.

    Args:
        registry: Only skills mirrored from this registry. Empty for all.
        include_data: Include the full upstream skill document.
    """
    try:
        app = get_context(ctx)
        registry_id = resolve_registry_id(app.store, registry)
        skills = app.store.list_skills(registry_id)
        return {
            "success": True,
            "count": len(skills),
            "skills": [skill_to_dict(s, include_data=include_data) for s in skills],
        }
    except McpMirrorError as exc:
        return {"success": False, "error": str(exc)}
    except Exception as exc:
        await ctx.error(f"Unexpected error in list_skills: {exc}")
        return {"success": False, "error": f"Internal error: {type(exc).__name__}"}


async def list_installations(ctx: Context) -> dict[str, object]:
    """List locally installed servers and skills, most recent first."""
    try:
        app = get_context(ctx)
        installations = app.store.list_installations()
        return {
            "success": True,
            "count": len(installations),
            "installations": [installation_to_dict(i) for i in installations],
        }
    except McpMirrorError as exc:
        return {"success": False, "error": str(exc)}
    except Exception as exc:
        await ctx.error(f"Unexpected error in list_installations: {exc}")
        return {"success": False, "error": f"Internal error: {type(exc).__name__}"}
