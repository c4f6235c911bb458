"""connect_registry / disconnect_registry / list_registries tools."""

from __future__ import annotations

from mcp.server.fastmcp import Context

from mcp_mirror.errors import McpMirrorError
from mcp_mirror.registration import register_registry, unregister_registry
from mcp_mirror.tools._helpers import get_context, registry_to_dict


async def connect_registry(
    url: str,
    name: str,
    ctx: Context,
    registry_type: str = "public",
) -> dict[str, object]:
    """Register a remote MCP registry so refresh_registries will mirror it.

    Registration only records the registry; run refresh_registries
    afterwards to pull its servers.

    Args:
        url: Full URL of the registry's server listing endpoint,
            e.g. "https://registry.modelcontextprotocol.io/v0.1/servers".
        name: Unique local name for the registry.
        registry_type: "public" (default) or "private".

    Returns:
        The stored registry on success, or success=False with an error.
    """
    try:
        app = get_context(ctx)
        registry = register_registry(app.store, name, url, registry_type)
        return {"success": True, "registry": registry_to_dict(registry)}
    except McpMirrorError as exc:
        return {"success": False, "error": str(exc)}
    except Exception as exc:
        await ctx.error(f"Unexpected error in connect_registry: {exc}")
        return {"success": False, "error": f"Internal error: {type(exc).__name__}"}


async def disconnect_registry(name: str, ctx: Context) -> dict[str, object]:
    """Remove a registry and every server and skill mirrored from it.

    Args:
        name: Registry name as shown by list_registries.
    """
    try:
        app = get_context(ctx)
        unregister_registry(app.store, name)
        return {"success": True, "registry": name}
    except McpMirrorError as exc:
        return {"success": False, "error": str(exc)}
    except Exception as exc:
        await ctx.error(f"Unexpected error in disconnect_registry: {exc}")
        return {"success": False, "error": f"Internal error: {type(exc).__name__}"}


async def list_registries(ctx: Context) -> dict[str, object]:
    """List the registered registries, most recently added first."""
    try:
        app = get_context(ctx)
        registries = app.store.list_registries()
        return {
            "success": True,
            "count": len(registries),
            "registries": [registry_to_dict(r) for r in registries],
        }
    except McpMirrorError as exc:
        return {"success": False, "error": str(exc)}
    except Exception as exc:
        await ctx.error(f"Unexpected error in list_registries: {exc}")
        return {"success": False, "error": f"Internal error: {type(exc).__name__}"}
