"""Helpers shared by the MCP tools: context lookup and row serialization."""

from __future__ import annotations

import json
from dataclasses import asdict
from typing import TYPE_CHECKING

from mcp.server.fastmcp import Context

from mcp_mirror.errors import RegistryNotFoundError
from mcp_mirror.models import Installation, Registry, ServerEntry, SkillEntry
from mcp_mirror.store.base import MirrorStorePort

if TYPE_CHECKING:
    from mcp_mirror.server import AppContext


def get_context(ctx: Context) -> AppContext:
    """Extract AppContext from FastMCP's lifespan context.

    Raises TypeError if the lifespan context is not an AppContext instance.
    This catches misconfiguration early with a clear error message.
    """
    from mcp_mirror.server import AppContext

    app = ctx.request_context.lifespan_context
    if not isinstance(app, AppContext):
        msg = (
            f"Expected AppContext in lifespan_context, got {type(app).__name__}. "
            "Is the server configured with app_lifespan?"
        )
        raise TypeError(msg)
    return app


def resolve_registry_id(store: MirrorStorePort, name: str) -> int | None:
    """Map an optional registry name to its id. Empty name means all registries."""
    if not name:
        return None
    registry = store.get_registry(name)
    if registry is None:
        raise RegistryNotFoundError(f"Registry '{name}' not found")
    return registry.id


def registry_to_dict(registry: Registry) -> dict[str, object]:
    return asdict(registry)


def server_to_dict(server: ServerEntry, *, include_data: bool = True) -> dict[str, object]:
    """Row as a dict. Without the raw document, its transport is summarized instead."""
    result = asdict(server)
    if not include_data:
        result["transport"] = server_transport(server)
        result["status"] = install_status(server.installed)
        del result["data"]
    return result


def server_transport(server: ServerEntry) -> str:
    """Transport of the first package in the stored spec, or its registry type.

    ``data`` is opaque to the store, so anything unexpected yields "".
    """
    try:
        spec = json.loads(server.data)
    except ValueError:
        return ""
    packages = spec.get("packages") if isinstance(spec, dict) else None
    if not isinstance(packages, list) or not packages or not isinstance(packages[0], dict):
        return ""
    package = packages[0]
    transport = package.get("transport")
    kind = transport.get("type") if isinstance(transport, dict) else None
    if isinstance(kind, str) and kind:
        return kind
    registry_type = package.get("registryType")
    return registry_type if isinstance(registry_type, str) else ""


def install_status(installed: bool) -> str:
    return "installed" if installed else "available"


def skill_to_dict(skill: SkillEntry, *, include_data: bool = True) -> dict[str, object]:
    result = asdict(skill)
    if not include_data:
        result["status"] = install_status(skill.installed)
        del result["data"]
    return result


def installation_to_dict(installation: Installation) -> dict[str, object]:
    return asdict(installation)
