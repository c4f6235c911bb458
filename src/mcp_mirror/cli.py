"""Command-line interface: connect, refresh and inspect the local mirror."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from collections.abc import Sequence

from mcp_mirror.errors import McpMirrorError
from mcp_mirror.models import SyncSummary
from mcp_mirror.registration import register_registry, unregister_registry
from mcp_mirror.settings import DATA_DIR_ENV, Settings, load_settings
from mcp_mirror.store.sqlite import SqliteStore
from mcp_mirror.sync.synchronizer import sync_registries
from mcp_mirror.tools._helpers import (
    installation_to_dict,
    registry_to_dict,
    resolve_registry_id,
    server_to_dict,
    skill_to_dict,
)

_LIST_TYPES = ("mcp", "skill", "registry", "installation")
_MAX_CELL_WIDTH = 60
_CELL_WIDTHS = {"name": 40, "title": 30, "description": 50}


def _configure_logging(verbosity: int) -> None:
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity >= 2:
        level = logging.DEBUG
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")


# ─── Commands ─────────────────────────────────────────────────


def _cmd_connect(args: argparse.Namespace, settings: Settings) -> int:
    with SqliteStore(settings.db_path) as store:
        registry = register_registry(store, args.name, args.url, args.type)
    print(f"Registry '{registry.name}' connected ({registry.type}, {registry.url})")
    print("Run 'mcp-mirror refresh' to fetch its servers.")
    return 0


def _cmd_disconnect(args: argparse.Namespace, settings: Settings) -> int:
    with SqliteStore(settings.db_path) as store:
        unregister_registry(store, args.name)
    print(f"Registry '{args.name}' disconnected")
    return 0


async def _refresh(settings: Settings, registry_name: str) -> SyncSummary:
    from mcp_mirror.server import build_fetcher, build_http_client

    with SqliteStore(settings.db_path) as store:
        async with build_http_client(settings) as http_client:
            fetcher = build_fetcher(http_client, settings)
            return await sync_registries(store, fetcher, registry_name=registry_name)


def _cmd_refresh(args: argparse.Namespace, settings: Settings) -> int:
    summary = asyncio.run(_refresh(settings, args.registry))

    if args.json:
        print(json.dumps(summary.to_dict(), indent=2))
    else:
        print(_format_summary_text(summary))
    return 0 if summary.failed == 0 else 1


def _cmd_list(args: argparse.Namespace, settings: Settings) -> int:
    with SqliteStore(settings.db_path) as store:
        registry_id = resolve_registry_id(store, args.registry)
        if args.resource_type == "registry":
            items = [registry_to_dict(r) for r in store.list_registries()]
            columns = ("name", "url", "type", "created_at")
        elif args.resource_type == "mcp":
            items = [server_to_dict(s, include_data=False) for s in store.list_servers(registry_id)]
            columns = ("name", "title", "version", "transport", "status")
        elif args.resource_type == "skill":
            items = [skill_to_dict(s, include_data=False) for s in store.list_skills(registry_id)]
            columns = ("name", "description", "version", "status")
        else:
            items = [installation_to_dict(i) for i in store.list_installations()]
            columns = ("resource_type", "resource_name", "version", "created_at")

    if args.json:
        print(json.dumps(items, indent=2))
    elif not items:
        print(f"No {args.resource_type} entries found.")
    else:
        print(_format_table(columns, items))
    return 0


def _cmd_serve(args: argparse.Namespace, settings: Settings) -> int:
    from mcp_mirror.server import create_server

    server = create_server(settings)
    server.settings.host = args.host or settings.api_host
    server.settings.port = args.port or settings.api_port
    server.run(transport=args.transport)
    return 0


# ─── Formatting ───────────────────────────────────────────────


def _cell(value: object, width: int) -> str:
    text = str(value).replace("\n", " ") or "-"
    if len(text) > width:
        return text[: width - 3] + "..."
    return text


def _format_table(columns: Sequence[str], items: list[dict[str, object]]) -> str:
    rows = [
        [_cell(item.get(col, ""), _CELL_WIDTHS.get(col, _MAX_CELL_WIDTH)) for col in columns]
        for item in items
    ]
    widths = [max(len(col), *(len(row[i]) for row in rows)) for i, col in enumerate(columns)]
    lines = ["  ".join(col.upper().ljust(w) for col, w in zip(columns, widths, strict=True))]
    lines.append("  ".join("-" * w for w in widths))
    for row in rows:
        lines.append("  ".join(cell.ljust(w) for cell, w in zip(row, widths, strict=True)))
    lines.append(f"\n{len(rows)} total")
    return "\n".join(lines)


def _format_summary_text(summary: SyncSummary) -> str:
    if not summary.results:
        return "No registries connected. Use 'mcp-mirror connect <url> <name>' to add one."
    lines: list[str] = []
    for result in summary.results:
        if result.success:
            line = f"{result.registry_name}: stored {result.stored} of {result.fetched} servers"
            if result.failed:
                line += f" ({result.failed} failed)"
            if result.removed:
                line += f", {result.removed} removed"
        else:
            line = f"{result.registry_name}: FAILED - {result.error}"
        lines.append(line)
    lines.append(
        f"\nTotal servers: {summary.total_stored} "
        f"({summary.succeeded} registries refreshed, {summary.failed} failed)"
    )
    return "\n".join(lines)


# ─── Argument parsing ─────────────────────────────────────────


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="mcp-mirror",
        description="Mirror remote MCP registries into a local database.",
    )
    parser.add_argument(
        "--data-dir",
        default=None,
        help=f"Data directory (default: ${DATA_DIR_ENV} or ~/.mcp-mirror).",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Log progress (-v) or debug details (-vv).",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    connect = sub.add_parser("connect", help="Register a remote registry.")
    connect.add_argument("url", help="Registry server-listing URL.")
    connect.add_argument("name", help="Unique local name for the registry.")
    connect.add_argument(
        "-t", "--type", default="public", help="Registry type: public or private."
    )
    connect.set_defaults(handler=_cmd_connect)

    disconnect = sub.add_parser("disconnect", help="Remove a registry and its entries.")
    disconnect.add_argument("name", help="Registry name.")
    disconnect.set_defaults(handler=_cmd_disconnect)

    refresh = sub.add_parser("refresh", help="Fetch fresh data from connected registries.")
    refresh.add_argument("--registry", default="", help="Refresh only this registry.")
    refresh.add_argument("--json", action="store_true", help="Print the summary as JSON.")
    refresh.set_defaults(handler=_cmd_refresh)

    list_ = sub.add_parser("list", help="List mirrored resources.")
    list_.add_argument("resource_type", choices=_LIST_TYPES)
    list_.add_argument("--registry", default="", help="Only entries from this registry.")
    list_.add_argument("--json", action="store_true", help="Print JSON instead of a table.")
    list_.set_defaults(handler=_cmd_list)

    serve = sub.add_parser("serve", help="Run the MCP server (and HTTP API).")
    serve.add_argument(
        "--transport",
        choices=("stdio", "sse", "streamable-http"),
        default="stdio",
        help="MCP transport. The HTTP API is available on sse and streamable-http.",
    )
    serve.add_argument("--host", default="", help="Bind address for HTTP transports.")
    serve.add_argument("--port", type=int, default=0, help="Port for HTTP transports.")
    serve.set_defaults(handler=_cmd_serve)

    return parser.parse_args(argv)


def run_cli(argv: list[str] | None = None) -> int:
    """CLI runner. Returns the process exit code."""
    args = _parse_args(argv)
    _configure_logging(args.verbose)
    try:
        settings = load_settings(args.data_dir)
        return args.handler(args, settings)
    except McpMirrorError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(run_cli())
