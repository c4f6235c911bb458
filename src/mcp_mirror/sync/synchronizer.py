"""Refresh local registry mirrors from their remote catalogs.

Each registry is refreshed on its own: fetch every page, then clear and
repopulate that registry's servers in one store transaction. A registry
that cannot be fetched or written is reported and skipped; the run always
continues with the next one.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable

from mcp_mirror.errors import McpMirrorError, RegistryNotFoundError
from mcp_mirror.models import (
    FetchedServer,
    Registry,
    RegistrySyncResult,
    ServerRecord,
    SyncSummary,
)
from mcp_mirror.registry.base import RegistryFetcherPort
from mcp_mirror.store.base import MirrorStorePort

logger = logging.getLogger(__name__)


async def sync_registries(
    store: MirrorStorePort,
    fetcher: RegistryFetcherPort,
    *,
    registry_name: str = "",
) -> SyncSummary:
    """Synchronize every registered registry, or only ``registry_name``.

    Registries are processed one after another in the store's listing
    order. Failures are recorded in the returned summary, never raised.

    Raises:
        RegistryNotFoundError: If ``registry_name`` is given but unknown.
        StoreNotInitializedError: If the store has not been initialized.
    """
    if registry_name:
        registry = store.get_registry(registry_name)
        if registry is None:
            raise RegistryNotFoundError(f"Registry '{registry_name}' not found")
        registries = [registry]
    else:
        registries = store.list_registries()

    results: list[RegistrySyncResult] = []
    for registry in registries:
        results.append(await sync_registry(store, fetcher, registry))

    summary = SyncSummary(results=results)
    logger.info(
        "Refresh finished: %d servers stored, %d registries ok, %d failed",
        summary.total_stored,
        summary.succeeded,
        summary.failed,
    )
    return summary


async def sync_registry(
    store: MirrorStorePort,
    fetcher: RegistryFetcherPort,
    registry: Registry,
) -> RegistrySyncResult:
    """Replace one registry's local servers with a fresh, complete fetch."""
    logger.info("Fetching from %s (%s)", registry.name, registry.url)
    try:
        fetched = await fetcher.fetch_all(registry.url)
    except McpMirrorError as exc:
        logger.warning("Failed to fetch registry '%s': %s", registry.name, exc)
        return RegistrySyncResult(
            registry_name=registry.name,
            url=registry.url,
            success=False,
            error=str(exc),
        )

    records, unserializable = build_server_records(fetched)

    try:
        outcome = store.replace_registry_servers(registry.id, records)
    except McpMirrorError as exc:
        logger.warning("Failed to store servers of registry '%s': %s", registry.name, exc)
        return RegistrySyncResult(
            registry_name=registry.name,
            url=registry.url,
            success=False,
            fetched=len(fetched),
            failed=len(fetched),
            error=str(exc),
        )

    failed = unserializable + outcome.failed
    if failed:
        logger.warning(
            "Stored %d servers from '%s' (%d failed)", outcome.stored, registry.name, failed
        )
    else:
        logger.info("Stored %d servers from '%s'", outcome.stored, registry.name)

    return RegistrySyncResult(
        registry_name=registry.name,
        url=registry.url,
        success=True,
        fetched=len(fetched),
        stored=outcome.stored,
        failed=failed,
        removed=outcome.removed,
    )


def build_server_records(entries: Iterable[FetchedServer]) -> tuple[list[ServerRecord], int]:
    """Serialize fetched entries into storable records.

    Returns the records plus the number of entries whose specification
    could not be serialized.
    """
    records: list[ServerRecord] = []
    failed = 0
    for entry in entries:
        try:
            data = serialize_spec(entry.server)
        except (TypeError, ValueError) as exc:
            failed += 1
            logger.debug("Failed to serialize server '%s': %s", entry.name, exc, exc_info=True)
            continue
        records.append(
            ServerRecord(
                name=entry.name,
                title=entry.title,
                description=entry.description,
                version=entry.version,
                website_url=entry.website_url,
                data=data,
            )
        )
    return records, failed


def serialize_spec(server: dict[str, object]) -> str:
    """Return the upstream server specification as compact JSON text."""
    return json.dumps(server, ensure_ascii=False, separators=(",", ":"), allow_nan=False)
