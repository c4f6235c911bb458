"""Admit remote registries into the local mirror and remove them again."""

from __future__ import annotations

import logging
from urllib.parse import urlparse

from mcp_mirror.errors import InvalidRegistryError, InvalidRegistryTypeError
from mcp_mirror.models import Registry, RegistryVisibility
from mcp_mirror.store.base import MirrorStorePort

logger = logging.getLogger(__name__)


def normalize_registry_type(registry_type: str) -> RegistryVisibility:
    """Lower-case and validate a registry type.

    Raises:
        InvalidRegistryTypeError: Unless the value is 'public' or 'private'.
    """
    normalized = registry_type.strip().lower()
    try:
        return RegistryVisibility(normalized)
    except ValueError:
        raise InvalidRegistryTypeError(
            f"Invalid registry type: {registry_type!r} (must be 'public' or 'private')"
        ) from None


def register_registry(
    store: MirrorStorePort,
    name: str,
    url: str,
    registry_type: str = "public",
) -> Registry:
    """Validate and record a new remote registry.

    All validation happens before the store is touched.

    Raises:
        InvalidRegistryError: Empty name, or a URL that is not absolute http(s).
        InvalidRegistryTypeError: Type other than 'public' / 'private'.
        RegistryExistsError: A registry with this name already exists.
        StoreError: Any other storage failure.
    """
    name = name.strip()
    url = url.strip()
    if not name:
        raise InvalidRegistryError("Registry name must not be empty")

    invalid_url = f"Invalid registry URL: {url!r} (expected an absolute http:// or https:// URL)"
    try:
        parsed = urlparse(url)
    except ValueError as exc:
        raise InvalidRegistryError(f"{invalid_url}: {exc}") from exc
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise InvalidRegistryError(invalid_url)

    visibility = normalize_registry_type(registry_type)
    registry = store.add_registry(name, url, visibility)
    logger.info("Registered %s registry '%s' at %s", visibility, name, url)
    return registry


def unregister_registry(store: MirrorStorePort, name: str) -> None:
    """Remove a registry and every entry mirrored from it.

    Raises:
        RegistryNotFoundError: If no registry is called ``name``.
    """
    store.remove_registry(name.strip())
    logger.info("Removed registry '%s'", name)
