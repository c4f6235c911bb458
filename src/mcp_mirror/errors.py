"""Exception hierarchy for mcp-mirror.

All exceptions inherit from McpMirrorError (single catch point).
Messages name the operation and the key involved so a failure can be
localized from the message alone.
"""

from __future__ import annotations


class McpMirrorError(Exception):
    """Base exception for all mcp-mirror errors."""


class StoreError(McpMirrorError):
    """Error reading from or writing to the local mirror database."""


class StoreNotInitializedError(StoreError):
    """The store was used before initialize() or after close()."""


class RegistryExistsError(StoreError):
    """A registry with the same name is already registered."""


class RegistryNotFoundError(StoreError):
    """No registry with the given name is registered."""


class InvalidRegistryError(McpMirrorError):
    """Registry name or URL rejected before any write."""


class InvalidRegistryTypeError(InvalidRegistryError):
    """Registry type is not 'public' or 'private'."""


class RegistryFetchError(McpMirrorError):
    """Fetching a remote registry catalog failed.

    ``page`` is the 1-based page number the failure happened on.
    """

    def __init__(self, message: str, *, page: int = 0, url: str = "") -> None:
        super().__init__(message)
        self.page = page
        self.url = url


class SettingsError(McpMirrorError):
    """The settings file or an environment override is invalid."""
