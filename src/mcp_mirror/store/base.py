"""Port: local mirror storage."""

from __future__ import annotations

from collections.abc import Iterable
from typing import Protocol

from mcp_mirror.models import (
    Installation,
    Registry,
    RegistryVisibility,
    ReplaceOutcome,
    ServerEntry,
    ServerRecord,
    SkillEntry,
    SkillRecord,
)


class MirrorStorePort(Protocol):
    """Port for the persisted mirror of registries and their entries."""

    def list_registries(self) -> list[Registry]:
        """Return all registries, most recently created first."""
        ...

    def get_registry(self, name: str) -> Registry | None:
        """Return the registry called ``name``, or None."""
        ...

    def add_registry(self, name: str, url: str, registry_type: RegistryVisibility) -> Registry:
        """Insert a registry. Raises RegistryExistsError on a duplicate name."""
        ...

    def remove_registry(self, name: str) -> None:
        """Delete a registry and, by cascade, all of its entries."""
        ...

    def list_servers(self, registry_id: int | None = None) -> list[ServerEntry]:
        """Return server entries ordered by name, then version descending."""
        ...

    def list_skills(self, registry_id: int | None = None) -> list[SkillEntry]:
        """Return skill entries ordered by name, then version descending."""
        ...

    def list_installations(self) -> list[Installation]:
        """Return installation records, most recently created first."""
        ...

    def replace_registry_servers(
        self, registry_id: int, records: Iterable[ServerRecord]
    ) -> ReplaceOutcome:
        """Atomically clear and repopulate one registry's server entries."""
        ...

    def replace_registry_skills(
        self, registry_id: int, records: Iterable[SkillRecord]
    ) -> ReplaceOutcome:
        """Atomically clear and repopulate one registry's skill entries."""
        ...
