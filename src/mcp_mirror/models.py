"""Domain models for mcp-mirror. All frozen dataclasses -- no mutation after creation."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum

# ─── Enumerations ─────────────────────────────────────────────


class RegistryVisibility(StrEnum):
    PUBLIC = "public"
    PRIVATE = "private"


class ResourceType(StrEnum):
    MCP = "mcp"
    SKILL = "skill"


# Upstream server statuses kept by the fetch client. Empty covers
# producers that omit the field.
ACTIVE_STATUSES: frozenset[str] = frozenset({"", "active"})


# ─── Stored Models ────────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class Registry:
    """A remote catalog endpoint registered for synchronization."""

    id: int
    name: str
    url: str
    type: RegistryVisibility
    created_at: str
    updated_at: str


@dataclass(frozen=True, slots=True)
class ServerEntry:
    """An MCP server mirrored from one registry."""

    id: int
    registry_id: int
    name: str
    description: str
    version: str
    data: str
    title: str = ""
    website_url: str = ""
    installed: bool = False
    created_at: str = ""
    updated_at: str = ""


@dataclass(frozen=True, slots=True)
class SkillEntry:
    """A skill mirrored from one registry."""

    id: int
    registry_id: int
    name: str
    description: str
    version: str
    data: str
    installed: bool = False
    created_at: str = ""
    updated_at: str = ""


@dataclass(frozen=True, slots=True)
class Installation:
    """A server or skill installed locally by an external installer."""

    id: int
    resource_type: ResourceType
    resource_id: int
    resource_name: str
    version: str
    config: str = ""
    created_at: str = ""
    updated_at: str = ""


# ─── Write Records ────────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class ServerRecord:
    """Column values for one server row, ready to be written."""

    name: str
    description: str
    version: str
    data: str
    title: str = ""
    website_url: str = ""


@dataclass(frozen=True, slots=True)
class SkillRecord:
    """Column values for one skill row, ready to be written."""

    name: str
    description: str
    version: str
    data: str


@dataclass(frozen=True, slots=True)
class ReplaceOutcome:
    """Result of rebuilding one registry's entries inside a transaction."""

    stored: int = 0
    failed: int = 0
    removed: int = 0


# ─── Fetch Models ─────────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class FetchedServer:
    """One ``{"server": {...}, "_meta": {...}}`` item from a registry page.

    ``server`` is kept as the raw upstream document so it can be stored
    verbatim; the properties only read the columns the store indexes.
    """

    server: dict[str, object]
    meta: dict[str, object] = field(default_factory=dict)

    def _text(self, key: str) -> str:
        value = self.server.get(key)
        return value if isinstance(value, str) else ""

    @property
    def name(self) -> str:
        return self._text("name")

    @property
    def title(self) -> str:
        return self._text("title")

    @property
    def description(self) -> str:
        return self._text("description")

    @property
    def version(self) -> str:
        return self._text("version")

    @property
    def website_url(self) -> str:
        return self._text("websiteUrl")

    @property
    def status(self) -> str:
        return self._text("status")


# ─── Sync Results ─────────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class RegistrySyncResult:
    """Outcome of synchronizing a single registry."""

    registry_name: str
    url: str
    success: bool
    fetched: int = 0
    stored: int = 0
    failed: int = 0
    removed: int = 0
    error: str = ""


@dataclass(frozen=True, slots=True)
class SyncSummary:
    """Outcome of one synchronization run across registries."""

    results: list[RegistrySyncResult] = field(default_factory=list)

    @property
    def total_stored(self) -> int:
        return sum(r.stored for r in self.results)

    @property
    def succeeded(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if not r.success)

    def to_dict(self) -> dict[str, object]:
        return {
            "success": self.failed == 0,
            "total_stored": self.total_stored,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "registries": [
                {
                    "registry": r.registry_name,
                    "url": r.url,
                    "success": r.success,
                    "fetched": r.fetched,
                    "stored": r.stored,
                    "failed": r.failed,
                    "removed": r.removed,
                    "error": r.error,
                }
                for r in self.results
            ],
        }
