"""SQLite-backed mirror store.

One database file per user holds four tables: ``registries``, ``servers``,
``skills`` and ``installations``. Entries cascade-delete with their
registry and are unique per (registry_id, name, version).

The connection runs in autocommit mode; multi-statement writes go through
``transaction()`` so a registry's entries are never observed half-replaced.
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Callable, Iterable, Iterator
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path

from mcp_mirror.errors import (
    RegistryExistsError,
    RegistryNotFoundError,
    StoreError,
    StoreNotInitializedError,
)
from mcp_mirror.models import (
    Installation,
    Registry,
    RegistryVisibility,
    ReplaceOutcome,
    ResourceType,
    ServerEntry,
    ServerRecord,
    SkillEntry,
    SkillRecord,
)

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS registries (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT UNIQUE NOT NULL,
    url TEXT NOT NULL,
    type TEXT NOT NULL,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS servers (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    registry_id INTEGER NOT NULL,
    name TEXT NOT NULL,
    title TEXT,
    description TEXT NOT NULL,
    version TEXT NOT NULL,
    website_url TEXT,
    installed BOOLEAN NOT NULL DEFAULT 0,
    data TEXT NOT NULL,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    FOREIGN KEY (registry_id) REFERENCES registries(id) ON DELETE CASCADE,
    UNIQUE (registry_id, name, version)
);

CREATE TABLE IF NOT EXISTS skills (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    registry_id INTEGER NOT NULL,
    name TEXT NOT NULL,
    description TEXT NOT NULL,
    version TEXT NOT NULL,
    installed BOOLEAN NOT NULL DEFAULT 0,
    data TEXT NOT NULL,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    FOREIGN KEY (registry_id) REFERENCES registries(id) ON DELETE CASCADE,
    UNIQUE (registry_id, name, version)
);

CREATE TABLE IF NOT EXISTS installations (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    resource_type TEXT NOT NULL,
    resource_id INTEGER NOT NULL,
    resource_name TEXT NOT NULL,
    version TEXT NOT NULL,
    config TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    UNIQUE (resource_type, resource_name)
);

CREATE INDEX IF NOT EXISTS idx_servers_registry ON servers(registry_id);
CREATE INDEX IF NOT EXISTS idx_skills_registry ON skills(registry_id);
CREATE INDEX IF NOT EXISTS idx_servers_installed ON servers(installed);
CREATE INDEX IF NOT EXISTS idx_skills_installed ON skills(installed);
"""

_ENTRY_TABLES: dict[ResourceType, str] = {
    ResourceType.MCP: "servers",
    ResourceType.SKILL: "skills",
}

_UPSERT_SERVER = """
INSERT INTO servers (
    registry_id, name, title, description, version, website_url,
    installed, data, created_at, updated_at
)
VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
ON CONFLICT (registry_id, name, version) DO UPDATE SET
    title = excluded.title,
    description = excluded.description,
    website_url = excluded.website_url,
    data = excluded.data,
    updated_at = excluded.updated_at
"""

_UPSERT_SKILL = """
INSERT INTO skills (
    registry_id, name, description, version, installed, data, created_at, updated_at
)
VALUES (?, ?, ?, ?, ?, ?, ?, ?)
ON CONFLICT (registry_id, name, version) DO UPDATE SET
    description = excluded.description,
    data = excluded.data,
    updated_at = excluded.updated_at
"""


def _now_iso() -> str:
    """Return current UTC time as an ISO 8601 string with Z suffix."""
    return datetime.now(tz=UTC).isoformat(timespec="microseconds").replace("+00:00", "Z")


# Snapshot of an entry row that must survive a rebuild: (installed, created_at).
_Kept = dict[tuple[str, str], tuple[bool, str]]


class SqliteStore:
    """Mirror store backed by a single SQLite file.

    Construct with a path, then call ``initialize()`` (or use it as a
    context manager) before any other operation. Calls made before
    initialization raise ``StoreNotInitializedError``.
    """

    def __init__(self, path: Path | str, *, clock: Callable[[], str] = _now_iso) -> None:
        self.path = Path(path)
        self._clock = clock
        self._conn: sqlite3.Connection | None = None

    # ── Lifecycle ────────────────────────────────────────────

    def initialize(self) -> None:
        """Open the database, enable foreign keys and create the schema."""
        if self._conn is not None:
            return
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(str(self.path), isolation_level=None)
        except (OSError, sqlite3.Error) as exc:
            raise StoreError(f"Failed to open database {self.path}: {exc}") from exc
        try:
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA foreign_keys = ON")
            conn.executescript(_SCHEMA)
        except sqlite3.Error as exc:
            conn.close()
            raise StoreError(f"Failed to create schema in {self.path}: {exc}") from exc
        self._conn = conn
        logger.debug("Opened mirror database %s", self.path)

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    @property
    def is_initialized(self) -> bool:
        return self._conn is not None

    def __enter__(self) -> SqliteStore:
        self.initialize()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    @property
    def conn(self) -> sqlite3.Connection:
        if self._conn is None:
            raise StoreNotInitializedError(
                f"Database {self.path} is not initialized. Call initialize() first."
            )
        return self._conn

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Run the enclosed statements in one transaction.

        Commits on normal exit and rolls back on any exception, which is
        re-raised. Transactions do not nest.
        """
        conn = self.conn
        if conn.in_transaction:
            raise StoreError("A transaction is already open on this store.")
        conn.execute("BEGIN")
        try:
            yield conn
        except BaseException:
            if conn.in_transaction:
                conn.execute("ROLLBACK")
            raise
        else:
            conn.execute("COMMIT")

    # ── Registries ───────────────────────────────────────────

    def list_registries(self) -> list[Registry]:
        rows = self._query(
            "list registries",
            "SELECT * FROM registries ORDER BY created_at DESC, id DESC",
        )
        return [_row_to_registry(row) for row in rows]

    def get_registry(self, name: str) -> Registry | None:
        rows = self._query(
            f"get registry '{name}'",
            "SELECT * FROM registries WHERE name = ?",
            (name,),
        )
        return _row_to_registry(rows[0]) if rows else None

    def add_registry(self, name: str, url: str, registry_type: RegistryVisibility) -> Registry:
        """Insert a new registry row.

        Raises:
            RegistryExistsError: If ``name`` is already registered.
            StoreError: On any other database failure.
        """
        now = self._clock()
        try:
            cursor = self.conn.execute(
                "INSERT INTO registries (name, url, type, created_at, updated_at) "
                "VALUES (?, ?, ?, ?, ?)",
                (name, url, str(registry_type), now, now),
            )
        except sqlite3.IntegrityError as exc:
            if "registries.name" in str(exc):
                raise RegistryExistsError(f"Registry '{name}' already exists") from exc
            raise StoreError(f"Failed to add registry '{name}': {exc}") from exc
        except sqlite3.Error as exc:
            raise StoreError(f"Failed to add registry '{name}': {exc}") from exc

        return Registry(
            id=int(cursor.lastrowid or 0),
            name=name,
            url=url,
            type=RegistryVisibility(registry_type),
            created_at=now,
            updated_at=now,
        )

    def remove_registry(self, name: str) -> None:
        """Delete a registry; its servers and skills go with it."""
        try:
            cursor = self.conn.execute("DELETE FROM registries WHERE name = ?", (name,))
        except sqlite3.Error as exc:
            raise StoreError(f"Failed to remove registry '{name}': {exc}") from exc
        if cursor.rowcount == 0:
            raise RegistryNotFoundError(f"Registry '{name}' not found")

    # ── Servers ──────────────────────────────────────────────

    def list_servers(self, registry_id: int | None = None) -> list[ServerEntry]:
        sql, params = _entries_query("servers", registry_id)
        rows = self._query("list servers", sql, params)
        return [_row_to_server(row) for row in rows]

    def count_servers(self, registry_id: int) -> int:
        rows = self._query(
            f"count servers of registry {registry_id}",
            "SELECT COUNT(*) FROM servers WHERE registry_id = ?",
            (registry_id,),
        )
        return int(rows[0][0])

    def upsert_server(self, registry_id: int, record: ServerRecord) -> None:
        """Insert a server, or overwrite its mutable columns if it exists.

        ``installed`` and ``created_at`` of an existing row are left alone.
        """
        now = self._clock()
        try:
            self._write_server(self.conn, registry_id, record, installed=False, created_at=now)
        except sqlite3.Error as exc:
            raise StoreError(
                f"Failed to store server '{record.name}@{record.version}' "
                f"in registry {registry_id}: {exc}"
            ) from exc

    def clear_registry_servers(self, registry_id: int) -> int:
        """Delete every server of one registry. Returns the number removed."""
        try:
            cursor = self.conn.execute("DELETE FROM servers WHERE registry_id = ?", (registry_id,))
        except sqlite3.Error as exc:
            raise StoreError(f"Failed to clear servers of registry {registry_id}: {exc}") from exc
        return cursor.rowcount

    def replace_registry_servers(
        self, registry_id: int, records: Iterable[ServerRecord]
    ) -> ReplaceOutcome:
        """Clear and repopulate one registry's servers in a single transaction.

        Installed flags and creation times of entries that are present
        again are carried over. A record that fails to write is rolled back
        to its own savepoint and counted; anything else rolls back the whole
        replacement and leaves the previous entries in place.
        """
        return self._replace_entries("servers", registry_id, records, self._write_server)

    # ── Skills ───────────────────────────────────────────────

    def list_skills(self, registry_id: int | None = None) -> list[SkillEntry]:
        sql, params = _entries_query("skills", registry_id)
        rows = self._query("list skills", sql, params)
        return [_row_to_skill(row) for row in rows]

    def upsert_skill(self, registry_id: int, record: SkillRecord) -> None:
        now = self._clock()
        try:
            self._write_skill(self.conn, registry_id, record, installed=False, created_at=now)
        except sqlite3.Error as exc:
            raise StoreError(
                f"Failed to store skill '{record.name}@{record.version}' "
                f"in registry {registry_id}: {exc}"
            ) from exc

    def clear_registry_skills(self, registry_id: int) -> int:
        try:
            cursor = self.conn.execute("DELETE FROM skills WHERE registry_id = ?", (registry_id,))
        except sqlite3.Error as exc:
            raise StoreError(f"Failed to clear skills of registry {registry_id}: {exc}") from exc
        return cursor.rowcount

    def replace_registry_skills(
        self, registry_id: int, records: Iterable[SkillRecord]
    ) -> ReplaceOutcome:
        return self._replace_entries("skills", registry_id, records, self._write_skill)

    # ── Installations ────────────────────────────────────────

    def set_installed(
        self,
        resource_type: ResourceType,
        registry_id: int,
        name: str,
        version: str,
        installed: bool,
    ) -> bool:
        """Flip the installed flag of one entry. Returns False if no row matched."""
        table = _ENTRY_TABLES[ResourceType(resource_type)]
        try:
            cursor = self.conn.execute(
                f"UPDATE {table} SET installed = ?, updated_at = ? "
                "WHERE registry_id = ? AND name = ? AND version = ?",
                (int(installed), self._clock(), registry_id, name, version),
            )
        except sqlite3.Error as exc:
            raise StoreError(f"Failed to mark {resource_type} '{name}@{version}': {exc}") from exc
        return cursor.rowcount > 0

    def list_installations(self) -> list[Installation]:
        rows = self._query(
            "list installations",
            "SELECT * FROM installations ORDER BY created_at DESC, id DESC",
        )
        return [_row_to_installation(row) for row in rows]

    def record_installation(
        self,
        resource_type: ResourceType,
        resource_id: int,
        resource_name: str,
        version: str,
        config: str = "",
    ) -> None:
        """Insert or update the installation record for one resource."""
        now = self._clock()
        try:
            self.conn.execute(
                "INSERT INTO installations ("
                "resource_type, resource_id, resource_name, version, config, "
                "created_at, updated_at) VALUES (?, ?, ?, ?, ?, ?, ?) "
                "ON CONFLICT (resource_type, resource_name) DO UPDATE SET "
                "resource_id = excluded.resource_id, version = excluded.version, "
                "config = excluded.config, updated_at = excluded.updated_at",
                (str(resource_type), resource_id, resource_name, version, config, now, now),
            )
        except sqlite3.Error as exc:
            raise StoreError(
                f"Failed to record installation of {resource_type} '{resource_name}': {exc}"
            ) from exc

    def remove_installation(self, resource_type: ResourceType, resource_name: str) -> bool:
        try:
            cursor = self.conn.execute(
                "DELETE FROM installations WHERE resource_type = ? AND resource_name = ?",
                (str(resource_type), resource_name),
            )
        except sqlite3.Error as exc:
            raise StoreError(
                f"Failed to remove installation of {resource_type} '{resource_name}': {exc}"
            ) from exc
        return cursor.rowcount > 0

    # ── Internals ────────────────────────────────────────────

    def _query(self, operation: str, sql: str, params: tuple = ()) -> list[sqlite3.Row]:
        try:
            return self.conn.execute(sql, params).fetchall()
        except sqlite3.Error as exc:
            raise StoreError(f"Failed to {operation}: {exc}") from exc

    def _replace_entries(
        self,
        table: str,
        registry_id: int,
        records: Iterable[ServerRecord] | Iterable[SkillRecord],
        write: Callable[..., None],
    ) -> ReplaceOutcome:
        stored = failed = 0
        written: set[tuple[str, str]] = set()
        try:
            with self.transaction() as conn:
                exists = conn.execute(
                    "SELECT 1 FROM registries WHERE id = ?", (registry_id,)
                ).fetchone()
                if exists is None:
                    raise RegistryNotFoundError(f"Registry id {registry_id} not found")

                kept: _Kept = {
                    (row["name"], row["version"]): (bool(row["installed"]), row["created_at"])
                    for row in conn.execute(
                        f"SELECT name, version, installed, created_at FROM {table} "
                        "WHERE registry_id = ?",
                        (registry_id,),
                    )
                }
                conn.execute(f"DELETE FROM {table} WHERE registry_id = ?", (registry_id,))

                now = self._clock()
                for record in records:
                    key = (record.name, record.version)
                    installed, created_at = kept.get(key, (False, now))
                    conn.execute("SAVEPOINT entry")
                    try:
                        write(conn, registry_id, record, installed=installed, created_at=created_at)
                    except sqlite3.Error as exc:
                        conn.execute("ROLLBACK TO SAVEPOINT entry")
                        failed += 1
                        logger.debug(
                            "Failed to store %s '%s@%s' in registry %d: %s",
                            table,
                            record.name,
                            record.version,
                            registry_id,
                            exc,
                            exc_info=True,
                        )
                    else:
                        stored += 1
                        written.add(key)
                    finally:
                        conn.execute("RELEASE SAVEPOINT entry")
        except sqlite3.Error as exc:
            raise StoreError(f"Failed to replace {table} of registry {registry_id}: {exc}") from exc

        return ReplaceOutcome(stored=stored, failed=failed, removed=len(kept.keys() - written))

    def _write_server(
        self,
        conn: sqlite3.Connection,
        registry_id: int,
        record: ServerRecord,
        *,
        installed: bool,
        created_at: str,
    ) -> None:
        conn.execute(
            _UPSERT_SERVER,
            (
                registry_id,
                record.name,
                record.title or None,
                record.description,
                record.version,
                record.website_url or None,
                int(installed),
                record.data,
                created_at,
                self._clock(),
            ),
        )

    def _write_skill(
        self,
        conn: sqlite3.Connection,
        registry_id: int,
        record: SkillRecord,
        *,
        installed: bool,
        created_at: str,
    ) -> None:
        conn.execute(
            _UPSERT_SKILL,
            (
                registry_id,
                record.name,
                record.description,
                record.version,
                int(installed),
                record.data,
                created_at,
                self._clock(),
            ),
        )


# ─── Row mapping ──────────────────────────────────────────────


def _entries_query(table: str, registry_id: int | None) -> tuple[str, tuple]:
    if registry_id is None:
        return f"SELECT * FROM {table} ORDER BY name ASC, version DESC, id ASC", ()
    return (
        f"SELECT * FROM {table} WHERE registry_id = ? ORDER BY name ASC, version DESC, id ASC",
        (registry_id,),
    )


def _row_to_registry(row: sqlite3.Row) -> Registry:
    return Registry(
        id=row["id"],
        name=row["name"],
        url=row["url"],
        type=RegistryVisibility(row["type"]),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _row_to_server(row: sqlite3.Row) -> ServerEntry:
    return ServerEntry(
        id=row["id"],
        registry_id=row["registry_id"],
        name=row["name"],
        title=row["title"] or "",
        description=row["description"],
        version=row["version"],
        website_url=row["website_url"] or "",
        installed=bool(row["installed"]),
        data=row["data"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _row_to_skill(row: sqlite3.Row) -> SkillEntry:
    return SkillEntry(
        id=row["id"],
        registry_id=row["registry_id"],
        name=row["name"],
        description=row["description"],
        version=row["version"],
        installed=bool(row["installed"]),
        data=row["data"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _row_to_installation(row: sqlite3.Row) -> Installation:
    return Installation(
        id=row["id"],
        resource_type=ResourceType(row["resource_type"]),
        resource_id=row["resource_id"],
        resource_name=row["resource_name"],
        version=row["version"],
        config=row["config"] or "",
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )
