"""Tests for the SQLite mirror store (store/sqlite.py)."""

from __future__ import annotations

from pathlib import Path

import pytest

from mcp_mirror.errors import (
    RegistryExistsError,
    RegistryNotFoundError,
    StoreError,
    StoreNotInitializedError,
)
from mcp_mirror.models import (
    RegistryVisibility,
    ResourceType,
    ServerRecord,
    SkillRecord,
)
from mcp_mirror.store.sqlite import SqliteStore

# ─── Helpers ──────────────────────────────────────────────────


def _record(name: str, version: str = "1.0.0", **overrides: str) -> ServerRecord:
    fields = {
        "name": name,
        "description": f"{name} server",
        "version": version,
        "data": f'{{"name":"{name}","version":"{version}"}}',
    }
    fields.update(overrides)
    return ServerRecord(**fields)


def _add(store: SqliteStore, name: str = "r1") -> int:
    return store.add_registry(name, f"http://example/{name}", RegistryVisibility.PUBLIC).id


# ─── Lifecycle ────────────────────────────────────────────────


class TestLifecycle:
    def test_operations_before_initialize_raise_precondition_error(self, tmp_path: Path):
        store = SqliteStore(tmp_path / "x.db")
        with pytest.raises(StoreNotInitializedError, match="not initialized"):
            store.list_registries()

    def test_precondition_error_is_a_store_error(self, tmp_path: Path):
        store = SqliteStore(tmp_path / "x.db")
        with pytest.raises(StoreError):
            store.add_registry("r", "http://x", RegistryVisibility.PUBLIC)

    def test_operations_after_close_raise(self, tmp_path: Path):
        store = SqliteStore(tmp_path / "x.db")
        store.initialize()
        store.close()
        with pytest.raises(StoreNotInitializedError):
            store.list_servers()

    def test_initialize_creates_parent_directory(self, tmp_path: Path):
        path = tmp_path / "nested" / "dir" / "mirror.db"
        with SqliteStore(path) as store:
            assert store.is_initialized
        assert path.exists()

    def test_initialize_is_idempotent(self, store: SqliteStore):
        _add(store)
        store.initialize()
        assert len(store.list_registries()) == 1

    def test_data_persists_across_reopen(self, tmp_path: Path):
        path = tmp_path / "mirror.db"
        with SqliteStore(path) as store:
            _add(store, "persisted")
        with SqliteStore(path) as store:
            assert [r.name for r in store.list_registries()] == ["persisted"]

    def test_creates_all_tables(self, store: SqliteStore):
        rows = store.conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table' ORDER BY name"
        ).fetchall()
        names = {row[0] for row in rows}
        assert {"registries", "servers", "skills", "installations"} <= names

    def test_foreign_keys_enabled(self, store: SqliteStore):
        assert store.conn.execute("PRAGMA foreign_keys").fetchone()[0] == 1


# ─── Registries ───────────────────────────────────────────────


class TestRegistries:
    def test_add_returns_registry(self, store: SqliteStore):
        registry = store.add_registry("r1", "http://example/api", RegistryVisibility.PRIVATE)
        assert registry.id > 0
        assert registry.name == "r1"
        assert registry.type == RegistryVisibility.PRIVATE
        assert registry.created_at == registry.updated_at

    def test_duplicate_name_raises_exists_error(self, store: SqliteStore):
        _add(store, "dup")
        with pytest.raises(RegistryExistsError, match="'dup' already exists"):
            store.add_registry("dup", "http://other", RegistryVisibility.PUBLIC)

    def test_duplicate_name_performs_no_write(self, store: SqliteStore):
        _add(store, "dup")
        with pytest.raises(RegistryExistsError):
            store.add_registry("dup", "http://other", RegistryVisibility.PUBLIC)
        registries = store.list_registries()
        assert len(registries) == 1
        assert registries[0].url == "http://example/dup"

    def test_list_most_recent_first(self, store: SqliteStore):
        for name in ("a", "b", "c"):
            _add(store, name)
        assert [r.name for r in store.list_registries()] == ["c", "b", "a"]

    def test_get_registry(self, store: SqliteStore):
        _add(store, "found")
        assert store.get_registry("found") is not None
        assert store.get_registry("missing") is None

    def test_remove_unknown_raises(self, store: SqliteStore):
        with pytest.raises(RegistryNotFoundError):
            store.remove_registry("ghost")

    def test_remove_cascades_to_entries(self, store: SqliteStore):
        keep = _add(store, "keep")
        drop = _add(store, "drop")
        store.upsert_server(keep, _record("a"))
        store.upsert_server(drop, _record("b"))
        store.upsert_skill(drop, SkillRecord(name="s", description="", version="1", data="{}"))

        store.remove_registry("drop")

        assert [s.name for s in store.list_servers()] == ["a"]
        assert store.list_skills() == []


# ─── Servers ──────────────────────────────────────────────────


class TestServers:
    def test_upsert_inserts(self, store: SqliteStore):
        rid = _add(store)
        store.upsert_server(rid, _record("srv", title="Server", website_url="https://srv"))
        [server] = store.list_servers(rid)
        assert server.name == "srv"
        assert server.title == "Server"
        assert server.website_url == "https://srv"
        assert server.installed is False

    def test_optional_columns_stored_as_empty(self, store: SqliteStore):
        rid = _add(store)
        store.upsert_server(rid, _record("srv"))
        [server] = store.list_servers(rid)
        assert server.title == ""
        assert server.website_url == ""

    def test_upsert_overwrites_same_key(self, store: SqliteStore):
        rid = _add(store)
        store.upsert_server(rid, _record("srv", description="old"))
        store.upsert_server(rid, _record("srv", description="new"))
        servers = store.list_servers(rid)
        assert len(servers) == 1
        assert servers[0].description == "new"

    def test_upsert_keeps_installed_flag(self, store: SqliteStore):
        rid = _add(store)
        store.upsert_server(rid, _record("srv"))
        store.set_installed(ResourceType.MCP, rid, "srv", "1.0.0", True)
        store.upsert_server(rid, _record("srv", description="changed"))
        [server] = store.list_servers(rid)
        assert server.installed is True
        assert server.description == "changed"

    def test_different_versions_are_distinct(self, store: SqliteStore):
        rid = _add(store)
        store.upsert_server(rid, _record("srv", "1.0.0"))
        store.upsert_server(rid, _record("srv", "2.0.0"))
        assert store.count_servers(rid) == 2

    def test_same_key_in_two_registries(self, store: SqliteStore):
        r1 = _add(store, "r1")
        r2 = _add(store, "r2")
        store.upsert_server(r1, _record("srv"))
        store.upsert_server(r2, _record("srv"))
        assert store.count_servers(r1) == 1
        assert store.count_servers(r2) == 1

    def test_list_ordered_by_name_then_version_desc(self, store: SqliteStore):
        rid = _add(store)
        for name, version in [("b", "1.0"), ("a", "1.0"), ("a", "2.0"), ("c", "0.1")]:
            store.upsert_server(rid, _record(name, version))
        keys = [(s.name, s.version) for s in store.list_servers()]
        assert keys == [("a", "2.0"), ("a", "1.0"), ("b", "1.0"), ("c", "0.1")]

    def test_list_filters_by_registry(self, store: SqliteStore):
        r1 = _add(store, "r1")
        r2 = _add(store, "r2")
        store.upsert_server(r1, _record("one"))
        store.upsert_server(r2, _record("two"))
        assert [s.name for s in store.list_servers(r2)] == ["two"]
        assert len(store.list_servers()) == 2

    def test_upsert_unknown_registry_raises(self, store: SqliteStore):
        with pytest.raises(StoreError, match="srv@1.0.0"):
            store.upsert_server(999, _record("srv"))

    def test_clear_registry_servers(self, store: SqliteStore):
        r1 = _add(store, "r1")
        r2 = _add(store, "r2")
        store.upsert_server(r1, _record("a"))
        store.upsert_server(r1, _record("b"))
        store.upsert_server(r2, _record("c"))
        assert store.clear_registry_servers(r1) == 2
        assert [s.name for s in store.list_servers()] == ["c"]


# ─── Replace (clear-then-repopulate) ──────────────────────────


class TestReplaceRegistryServers:
    def test_replaces_previous_generation(self, store: SqliteStore):
        rid = _add(store)
        store.replace_registry_servers(rid, [_record("a"), _record("b")])
        outcome = store.replace_registry_servers(rid, [_record("b"), _record("c")])
        assert [s.name for s in store.list_servers(rid)] == ["b", "c"]
        assert outcome.stored == 2
        assert outcome.removed == 1

    def test_does_not_touch_other_registries(self, store: SqliteStore):
        r1 = _add(store, "r1")
        r2 = _add(store, "r2")
        store.replace_registry_servers(r2, [_record("other")])
        store.replace_registry_servers(r1, [_record("mine")])
        store.replace_registry_servers(r1, [])
        assert store.count_servers(r1) == 0
        assert [s.name for s in store.list_servers(r2)] == ["other"]

    def test_installed_flag_survives_rebuild(self, store: SqliteStore):
        rid = _add(store)
        store.replace_registry_servers(rid, [_record("a"), _record("b")])
        store.set_installed(ResourceType.MCP, rid, "a", "1.0.0", True)

        store.replace_registry_servers(rid, [_record("a"), _record("b")])

        flags = {s.name: s.installed for s in store.list_servers(rid)}
        assert flags == {"a": True, "b": False}

    def test_created_at_preserved_updated_at_advances(self, store: SqliteStore):
        rid = _add(store)
        store.replace_registry_servers(rid, [_record("a")])
        [before] = store.list_servers(rid)
        store.replace_registry_servers(rid, [_record("a")])
        [after] = store.list_servers(rid)
        assert after.created_at == before.created_at
        assert after.updated_at > before.updated_at

    def test_duplicate_keys_collapse_to_later_record(self, store: SqliteStore):
        rid = _add(store)
        outcome = store.replace_registry_servers(
            rid,
            [_record("a", description="first"), _record("a", description="second")],
        )
        [server] = store.list_servers(rid)
        assert server.description == "second"
        assert outcome.stored == 2

    def test_unknown_registry_raises_and_writes_nothing(self, store: SqliteStore):
        with pytest.raises(RegistryNotFoundError):
            store.replace_registry_servers(42, [_record("a")])
        assert store.list_servers() == []

    def test_failing_record_is_counted_and_skipped(self, store: SqliteStore):
        rid = _add(store)
        bad = ServerRecord(name="bad", description=None, version="1", data="{}")  # type: ignore[arg-type]
        outcome = store.replace_registry_servers(rid, [_record("a"), bad, _record("b")])
        assert outcome.stored == 2
        assert outcome.failed == 1
        assert [s.name for s in store.list_servers(rid)] == ["a", "b"]

    def test_failure_mid_replace_keeps_previous_generation(self, store: SqliteStore):
        rid = _add(store)
        store.replace_registry_servers(rid, [_record("old")])

        def records():
            yield _record("new")
            raise RuntimeError("producer crashed")

        with pytest.raises(RuntimeError):
            store.replace_registry_servers(rid, records())

        assert [s.name for s in store.list_servers(rid)] == ["old"]
        assert not store.conn.in_transaction


# ─── Transactions ─────────────────────────────────────────────


class TestTransaction:
    def test_commits_on_success(self, store: SqliteStore):
        rid = _add(store)
        with store.transaction():
            store.upsert_server(rid, _record("a"))
        assert store.count_servers(rid) == 1

    def test_rolls_back_on_error(self, store: SqliteStore):
        rid = _add(store)
        with pytest.raises(ValueError), store.transaction():
            store.upsert_server(rid, _record("a"))
            raise ValueError("abort")
        assert store.count_servers(rid) == 0

    def test_nested_transaction_rejected(self, store: SqliteStore):
        with store.transaction(), pytest.raises(StoreError, match="already open"):
            with store.transaction():
                pass


# ─── Skills ───────────────────────────────────────────────────


class TestSkills:
    def test_replace_and_list(self, store: SqliteStore):
        rid = _add(store)
        records = [
            SkillRecord(name="write", description="Writes", version="1", data="{}"),
            SkillRecord(name="read", description="Reads", version="1", data="{}"),
        ]
        outcome = store.replace_registry_skills(rid, records)
        assert outcome.stored == 2
        assert [s.name for s in store.list_skills(rid)] == ["read", "write"]

    def test_clear(self, store: SqliteStore):
        rid = _add(store)
        store.upsert_skill(rid, SkillRecord(name="s", description="", version="1", data="{}"))
        assert store.clear_registry_skills(rid) == 1
        assert store.list_skills() == []

    def test_installed_flag(self, store: SqliteStore):
        rid = _add(store)
        store.upsert_skill(rid, SkillRecord(name="s", description="", version="1", data="{}"))
        assert store.set_installed(ResourceType.SKILL, rid, "s", "1", True) is True
        assert store.list_skills()[0].installed is True


# ─── Installations ────────────────────────────────────────────


class TestInstallations:
    def test_record_and_list_most_recent_first(self, store: SqliteStore):
        store.record_installation(ResourceType.MCP, 1, "first", "1.0")
        store.record_installation(ResourceType.SKILL, 2, "second", "2.0", config='{"a":1}')
        installations = store.list_installations()
        assert [i.resource_name for i in installations] == ["second", "first"]
        assert installations[0].resource_type == ResourceType.SKILL
        assert installations[0].config == '{"a":1}'

    def test_record_is_unique_per_type_and_name(self, store: SqliteStore):
        store.record_installation(ResourceType.MCP, 1, "srv", "1.0")
        store.record_installation(ResourceType.MCP, 1, "srv", "2.0")
        [installation] = store.list_installations()
        assert installation.version == "2.0"

    def test_remove(self, store: SqliteStore):
        store.record_installation(ResourceType.MCP, 1, "srv", "1.0")
        assert store.remove_installation(ResourceType.MCP, "srv") is True
        assert store.remove_installation(ResourceType.MCP, "srv") is False

    def test_set_installed_no_match(self, store: SqliteStore):
        rid = _add(store)
        assert store.set_installed(ResourceType.MCP, rid, "nope", "1", True) is False


class TestSqliteErrors:
    def test_query_errors_are_wrapped(self, store: SqliteStore):
        store.conn.execute("DROP TABLE installations")
        with pytest.raises(StoreError, match="list installations"):
            store.list_installations()

