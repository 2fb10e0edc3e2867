"""Unit tests for capgraph.core.store.database: SqliteEntityStore and migrations."""

from __future__ import annotations

import sqlite3
from collections.abc import Iterator
from pathlib import Path

import pytest

from capgraph.core.capability.engine import CapabilityEngine
from capgraph.core.capability.model import CapabilityMode, CapabilityNode, PermissionMode
from capgraph.core.exceptions import ItemNotFoundError
from capgraph.core.roles.builder import RoleBuilder
from capgraph.core.roles.manager import RoleManager
from capgraph.core.store.base import CapabilityDefinition
from capgraph.core.store.database import SqliteEntityStore
from capgraph.core.store.migrations import LATEST_SCHEMA_VERSION, get_user_version, run_migrations


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "nested" / "capgraph.db"


@pytest.fixture
def db(db_path: Path) -> Iterator[SqliteEntityStore]:
    d = SqliteEntityStore(db_path)
    d.connect()
    yield d
    d.close()


# ---------------------------------------------------------------------------
# Migrations
# ---------------------------------------------------------------------------


class TestMigrations:
    def test_fresh_database_is_latest(self, db: SqliteEntityStore, db_path: Path) -> None:
        conn = sqlite3.connect(str(db_path))
        try:
            assert get_user_version(conn) == LATEST_SCHEMA_VERSION
            tables = {
                row[0]
                for row in conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'")
            }
        finally:
            conn.close()
        assert {"entities", "entity_attributes", "capability_definitions"} <= tables

    def test_rerun_is_noop(self, tmp_path: Path) -> None:
        conn = sqlite3.connect(str(tmp_path / "m.db"))
        try:
            run_migrations(conn, tmp_path / "m.db")
            run_migrations(conn, tmp_path / "m.db")
            assert get_user_version(conn) == LATEST_SCHEMA_VERSION
        finally:
            conn.close()

    def test_newer_schema_refused(self, tmp_path: Path) -> None:
        conn = sqlite3.connect(str(tmp_path / "future.db"))
        try:
            conn.execute(f"PRAGMA user_version = {LATEST_SCHEMA_VERSION + 1}")
            with pytest.raises(RuntimeError, match="only supports up to"):
                run_migrations(conn, tmp_path / "future.db")
        finally:
            conn.close()

    def test_not_connected(self, tmp_path: Path) -> None:
        with pytest.raises(RuntimeError, match="not connected"):
            SqliteEntityStore(tmp_path / "x.db").has_entity("PER_1")


# ---------------------------------------------------------------------------
# Entities and attributes
# ---------------------------------------------------------------------------


class TestEntities:
    def test_create_and_has(self, db: SqliteEntityStore) -> None:
        assert not db.has_entity("PER_1")
        db.create_entity("PER_1", "One")
        assert db.has_entity("PER_1")
        assert db.get_attribute("PER_1", "PRI_NAME").value == "One"

    def test_create_is_idempotent(self, db: SqliteEntityStore) -> None:
        db.create_entity("PER_1", "One")
        db.create_entity("PER_1", "Renamed")
        assert db.get_attribute("PER_1", "PRI_NAME").value == "One"
        assert db.entity_codes() == ["PER_1"]

    def test_entity_codes_by_prefix(self, db: SqliteEntityStore) -> None:
        for code in ("ROL_B", "PER_1", "ROL_A"):
            db.create_entity(code, code)
        assert db.entity_codes("ROL_") == ["ROL_A", "ROL_B"]

    def test_missing_entity_raises(self, db: SqliteEntityStore) -> None:
        with pytest.raises(ItemNotFoundError):
            db.get_attribute("PER_GHOST", "PRI_NAME")
        with pytest.raises(ItemNotFoundError):
            db.write_attribute("PER_GHOST", "CAP_X", "[]")


class TestDeferredPersist:
    def test_write_visible_before_persist(self, db: SqliteEntityStore) -> None:
        db.create_entity("PER_1", "One")
        db.write_attribute("PER_1", "CAP_X", '["V:A"]')
        assert db.get_attribute("PER_1", "CAP_X").value == '["V:A"]'

    def test_unpersisted_writes_are_not_durable(self, db_path: Path) -> None:
        with SqliteEntityStore(db_path) as first:
            first.create_entity("PER_1", "One")
            first.write_attribute("PER_1", "CAP_X", '["V:A"]')
        with SqliteEntityStore(db_path) as second:
            assert second.get_attribute("PER_1", "CAP_X") is None

    def test_persist_makes_writes_durable(self, db_path: Path) -> None:
        with SqliteEntityStore(db_path) as first:
            first.create_entity("PER_1", "One")
            first.write_attribute("PER_1", "CAP_X", '["V:A"]')
            first.write_attribute("PER_1", "CAP_X", '["V:S"]')
            first.persist("PER_1")
        with SqliteEntityStore(db_path) as second:
            assert second.get_attribute("PER_1", "CAP_X").value == '["V:S"]'

    def test_persist_overwrites(self, db: SqliteEntityStore) -> None:
        db.create_entity("PER_1", "One")
        db.write_attribute("PER_1", "CAP_X", '["V:A"]')
        db.persist("PER_1")
        db.write_attribute("PER_1", "CAP_X", "[]")
        db.persist("PER_1")
        assert db.get_attribute("PER_1", "CAP_X").value == "[]"

    def test_prefix_read_merges_pending_and_stored(self, db: SqliteEntityStore) -> None:
        db.create_entity("PER_1", "One")
        db.write_attribute("PER_1", "CAP_B", '["V:A"]')
        db.persist("PER_1")
        db.write_attribute("PER_1", "CAP_A", "[]")
        db.write_attribute("PER_1", "CAPX", "not a capability")
        attrs = db.get_attributes_with_prefix("PER_1", "CAP_")
        assert [a.attribute_code for a in attrs] == ["CAP_A", "CAP_B"]


class TestCapabilityDefinitions:
    def test_save_and_get(self, db: SqliteEntityStore) -> None:
        db.save_capability_definition(CapabilityDefinition("CAP_ITEM", "Items"))
        assert db.get_capability_definition("CAP_ITEM") == CapabilityDefinition("CAP_ITEM", "Items")
        assert db.get_capability_definition("CAP_NONE") is None

    def test_list(self, db: SqliteEntityStore) -> None:
        db.save_capability_definition(CapabilityDefinition("CAP_B", "B"))
        db.save_capability_definition(CapabilityDefinition("CAP_A", "A"))
        assert [d.code for d in db.list_capability_definitions()] == ["CAP_A", "CAP_B"]


# ---------------------------------------------------------------------------
# Engine over SQLite
# ---------------------------------------------------------------------------


class TestEngineOverSqlite:
    def test_role_scenario_survives_reopen(self, db_path: Path) -> None:
        with SqliteEntityStore(db_path) as store:
            engine = CapabilityEngine(store)
            roles = RoleManager(store)
            cap_map = engine.get_capability_map([("X", "X")])
            RoleBuilder(engine, "A", "A", roles).set_capability_map(cap_map).add_view("X").build()
            (
                RoleBuilder(engine, "B", "B", roles)
                .set_capability_map(cap_map)
                .capability("X").view(PermissionMode.SELF).edit(PermissionMode.SELF).build()
                .build()
            )
            store.create_entity("PER_1", "One")
            roles.attach_role("PER_1", "ROL_A")
            roles.attach_role("PER_1", "ROL_B")
            edit_all = CapabilityNode(CapabilityMode.EDIT, PermissionMode.ALL)
            engine.add_capability("PER_1", "X", edit_all)

        with SqliteEntityStore(db_path) as store:
            caps = CapabilityEngine(store).resolve("PER_1")
            assert caps.find("CAP_X").to_dict() == {"EDIT": "ALL", "VIEW": "ALL"}
            assert store.get_attribute("PER_1", "PRI_IS_A").value == "true"
