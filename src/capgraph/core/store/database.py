"""
SQLite-backed entity store.

Schema (3 tables):
  entities                  one row per entity code
  entity_attributes         (entity_code, attribute_code) → value
  capability_definitions    backing records for capability codes

Deferred persistence:
  ``write_attribute`` buffers the value per entity; reads through this store
  see buffered values straight away.  ``persist(entity_code)`` upserts that
  entity's buffer and commits.  Entity creation and capability definitions
  are committed immediately.

Thread safety:
  WAL mode is enabled and the connection is opened with
  ``check_same_thread=False``.  All statements are parameterised.
"""

from __future__ import annotations

import sqlite3
from pathlib import Path

import structlog

from capgraph.core.constants import ATTR_LNK_ROLE, ATTR_NAME
from capgraph.core.exceptions import ItemNotFoundError
from capgraph.core.store.base import CapabilityDefinition, EntityAttribute, roles_from_link

logger = structlog.get_logger()


class SqliteEntityStore:
    """SQLite implementation of :class:`~capgraph.core.store.base.EntityStore`."""

    def __init__(self, db_path: Path) -> None:
        self._path = db_path
        self._conn: sqlite3.Connection | None = None
        self._pending: dict[str, dict[str, str]] = {}

    @property
    def path(self) -> Path:
        return self._path

    def connect(self) -> None:
        from capgraph.core.store.migrations import run_migrations

        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(str(self._path), check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA foreign_keys=ON")
        run_migrations(self._conn, self._path)

    def close(self) -> None:
        if self._conn:
            if self._pending:
                logger.warning("unpersisted_writes_dropped", entities=sorted(self._pending))
            self._pending.clear()
            self._conn.close()
            self._conn = None

    def __enter__(self) -> SqliteEntityStore:
        self.connect()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    @property
    def _db(self) -> sqlite3.Connection:
        if self._conn is None:
            raise RuntimeError("Database not connected. Call connect() first.")
        return self._conn

    # ------------------------------------------------------------------
    # Entities
    # ------------------------------------------------------------------

    def has_entity(self, entity_code: str) -> bool:
        row = self._db.execute("SELECT 1 FROM entities WHERE code = ?", (entity_code,)).fetchone()
        return row is not None

    def create_entity(self, entity_code: str, name: str) -> None:
        self._db.execute(
            "INSERT OR IGNORE INTO entities (code, name) VALUES (?, ?)", (entity_code, name)
        )
        self._db.execute(
            """
            INSERT OR IGNORE INTO entity_attributes (entity_code, attribute_code, value)
            VALUES (?, ?, ?)
            """,
            (entity_code, ATTR_NAME, name),
        )
        self._db.commit()

    def entity_codes(self, prefix: str = "") -> list[str]:
        rows = self._db.execute(
            "SELECT code FROM entities WHERE code LIKE ? ORDER BY code", (prefix + "%",)
        ).fetchall()
        return [row["code"] for row in rows]

    def _require(self, entity_code: str) -> None:
        if not self.has_entity(entity_code):
            raise ItemNotFoundError("entity store", entity_code)

    # ------------------------------------------------------------------
    # Attributes
    # ------------------------------------------------------------------

    def get_attribute(self, entity_code: str, attribute_code: str) -> EntityAttribute | None:
        self._require(entity_code)
        pending = self._pending.get(entity_code, {})
        if attribute_code in pending:
            return EntityAttribute(entity_code, attribute_code, pending[attribute_code])
        row = self._db.execute(
            """
            SELECT value FROM entity_attributes
             WHERE entity_code = ? AND attribute_code = ?
            """,
            (entity_code, attribute_code),
        ).fetchone()
        if row is None:
            return None
        return EntityAttribute(entity_code, attribute_code, row["value"])

    def get_attributes_with_prefix(self, entity_code: str, prefix: str) -> list[EntityAttribute]:
        self._require(entity_code)
        # LIKE treats "_" as a wildcard; filter again in Python on the exact prefix
        rows = self._db.execute(
            """
            SELECT attribute_code, value FROM entity_attributes
             WHERE entity_code = ? AND attribute_code LIKE ?
            """,
            (entity_code, prefix + "%"),
        ).fetchall()
        values = {
            row["attribute_code"]: row["value"]
            for row in rows
            if row["attribute_code"].startswith(prefix)
        }
        for code, value in self._pending.get(entity_code, {}).items():
            if code.startswith(prefix):
                values[code] = value
        return [EntityAttribute(entity_code, code, values[code]) for code in sorted(values)]

    def get_roles_of(self, entity_code: str) -> list[str]:
        return roles_from_link(self.get_attribute(entity_code, ATTR_LNK_ROLE))

    def write_attribute(self, entity_code: str, attribute_code: str, value: str) -> None:
        self._require(entity_code)
        self._pending.setdefault(entity_code, {})[attribute_code] = value

    def persist(self, entity_code: str) -> None:
        self._require(entity_code)
        pending = self._pending.pop(entity_code, {})
        if not pending:
            return
        self._db.executemany(
            """
            INSERT INTO entity_attributes (entity_code, attribute_code, value)
            VALUES (?, ?, ?)
            ON CONFLICT(entity_code, attribute_code)
            DO UPDATE SET value = excluded.value, updated_at = datetime('now')
            """,
            [(entity_code, code, value) for code, value in pending.items()],
        )
        self._db.commit()
        logger.debug("entity_persisted", entity_code=entity_code, attributes=len(pending))

    # ------------------------------------------------------------------
    # Capability definitions
    # ------------------------------------------------------------------

    def get_capability_definition(self, code: str) -> CapabilityDefinition | None:
        row = self._db.execute(
            "SELECT code, name FROM capability_definitions WHERE code = ?", (code,)
        ).fetchone()
        if row is None:
            return None
        return CapabilityDefinition(code=row["code"], name=row["name"])

    def save_capability_definition(self, definition: CapabilityDefinition) -> None:
        self._db.execute(
            """
            INSERT INTO capability_definitions (code, name) VALUES (?, ?)
            ON CONFLICT(code) DO UPDATE SET name = excluded.name
            """,
            (definition.code, definition.name),
        )
        self._db.commit()

    def list_capability_definitions(self) -> list[CapabilityDefinition]:
        rows = self._db.execute(
            "SELECT code, name FROM capability_definitions ORDER BY code"
        ).fetchall()
        return [CapabilityDefinition(code=row["code"], name=row["name"]) for row in rows]
