"""
Schema migrations for the capgraph SQLite database.

The schema version lives in PRAGMA user_version.  Each step creates what
it needs with IF NOT EXISTS and commits together with the version bump.

Version history:
  0 → 1: entities, entity_attributes, capability_definitions
"""

from __future__ import annotations

import sqlite3
from collections.abc import Callable
from pathlib import Path

import structlog

logger = structlog.get_logger()

# Must equal the target of the last entry in _STEPS.
LATEST_SCHEMA_VERSION = 1


def _migrate_0_to_1(conn: sqlite3.Connection) -> None:
    """Version 0 → 1: initial schema."""
    conn.execute("""
        CREATE TABLE IF NOT EXISTS entities (
            code        TEXT PRIMARY KEY,
            name        TEXT NOT NULL DEFAULT '',
            created_at  TEXT NOT NULL DEFAULT (datetime('now'))
        )
    """)
    conn.execute("""
        CREATE TABLE IF NOT EXISTS entity_attributes (
            entity_code     TEXT NOT NULL REFERENCES entities(code),
            attribute_code  TEXT NOT NULL,
            value           TEXT NOT NULL DEFAULT '',
            updated_at      TEXT NOT NULL DEFAULT (datetime('now')),
            PRIMARY KEY (entity_code, attribute_code)
        )
    """)
    conn.execute("""
        CREATE TABLE IF NOT EXISTS capability_definitions (
            code        TEXT PRIMARY KEY,
            name        TEXT NOT NULL DEFAULT '',
            created_at  TEXT NOT NULL DEFAULT (datetime('now'))
        )
    """)


# Ordered upgrade steps: (version after the step, step function).
_STEPS: tuple[tuple[int, Callable[[sqlite3.Connection], None]], ...] = (
    (1, _migrate_0_to_1),
)


def get_user_version(conn: sqlite3.Connection) -> int:
    """Read the current PRAGMA user_version."""
    row = conn.execute("PRAGMA user_version").fetchone()
    return row[0] if row else 0


def _apply_step(
    conn: sqlite3.Connection,
    db_path: Path,
    target: int,
    step: Callable[[sqlite3.Connection], None],
) -> None:
    try:
        step(conn)
        conn.execute(f"PRAGMA user_version = {int(target)}")
        conn.commit()
    except sqlite3.Error as exc:
        conn.rollback()
        raise RuntimeError(
            f"Upgrading {db_path} to schema v{target} failed: {exc}"
        ) from exc
    logger.debug("schema_step_applied", db_path=str(db_path), version=target)


def run_migrations(conn: sqlite3.Connection, db_path: Path) -> None:
    """
    Bring the schema at *conn* up to :data:`LATEST_SCHEMA_VERSION`.

    A database written by a newer capgraph is refused with ``RuntimeError``;
    so is any step that fails, after its transaction is rolled back.
    """
    current = get_user_version(conn)
    if current > LATEST_SCHEMA_VERSION:
        raise RuntimeError(
            f"Database {db_path} has schema version {current}; capgraph "
            f"only supports up to version {LATEST_SCHEMA_VERSION}."
        )

    pending = [(target, step) for target, step in _STEPS if target > current]
    if not pending:
        return

    logger.info("schema_upgrade_starting", db_path=str(db_path), from_version=current)
    for target, step in pending:
        _apply_step(conn, db_path, target, step)
    logger.info("schema_upgrade_complete", version=get_user_version(conn))
