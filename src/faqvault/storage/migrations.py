"""Versioned schema migrations for the guide store.

Migrations are applied in ascending version order, each inside its own
transaction together with the ``schema_version`` row that records it, so a
crash mid-upgrade leaves the database at the last fully applied version.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, List

from sqlalchemy import inspect, text
from sqlalchemy.engine import Connection, Engine

from faqvault.exceptions import SchemaVersionError
from faqvault.storage.schema import (
    AI_ANALYZED_AT,
    CREATE_INDEXES,
    CREATE_TABLES,
    FTS_BACKFILL,
    FTS_TRIGGERS,
    FULL_TEXT_SEARCH,
    SCHEMA_VERSION_TABLE,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Migration:
    """A single schema upgrade step."""

    version: int
    description: str
    upgrade: Callable[[Connection], None]


def _create_core_tables(conn: Connection) -> None:
    for sql in CREATE_TABLES.values():
        conn.execute(text(sql))
    for sql in CREATE_INDEXES.values():
        conn.execute(text(sql))


def _create_split_fts(conn: Connection) -> None:
    for sql in FULL_TEXT_SEARCH.values():
        conn.execute(text(sql))

    # Back-fill rows that predate the indexes
    for name, sql in FTS_BACKFILL.items():
        logger.info(f"Populating {name} from existing guides...")
        conn.execute(text(f"DELETE FROM {name}"))
        conn.execute(text(sql))

    for sql in FTS_TRIGGERS.values():
        conn.execute(text(sql))


def _add_ai_analyzed_at(conn: Connection) -> None:
    columns = {col["name"] for col in inspect(conn).get_columns("guides")}
    if "ai_analyzed_at" not in columns:
        conn.execute(text(AI_ANALYZED_AT["column"]))
    conn.execute(text(AI_ANALYZED_AT["index"]))


MIGRATIONS: List[Migration] = [
    Migration(1, "core tables and indexes", _create_core_tables),
    Migration(2, "split meta/content full-text indexes", _create_split_fts),
    Migration(3, "ai_analyzed_at column", _add_ai_analyzed_at),
]

SCHEMA_VERSION = MIGRATIONS[-1].version

if [m.version for m in MIGRATIONS] != list(range(1, SCHEMA_VERSION + 1)):
    raise RuntimeError("Migrations must be numbered consecutively from 1")


def get_current_version(conn: Connection) -> int:
    """Return the highest applied schema version (0 for a fresh database)."""
    conn.execute(text(SCHEMA_VERSION_TABLE))
    version = conn.execute(text("SELECT MAX(version) FROM schema_version")).scalar()
    return version or 0


def run_migrations(engine: Engine) -> List[int]:
    """Apply all pending migrations.

    Args:
        engine: SQLAlchemy engine bound to the guide store

    Returns:
        Versions applied by this call (empty when already up to date)

    Raises:
        SchemaVersionError: If the database is newer than this code
    """
    with engine.begin() as conn:
        current = get_current_version(conn)

    logger.info(f"Database schema version {current}, target {SCHEMA_VERSION}")

    if current > SCHEMA_VERSION:
        raise SchemaVersionError(
            f"Database version ({current}) is higher than app version ({SCHEMA_VERSION})"
        )

    applied = []
    for migration in MIGRATIONS:
        if migration.version <= current:
            continue

        logger.info(f"Applying migration v{migration.version}: {migration.description}")
        with engine.begin() as conn:
            migration.upgrade(conn)
            conn.execute(
                text("INSERT INTO schema_version (version, applied_at) VALUES (:version, :applied_at)"),
                {
                    "version": migration.version,
                    "applied_at": datetime.now(timezone.utc).isoformat(),
                },
            )
        applied.append(migration.version)

    if applied:
        logger.info(f"Applied {len(applied)} migration(s), schema now at v{SCHEMA_VERSION}")
    return applied
