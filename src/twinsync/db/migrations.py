"""
Database migrations for twinsync.

Uses SQLite ALTER TABLE ADD COLUMN for incremental schema evolution.
Each migration is idempotent: columns are only added if absent.

Called automatically from get_engine() after create_all() so both
fresh installs and existing DBs are handled without manual steps.

No released twinsync schema predates the current models, so create_all()
already creates every column below. The entries are scaffolding: they keep
the upgrade path exercised, and a column added to a model later is
registered here so existing databases pick it up.
"""
from typing import List, Tuple

from sqlalchemy import text

# (table, column, SQLite type) in the order they must be applied
COLUMN_MIGRATIONS: List[Tuple[str, str, str]] = [
    ("itemmapping", "display_label", "VARCHAR"),
    ("syncconfig", "updated_at", "DATETIME"),
]


def run_migrations(engine) -> None:
    """Apply all pending schema migrations.

    Safe to call multiple times. Supports SQLite only (uses PRAGMA table_info);
    other dialects are left to create_all().

    Args:
        engine: SQLAlchemy engine (SQLModel create_engine result).
    """
    if engine.dialect.name != "sqlite":
        return

    with engine.connect() as conn:
        for table, column, col_type in COLUMN_MIGRATIONS:
            _add_column_if_missing(conn, table, column, col_type)
        conn.commit()


def _add_column_if_missing(conn, table: str, column: str, col_type: str) -> None:
    """Add a column to a table if it doesn't already exist.

    Args:
        conn: SQLAlchemy connection.
        table: Table name (lowercase, as SQLite stores it).
        column: Column name to add.
        col_type: SQLite type string, e.g. "INTEGER", "REAL", "VARCHAR".
    """
    result = conn.execute(text(f"PRAGMA table_info({table})"))
    existing_columns = {row[1] for row in result}
    if column not in existing_columns:
        conn.execute(text(f"ALTER TABLE {table} ADD COLUMN {column} {col_type}"))
