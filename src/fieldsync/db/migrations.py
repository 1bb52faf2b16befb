"""
Schema migrations for the sync queue database.

Uses SQLite ALTER TABLE ADD COLUMN / CREATE INDEX IF NOT EXISTS for
incremental schema evolution. Each step is idempotent.

Called automatically from get_engine() after create_all() so queue files
written by older builds pick up new columns and indexes without manual steps.
"""
from sqlalchemy import text

QUEUE_TABLE = "syncqueueitem"

# Index names match the ones SQLModel generates for Field(index=True)
QUEUE_INDEXES = {
    "ix_syncqueueitem_status": "status",
    "ix_syncqueueitem_table_name": "table_name",
    "ix_syncqueueitem_created_at": "created_at",
}


def run_migrations(engine) -> None:
    """Apply all pending schema migrations.

    Safe to call multiple times. Supports SQLite only (uses PRAGMA table_info).

    Args:
        engine: SQLAlchemy engine (SQLModel create_engine result).
    """
    with engine.connect() as conn:
        # Queue rows written before per-attempt bookkeeping existed
        _add_column_if_missing(conn, QUEUE_TABLE, "last_attempt_at", "DATETIME")
        _add_column_if_missing(conn, QUEUE_TABLE, "error", "VARCHAR")

        for index_name, column in QUEUE_INDEXES.items():
            conn.execute(
                text(f"CREATE INDEX IF NOT EXISTS {index_name} ON {QUEUE_TABLE} ({column})")
            )

        conn.commit()


def _add_column_if_missing(conn, table: str, column: str, col_type: str) -> None:
    """Add a column to a table if it doesn't already exist.

    Args:
        conn: SQLAlchemy connection.
        table: Table name (lowercase, as SQLite stores it).
        column: Column name to add.
        col_type: SQLite type string, e.g. "INTEGER", "DATETIME", "VARCHAR".
    """
    result = conn.execute(text(f"PRAGMA table_info({table})"))
    existing_columns = {row[1] for row in result}
    if column not in existing_columns:
        conn.execute(text(f"ALTER TABLE {table} ADD COLUMN {column} {col_type}"))
