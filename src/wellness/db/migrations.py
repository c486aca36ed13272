"""
Database migrations.

Uses SQLite ALTER TABLE ADD COLUMN for incremental schema evolution.
Each migration is idempotent: columns are only added if absent.

Called automatically from get_engine() after create_all() so both
fresh installs and databases created before these columns existed are
handled without manual steps.
"""
from sqlalchemy import text

from wellness.models.sample import SAMPLE_DAY_INDEX


def run_migrations(engine) -> None:
    """Apply all pending schema migrations.

    Safe to call multiple times — checks column existence before altering.
    Only SQLite is migrated (uses PRAGMA table_info); other backends get the
    full schema from create_all().

    Args:
        engine: SQLAlchemy engine (SQLModel create_engine result).
    """
    if engine.dialect.name != "sqlite":
        return

    with engine.connect() as conn:
        # SampleRecord: bed/wake clock times
        _add_column_if_missing(conn, "samplerecord", "sleep_start", "TEXT")
        _add_column_if_missing(conn, "samplerecord", "sleep_end", "TEXT")

        # SampleRecord: per-day analysis status
        _add_column_if_missing(
            conn, "samplerecord", "analysis_status", "TEXT NOT NULL DEFAULT 'pending'"
        )
        _add_column_if_missing(conn, "samplerecord", "analysis_error", "TEXT NOT NULL DEFAULT ''")
        _add_column_if_missing(conn, "samplerecord", "analysis_updated_at", "DATETIME")

        # SampleRecord: local calendar day, unique per user. Legacy rows keep
        # NULL, which SQLite treats as distinct in a unique index.
        _add_column_if_missing(conn, "samplerecord", "local_day", "TEXT")
        conn.execute(text(
            f"CREATE UNIQUE INDEX IF NOT EXISTS {SAMPLE_DAY_INDEX} "
            "ON samplerecord (user_id, local_day)"
        ))

        conn.commit()


def _add_column_if_missing(conn, table: str, column: str, col_type: str) -> None:
    """Add a column to a table if it doesn't already exist.

    Args:
        conn: SQLAlchemy connection.
        table: Table name (lowercase, as SQLite stores it).
        column: Column name to add.
        col_type: SQLite column definition, e.g. "TEXT", "REAL".
    """
    result = conn.execute(text(f"PRAGMA table_info({table})"))
    existing_columns = {row[1] for row in result}
    if column not in existing_columns:
        conn.execute(text(f"ALTER TABLE {table} ADD COLUMN {column} {col_type}"))
