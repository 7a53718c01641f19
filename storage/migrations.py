"""Ad-hoc database migrations for Patients."""

from __future__ import annotations

from sqlalchemy import text


def _column_exists(conn, table: str, column: str) -> bool:
    result = conn.execute(text(f"PRAGMA table_info('{table}')"))
    return any(row[1] == column for row in result)


def _table_exists(conn, table: str) -> bool:
    result = conn.execute(
        text("SELECT name FROM sqlite_master WHERE type='table' AND name=:name"),
        {"name": table},
    )
    return result.first() is not None


def ensure_vitals_remote_id(conn) -> None:
    """Databases created before remote ids were tracked lack the column."""
    if not _table_exists(conn, "vitals"):
        return
    if not _column_exists(conn, "vitals", "remote_id"):
        conn.execute(text("ALTER TABLE vitals ADD COLUMN remote_id INTEGER"))
    conn.execute(text("CREATE INDEX IF NOT EXISTS ix_vitals_remote_id ON vitals (remote_id)"))


def ensure_pending_sync_table(conn) -> None:
    conn.execute(
        text(
            """
            CREATE TABLE IF NOT EXISTS pending_sync (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                endpoint TEXT NOT NULL,
                payload TEXT NOT NULL,
                created_at TEXT NOT NULL,
                attempt_count INTEGER NOT NULL DEFAULT 0,
                last_error TEXT,
                failed_at TEXT
            )
            """
        )
    )
    if not _column_exists(conn, "pending_sync", "last_error"):
        conn.execute(text("ALTER TABLE pending_sync ADD COLUMN last_error TEXT"))
    if not _column_exists(conn, "pending_sync", "failed_at"):
        conn.execute(text("ALTER TABLE pending_sync ADD COLUMN failed_at TEXT"))
    # FIFO drain reads in this order
    conn.execute(
        text(
            """
            CREATE INDEX IF NOT EXISTS ix_pending_sync_fifo
            ON pending_sync (created_at, id)
            """
        )
    )


def ensure_unique_indexes(conn) -> None:
    if _table_exists(conn, "patients"):
        conn.execute(
            text("CREATE UNIQUE INDEX IF NOT EXISTS ux_patients_patient_id ON patients (patient_id)")
        )
    if _table_exists(conn, "vitals"):
        conn.execute(
            text(
                """
                CREATE UNIQUE INDEX IF NOT EXISTS ux_vitals_patient_visit
                ON vitals (patient_owner_id, visit_date)
                """
            )
        )


def run_all(engine) -> None:
    with engine.begin() as conn:
        ensure_vitals_remote_id(conn)
        # SQLModel creates pending_sync, but legacy DBs may predate it
        ensure_pending_sync_table(conn)
        ensure_unique_indexes(conn)


__all__ = ["run_all"]
