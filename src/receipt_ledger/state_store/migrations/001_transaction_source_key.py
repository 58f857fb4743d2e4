"""
Migration 001: Add idempotency key to transactions.

Every materialized transaction carries a source_key
(``ocr:<record_id>`` or ``import:<job_id>:<row_index>``). A unique index on it
makes re-running ingestion for the same record or batch a no-op for rows that
were already written. Manually entered transactions leave it NULL; SQLite
treats NULLs as distinct, so they never collide.
"""

import sqlite3

VERSION = 1
NAME = "transaction_source_key"


def upgrade(conn: sqlite3.Connection) -> None:
    """Add the source_key column and its unique index."""
    columns = {row[1] for row in conn.execute("PRAGMA table_info(transactions)")}
    if "source_key" not in columns:
        conn.execute("ALTER TABLE transactions ADD COLUMN source_key TEXT")

    conn.execute(
        """
        CREATE UNIQUE INDEX IF NOT EXISTS idx_transactions_source_key
        ON transactions (source_key)
    """
    )


def downgrade(conn: sqlite3.Connection) -> None:
    """Drop the unique index (SQLite keeps the column)."""
    conn.execute("DROP INDEX IF EXISTS idx_transactions_source_key")
