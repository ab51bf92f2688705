"""Forward-only migration runner for the ForwardOps database schema.

Vec tables (vec_chunks_*) are NOT migration-managed; use ensure_vec_table().
"""

from __future__ import annotations

import sqlite3

# schema_version is the bootstrap table, created before migrations run.
_CREATE_SCHEMA_VERSION = """
CREATE TABLE IF NOT EXISTS schema_version (
    version     INTEGER NOT NULL,
    applied_at  DATETIME NOT NULL DEFAULT (datetime('now'))
)
"""

_V1_SQL = """
CREATE TABLE IF NOT EXISTS documents (
    id              TEXT PRIMARY KEY,
    owner_id        TEXT,
    name            TEXT NOT NULL,
    byte_size       INTEGER NOT NULL DEFAULT 0 CHECK (byte_size >= 0),
    mime_type       TEXT NOT NULL,
    document_type   TEXT NOT NULL DEFAULT 'other'
                    CHECK (document_type IN ('c&p_exam', 'rating_decision', 'dbq', 'other')),
    file_path       TEXT,
    status          TEXT NOT NULL DEFAULT 'pending'
                    CHECK (status IN ('pending', 'processing', 'completed', 'error')),
    error_message   TEXT,
    summary         TEXT CHECK (summary IS NULL OR status = 'completed'),
    created_at      DATETIME NOT NULL DEFAULT (datetime('now')),
    updated_at      DATETIME NOT NULL DEFAULT (datetime('now'))
);

CREATE INDEX IF NOT EXISTS idx_documents_owner ON documents(owner_id, status);

CREATE TABLE IF NOT EXISTS chunks (
    id              TEXT NOT NULL UNIQUE,
    document_id     TEXT NOT NULL REFERENCES documents(id) ON DELETE CASCADE,
    content         TEXT NOT NULL,
    chunk_index     INTEGER NOT NULL,
    total_chunks    INTEGER NOT NULL,
    created_at      DATETIME NOT NULL DEFAULT (datetime('now')),
    CHECK (chunk_index >= 0 AND chunk_index < total_chunks),
    UNIQUE (document_id, chunk_index)
);

CREATE TABLE IF NOT EXISTS search_cache (
    owner_key       TEXT NOT NULL,
    scope           TEXT NOT NULL,
    query           TEXT NOT NULL,
    bucket          INTEGER NOT NULL,
    results         TEXT NOT NULL,
    created_at      REAL NOT NULL,
    PRIMARY KEY (owner_key, scope, query, bucket)
);
"""

# Append-only. Each entry: (version: int, sql: str).
# executescript() issues an implicit COMMIT before running.
MIGRATIONS: list[tuple[int, str]] = [
    (1, _V1_SQL),
]


def run_migrations(conn: sqlite3.Connection) -> None:
    """Apply all pending migrations in ascending version order.

    Idempotent: safe to call on a database at any version.
    Vec tables are NOT managed here; use ensure_vec_table() instead.
    """
    conn.execute(_CREATE_SCHEMA_VERSION)
    conn.commit()

    row = conn.execute("SELECT MAX(version) FROM schema_version").fetchone()
    current = row[0] if row[0] is not None else 0

    for version, sql in MIGRATIONS:
        if version > current:
            conn.executescript(sql)
            conn.execute(
                "INSERT INTO schema_version (version) VALUES (?)", (version,)
            )
            conn.commit()
