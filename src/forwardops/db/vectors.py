"""Per-model sqlite-vec virtual table management.

One ``vec0`` table per embedding model, keyed by the chunk rowid and using
cosine distance. Each row carries an ``owner_key`` partition key ('' for the
global knowledge base, ``u:{owner_id}`` otherwise) so KNN queries only visit
one owner's vectors. Vectors are written in sqlite-vec's compact float32 blob
format.
"""

from __future__ import annotations

import re
import sqlite3
from collections.abc import Sequence

import sqlite_vec
import structlog

from forwardops.errors import EmbeddingDimensionError

logger = structlog.get_logger(logger_name=__name__)

_DIMS_RE = re.compile(r"float\[(\d+)\]")


def model_to_slug(model: str) -> str:
    """Convert a provider/model string to a valid table name suffix.

    Examples:
        "openai/text-embedding-3-small" -> "openai_text_embedding_3_small"
    """
    return re.sub(r"[^a-z0-9]", "_", model.lower())


def vec_table_name(model_slug: str) -> str:
    """Return the full vec table name for a model slug."""
    return f"vec_chunks_{model_slug}"


def owner_key(owner_id: str | None) -> str:
    """Partition value for *owner_id*; the global knowledge base is ''."""
    return "" if owner_id is None else f"u:{owner_id}"


def serialize(vector: Sequence[float]) -> bytes:
    """Pack *vector* into the float32 blob sqlite-vec expects."""
    return sqlite_vec.serialize_float32(list(vector))


def _table_sql(conn: sqlite3.Connection, table: str) -> str | None:
    row = conn.execute(
        "SELECT sql FROM sqlite_master WHERE type='table' AND name=?", (table,)
    ).fetchone()
    return None if row is None else (row[0] or "")


def vec_table_dimensions(conn: sqlite3.Connection, table: str) -> int | None:
    """Return the declared dimensionality of *table*, or None if it does not exist."""
    sql = _table_sql(conn, table)
    if sql is None:
        return None
    match = _DIMS_RE.search(sql)
    return int(match.group(1)) if match else None


def _create_sql(table: str, dimensions: int) -> str:
    return (
        f"CREATE VIRTUAL TABLE IF NOT EXISTS {table} USING vec0("
        f"owner_key text partition key, "
        f"embedding float[{dimensions}] distance_metric=cosine)"
    )


def _add_partition_key(conn: sqlite3.Connection, table: str, dimensions: int) -> None:
    """Rebuild a table created without the owner_key partition.

    Embeddings whose chunk no longer exists are dropped.
    """
    owners = {
        r[0]: r[1]
        for r in conn.execute(
            "SELECT c.rowid, d.owner_id FROM chunks c JOIN documents d ON d.id = c.document_id"
        ).fetchall()
    }
    rows = [
        (rowid, owner_key(owners[rowid]), embedding)
        for rowid, embedding in conn.execute(f"SELECT rowid, embedding FROM {table}").fetchall()
        if rowid in owners
    ]
    conn.execute(f"DROP TABLE {table}")
    conn.execute(_create_sql(table, dimensions))
    conn.executemany(
        f"INSERT INTO {table}(rowid, owner_key, embedding) VALUES (?, ?, ?)", rows
    )
    conn.commit()
    logger.info("Vec table partitioned by owner", table=table, embeddings=len(rows))


def ensure_vec_table(conn: sqlite3.Connection, model_slug: str, dimensions: int) -> str:
    """Create vec_chunks_{model_slug} virtual table if it doesn't already exist.

    A table from an older database without the owner_key partition is
    rebuilt in place.

    Args:
        conn: Active database connection (sqlite-vec must be loaded).
        model_slug: Sanitized model identifier (use model_to_slug() to generate).
        dimensions: Embedding vector dimensions (e.g. 1536 for text-embedding-3-small).

    Returns:
        The table name (vec_chunks_{model_slug}).

    Raises:
        ValueError: If the slug or dimensions are malformed.
        EmbeddingDimensionError: If the table exists with a different dimensionality.
    """
    if not re.fullmatch(r"[a-z0-9_]+", model_slug):
        raise ValueError(
            f"Invalid model_slug '{model_slug}' — use model_to_slug() to sanitize."
        )
    if dimensions < 1:
        raise ValueError(f"dimensions must be >= 1, got {dimensions}")

    table = vec_table_name(model_slug)
    existing = vec_table_dimensions(conn, table)

    if existing is None:
        conn.execute(_create_sql(table, dimensions))
        conn.commit()
    elif existing != dimensions:
        raise EmbeddingDimensionError(
            f"{table} stores {existing}-dimensional vectors; configured dimensions is {dimensions}"
        )
    elif "partition key" not in (_table_sql(conn, table) or "").lower():
        _add_partition_key(conn, table, dimensions)

    return table
