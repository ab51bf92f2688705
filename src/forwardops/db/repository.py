"""Repository pattern for all ForwardOps database operations.

Single interface for: documents, chunks, vec embeddings, similarity
candidates and the search result cache. Vec tables are model-managed
(ensure_vec_table); the repository handles read + write.
"""

from __future__ import annotations

import json
import sqlite3
import threading
import time
import uuid
from collections.abc import Iterable, Iterator, Sequence
from contextlib import contextmanager

from forwardops.db.models import (
    Chunk,
    ChunkInput,
    Document,
    DocumentStatus,
    DocumentType,
    parse_document_type,
    parse_status,
)
from forwardops.db.vectors import owner_key, serialize, vec_table_dimensions
from forwardops.errors import (
    ChunksAlreadyStored,
    DocumentNotFound,
    EmbeddingDimensionError,
    ValidationError,
)

_DOCUMENT_COLUMNS = (
    "id, owner_id, name, byte_size, mime_type, document_type, file_path, "
    "status, error_message, summary, created_at, updated_at"
)
_CHUNK_COLUMNS = "rowid, id, document_id, content, chunk_index, total_chunks, created_at"

# KNN asks for this many neighbours per result slot; sqlite-vec caps k at 4096.
_KNN_OVERSAMPLE = 4
_KNN_MAX_K = 4096


class Repository:
    """Data access layer for all ForwardOps database entities.

    Wraps an open sqlite3.Connection. The connection is owned by the caller
    and must be closed after use. Multi-statement writes run inside
    _transaction() so they commit or roll back as a unit.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        """Initialise with an open database connection.

        Args:
            conn: An open sqlite3.Connection with sqlite-vec loaded and schema
                initialised (see forwardops.db.schema.initialize).
        """
        self._conn = conn
        self._lock = threading.RLock()

    @property
    def conn(self) -> sqlite3.Connection:
        return self._conn

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        with self._lock:
            if self._conn.in_transaction:
                # The caller owns the open transaction and commits it.
                with self._savepoint():
                    yield self._conn
                return
            try:
                yield self._conn
                self._conn.commit()
            except BaseException:
                self._conn.rollback()
                raise

    @contextmanager
    def _savepoint(self) -> Iterator[None]:
        self._conn.execute("SAVEPOINT repository_write")
        try:
            yield
        except BaseException:
            self._conn.execute("ROLLBACK TO repository_write")
            self._conn.execute("RELEASE repository_write")
            raise
        self._conn.execute("RELEASE repository_write")

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    def create_document(
        self,
        owner_id: str | None,
        name: str,
        mime_type: str,
        byte_size: int = 0,
        document_type: DocumentType = DocumentType.OTHER,
        file_path: str | None = None,
        document_id: str | None = None,
    ) -> Document:
        """Insert a new document in ``pending`` state and return it."""
        doc_id = document_id or str(uuid.uuid4())
        with self._transaction() as conn:
            conn.execute(
                """
                INSERT INTO documents
                    (id, owner_id, name, byte_size, mime_type, document_type, file_path, status)
                VALUES (?, ?, ?, ?, ?, ?, ?, 'pending')
                """,
                (
                    doc_id,
                    owner_id,
                    name,
                    byte_size,
                    mime_type,
                    DocumentType(document_type).value,
                    file_path,
                ),
            )
        return self.get_document(doc_id)  # type: ignore[return-value]

    def get_document(self, document_id: str) -> Document | None:
        """Return a document by ID, or None if not found."""
        row = self._conn.execute(
            f"SELECT {_DOCUMENT_COLUMNS} FROM documents WHERE id = ?", (document_id,)
        ).fetchone()
        return _row_to_document(row) if row else None

    def require_document(self, document_id: str) -> Document:
        """Return a document by ID or raise DocumentNotFound."""
        doc = self.get_document(document_id)
        if doc is None:
            raise DocumentNotFound(f"Document {document_id} does not exist")
        return doc

    def list_documents(
        self,
        owner_id: str | None,
        status: DocumentStatus | None = None,
        limit: int | None = None,
    ) -> list[Document]:
        """Return documents owned by *owner_id* (None → global), newest first."""
        sql = f"SELECT {_DOCUMENT_COLUMNS} FROM documents WHERE owner_id IS ?"
        params: list[object] = [owner_id]
        if status is not None:
            sql += " AND status = ?"
            params.append(DocumentStatus(status).value)
        sql += " ORDER BY created_at DESC, rowid DESC"
        if limit is not None:
            sql += " LIMIT ?"
            params.append(int(limit))
        return [_row_to_document(r) for r in self._conn.execute(sql, params).fetchall()]

    def all_documents(self) -> list[Document]:
        """Return every document across all owners, oldest first."""
        rows = self._conn.execute(
            f"SELECT {_DOCUMENT_COLUMNS} FROM documents ORDER BY created_at, rowid"
        ).fetchall()
        return [_row_to_document(r) for r in rows]

    def transition_status(
        self,
        document_id: str,
        expected: DocumentStatus | Iterable[DocumentStatus],
        new: DocumentStatus,
        error_message: str | None = None,
    ) -> bool:
        """Compare-and-swap the document status.

        Moves the document to *new* only if its current status is one of
        *expected*. Leaving ``completed`` clears the summary.

        Returns:
            True if the row was updated, False if the status did not match.
        """
        allowed = (
            [DocumentStatus(expected).value]
            if isinstance(expected, (str, DocumentStatus))
            else [DocumentStatus(s).value for s in expected]
        )
        placeholders = ",".join("?" * len(allowed))
        with self._transaction() as conn:
            cur = conn.execute(
                f"""
                UPDATE documents
                SET status = ?,
                    error_message = ?,
                    summary = CASE WHEN ? = 'completed' THEN summary ELSE NULL END,
                    updated_at = datetime('now')
                WHERE id = ? AND status IN ({placeholders})
                """,
                (
                    DocumentStatus(new).value,
                    error_message,
                    DocumentStatus(new).value,
                    document_id,
                    *allowed,
                ),
            )
        return cur.rowcount == 1

    def complete_document(self, document_id: str, summary: str) -> Document:
        """Move a ``processing`` document to ``completed`` with its summary.

        Raises:
            DocumentNotFound: If the document was deleted meanwhile.
            ValidationError: If the summary is empty or the document is not
                in ``processing`` state.
        """
        if not summary or not summary.strip():
            raise ValidationError("A completed document requires a non-empty summary")
        with self._transaction() as conn:
            cur = conn.execute(
                """
                UPDATE documents
                SET status = 'completed', summary = ?, error_message = NULL,
                    updated_at = datetime('now')
                WHERE id = ? AND status = 'processing'
                """,
                (summary, document_id),
            )
        doc = self.require_document(document_id)
        if cur.rowcount != 1:
            raise ValidationError(
                f"Document {document_id} is '{doc.status.value}', not 'processing'"
            )
        return doc

    def fail_document(self, document_id: str, message: str) -> bool:
        """Move a document to ``error`` with *message*, whatever its current state."""
        with self._transaction() as conn:
            cur = conn.execute(
                """
                UPDATE documents
                SET status = 'error', error_message = ?, summary = NULL,
                    updated_at = datetime('now')
                WHERE id = ?
                """,
                (message, document_id),
            )
        return cur.rowcount == 1

    def set_file_path(self, document_id: str, file_path: str | None) -> None:
        with self._transaction() as conn:
            conn.execute(
                "UPDATE documents SET file_path = ?, updated_at = datetime('now') WHERE id = ?",
                (file_path, document_id),
            )

    def delete_document(self, document_id: str, vec_table: str | None = None) -> int:
        """Delete a document with its chunks and embeddings.

        Args:
            document_id: Document to delete.
            vec_table: Vec table holding its embeddings; None → every vec table.

        Returns:
            Number of chunks removed.
        """
        with self._transaction() as conn:
            removed = self._delete_chunk_rows(conn, document_id, vec_table)
            conn.execute("DELETE FROM documents WHERE id = ?", (document_id,))
        return removed

    def list_stale_processing(self, older_than_seconds: int) -> list[Document]:
        """Return documents stuck in ``processing`` longer than *older_than_seconds*."""
        rows = self._conn.execute(
            f"""
            SELECT {_DOCUMENT_COLUMNS} FROM documents
            WHERE status = 'processing'
              AND updated_at <= datetime('now', ?)
            ORDER BY updated_at
            """,
            (f"-{int(older_than_seconds)} seconds",),
        ).fetchall()
        return [_row_to_document(r) for r in rows]

    def recent_summaries(self, owner_id: str | None, limit: int = 5) -> list[Document]:
        """Return the *limit* most recent completed documents of *owner_id* with summaries."""
        rows = self._conn.execute(
            f"""
            SELECT {_DOCUMENT_COLUMNS} FROM documents
            WHERE owner_id IS ? AND status = 'completed' AND summary IS NOT NULL
            ORDER BY created_at DESC, rowid DESC
            LIMIT ?
            """,
            (owner_id, int(limit)),
        ).fetchall()
        return [_row_to_document(r) for r in rows]

    # ------------------------------------------------------------------
    # Chunks
    # ------------------------------------------------------------------

    def put_chunks(
        self,
        document_id: str,
        chunks: Sequence[ChunkInput],
        vec_table: str,
    ) -> list[Chunk]:
        """Store all chunks of a document and their embeddings atomically.

        Either every chunk (with its embedding) is stored or none is.

        Raises:
            ValidationError: If *chunks* is empty.
            DocumentNotFound: If the document does not exist.
            ChunksAlreadyStored: If the document already has chunks.
            EmbeddingDimensionError: If an embedding does not match the vec table.
        """
        if not chunks:
            raise ValidationError("put_chunks requires at least one chunk")

        total = len(chunks)
        stored: list[Chunk] = []
        with self._transaction() as conn:
            doc_row = conn.execute(
                "SELECT owner_id FROM documents WHERE id = ?", (document_id,)
            ).fetchone()
            if doc_row is None:
                raise DocumentNotFound(f"Document {document_id} does not exist")
            partition = owner_key(doc_row["owner_id"])
            existing = conn.execute(
                "SELECT COUNT(*) FROM chunks WHERE document_id = ?", (document_id,)
            ).fetchone()[0]
            if existing:
                raise ChunksAlreadyStored(
                    f"Document {document_id} already has {existing} chunks"
                )
            dims = vec_table_dimensions(conn, vec_table)

            for index, item in enumerate(chunks):
                if dims is not None and len(item.embedding) != dims:
                    raise EmbeddingDimensionError(
                        f"Chunk {index} embedding has {len(item.embedding)} dimensions, "
                        f"{vec_table} expects {dims}"
                    )
                chunk_id = str(uuid.uuid4())
                cur = conn.execute(
                    """
                    INSERT INTO chunks (id, document_id, content, chunk_index, total_chunks)
                    VALUES (?, ?, ?, ?, ?)
                    """,
                    (chunk_id, document_id, item.text, index, total),
                )
                rowid = cur.lastrowid
                conn.execute(
                    f"INSERT INTO {vec_table}(rowid, owner_key, embedding) VALUES (?, ?, ?)",
                    (rowid, partition, serialize(item.embedding)),
                )
                stored.append(
                    Chunk(
                        id=chunk_id,
                        document_id=document_id,
                        content=item.text,
                        chunk_index=index,
                        total_chunks=total,
                        embedding=list(item.embedding),
                        rowid=rowid,
                    )
                )
        return stored

    def visible_chunks(
        self,
        chunk_ids: Sequence[str],
        owner_id: str | None,
        *,
        include_owner: bool,
        include_global: bool,
    ) -> dict[str, Chunk]:
        """Return the chunks among *chunk_ids* a search in this scope may show.

        A chunk is visible when its document is ``completed`` and owned by
        *owner_id* (include_owner) or global (include_global). Ids that do
        not qualify are absent from the result.
        """
        clauses: list[str] = []
        params: list[object] = list(chunk_ids)
        if include_owner:
            clauses.append("d.owner_id IS ?")
            params.append(owner_id)
        if include_global:
            clauses.append("d.owner_id IS NULL")
        if not chunk_ids or not clauses:
            return {}
        placeholders = ",".join("?" * len(chunk_ids))
        rows = self._conn.execute(
            f"""
            SELECT c.rowid AS rowid, c.id, c.document_id, c.content, c.chunk_index,
                   c.total_chunks, c.created_at
            FROM chunks c JOIN documents d ON d.id = c.document_id
            WHERE c.id IN ({placeholders})
              AND d.status = 'completed' AND ({" OR ".join(clauses)})
            """,  # noqa: S608
            params,
        ).fetchall()
        return {r["id"]: _row_to_chunk(r) for r in rows}

    def chunks_for_document(self, document_id: str) -> list[Chunk]:
        rows = self._conn.execute(
            f"SELECT {_CHUNK_COLUMNS} FROM chunks WHERE document_id = ? ORDER BY chunk_index",
            (document_id,),
        ).fetchall()
        return [_row_to_chunk(r) for r in rows]

    def chunks_for_owner(self, owner_id: str | None) -> list[Chunk]:
        """Return chunks of documents owned by *owner_id* (None → global documents)."""
        rows = self._conn.execute(
            """
            SELECT c.rowid AS rowid, c.id, c.document_id, c.content, c.chunk_index,
                   c.total_chunks, c.created_at
            FROM chunks c JOIN documents d ON d.id = c.document_id
            WHERE d.owner_id IS ?
            ORDER BY c.rowid
            """,
            (owner_id,),
        ).fetchall()
        return [_row_to_chunk(r) for r in rows]

    def count_chunks(self, document_id: str | None = None) -> int:
        """Return the number of chunks for *document_id*, or in total when None."""
        if document_id is None:
            return self._conn.execute("SELECT COUNT(*) FROM chunks").fetchone()[0]
        return self._conn.execute(
            "SELECT COUNT(*) FROM chunks WHERE document_id = ?", (document_id,)
        ).fetchone()[0]

    def delete_chunks_for_document(self, document_id: str, vec_table: str | None = None) -> int:
        """Delete a document's chunks and their embeddings. Returns chunks removed."""
        with self._transaction() as conn:
            return self._delete_chunk_rows(conn, document_id, vec_table)

    def _delete_chunk_rows(
        self, conn: sqlite3.Connection, document_id: str, vec_table: str | None
    ) -> int:
        rowids = [
            r[0]
            for r in conn.execute(
                "SELECT rowid FROM chunks WHERE document_id = ?", (document_id,)
            ).fetchall()
        ]
        if not rowids:
            return 0
        tables = [vec_table] if vec_table else self.vec_tables()
        placeholders = ",".join("?" * len(rowids))
        for table in tables:
            conn.execute(
                f"DELETE FROM [{table}] WHERE rowid IN ({placeholders})",  # noqa: S608
                rowids,
            )
        conn.execute("DELETE FROM chunks WHERE document_id = ?", (document_id,))
        return len(rowids)

    # ------------------------------------------------------------------
    # Vec embeddings
    # ------------------------------------------------------------------

    def vec_tables(self) -> list[str]:
        """Return the names of every vec0 table (shadow tables excluded)."""
        rows = self._conn.execute(
            """
            SELECT name FROM sqlite_master
            WHERE type = 'table' AND name LIKE 'vec_chunks_%'
              AND sql LIKE 'CREATE VIRTUAL TABLE%'
            ORDER BY name
            """
        ).fetchall()
        return [r[0] for r in rows]

    def count_embeddings(self, vec_table: str) -> int:
        return self._conn.execute(f"SELECT COUNT(*) FROM [{vec_table}]").fetchone()[0]  # noqa: S608

    def scored_candidates(
        self,
        vec_table: str,
        query_vector: Sequence[float],
        owner_id: str | None,
        *,
        include_owner: bool,
        include_global: bool,
        threshold: float,
        limit: int,
    ) -> list[tuple[Chunk, float, str | None]]:
        """Return the nearest chunks to *query_vector* scoring above *threshold*.

        Runs one KNN query per owner partition (the caller's and/or the global
        one) asking for ``limit * _KNN_OVERSAMPLE`` neighbours, so chunks of
        documents still in ``processing`` can be dropped without starving the
        result. Scores are ``1 - cosine distance``. Rows come back in chunk
        rowid order.

        Returns:
            List of (chunk, score, document owner_id).
        """
        partitions: list[str] = []
        if include_owner:
            partitions.append(owner_key(owner_id))
        if include_global:
            partitions.append(owner_key(None))
        if not partitions:
            return []

        k = min(_KNN_MAX_K, max(1, limit) * _KNN_OVERSAMPLE)
        blob = serialize(query_vector)
        scores: dict[int, float] = {}
        for partition in dict.fromkeys(partitions):
            for row in self._conn.execute(
                f"SELECT rowid, distance FROM [{vec_table}] "  # noqa: S608
                "WHERE embedding MATCH ? AND k = ? AND owner_key = ?",
                (blob, k, partition),
            ).fetchall():
                score = 1.0 - float(row["distance"])
                if score > threshold:
                    scores[row["rowid"]] = score
        if not scores:
            return []

        placeholders = ",".join("?" * len(scores))
        rows = self._conn.execute(
            f"""
            SELECT c.rowid AS rowid, c.id, c.document_id, c.content, c.chunk_index,
                   c.total_chunks, c.created_at, d.owner_id AS owner_id
            FROM chunks c JOIN documents d ON d.id = c.document_id
            WHERE c.rowid IN ({placeholders}) AND d.status = 'completed'
            ORDER BY c.rowid
            """,  # noqa: S608
            list(scores),
        ).fetchall()
        return [(_row_to_chunk(r), scores[r["rowid"]], r["owner_id"]) for r in rows]

    # ------------------------------------------------------------------
    # Search result cache
    # ------------------------------------------------------------------

    def get_cached_results(
        self,
        owner_id: str | None,
        scope: str,
        query: str,
        ttl_seconds: int,
        now: float | None = None,
    ) -> list[tuple[str, float]] | None:
        """Return cached (chunk id, score) pairs, or None on a miss.

        *scope* is an opaque key; the retriever folds the search scope, vec
        table, threshold and result cap into it.
        """
        now = time.time() if now is None else now
        row = self._conn.execute(
            """
            SELECT results FROM search_cache
            WHERE owner_key = ? AND scope = ? AND query = ? AND bucket = ?
              AND created_at > ?
            """,
            (owner_key(owner_id), scope, query, _bucket(now, ttl_seconds), now - ttl_seconds),
        ).fetchone()
        if row is None:
            return None
        return [(str(chunk_id), float(score)) for chunk_id, score in json.loads(row["results"])]

    def put_cached_results(
        self,
        owner_id: str | None,
        scope: str,
        query: str,
        results: Sequence[tuple[str, float]],
        ttl_seconds: int,
        now: float | None = None,
    ) -> None:
        now = time.time() if now is None else now
        with self._transaction() as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO search_cache
                    (owner_key, scope, query, bucket, results, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    owner_key(owner_id),
                    scope,
                    query,
                    _bucket(now, ttl_seconds),
                    json.dumps([[chunk_id, score] for chunk_id, score in results]),
                    now,
                ),
            )

    def invalidate_cache(self, owner_id: str | None) -> int:
        """Drop cached results for *owner_id*.

        A change to a global document (owner_id None) can affect any owner's
        searches, so it clears the whole cache.
        """
        with self._transaction() as conn:
            if owner_id is None:
                cur = conn.execute("DELETE FROM search_cache")
            else:
                cur = conn.execute(
                    "DELETE FROM search_cache WHERE owner_key = ?", (owner_key(owner_id),)
                )
        return cur.rowcount

    def purge_expired_cache(self, max_age_seconds: int, now: float | None = None) -> int:
        now = time.time() if now is None else now
        with self._transaction() as conn:
            cur = conn.execute(
                "DELETE FROM search_cache WHERE created_at <= ?", (now - max_age_seconds,)
            )
        return cur.rowcount


# ------------------------------------------------------------------
# Row → model helpers
# ------------------------------------------------------------------


def _bucket(now: float, ttl_seconds: int) -> int:
    return int(now // max(1, ttl_seconds))


def _row_to_document(row: sqlite3.Row) -> Document:
    return Document(
        id=row["id"],
        owner_id=row["owner_id"],
        name=row["name"],
        byte_size=row["byte_size"],
        mime_type=row["mime_type"],
        document_type=parse_document_type(row["document_type"]),
        file_path=row["file_path"],
        status=parse_status(row["status"]),
        error_message=row["error_message"],
        summary=row["summary"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _row_to_chunk(row: sqlite3.Row) -> Chunk:
    return Chunk(
        rowid=row["rowid"],
        id=row["id"],
        document_id=row["document_id"],
        content=row["content"],
        chunk_index=row["chunk_index"],
        total_chunks=row["total_chunks"],
        created_at=row["created_at"],
    )
