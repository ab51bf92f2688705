"""Ingestion orchestrator — upload → chunk → embed → store → analyse.

Document lifecycle::

    pending ──┐
    completed ├─▶ processing ──▶ completed
    error ────┘        │
                       └──────▶ error

Entering ``processing`` is a compare-and-swap on the status column plus an
in-process lock per document, so two attempts on the same document never
run at once. Any failure inside an attempt moves the document to ``error``,
removes partially stored chunks and the raw upload, and raises
IngestionFailed chained to the original error. Interrupts (KeyboardInterrupt,
cancellation) get the same cleanup and are re-raised unchanged. Documents
left in ``processing`` by a dead process are recovered by sweep_stale().
"""

from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import contextmanager

import structlog

from forwardops.config import ForwardOpsConfig
from forwardops.db.models import ChunkInput, Document, DocumentStatus
from forwardops.db.repository import Repository
from forwardops.errors import (
    ConcurrentIngestion,
    IngestionFailed,
    OwnershipViolation,
    ValidationError,
)
from forwardops.ingest.chunker import TokenChunker
from forwardops.ingest.extract import detect_document_type, extract_text, validate_upload
from forwardops.ingest.storage import FileStore
from forwardops.ingest.summarizer import DocumentSummarizer, document_title
from forwardops.rag.llm_client import Embedder

logger = structlog.get_logger(logger_name=__name__)

ABORTED_MESSAGE = "Ingestion aborted"
ABANDONED_MESSAGE = "Ingestion abandoned"

_REINGESTABLE = (DocumentStatus.PENDING, DocumentStatus.COMPLETED, DocumentStatus.ERROR)


class IngestionOrchestrator:
    """Drive chunking, embedding, storage and analysis for documents.

    Args:
        repo:       Open Repository.
        file_store: Store for raw uploads.
        chunker:    Token-window chunker.
        embedder:   Embedding client.
        summarizer: Whole-document analysis generator.
        vec_table:  Vec table of the embedder's model (see ensure_vec_table).
        config:     Upload limits and stale-ingestion threshold.
    """

    def __init__(
        self,
        repo: Repository,
        file_store: FileStore,
        chunker: TokenChunker,
        embedder: Embedder,
        summarizer: DocumentSummarizer,
        vec_table: str,
        config: ForwardOpsConfig | None = None,
    ) -> None:
        self._repo = repo
        self._files = file_store
        self._chunker = chunker
        self._embedder = embedder
        self._summarizer = summarizer
        self._vec_table = vec_table
        self._config = config or ForwardOpsConfig()
        self._locks: dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    def upload(
        self,
        owner_id: str | None,
        file_name: str,
        data: bytes,
        mime_type: str,
    ) -> Document:
        """Validate, store and ingest an uploaded file.

        Validation failures raise before any file or row is created.

        Raises:
            ValidationError: Upload rejected (size, type, PDF checks).
            IngestionFailed: The document was created but ingestion failed.
        """
        ingestion = self._config.ingestion
        validate_upload(
            data,
            mime_type,
            max_bytes=ingestion.max_upload_bytes,
            allowed_mime_types=ingestion.allowed_mime_types,
        )

        rel_path = self._files.save(owner_id, file_name, data)
        try:
            doc = self._repo.create_document(
                owner_id=owner_id,
                name=file_name,
                mime_type=mime_type,
                byte_size=len(data),
                document_type=detect_document_type(file_name),
                file_path=rel_path,
            )
        except BaseException:
            self._files.remove(rel_path)
            raise
        logger.info("Document uploaded", document_id=doc.id, bytes=len(data), mime_type=mime_type)

        with self._attempt(doc.id):
            content = extract_text(data, mime_type)
            return self._run(doc.id, content)

    def ingest(self, document_id: str, content: str) -> Document:
        """Chunk, embed, store and analyse *content* for an existing document.

        Replaces any chunks the document already has.

        Raises:
            DocumentNotFound: No such document.
            ConcurrentIngestion: Another attempt is in flight for this document.
            IngestionFailed: The attempt failed; the document is in ``error``.
        """
        with self._attempt(document_id):
            return self._run(document_id, content)

    def reingest(self, document_id: str) -> Document:
        """Re-extract text from the stored upload and ingest it again."""
        doc = self._repo.require_document(document_id)
        if not doc.file_path or not self._files.exists(doc.file_path):
            raise ValidationError(
                f"Document {document_id} has no stored file to re-analyze; upload it again"
            )
        data = self._files.read(doc.file_path)
        with self._attempt(document_id):
            content = extract_text(data, doc.mime_type)
            return self._run(document_id, content)

    def delete(self, document_id: str, owner_id: str | None) -> None:
        """Delete a document owned by *owner_id* with its chunks and raw file.

        Raises:
            DocumentNotFound: No such document.
            OwnershipViolation: The document belongs to someone else.
            ConcurrentIngestion: The document is being ingested.
        """
        doc = self._repo.require_document(document_id)
        if doc.owner_id != owner_id:
            raise OwnershipViolation(f"Document {document_id} is not owned by the caller")
        lock = self._lock_for(document_id)
        if not lock.acquire(blocking=False):
            raise ConcurrentIngestion(f"Document {document_id} is being ingested")
        try:
            removed = self._repo.delete_document(document_id, self._vec_table)
            self._files.remove(doc.file_path)
            self._repo.invalidate_cache(doc.owner_id)
        finally:
            lock.release()
            self._forget_lock(document_id)
        logger.info("Document deleted", document_id=document_id, chunks=removed)

    def sweep_stale(self, max_age_seconds: int | None = None) -> list[str]:
        """Fail documents stuck in ``processing``; return their ids."""
        age = self._config.ingestion.stale_after_seconds if max_age_seconds is None else max_age_seconds
        swept: list[str] = []
        for doc in self._repo.list_stale_processing(age):
            with self._locks_guard:
                in_flight = doc.id in self._locks and self._locks[doc.id].locked()
            if in_flight:
                continue
            if self._repo.transition_status(
                doc.id, DocumentStatus.PROCESSING, DocumentStatus.ERROR, ABANDONED_MESSAGE
            ):
                self._cleanup(doc.id, ABANDONED_MESSAGE)
                swept.append(doc.id)
                logger.warning("Stale ingestion failed", document_id=doc.id)
        return swept

    # ------------------------------------------------------------------
    # Attempt lifecycle
    # ------------------------------------------------------------------

    @contextmanager
    def _attempt(self, document_id: str) -> Iterator[None]:
        """Hold the document in ``processing`` for the body; clean up on failure."""
        doc = self._repo.require_document(document_id)
        lock = self._lock_for(document_id)
        if not lock.acquire(blocking=False):
            raise ConcurrentIngestion(f"Document {document_id} is already being ingested")
        try:
            if not self._repo.transition_status(
                document_id, _REINGESTABLE, DocumentStatus.PROCESSING
            ):
                raise ConcurrentIngestion(
                    f"Document {document_id} is already being ingested elsewhere"
                )
            # Cached results may point at chunks about to be replaced.
            self._repo.invalidate_cache(doc.owner_id)
            try:
                yield
            except Exception as exc:
                message = str(exc) or type(exc).__name__
                self._cleanup(document_id, message)
                logger.error("Ingestion failed", document_id=document_id, error=type(exc).__name__)
                raise IngestionFailed(document_id, message) from exc
            except BaseException:
                self._cleanup(document_id, ABORTED_MESSAGE)
                logger.warning("Ingestion aborted", document_id=document_id)
                raise
        finally:
            lock.release()
            self._forget_lock(document_id)

    def _run(self, document_id: str, content: str) -> Document:
        doc = self._repo.require_document(document_id)
        self._repo.delete_chunks_for_document(document_id, self._vec_table)

        texts = self._chunker.split(content)
        if not texts:
            raise ValidationError("Document has no text to index")
        vectors = self._embedder.embed_all(texts)
        stored = self._repo.put_chunks(
            document_id,
            [ChunkInput(text=t, embedding=v) for t, v in zip(texts, vectors)],
            self._vec_table,
        )
        logger.info("Chunks stored", document_id=document_id, chunks=len(stored))

        analysis = self._summarizer.summarize(
            content, doc.document_type, document_title(doc.name)
        )
        completed = self._repo.complete_document(document_id, analysis)
        self._repo.invalidate_cache(doc.owner_id)
        return completed

    def _cleanup(self, document_id: str, message: str) -> None:
        self._repo.fail_document(document_id, message)
        self._repo.delete_chunks_for_document(document_id, self._vec_table)
        doc = self._repo.get_document(document_id)
        if doc is not None and doc.file_path:
            self._files.remove(doc.file_path)
            self._repo.set_file_path(document_id, None)
        if doc is not None:
            self._repo.invalidate_cache(doc.owner_id)

    def _lock_for(self, document_id: str) -> threading.Lock:
        with self._locks_guard:
            return self._locks.setdefault(document_id, threading.Lock())

    def _forget_lock(self, document_id: str) -> None:
        with self._locks_guard:
            lock = self._locks.get(document_id)
            if lock is not None and not lock.locked():
                del self._locks[document_id]
