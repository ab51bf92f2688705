"""Domain models for the ForwardOps database layer."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class DocumentStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    ERROR = "error"


class DocumentType(str, Enum):
    CP_EXAM = "c&p_exam"
    RATING_DECISION = "rating_decision"
    DBQ = "dbq"
    OTHER = "other"


@dataclass
class Document:
    """An uploaded file and its ingestion state.

    ``owner_id`` is None for globally shared knowledge-base documents.
    ``summary`` is set only while ``status`` is COMPLETED.
    """

    id: str
    owner_id: str | None
    name: str
    mime_type: str
    byte_size: int = 0
    document_type: DocumentType = DocumentType.OTHER
    file_path: str | None = None
    status: DocumentStatus = DocumentStatus.PENDING
    error_message: str | None = None
    summary: str | None = None
    created_at: str | None = None
    updated_at: str | None = None


@dataclass
class Chunk:
    id: str
    document_id: str
    content: str
    chunk_index: int
    total_chunks: int
    embedding: list[float] = field(default_factory=list)
    created_at: str | None = None
    rowid: int | None = None  # set after insert; None for unsaved chunks

    def __post_init__(self) -> None:
        if not 0 <= self.chunk_index < self.total_chunks:
            raise ValueError(
                f"chunk_index {self.chunk_index} out of range for total_chunks {self.total_chunks}"
            )


@dataclass(frozen=True)
class ChunkInput:
    """A chunk text and its embedding, ready for Repository.put_chunks()."""

    text: str
    embedding: list[float]


def parse_status(value: str) -> DocumentStatus:
    """Return the DocumentStatus for *value*; raise ValueError for unknown strings."""
    try:
        return DocumentStatus(value)
    except ValueError:
        raise ValueError(f"Unknown document status {value!r}") from None


def parse_document_type(value: str | None) -> DocumentType:
    if not value:
        return DocumentType.OTHER
    try:
        return DocumentType(value)
    except ValueError:
        raise ValueError(f"Unknown document type {value!r}") from None
