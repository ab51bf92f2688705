"""ForwardOps ingest pipeline: chunker, upload extraction, file store, summarizer."""

from forwardops.ingest.chunker import TokenChunker, chunk_text
from forwardops.ingest.orchestrator import IngestionOrchestrator
from forwardops.ingest.storage import FileStore
from forwardops.ingest.summarizer import DocumentSummarizer

__all__ = [
    "DocumentSummarizer",
    "FileStore",
    "IngestionOrchestrator",
    "TokenChunker",
    "chunk_text",
]
