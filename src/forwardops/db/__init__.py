"""ForwardOps database layer."""

from forwardops.db.connection import Database
from forwardops.db.migrations import MIGRATIONS, run_migrations
from forwardops.db.models import Chunk, ChunkInput, Document, DocumentStatus, DocumentType
from forwardops.db.repository import Repository
from forwardops.db.schema import initialize
from forwardops.db.vectors import ensure_vec_table, model_to_slug, vec_table_name

__all__ = [
    "Database",
    "Repository",
    "initialize",
    "run_migrations",
    "MIGRATIONS",
    "Chunk",
    "ChunkInput",
    "Document",
    "DocumentStatus",
    "DocumentType",
    "ensure_vec_table",
    "model_to_slug",
    "vec_table_name",
]
