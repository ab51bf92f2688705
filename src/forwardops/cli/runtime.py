"""Shared wiring for CLI commands: config, database and pipeline objects."""

from __future__ import annotations

import sqlite3
from pathlib import Path

import typer
from rich.console import Console

from forwardops.cli.errors import err_config, err_embedding_dimensions, err_no_api_key, err_no_db
from forwardops.config import ConfigError, ForwardOpsConfig, load_config
from forwardops.db.connection import Database
from forwardops.db.repository import Repository
from forwardops.db.schema import initialize
from forwardops.db.vectors import ensure_vec_table, model_to_slug
from forwardops.errors import EmbeddingDimensionError
from forwardops.ingest.chunker import TokenChunker
from forwardops.ingest.orchestrator import IngestionOrchestrator
from forwardops.ingest.storage import FileStore
from forwardops.ingest.summarizer import DocumentSummarizer
from forwardops.rag.llm_client import Embedder, validate_api_key
from forwardops.rag.retriever import Retriever

console = Console()


def load_cfg(project_dir: Path | None = None) -> ForwardOpsConfig:
    """Load config for *project_dir* (default: CWD); exit 1 on a bad config file."""
    try:
        return load_config(project_dir)
    except ConfigError as exc:
        console.print(err_config(str(exc)))
        raise typer.Exit(1) from exc


def resolve_db(db: Path | None, cfg: ForwardOpsConfig) -> Path:
    return db if db is not None else Path(cfg.storage.db_path)


def require_db(db_path: Path) -> None:
    if not db_path.exists():
        console.print(err_no_db(str(db_path)))
        raise typer.Exit(1)


def require_api_key(model: str) -> None:
    try:
        validate_api_key(model)
    except EnvironmentError as exc:
        provider = model.split("/")[0] if "/" in model else "openai"
        console.print(err_no_api_key(provider))
        raise typer.Exit(1) from exc


def open_db(db_path: Path) -> sqlite3.Connection:
    conn = Database(db_path).connect()
    initialize(conn)
    return conn


def vec_table_for(conn: sqlite3.Connection, cfg: ForwardOpsConfig) -> str:
    """Return (creating if needed) the vec table of the configured embedding model."""
    try:
        return ensure_vec_table(
            conn, model_to_slug(cfg.embedding.model), cfg.embedding.dimensions
        )
    except EmbeddingDimensionError as exc:
        console.print(err_embedding_dimensions(str(exc)))
        raise typer.Exit(1) from exc


def upload_root(db_path: Path, cfg: ForwardOpsConfig) -> Path:
    """Upload dir from config; relative paths are taken from the database's directory."""
    root = Path(cfg.storage.upload_dir)
    return root if root.is_absolute() else db_path.parent / root


def build_embedder(cfg: ForwardOpsConfig) -> Embedder:
    return Embedder(
        model=cfg.embedding.model,
        dimensions=cfg.embedding.dimensions,
        max_input_tokens=cfg.embedding.max_input_tokens,
        num_retries=cfg.embedding.num_retries,
    )


def build_orchestrator(
    cfg: ForwardOpsConfig, repo: Repository, db_path: Path, vec_table: str
) -> IngestionOrchestrator:
    return IngestionOrchestrator(
        repo=repo,
        file_store=FileStore(upload_root(db_path, cfg)),
        chunker=TokenChunker(
            chunk_size=cfg.chunking.max_tokens_per_chunk, encoding=cfg.chunking.encoding
        ),
        embedder=build_embedder(cfg),
        summarizer=DocumentSummarizer(
            model=cfg.generation.summary_model,
            max_tokens=cfg.generation.summary_max_tokens,
            input_chars=cfg.ingestion.summary_input_chars,
            num_retries=cfg.embedding.num_retries,
        ),
        vec_table=vec_table,
        config=cfg,
    )


def build_retriever(cfg: ForwardOpsConfig, repo: Repository, vec_table: str) -> Retriever:
    return Retriever(repo, build_embedder(cfg), vec_table, cfg.retrieval)
