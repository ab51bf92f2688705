"""forwardops sweep — fail ingestions abandoned in ``processing``.

A process that dies mid-ingestion leaves its document in ``processing``;
sweep marks such documents as ``error`` once they are older than
``ingestion.stale_after_seconds`` (or --older-than) and drops their chunks.
Also purges expired search cache entries.
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console

from forwardops.cli.runtime import (
    build_orchestrator,
    load_cfg,
    open_db,
    require_db,
    resolve_db,
    vec_table_for,
)
from forwardops.db.repository import Repository

console = Console()


def sweep_cmd(
    older_than: Annotated[
        int | None,
        typer.Option("--older-than", help="Age in seconds (default: ingestion.stale_after_seconds)."),
    ] = None,
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Path to forwardops.db."),
    ] = None,
) -> None:
    """Mark stale in-flight ingestions as failed and purge the search cache."""
    cfg = load_cfg()
    db_path = resolve_db(db, cfg)
    require_db(db_path)

    conn = open_db(db_path)
    repo = Repository(conn)
    try:
        orchestrator = build_orchestrator(cfg, repo, db_path, vec_table_for(conn, cfg))
        swept = orchestrator.sweep_stale(older_than)
        purged = repo.purge_expired_cache(cfg.retrieval.cache_ttl_seconds)
    finally:
        conn.close()

    for doc_id in swept:
        console.print(f"  [yellow]✗[/] {doc_id} → error (Ingestion abandoned)")
    console.print(
        f"[green]✓[/] {len(swept)} stale ingestion(s) failed, {purged} cache entries purged"
    )
