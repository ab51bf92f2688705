"""forwardops reingest — re-analyze a stored document from its raw upload."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console

from forwardops.cli.errors import describe_error, err_document_not_found
from forwardops.cli.runtime import (
    build_orchestrator,
    load_cfg,
    open_db,
    require_api_key,
    require_db,
    resolve_db,
    vec_table_for,
)
from forwardops.db.repository import Repository
from forwardops.errors import ForwardOpsError

console = Console()


def reingest_cmd(
    document_id: Annotated[str, typer.Argument(help="Document id (see forwardops status).")],
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Path to forwardops.db."),
    ] = None,
) -> None:
    """Re-chunk, re-embed and re-analyze one document."""
    cfg = load_cfg()
    db_path = resolve_db(db, cfg)
    require_db(db_path)

    conn = open_db(db_path)
    repo = Repository(conn)
    try:
        if repo.get_document(document_id) is None:
            console.print(err_document_not_found(document_id))
            raise typer.Exit(1)
        require_api_key(cfg.embedding.model)
        orchestrator = build_orchestrator(cfg, repo, db_path, vec_table_for(conn, cfg))
        try:
            doc = orchestrator.reingest(document_id)
        except ForwardOpsError as exc:
            console.print(describe_error(exc))
            raise typer.Exit(1) from exc
        console.print(
            f"[green]✓[/] Re-analyzed {doc.name}: {repo.count_chunks(doc.id)} chunks"
        )
    finally:
        conn.close()
