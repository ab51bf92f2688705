"""forwardops remove — document lifecycle management.

Removes a document and all its associated data:
  - chunks
  - embeddings (vec table)
  - raw uploaded file
  - cached search results of the owner
  - document record

Usage:
  forwardops remove 3f2a... --owner user-123
  forwardops remove 3f2a... --global --yes
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.markup import escape

from forwardops.cli.errors import describe_error, err_document_not_found
from forwardops.cli.runtime import (
    build_orchestrator,
    load_cfg,
    open_db,
    require_db,
    resolve_db,
    vec_table_for,
)
from forwardops.db.repository import Repository
from forwardops.errors import ForwardOpsError

console = Console()


def remove_cmd(
    document_id: Annotated[str, typer.Argument(help="Document id to remove.")],
    owner: Annotated[
        str | None,
        typer.Option("--owner", "-o", help="Owning user id."),
    ] = None,
    global_doc: Annotated[
        bool,
        typer.Option("--global", help="The document is a knowledge-base document."),
    ] = False,
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Path to forwardops.db."),
    ] = None,
    yes: Annotated[
        bool,
        typer.Option("--yes", "-y", help="Skip confirmation prompt."),
    ] = False,
) -> None:
    """Remove a document and all its data."""
    if (owner is None) == (not global_doc):
        console.print("[red]Error:[/] Pass exactly one of --owner USER or --global.")
        raise typer.Exit(1)

    cfg = load_cfg()
    db_path = resolve_db(db, cfg)
    require_db(db_path)

    conn = open_db(db_path)
    repo = Repository(conn)
    try:
        doc = repo.get_document(document_id)
        if doc is None:
            console.print(err_document_not_found(document_id))
            raise typer.Exit(0)

        chunk_count = repo.count_chunks(doc.id)
        console.print(f"\nRemove document: [bold]{escape(doc.name)}[/]  ({doc.id})")
        console.print(
            f"  Status: {doc.status.value}  |  Chunks: {chunk_count}  |  "
            f"Stored file: {'yes' if doc.file_path else 'no'}"
        )

        if not yes:
            if not typer.confirm("Confirm removal?", default=False):
                console.print("[dim]Cancelled.[/]")
                raise typer.Exit(0)

        orchestrator = build_orchestrator(cfg, repo, db_path, vec_table_for(conn, cfg))
        try:
            orchestrator.delete(doc.id, owner)
        except ForwardOpsError as exc:
            console.print(describe_error(exc))
            raise typer.Exit(1) from exc

        console.print(f"\n[green]✓[/] Removed: {escape(doc.name)}")
        console.print(f"  {chunk_count} chunks and their embeddings deleted")
    finally:
        conn.close()
