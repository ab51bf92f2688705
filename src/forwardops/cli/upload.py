"""forwardops upload — validate, store and ingest documents.

Accepted types: PDF, plain text, JSON (max 10 MB by default). The file type
is taken from the extension unless --mime-type is given.

Usage:
  forwardops upload rating-decision.pdf --owner user-123
  forwardops upload va-handbook.pdf --global
"""

from __future__ import annotations

import mimetypes
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn

from forwardops.cli.errors import describe_error, err_file_not_found, err_unknown_mime
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

_EXTENSION_TYPES = {
    ".pdf": "application/pdf",
    ".txt": "text/plain",
    ".text": "text/plain",
    ".md": "text/plain",
    ".json": "application/json",
}


def upload_cmd(
    files: Annotated[
        list[Path],
        typer.Argument(help="File(s) to upload."),
    ],
    owner: Annotated[
        str | None,
        typer.Option("--owner", "-o", help="Owning user id."),
    ] = None,
    global_doc: Annotated[
        bool,
        typer.Option("--global", help="Add to the shared knowledge base (no owner)."),
    ] = False,
    mime_type: Annotated[
        str | None,
        typer.Option("--mime-type", help="Override the detected MIME type."),
    ] = None,
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Path to forwardops.db."),
    ] = None,
) -> None:
    """Upload documents and run ingestion (chunk, embed, analyse)."""
    if (owner is None) == (not global_doc):
        console.print("[red]Error:[/] Pass exactly one of --owner USER or --global.")
        raise typer.Exit(1)

    cfg = load_cfg()
    db_path = resolve_db(db, cfg)
    require_db(db_path)
    require_api_key(cfg.embedding.model)

    conn = open_db(db_path)
    repo = Repository(conn)
    vec_table = vec_table_for(conn, cfg)
    orchestrator = build_orchestrator(cfg, repo, db_path, vec_table)

    failures = 0
    try:
        for path in files:
            if not path.is_file():
                console.print(err_file_not_found(str(path)))
                failures += 1
                continue
            detected = mime_type or _guess_mime(path)
            if detected is None:
                console.print(err_unknown_mime(str(path)))
                failures += 1
                continue

            console.print(f"\n[bold]→ {path.name}[/]")
            with Progress(
                SpinnerColumn(),
                TextColumn("[progress.description]{task.description}"),
                transient=True,
                console=console,
            ) as prog:
                prog.add_task("Chunking, embedding and analysing…", total=None)
                try:
                    doc = orchestrator.upload(owner, path.name, path.read_bytes(), detected)
                except ForwardOpsError as exc:
                    console.print(describe_error(exc))
                    failures += 1
                    continue

            chunks = repo.count_chunks(doc.id)
            console.print(
                f"  [green]✓[/] {doc.id}  {doc.document_type.value}  {chunks} chunks"
            )
    finally:
        conn.close()

    if failures:
        raise typer.Exit(1)


def _guess_mime(path: Path) -> str | None:
    return _EXTENSION_TYPES.get(path.suffix.lower()) or mimetypes.guess_type(path.name)[0]
