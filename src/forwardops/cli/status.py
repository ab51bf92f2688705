"""forwardops status command.

Shows project overview: database stats, vec tables, and the document list
(optionally filtered by owner or status).
"""

from __future__ import annotations

from collections import Counter
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from forwardops.cli.runtime import load_cfg, open_db, resolve_db
from forwardops.config import ForwardOpsConfig
from forwardops.db.models import Document, DocumentStatus
from forwardops.db.repository import Repository

console = Console()

_STATUS_STYLE = {
    DocumentStatus.PENDING: "[dim]pending[/]",
    DocumentStatus.PROCESSING: "[yellow]processing[/]",
    DocumentStatus.COMPLETED: "[green]completed[/]",
    DocumentStatus.ERROR: "[red]error[/]",
}


def status_cmd(
    owner: Annotated[
        str | None,
        typer.Option("--owner", "-o", help="Only show this user's documents."),
    ] = None,
    global_only: Annotated[
        bool,
        typer.Option("--global", help="Only show knowledge-base documents."),
    ] = False,
    status: Annotated[
        DocumentStatus | None,
        typer.Option("--status", help="Filter by status."),
    ] = None,
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Path to forwardops.db."),
    ] = None,
) -> None:
    """Show database stats and documents."""
    cfg = load_cfg()
    db_path = resolve_db(db, cfg)

    if not db_path.exists():
        console.print(
            Panel(
                "[yellow]No database found.[/]\n"
                "  Run:  forwardops init",
                title="[bold]Database[/]",
                expand=False,
            )
        )
        return

    conn = open_db(db_path)
    repo = Repository(conn)
    try:
        if owner is not None or global_only:
            documents = repo.list_documents(owner, status=status)
        else:
            documents = repo.all_documents()
            if status is not None:
                documents = [d for d in documents if d.status == status]
        _show_database_panel(db_path, cfg, repo)
        _show_documents(documents, repo)
    finally:
        conn.close()


# ---------------------------------------------------------------------------
# Panel renderers
# ---------------------------------------------------------------------------


def _show_database_panel(db_path: Path, cfg: ForwardOpsConfig, repo: Repository) -> None:
    size_mb = db_path.stat().st_size / (1024 * 1024)
    counts = Counter(d.status for d in repo.all_documents())
    lines = [
        f"Database:  {db_path} ({size_mb:.1f} MB)",
        f"Embedding: {cfg.embedding.model} ({cfg.embedding.dimensions} dims)",
        f"Documents: [bold]{sum(counts.values())}[/]  |  "
        + "  ".join(f"{_STATUS_STYLE[s]} {counts.get(s, 0)}" for s in DocumentStatus),
        f"Chunks:    [bold]{repo.count_chunks():,}[/]",
    ]
    for table in repo.vec_tables():
        lines.append(f"  [dim]{table}[/] ({repo.count_embeddings(table):,} vectors)")
    console.print(Panel("\n".join(lines), title="[bold]Database[/]", expand=False))


def _show_documents(documents: list[Document], repo: Repository) -> None:
    if not documents:
        console.print("[dim]No documents.[/]")
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("Id", style="dim")
    table.add_column("Owner")
    table.add_column("Name")
    table.add_column("Type")
    table.add_column("Status")
    table.add_column("Chunks", justify="right")
    table.add_column("Updated", style="dim")

    for doc in documents:
        status_text = _STATUS_STYLE[doc.status]
        if doc.status == DocumentStatus.ERROR and doc.error_message:
            status_text += f" [dim]{escape(doc.error_message[:60])}[/]"
        table.add_row(
            doc.id,
            escape(doc.owner_id) if doc.owner_id else "[cyan]global[/]",
            escape(doc.name),
            doc.document_type.value,
            status_text,
            str(repo.count_chunks(doc.id)),
            (doc.updated_at or "")[:16],
        )
    console.print(table)
