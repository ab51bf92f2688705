"""forwardops query — run retrieval (and optionally a chat answer) for a question.

Shows the matching chunks with their similarity scores, the assembled
context, or, with --answer, the ForwardOps AI reply built on that context.
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.markup import escape
from rich.markdown import Markdown
from rich.panel import Panel
from rich.table import Table

from forwardops.chat.prompt import answer
from forwardops.chat.session import ChatSession
from forwardops.cli.errors import describe_error
from forwardops.cli.runtime import (
    build_retriever,
    load_cfg,
    open_db,
    require_api_key,
    require_db,
    resolve_db,
    vec_table_for,
)
from forwardops.db.repository import Repository
from forwardops.errors import ForwardOpsError
from forwardops.rag.assembler import assemble
from forwardops.rag.retriever import SearchScope

console = Console()


def query_cmd(
    question: Annotated[str, typer.Argument(help="Question or search text.")],
    owner: Annotated[
        str | None,
        typer.Option("--owner", "-o", help="User whose documents are searched."),
    ] = None,
    scope: Annotated[
        SearchScope,
        typer.Option("--scope", help="owner | global | owner_and_global."),
    ] = SearchScope.OWNER,
    threshold: Annotated[
        float | None,
        typer.Option("--threshold", help="Minimum cosine similarity (0-1)."),
    ] = None,
    max_results: Annotated[
        int | None,
        typer.Option("--max-results", "-k", help="Maximum chunks returned."),
    ] = None,
    show_context: Annotated[
        bool,
        typer.Option("--context", help="Print the assembled context string."),
    ] = False,
    do_answer: Annotated[
        bool,
        typer.Option("--answer", help="Ask the chat model using the retrieved context."),
    ] = False,
    no_cache: Annotated[
        bool,
        typer.Option("--no-cache", help="Bypass the search result cache."),
    ] = False,
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Path to forwardops.db."),
    ] = None,
) -> None:
    """Search a user's documents for chunks relevant to QUESTION."""
    cfg = load_cfg()
    if threshold is not None:
        cfg.retrieval.threshold = threshold
    if max_results is not None:
        cfg.retrieval.max_results = max_results

    db_path = resolve_db(db, cfg)
    require_db(db_path)
    require_api_key(cfg.embedding.model)
    if do_answer:
        require_api_key(cfg.generation.model)

    conn = open_db(db_path)
    repo = Repository(conn)
    try:
        retriever = build_retriever(cfg, repo, vec_table_for(conn, cfg))
        try:
            results = retriever.retrieve(question, owner, scope, use_cache=not no_cache)
            context = assemble(
                results,
                repo.recent_summaries(owner, cfg.retrieval.summary_limit),
                cfg.retrieval.max_context_chars,
            )
            reply = (
                answer(
                    ChatSession(owner_id=owner),
                    question,
                    context,
                    model=cfg.generation.model,
                    max_history=cfg.generation.max_history_messages,
                    num_retries=cfg.embedding.num_retries,
                )
                if do_answer
                else None
            )
        except ForwardOpsError as exc:
            console.print(describe_error(exc))
            raise typer.Exit(1) from exc
    finally:
        conn.close()

    if not results:
        console.print(
            f"[dim]No chunks scored above {cfg.retrieval.threshold:.2f}.[/]"
        )
    else:
        table = Table(show_header=True, header_style="bold")
        table.add_column("Score", justify="right")
        table.add_column("Document", style="dim")
        table.add_column("#", justify="right")
        table.add_column("Excerpt")
        for r in results:
            excerpt = r.chunk.content.replace("\n", " ")
            table.add_row(
                f"{r.score:.3f}",
                r.chunk.document_id[:8],
                f"{r.chunk.chunk_index + 1}/{r.chunk.total_chunks}",
                escape(excerpt[:100]) + ("…" if len(excerpt) > 100 else ""),
            )
        console.print(table)

    if show_context:
        body = escape(context) if context else "[dim](empty)[/]"
        console.print(Panel(body, title="[bold]Context[/]", expand=False))
    if reply is not None:
        console.print(Panel(Markdown(reply), title="[bold]ForwardOps AI[/]", expand=False))
