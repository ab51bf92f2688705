"""forwardops init — create a project scaffold.

Creates:
  forwardops.db            — empty database with schema + vec table for the
                             configured embedding model
  forwardops.yaml          — project config template
  uploads/                 — raw upload store
  ~/.forwardops/config.yaml — global model config (created once, mode 0o600)
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console

from forwardops.cli.runtime import load_cfg, open_db, vec_table_for
from forwardops.config import ensure_global_config

console = Console()

_PROJECT_YAML = """\
# ForwardOps project configuration.
# API keys belong in environment variables, never in this file.

embedding:
  model: {embedding_model}
  dimensions: {dimensions}

generation:
  model: {generation_model}
  summary_model: {summary_model}

chunking:
  max_tokens_per_chunk: {chunk_size}

retrieval:
  threshold: {threshold}
  max_results: {max_results}

ingestion:
  max_upload_bytes: {max_upload_bytes}

storage:
  db_path: forwardops.db
  upload_dir: uploads
"""


def init_cmd(
    project_dir: Annotated[
        Path,
        typer.Argument(help="Directory to initialize. Defaults to current directory."),
    ] = Path("."),
    skip_global: Annotated[
        bool,
        typer.Option("--skip-global", help="Do not create ~/.forwardops/config.yaml."),
    ] = False,
) -> None:
    """Initialize a ForwardOps project (database, config, upload dir)."""
    project_dir = project_dir.resolve()
    project_dir.mkdir(parents=True, exist_ok=True)
    cfg = load_cfg(project_dir)

    db_path = project_dir / "forwardops.db"
    existed = db_path.exists()
    conn = open_db(db_path)
    try:
        vec_table = vec_table_for(conn, cfg)
    finally:
        conn.close()
    if existed:
        console.print(f"  [yellow]↷[/] {db_path.name} already exists — schema checked")
    else:
        console.print(f"  [green]✓[/] {db_path.name}  ({vec_table})")

    yaml_path = project_dir / "forwardops.yaml"
    if yaml_path.exists():
        console.print(f"  [yellow]↷[/] {yaml_path.name} already exists — left unchanged")
    else:
        yaml_path.write_text(
            _PROJECT_YAML.format(
                embedding_model=cfg.embedding.model,
                dimensions=cfg.embedding.dimensions,
                generation_model=cfg.generation.model,
                summary_model=cfg.generation.summary_model,
                chunk_size=cfg.chunking.max_tokens_per_chunk,
                threshold=cfg.retrieval.threshold,
                max_results=cfg.retrieval.max_results,
                max_upload_bytes=cfg.ingestion.max_upload_bytes,
            ),
            encoding="utf-8",
        )
        console.print(f"  [green]✓[/] {yaml_path.name}")

    (project_dir / "uploads").mkdir(exist_ok=True)
    console.print("  [green]✓[/] uploads/")

    if not skip_global:
        global_path = ensure_global_config()
        console.print(f"  [green]✓[/] {global_path}")

    console.print("\n[bold green]Project ready.[/]  Next:  forwardops upload <file> --owner <user>")
