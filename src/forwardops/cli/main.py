"""ForwardOps CLI entry point."""

from __future__ import annotations

import importlib.metadata
import logging
from typing import Annotated

import typer

from forwardops.cli.init import init_cmd
from forwardops.cli.query import query_cmd
from forwardops.cli.reingest import reingest_cmd
from forwardops.cli.remove import remove_cmd
from forwardops.cli.status import status_cmd
from forwardops.cli.sweep import sweep_cmd
from forwardops.cli.upload import upload_cmd
from forwardops.logging_setup import configure_logging


def _installed_version() -> str:
    try:
        return importlib.metadata.version("forwardops")
    except importlib.metadata.PackageNotFoundError:
        return "dev"


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"forwardops {_installed_version()}")
        raise typer.Exit()


app = typer.Typer(
    name="forwardops",
    help=(
        "ForwardOps — document ingestion and retrieval for the ForwardOps AI assistant.\n\n"
        "  forwardops upload  Validate, chunk, embed and analyse documents.\n"
        "  forwardops query   Owner-scoped similarity search over uploaded documents."
    ),
    add_completion=False,
)


@app.callback()
def main_callback(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            callback=_version_callback,
            is_eager=True,
            help="Show version and exit.",
        ),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Enable debug logging."),
    ] = False,
) -> None:
    """ForwardOps — document ingestion and retrieval CLI."""
    configure_logging(logging.DEBUG if verbose else logging.WARNING)


app.command("init")(init_cmd)
app.command("upload")(upload_cmd)
app.command("reingest")(reingest_cmd)
app.command("query")(query_cmd)
app.command("status")(status_cmd)
app.command("remove")(remove_cmd)
app.command("sweep")(sweep_cmd)


@app.command("version")
def version_cmd() -> None:
    """Show the installed ForwardOps version."""
    typer.echo(f"forwardops {_installed_version()}")


if __name__ == "__main__":
    app()
