"""ForwardOps rich error messages — actionable feedback.

Every error shown to the user must contain:
  1. What went wrong (clear cause)
  2. The exact action the user should take to fix it

Usage:
    from forwardops.cli.errors import err_no_api_key, err_no_db
    console.print(err_no_api_key("openai"))
    raise typer.Exit(1)
"""

from __future__ import annotations

from rich.markup import escape

from forwardops.errors import (
    CapacityError,
    ConcurrentIngestion,
    ConsistencyError,
    IngestionFailed,
    OwnershipViolation,
    TransientServiceError,
    ValidationError,
)


def err_no_api_key(provider: str) -> str:
    """No API key for *provider*.

    Example:
        No API key for 'openai'. Set:  export OPENAI_API_KEY=sk-...
    """
    env_map = {
        "openai": "OPENAI_API_KEY",
        "anthropic": "ANTHROPIC_API_KEY",
        "cohere": "COHERE_API_KEY",
        "gemini": "GEMINI_API_KEY",
        "mistral": "MISTRAL_API_KEY",
        "azure": "AZURE_API_KEY",
    }
    env_var = env_map.get(provider.lower(), f"{provider.upper()}_API_KEY")
    return (
        f"[red]Error:[/] No API key for '{provider}'.\n"
        f"  Set:  export {env_var}=sk-..."
    )


def err_no_db(db_path: str = "forwardops.db") -> str:
    """No database found at *db_path*."""
    return (
        f"[red]Error:[/] No database found at '{db_path}'.\n"
        "  Run:  forwardops init"
    )


def err_config(message: str) -> str:
    """A config file is malformed or contains a forbidden key."""
    return (
        f"[red]Error:[/] Invalid configuration.\n"
        f"  {escape(message)}\n"
        "  Fix forwardops.yaml (or ~/.forwardops/config.yaml) and retry."
    )


def err_embedding_dimensions(message: str) -> str:
    """Vec table was created for a different embedding size than the config."""
    return (
        f"[red]Error:[/] Embedding dimension mismatch.\n"
        f"  {escape(message)}\n"
        "  Restore the previous embedding.dimensions or start a new database."
    )


def err_document_not_found(document_id: str) -> str:
    """Document id not in the database."""
    return (
        f"[yellow]Document not found:[/] '{escape(document_id)}'.\n"
        "  Run:  forwardops status  to list documents."
    )


def err_file_not_found(path: str) -> str:
    return (
        f"[red]Error:[/] File not found: '{escape(path)}'\n"
        "  Check the path and retry."
    )


def err_unknown_mime(path: str) -> str:
    return (
        f"[red]Error:[/] Cannot determine the file type of '{escape(path)}'.\n"
        "  Pass it explicitly:  --mime-type application/pdf | text/plain | application/json"
    )


def describe_error(exc: Exception) -> str:
    """Return an actionable message for any forwardops error."""
    if isinstance(exc, IngestionFailed):
        cause = exc.__cause__
        hint = _hint(cause) if isinstance(cause, Exception) else ""
        return (
            f"[red]Ingestion failed[/] for document '{escape(exc.document_id)}': "
            f"{escape(exc.message)}\n"
            f"  The document is marked as error.{hint}\n"
            f"  Retry:  forwardops reingest {escape(exc.document_id)}  (or upload the file again)"
        )
    if isinstance(exc, OwnershipViolation):
        return f"[red]Error:[/] {escape(str(exc))}\n  Check --owner."
    if isinstance(exc, ConcurrentIngestion):
        return (
            f"[yellow]Busy:[/] {escape(str(exc))}\n"
            "  Wait for it to finish, or run:  forwardops sweep"
        )
    return f"[red]Error:[/] {escape(str(exc))}{_hint(exc)}"


def _hint(exc: Exception | None) -> str:
    if isinstance(exc, TransientServiceError):
        return "\n  The provider failed temporarily; retry in a moment."
    if isinstance(exc, CapacityError):
        return "\n  Adjust the limit in forwardops.yaml or the command options."
    if isinstance(exc, ValidationError):
        return "\n  Fix the input and retry."
    if isinstance(exc, ConsistencyError):
        return "\n  This indicates inconsistent data; please report it."
    return ""
