"""Context assembler: retrieved chunks + document analyses → one context string.

Layout:
  Relevant document sections:

  <chunk text>

  <chunk text>

  Document analyses:

  <name> (<document_type>):
  <analysis>

A section label is emitted only when its section has entries. Budget:
while the rendered string exceeds ``max_context_chars``, drop the last
analysis; once analyses are exhausted, drop the lowest-scoring chunk.
Chunks and analyses are never cut mid-text.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING

from forwardops.db.models import Document, DocumentType
from forwardops.errors import CapacityError

if TYPE_CHECKING:
    from forwardops.rag.retriever import RetrievalResult

CHUNKS_LABEL = "Relevant document sections:\n\n"
SUMMARIES_LABEL = "Document analyses:\n\n"


def render_summary(document: Document) -> str:
    doc_type = DocumentType(document.document_type).value if document.document_type else "other"
    return f"{document.name} ({doc_type}):\n{document.summary}"


def _render(chunk_texts: list[str], summary_texts: list[str]) -> str:
    context = ""
    if chunk_texts:
        context += CHUNKS_LABEL + "\n\n".join(chunk_texts) + "\n\n"
    if summary_texts:
        context += SUMMARIES_LABEL + "\n\n".join(summary_texts)
    return context


def assemble(
    results: Sequence[RetrievalResult],
    summaries: Sequence[Document],
    max_context_chars: int,
) -> str:
    """Render retrieval results and document analyses within a character budget.

    Args:
        results: Retrieval results (any order; rendered score-descending).
        summaries: Completed documents whose analyses are included, most
            relevant first; documents without a summary are skipped.
        max_context_chars: Upper bound on the returned string's length.

    Returns:
        The context string; ``""`` when there is nothing to include.

    Raises:
        CapacityError: If *max_context_chars* < 1.
    """
    if max_context_chars < 1:
        raise CapacityError(f"max_context_chars must be >= 1, got {max_context_chars}")

    ordered = sorted(results, key=lambda r: r.score, reverse=True)
    chunk_texts = [r.chunk.content for r in ordered]
    summary_texts = [render_summary(d) for d in summaries if d.summary]

    context = _render(chunk_texts, summary_texts)
    while len(context) > max_context_chars and (chunk_texts or summary_texts):
        if summary_texts:
            summary_texts.pop()
        else:
            chunk_texts.pop()
        context = _render(chunk_texts, summary_texts)
    return context
