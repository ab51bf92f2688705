"""Owner-scoped similarity search and query-time retrieval.

Similarity search:
  - Candidates: chunks of ``completed`` documents belonging to the caller
    (scope OWNER), the global knowledge base (GLOBAL), or both
    (OWNER_AND_GLOBAL).
  - score = 1 - cosine_distance, from a sqlite-vec KNN query on the
    owner partitions in scope.
  - Keep score > threshold, stable sort by score descending (ties keep
    rowid order), truncate to max_results.

Per-owner isolation is re-checked on the result set; a chunk from another
owner's document raises OwnershipViolation instead of being returned.

Retriever wires the query path: cache lookup → embed → search → cache store.
Cached entries hold chunk ids and are re-checked against the current store
(owner, scope, ``completed``) before use. build_context() adds recent
whole-document analyses and assembles the final context string.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum

import structlog

from forwardops.config import RetrievalCfg
from forwardops.db.models import Chunk
from forwardops.db.repository import Repository
from forwardops.errors import InvalidCount, InvalidThreshold, OwnershipViolation
from forwardops.rag.assembler import assemble
from forwardops.rag.llm_client import Embedder

logger = structlog.get_logger(logger_name=__name__)


class SearchScope(str, Enum):
    OWNER = "owner"
    GLOBAL = "global"
    OWNER_AND_GLOBAL = "owner_and_global"


@dataclass
class RetrievalResult:
    """A chunk with its cosine similarity to the query (in [-1, 1])."""

    chunk: Chunk
    score: float


def _scope_flags(scope: SearchScope) -> tuple[bool, bool]:
    """Return (include_owner, include_global) for *scope*."""
    return (
        scope in (SearchScope.OWNER, SearchScope.OWNER_AND_GLOBAL),
        scope in (SearchScope.GLOBAL, SearchScope.OWNER_AND_GLOBAL),
    )


def search(
    repo: Repository,
    query_vector: Sequence[float],
    owner_id: str | None,
    threshold: float,
    max_results: int,
    *,
    vec_table: str,
    scope: SearchScope = SearchScope.OWNER,
) -> list[RetrievalResult]:
    """Return chunks scoring above *threshold*, best-first, at most *max_results*.

    Raises:
        InvalidThreshold: If *threshold* is outside [0, 1].
        InvalidCount: If *max_results* < 1.
        OwnershipViolation: If the store returned another owner's chunk.
    """
    if not 0.0 <= threshold <= 1.0:
        raise InvalidThreshold(f"threshold must be in [0, 1], got {threshold}")
    if max_results < 1:
        raise InvalidCount(f"max_results must be >= 1, got {max_results}")

    include_owner, include_global = _scope_flags(SearchScope(scope))

    candidates = repo.scored_candidates(
        vec_table,
        query_vector,
        owner_id,
        include_owner=include_owner,
        include_global=include_global,
        threshold=threshold,
        limit=max_results,
    )

    allowed_owners: set[str | None] = set()
    if include_owner:
        allowed_owners.add(owner_id)
    if include_global:
        allowed_owners.add(None)

    results: list[RetrievalResult] = []
    for chunk, score, doc_owner in candidates:
        if doc_owner not in allowed_owners:
            raise OwnershipViolation(
                f"Chunk {chunk.id} belongs to another owner's document {chunk.document_id}"
            )
        if score > threshold:
            results.append(RetrievalResult(chunk=chunk, score=score))

    # sorted() is stable: equal scores keep the store's rowid order
    results = sorted(results, key=lambda r: r.score, reverse=True)
    return results[:max_results]


class Retriever:
    """Query-time retrieval for one embedding model.

    Args:
        repo:      Open Repository.
        embedder:  Embedder for query text (same model as ingestion).
        vec_table: Vec table of that model.
        config:    Retrieval thresholds, caps and cache TTL.
    """

    def __init__(
        self,
        repo: Repository,
        embedder: Embedder,
        vec_table: str,
        config: RetrievalCfg | None = None,
    ) -> None:
        self._repo = repo
        self._embedder = embedder
        self._vec_table = vec_table
        self._config = config or RetrievalCfg()

    def retrieve(
        self,
        query_text: str,
        owner_id: str | None,
        scope: SearchScope = SearchScope.OWNER,
        *,
        use_cache: bool = True,
    ) -> list[RetrievalResult]:
        """Embed *query_text* and search, reusing cached results when fresh."""
        scope = SearchScope(scope)
        cfg = self._config
        if use_cache:
            cached = self._from_cache(query_text, owner_id, scope)
            if cached is not None:
                logger.debug("Search cache hit", results=len(cached))
                return cached

        vector = self._embedder.embed(query_text)
        results = search(
            self._repo,
            vector,
            owner_id,
            cfg.threshold,
            cfg.max_results,
            vec_table=self._vec_table,
            scope=scope,
        )
        if use_cache:
            self._repo.put_cached_results(
                owner_id,
                self._cache_scope(scope),
                query_text,
                [(r.chunk.id, r.score) for r in results],
                cfg.cache_ttl_seconds,
            )
        logger.debug("Search completed", scope=scope.value, results=len(results))
        return results

    def build_context(
        self,
        query_text: str,
        owner_id: str | None,
        scope: SearchScope = SearchScope.OWNER,
    ) -> str:
        """Return the assembled context string for a chat turn."""
        results = self.retrieve(query_text, owner_id, scope)
        summaries = self._repo.recent_summaries(owner_id, self._config.summary_limit)
        return assemble(results, summaries, self._config.max_context_chars)

    def _cache_scope(self, scope: SearchScope) -> str:
        """Cache key part for everything besides owner and query that shapes results."""
        cfg = self._config
        return f"{scope.value}|{self._vec_table}|{cfg.threshold!r}|{cfg.max_results}"

    def _from_cache(
        self, query_text: str, owner_id: str | None, scope: SearchScope
    ) -> list[RetrievalResult] | None:
        cached = self._repo.get_cached_results(
            owner_id, self._cache_scope(scope), query_text, self._config.cache_ttl_seconds
        )
        if cached is None:
            return None
        include_owner, include_global = _scope_flags(scope)
        visible = self._repo.visible_chunks(
            [chunk_id for chunk_id, _ in cached],
            owner_id,
            include_owner=include_owner,
            include_global=include_global,
        )
        results: list[RetrievalResult] = []
        for chunk_id, score in cached:
            chunk = visible.get(chunk_id)
            if chunk is None:
                # Deleted, re-ingested or out of scope since caching: search again.
                return None
            results.append(RetrievalResult(chunk=chunk, score=score))
        return results
