"""Tests for owner-scoped similarity search and the Retriever."""

from __future__ import annotations

import math
from unittest.mock import MagicMock

import pytest

from forwardops.config import RetrievalCfg
from forwardops.db.models import ChunkInput, DocumentStatus
from forwardops.db.repository import Repository
from forwardops.db.vectors import ensure_vec_table
from forwardops.errors import InvalidCount, InvalidThreshold, OwnershipViolation
from forwardops.rag.assembler import CHUNKS_LABEL, SUMMARIES_LABEL
from forwardops.rag.retriever import Retriever, SearchScope, search

QUERY = [1.0, 0.0]


@pytest.fixture
def repo(tmp_db):
    return Repository(tmp_db)


@pytest.fixture
def vec(tmp_db):
    return ensure_vec_table(tmp_db, "test_model", 2)


def _unit(score: float) -> list[float]:
    return [score, math.sqrt(1.0 - score * score)]


def _doc(repo, vec, owner, scores, name="doc.txt", complete=True):
    doc = repo.create_document(owner, name, "text/plain")
    repo.transition_status(doc.id, DocumentStatus.PENDING, DocumentStatus.PROCESSING)
    repo.put_chunks(
        doc.id, [ChunkInput(f"{name}#{i}", _unit(s)) for i, s in enumerate(scores)], vec
    )
    if complete:
        repo.complete_document(doc.id, f"Analysis of {name}")
    return doc


def _scores(results):
    return [round(r.score, 4) for r in results]


# ------------------------------------------------------------------
# search()
# ------------------------------------------------------------------


def test_threshold_and_cap_scenario(repo, vec):
    _doc(repo, vec, "user-1", [0.9, 0.5, 0.95, 0.77, 0.2])
    results = search(repo, QUERY, "user-1", 0.78, 5, vec_table=vec)
    assert _scores(results) == [0.95, 0.9]


def test_results_sorted_descending_and_capped(repo, vec):
    _doc(repo, vec, "user-1", [0.81, 0.99, 0.85, 0.93, 0.88, 0.97])
    results = search(repo, QUERY, "user-1", 0.8, 3, vec_table=vec)
    assert _scores(results) == [0.99, 0.97, 0.93]


def test_ties_keep_store_order(repo, vec):
    _doc(repo, vec, "user-1", [0.9, 0.9, 0.9])
    results = search(repo, QUERY, "user-1", 0.5, 5, vec_table=vec)
    assert [r.chunk.chunk_index for r in results] == [0, 1, 2]


def test_nothing_above_threshold(repo, vec):
    _doc(repo, vec, "user-1", [0.3])
    assert search(repo, QUERY, "user-1", 0.78, 5, vec_table=vec) == []


def test_owner_isolation(repo, vec):
    _doc(repo, vec, "user-1", [0.9], name="mine.txt")
    _doc(repo, vec, "user-2", [0.99], name="theirs.txt")
    _doc(repo, vec, None, [0.95], name="kb.txt")
    results = search(repo, QUERY, "user-1", 0.5, 5, vec_table=vec)
    assert [r.chunk.content for r in results] == ["mine.txt#0"]


def test_global_scope(repo, vec):
    _doc(repo, vec, "user-1", [0.9], name="mine.txt")
    _doc(repo, vec, None, [0.95], name="kb.txt")
    results = search(repo, QUERY, "user-1", 0.5, 5, vec_table=vec, scope=SearchScope.GLOBAL)
    assert [r.chunk.content for r in results] == ["kb.txt#0"]


def test_owner_and_global_scope(repo, vec):
    _doc(repo, vec, "user-1", [0.9], name="mine.txt")
    _doc(repo, vec, "user-2", [0.99], name="theirs.txt")
    _doc(repo, vec, None, [0.95], name="kb.txt")
    results = search(
        repo, QUERY, "user-1", 0.5, 5, vec_table=vec, scope=SearchScope.OWNER_AND_GLOBAL
    )
    assert [r.chunk.content for r in results] == ["kb.txt#0", "mine.txt#0"]


def test_only_completed_documents_searched(repo, vec):
    _doc(repo, vec, "user-1", [0.99], complete=False)
    assert search(repo, QUERY, "user-1", 0.5, 5, vec_table=vec) == []


@pytest.mark.parametrize("threshold", [-0.1, 1.5])
def test_invalid_threshold(repo, vec, threshold):
    with pytest.raises(InvalidThreshold):
        search(repo, QUERY, "user-1", threshold, 5, vec_table=vec)


def test_invalid_count(repo, vec):
    with pytest.raises(InvalidCount):
        search(repo, QUERY, "user-1", 0.5, 0, vec_table=vec)


def test_foreign_chunk_raises_ownership_violation(repo, vec):
    _doc(repo, vec, "user-2", [0.99], name="theirs.txt")
    chunk = repo.chunks_for_owner("user-2")[0]
    leaky = MagicMock(wraps=repo)
    leaky.scored_candidates.return_value = [(chunk, 0.99, "user-2")]
    with pytest.raises(OwnershipViolation):
        search(leaky, QUERY, "user-1", 0.5, 5, vec_table=vec)


# ------------------------------------------------------------------
# Retriever
# ------------------------------------------------------------------


def _retriever(repo, vec, **cfg):
    embedder = MagicMock()
    embedder.embed.return_value = QUERY
    return Retriever(repo, embedder, vec, RetrievalCfg(**cfg)), embedder


def test_retrieve_embeds_query(repo, vec):
    _doc(repo, vec, "user-1", [0.9, 0.95])
    retriever, embedder = _retriever(repo, vec)
    results = retriever.retrieve("knee claim", "user-1")
    embedder.embed.assert_called_once_with("knee claim")
    assert _scores(results) == [0.95, 0.9]


def test_retrieve_uses_cache(repo, vec):
    _doc(repo, vec, "user-1", [0.9])
    retriever, embedder = _retriever(repo, vec)
    first = retriever.retrieve("knee claim", "user-1")
    second = retriever.retrieve("knee claim", "user-1")
    assert embedder.embed.call_count == 1
    assert [r.chunk.id for r in second] == [r.chunk.id for r in first]


def test_retrieve_cache_is_per_owner(repo, vec):
    _doc(repo, vec, "user-1", [0.9])
    retriever, embedder = _retriever(repo, vec)
    retriever.retrieve("knee claim", "user-1")
    assert retriever.retrieve("knee claim", "user-2") == []
    assert embedder.embed.call_count == 2


def test_retrieve_without_cache(repo, vec):
    _doc(repo, vec, "user-1", [0.9])
    retriever, embedder = _retriever(repo, vec)
    retriever.retrieve("q", "user-1", use_cache=False)
    retriever.retrieve("q", "user-1", use_cache=False)
    assert embedder.embed.call_count == 2


def test_stale_cache_entry_is_a_miss(repo, vec):
    doc = _doc(repo, vec, "user-1", [0.9])
    retriever, embedder = _retriever(repo, vec)
    retriever.retrieve("q", "user-1")
    # delete without going through the orchestrator, so the cache is not invalidated
    repo.delete_document(doc.id, vec)
    assert retriever.retrieve("q", "user-1") == []
    assert embedder.embed.call_count == 2


def test_cache_never_serves_another_owners_chunk(repo, vec):
    mine = _doc(repo, vec, "user-1", [0.9], name="mine.txt")
    retriever, _ = _retriever(repo, vec)
    assert [r.chunk.content for r in retriever.retrieve("q", "user-1")] == ["mine.txt#0"]
    freed = repo.chunks_for_document(mine.id)[0].rowid

    # chunks replaced behind the cache's back; the next insert reuses the rowid
    repo.transition_status(mine.id, DocumentStatus.COMPLETED, DocumentStatus.PROCESSING)
    repo.delete_chunks_for_document(mine.id, vec)
    theirs = _doc(repo, vec, "user-2", [0.1], name="theirs.txt")
    assert repo.chunks_for_document(theirs.id)[0].rowid == freed

    assert retriever.retrieve("q", "user-1") == []


def test_cache_skips_document_back_in_processing(repo, vec):
    doc = _doc(repo, vec, "user-1", [0.9])
    retriever, embedder = _retriever(repo, vec)
    retriever.retrieve("q", "user-1")
    repo.transition_status(doc.id, DocumentStatus.COMPLETED, DocumentStatus.PROCESSING)
    assert retriever.retrieve("q", "user-1") == []
    assert embedder.embed.call_count == 2


def test_cache_is_keyed_by_threshold_and_cap(repo, vec):
    _doc(repo, vec, "user-1", [0.8, 0.85, 0.9, 0.95])
    loose, _ = _retriever(repo, vec, threshold=0.78, max_results=5)
    assert len(loose.retrieve("q", "user-1")) == 4

    strict, embedder = _retriever(repo, vec, threshold=0.92, max_results=1)
    assert _scores(strict.retrieve("q", "user-1")) == [0.95]
    embedder.embed.assert_called_once_with("q")


def test_cache_is_keyed_by_vec_table(repo, vec, tmp_db):
    _doc(repo, vec, "user-1", [0.9])
    first, _ = _retriever(repo, vec)
    assert len(first.retrieve("q", "user-1")) == 1

    other = ensure_vec_table(tmp_db, "other_model", 2)
    second, embedder = _retriever(repo, other)
    assert second.retrieve("q", "user-1") == []
    embedder.embed.assert_called_once_with("q")


def test_unfinished_neighbours_do_not_hide_completed_match(repo, vec):
    _doc(repo, vec, "user-1", [0.99] * 3, name="draft.txt", complete=False)
    _doc(repo, vec, "user-1", [0.9], name="final.txt")
    results = search(repo, QUERY, "user-1", 0.5, 1, vec_table=vec)
    assert [r.chunk.content for r in results] == ["final.txt#0"]


def test_build_context(repo, vec):
    _doc(repo, vec, "user-1", [0.9], name="exam.txt")
    retriever, _ = _retriever(repo, vec)
    context = retriever.build_context("knee", "user-1")
    assert context == (
        CHUNKS_LABEL + "exam.txt#0\n\n" + SUMMARIES_LABEL + "exam.txt (other):\nAnalysis of exam.txt"
    )


def test_build_context_respects_summary_limit(repo, vec):
    for i in range(3):
        _doc(repo, vec, "user-1", [0.1], name=f"doc{i}.txt")
    retriever, _ = _retriever(repo, vec, summary_limit=2)
    context = retriever.build_context("knee", "user-1")
    assert context.count("Analysis of") == 2
    assert CHUNKS_LABEL not in context
