"""Fixtures for CLI command tests: a project directory and a faked LiteLLM."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
from typer.testing import CliRunner

from forwardops.cli.main import app
from forwardops.db.connection import Database
from forwardops.db.repository import Repository

runner = CliRunner()

_PROJECT_YAML = """\
embedding:
  model: openai/text-embedding-3-small
  dimensions: 3
chunking:
  max_tokens_per_chunk: 4
retrieval:
  threshold: 0.5
  max_results: 5
"""


class WordTokenizer:
    """Token i is the i-th whitespace-separated word of the last encoded text."""

    def __init__(self) -> None:
        self._words: list[str] = []

    def encode(self, text):
        self._words = text.split()
        return list(range(len(self._words)))

    def decode(self, tokens):
        return " ".join(self._words[t] for t in tokens)


def fake_vector(text: str) -> list[float]:
    """Texts mentioning tinnitus point one way, everything else another."""
    return [1.0, 0.0, 0.0] if "tinnitus" in text.lower() else [0.0, 1.0, 0.0]


def _embedding(model, input, num_retries=3):  # noqa: A002
    response = MagicMock()
    response.data = [{"embedding": fake_vector(input[0])}]
    return response


@pytest.fixture
def fake_llm(monkeypatch):
    """Replace every LiteLLM call (and the BPE tokenizer) with local fakes."""
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    monkeypatch.setattr(
        "forwardops.ingest.chunker.get_tokenizer", lambda encoding="cl100k_base": WordTokenizer()
    )
    completion = MagicMock()
    completion.return_value.choices[0].message.content = "**Summary:** Tinnitus granted."
    with (
        patch("forwardops.rag.llm_client.litellm.embedding", side_effect=_embedding) as emb,
        patch("forwardops.rag.llm_client.litellm.token_counter", return_value=4),
        patch("forwardops.rag.llm_client.litellm.completion", completion),
    ):
        yield {"embedding": emb, "completion": completion}


@pytest.fixture
def project(tmp_path: Path, monkeypatch) -> Path:
    """An initialized project directory that is also the working directory."""
    monkeypatch.chdir(tmp_path)
    (tmp_path / "forwardops.yaml").write_text(_PROJECT_YAML, encoding="utf-8")
    result = runner.invoke(app, ["init", str(tmp_path), "--skip-global"])
    assert result.exit_code == 0, result.output
    return tmp_path


@pytest.fixture
def uploaded(project: Path, fake_llm) -> str:
    """Upload one rating decision for user-1; return its document id."""
    path = project / "tinnitus rating decision.txt"
    path.write_text("tinnitus rating was granted at ten percent", encoding="utf-8")
    result = runner.invoke(app, ["upload", str(path), "--owner", "user-1"])
    assert result.exit_code == 0, result.output
    with Database(project / "forwardops.db") as conn:
        (doc,) = Repository(conn).all_documents()
    return doc.id
