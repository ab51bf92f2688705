"""Tests for the token-window chunker."""

from __future__ import annotations

import pytest

from forwardops.errors import EncodingError, ValidationError
from forwardops.ingest.chunker import TokenChunker, chunk_text, token_windows


class WordTokenizer:
    """One token per whitespace-separated word; decode joins with spaces."""

    def __init__(self):
        self.vocab: dict[str, int] = {}
        self.words: dict[int, str] = {}

    def encode(self, text: str) -> list[int]:
        if "<|endoftext|>" in text:
            raise ValueError("special token not allowed")
        ids = []
        for word in text.split():
            if word not in self.vocab:
                self.vocab[word] = len(self.vocab)
                self.words[self.vocab[word]] = word
            ids.append(self.vocab[word])
        return ids

    def decode(self, tokens: list[int]) -> str:
        return " ".join(self.words[t] for t in tokens)


@pytest.fixture
def tok():
    return WordTokenizer()


def _words(n: int) -> str:
    return " ".join(f"w{i}" for i in range(n))


# ------------------------------------------------------------------
# chunk_text
# ------------------------------------------------------------------

def test_1100_tokens_split_512_512_76(tok):
    chunks = chunk_text(_words(1100), 512, tok)
    assert [len(c.split()) for c in chunks] == [512, 512, 76]


def test_short_text_single_chunk(tok):
    assert chunk_text("just a few words", 512, tok) == ["just a few words"]


def test_chunks_reconstruct_token_sequence(tok):
    text = _words(1000)
    windows = token_windows(text, 300, tok)
    assert [t for w in windows for t in w] == tok.encode(text)
    assert len(windows) == 4  # ceil(1000 / 300)


def test_every_window_within_bound(tok):
    for window in token_windows(_words(777), 100, tok):
        assert 1 <= len(window) <= 100


def test_chunks_are_stripped():
    class PaddedTokenizer(WordTokenizer):
        def decode(self, tokens):
            return "  " + super().decode(tokens) + "\n"

    assert chunk_text("a b c", 2, PaddedTokenizer()) == ["a b", "c"]


def test_empty_text_raises(tok):
    with pytest.raises(ValidationError):
        chunk_text("", 512, tok)


def test_whitespace_text_raises(tok):
    with pytest.raises(ValidationError):
        chunk_text("   \n\t", 512, tok)


def test_zero_window_raises(tok):
    with pytest.raises(ValidationError):
        chunk_text("hello", 0, tok)


def test_tokenizer_failure_is_encoding_error(tok):
    with pytest.raises(EncodingError):
        chunk_text("hello <|endoftext|> world", 512, tok)


def test_encoding_error_is_validation_error():
    assert issubclass(EncodingError, ValidationError)


# ------------------------------------------------------------------
# TokenChunker
# ------------------------------------------------------------------

def test_token_chunker_fills_indexes(tok):
    chunker = TokenChunker(chunk_size=512, tokenizer=tok)
    chunks = chunker.chunk("doc-1", _words(1100))
    assert [c.chunk_index for c in chunks] == [0, 1, 2]
    assert {c.total_chunks for c in chunks} == {3}
    assert {c.document_id for c in chunks} == {"doc-1"}
    assert len({c.id for c in chunks}) == 3


def test_token_chunker_single_chunk(tok):
    chunks = TokenChunker(tokenizer=tok).chunk("doc-1", "short text")
    assert len(chunks) == 1
    assert chunks[0].total_chunks == 1


def test_token_chunker_drops_blank_windows():
    class BlankTokenizer(WordTokenizer):
        def decode(self, tokens):
            text = super().decode(tokens)
            return "" if text.startswith("blank") else text

    chunker = TokenChunker(chunk_size=1, tokenizer=BlankTokenizer())
    assert chunker.split("blank keep") == ["keep"]


def test_token_chunker_count_tokens(tok):
    assert TokenChunker(tokenizer=tok).count_tokens("one two three") == 3


def test_token_chunker_rejects_zero_size():
    with pytest.raises(ValidationError):
        TokenChunker(chunk_size=0)
