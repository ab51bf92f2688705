"""Token-window chunker.

Splits document text into contiguous windows of at most N tokens using the
embedding model's tokenizer family (tiktoken ``cl100k_base`` for
``text-embedding-3-small``), so that every chunk fits the embedding model's
input limit.

Algorithm:
  1. Encode the full text into tokens.
  2. Partition the token sequence into windows of ``max_tokens_per_chunk``
     (the last window may be shorter).
  3. Decode each window and trim surrounding whitespace.

The windows concatenate back to the original token sequence; the number of
windows is ``ceil(token_count / max_tokens_per_chunk)``.
"""

from __future__ import annotations

import uuid
from functools import lru_cache
from typing import Protocol

import tiktoken

from forwardops.db.models import Chunk
from forwardops.errors import EncodingError, ValidationError

_DEFAULT_ENCODING = "cl100k_base"
_DEFAULT_CHUNK_SIZE = 512


class Tokenizer(Protocol):
    def encode(self, text: str) -> list[int]: ...

    def decode(self, tokens: list[int]) -> str: ...


@lru_cache(maxsize=4)
def get_tokenizer(encoding: str = _DEFAULT_ENCODING) -> Tokenizer:
    """Return the (cached) tiktoken encoding named *encoding*."""
    return tiktoken.get_encoding(encoding)


def token_windows(
    text: str,
    max_tokens_per_chunk: int = _DEFAULT_CHUNK_SIZE,
    tokenizer: Tokenizer | None = None,
) -> list[list[int]]:
    """Return the token windows for *text* without decoding them."""
    if not isinstance(text, str) or not text.strip():
        raise ValidationError("Cannot chunk empty text")
    if max_tokens_per_chunk < 1:
        raise ValidationError(f"max_tokens_per_chunk must be >= 1, got {max_tokens_per_chunk}")

    tok = tokenizer if tokenizer is not None else get_tokenizer()
    try:
        tokens = list(tok.encode(text))
    except ValueError as exc:
        # tiktoken refuses literal special tokens such as <|endoftext|>
        raise EncodingError(f"Tokenizer could not encode text: {exc}") from exc

    n = max_tokens_per_chunk
    return [tokens[i : i + n] for i in range(0, len(tokens), n)]


def chunk_text(
    text: str,
    max_tokens_per_chunk: int = _DEFAULT_CHUNK_SIZE,
    tokenizer: Tokenizer | None = None,
) -> list[str]:
    """Split *text* into chunks of at most *max_tokens_per_chunk* tokens.

    Args:
        text: Non-empty document text.
        max_tokens_per_chunk: Window size in tokens (> 0).
        tokenizer: Object with ``encode``/``decode``; defaults to cl100k_base.

    Returns:
        Trimmed chunk strings in document order.

    Raises:
        ValidationError: If *text* is empty or *max_tokens_per_chunk* < 1.
        EncodingError: If the tokenizer cannot process the text.
    """
    tok = tokenizer if tokenizer is not None else get_tokenizer()
    windows = token_windows(text, max_tokens_per_chunk, tok)
    try:
        return [tok.decode(window).strip() for window in windows]
    except ValueError as exc:
        raise EncodingError(f"Tokenizer could not decode tokens: {exc}") from exc


class TokenChunker:
    """Chunker bound to one tokenizer and window size.

    Whitespace-only windows are dropped so that stored chunks always carry
    text; ``chunk_index``/``total_chunks`` are assigned after dropping.
    """

    def __init__(
        self,
        chunk_size: int = _DEFAULT_CHUNK_SIZE,
        encoding: str = _DEFAULT_ENCODING,
        tokenizer: Tokenizer | None = None,
    ) -> None:
        if chunk_size < 1:
            raise ValidationError("chunk_size must be >= 1")
        self.chunk_size = chunk_size
        self.encoding = encoding
        self._tokenizer = tokenizer

    @property
    def tokenizer(self) -> Tokenizer:
        if self._tokenizer is None:
            self._tokenizer = get_tokenizer(self.encoding)
        return self._tokenizer

    def count_tokens(self, text: str) -> int:
        return len(self.tokenizer.encode(text))

    def split(self, text: str) -> list[str]:
        """Return the non-empty chunk texts for *text*."""
        return [c for c in chunk_text(text, self.chunk_size, self.tokenizer) if c]

    def chunk(self, document_id: str, text: str) -> list[Chunk]:
        """Split *text* into Chunk objects for *document_id*.

        Returns:
            Ordered list of unsaved Chunks with sequential ``chunk_index``.
        """
        texts = self.split(text)
        total = len(texts)
        return [
            Chunk(
                id=str(uuid.uuid4()),
                document_id=document_id,
                content=t,
                chunk_index=i,
                total_chunks=total,
            )
            for i, t in enumerate(texts)
        ]
