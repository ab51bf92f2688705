"""Error taxonomy for the ingestion and retrieval core.

Four families, chosen by what the caller can do about the failure:

  ValidationError        bad caller input: do not retry
  TransientServiceError  embedding / LLM / storage hiccup: retry with backoff
  CapacityError          a parameter is out of range: retry only with new parameters
  ConsistencyError       concurrent re-ingestion, cross-owner access, corrupt data:
                         a programming or security error, always surfaced

The ingestion orchestrator wraps every failure of a single attempt in
IngestionFailed; the original error is available as ``__cause__``.
"""

from __future__ import annotations


class ForwardOpsError(Exception):
    """Base class for every error raised by the forwardops core."""


# ---------------------------------------------------------------------------
# Families
# ---------------------------------------------------------------------------


class ValidationError(ForwardOpsError):
    """Caller input is invalid. Not retryable."""


class TransientServiceError(ForwardOpsError):
    """A remote service failed in a way that may succeed on retry."""


class CapacityError(ForwardOpsError):
    """A size, count or threshold is outside the accepted range."""


class ConsistencyError(ForwardOpsError):
    """An invariant of the store would be violated."""


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


class EncodingError(ValidationError):
    """The tokenizer could not process the text."""


class InvalidInput(ValidationError):
    """The embedding provider cannot accept this text (empty or rejected)."""


class InputTooLong(InvalidInput, CapacityError):
    """Text exceeds the embedding model's maximum input length; re-chunk smaller."""


class UnsupportedFileType(ValidationError):
    """Uploaded MIME type is not accepted."""


class FileTooLarge(ValidationError, CapacityError):
    """Uploaded file exceeds the configured size limit."""


class InvalidPdf(ValidationError):
    """Uploaded PDF is corrupt, encrypted, empty, or has no extractable text."""


class DocumentNotFound(ValidationError):
    """No document exists with the requested id."""


# ---------------------------------------------------------------------------
# Transient
# ---------------------------------------------------------------------------


class RateLimited(TransientServiceError):
    """The provider throttled the request."""


class ServiceUnavailable(TransientServiceError):
    """The provider or network failed transiently (timeouts, 5xx, connection)."""


class SummaryError(TransientServiceError):
    """Whole-document summary could not be generated."""


# ---------------------------------------------------------------------------
# Capacity
# ---------------------------------------------------------------------------


class InvalidThreshold(CapacityError):
    """Similarity threshold outside [0, 1]."""


class InvalidCount(CapacityError):
    """Result count below 1."""


# ---------------------------------------------------------------------------
# Consistency
# ---------------------------------------------------------------------------


class ConcurrentIngestion(ConsistencyError):
    """Another ingestion attempt for the same document is in flight."""


class ChunksAlreadyStored(ConsistencyError):
    """put_chunks was called for a document that already has chunks."""


class OwnershipViolation(ConsistencyError):
    """A caller touched a document or chunk owned by someone else."""


class EmbeddingDimensionError(ConsistencyError):
    """The provider returned a vector of unexpected length."""


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------


class IngestionFailed(ForwardOpsError):
    """Summarized failure of one ingestion attempt.

    Attributes:
        document_id: The document that ended in ``error`` state.
        message: Human-readable message recorded on the document.
    """

    def __init__(self, document_id: str, message: str) -> None:
        super().__init__(f"Ingestion of document {document_id} failed: {message}")
        self.document_id = document_id
        self.message = message
