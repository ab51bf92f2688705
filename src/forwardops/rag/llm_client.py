"""LiteLLM client wrapper with retry, backoff, and API key validation.

All LLM + embedding calls in the ingestion, retrieval and chat paths route
through this module. LiteLLM's built-in retry is used (num_retries=3,
exponential backoff). Provider exceptions are mapped onto the forwardops
error taxonomy by Embedder so callers can tell retryable failures from bad
input.
"""

from __future__ import annotations

import os

import litellm
import structlog

from forwardops.errors import (
    EmbeddingDimensionError,
    InputTooLong,
    InvalidInput,
    RateLimited,
    ServiceUnavailable,
)

logger = structlog.get_logger(logger_name=__name__)

# Disable LiteLLM verbose logging unless explicitly enabled
litellm.suppress_debug_info = True
litellm.set_verbose = False  # type: ignore[assignment]


# ------------------------------------------------------------------
# Provider → env var mapping for API key validation
# ------------------------------------------------------------------

_PROVIDER_ENV: dict[str, str | None] = {
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
    "azure": "AZURE_API_KEY",
    "cohere": "COHERE_API_KEY",
    "google": "GOOGLE_API_KEY",
    "mistral": "MISTRAL_API_KEY",
    "groq": "GROQ_API_KEY",
    "together_ai": "TOGETHERAI_API_KEY",
    "ollama": None,  # Local, no key required
    "ollama_chat": None,
}

_TRANSIENT_ERRORS: tuple[type[Exception], ...] = (
    litellm.APIConnectionError,
    litellm.Timeout,
    litellm.ServiceUnavailableError,
    litellm.InternalServerError,
)

# Every provider failure LiteLLM raises after its own retries.
PROVIDER_ERRORS: tuple[type[Exception], ...] = (
    *_TRANSIENT_ERRORS,
    litellm.RateLimitError,
    litellm.BadRequestError,
    litellm.AuthenticationError,
    litellm.APIError,
)


def validate_api_key(model: str) -> None:
    """Check that the required API key env var is set for *model*.

    Args:
        model: LiteLLM model string in 'provider/model' format.

    Raises:
        EnvironmentError: If the required key is missing from environment.
    """
    provider = model.split("/")[0].lower() if "/" in model else "openai"
    env_var = _PROVIDER_ENV.get(provider, "OPENAI_API_KEY")

    if env_var is None:
        return  # No key required (e.g. ollama)

    if not os.getenv(env_var):
        raise EnvironmentError(
            f"API key not found for provider '{provider}'. "
            f"Set the {env_var} environment variable."
        )


def complete(
    model: str,
    messages: list[dict],
    max_tokens: int = 2048,
    temperature: float = 0.0,
    num_retries: int = 3,
) -> str:
    """Call litellm.completion() with retry/backoff. Returns content string.

    Args:
        model: LiteLLM model string (provider/model format).
        messages: OpenAI-style message list.
        max_tokens: Maximum output tokens.
        temperature: Sampling temperature (0 = deterministic).
        num_retries: Number of retries on transient errors (exponential backoff).

    Returns:
        The text content of the first choice.
    """
    response = litellm.completion(
        model=model,
        messages=messages,
        max_tokens=max_tokens,
        temperature=temperature,
        num_retries=num_retries,
    )
    return response.choices[0].message.content or ""


def embed(model: str, text: str, num_retries: int = 3) -> list[float]:
    """Call litellm.embedding() with retry/backoff. Returns embedding vector."""
    response = litellm.embedding(
        model=model,
        input=[text],
        num_retries=num_retries,
    )
    return response.data[0]["embedding"]


def count_tokens(model: str, text: str) -> int:
    """Count tokens in *text* for *model* using LiteLLM's provider-aware counter.

    Falls back to character-based approximation (4 chars ≈ 1 token) if the model
    is not supported by litellm.token_counter().
    """
    try:
        return litellm.token_counter(model=model, text=text)
    except Exception:
        return max(1, len(text) // 4)


# ------------------------------------------------------------------
# Embedder
# ------------------------------------------------------------------


class Embedder:
    """Embedding client bound to one model and vector size.

    One outbound call per embed(). Transient failures are retried inside
    LiteLLM (num_retries, exponential backoff); once retries are exhausted
    the failure surfaces as a typed error:

      RateLimited         provider throttling (retryable later)
      ServiceUnavailable  connection errors, timeouts, 5xx (retryable later)
      InputTooLong        text exceeds max_input_tokens (re-chunk smaller)
      InvalidInput        empty text or input rejected by the provider
      EmbeddingDimensionError  vector length differs from *dimensions*
    """

    def __init__(
        self,
        model: str = "openai/text-embedding-3-small",
        dimensions: int = 1536,
        max_input_tokens: int = 8_191,
        num_retries: int = 3,
    ) -> None:
        self.model = model
        self.dimensions = dimensions
        self.max_input_tokens = max_input_tokens
        self.num_retries = num_retries

    def embed(self, text: str) -> list[float]:
        """Return the embedding vector for *text*."""
        if not text or not text.strip():
            raise InvalidInput("Cannot embed empty text")
        tokens = count_tokens(self.model, text)
        if tokens > self.max_input_tokens:
            raise InputTooLong(
                f"Text has {tokens} tokens; {self.model} accepts at most {self.max_input_tokens}"
            )

        try:
            vector = embed(self.model, text, num_retries=self.num_retries)
        except litellm.ContextWindowExceededError as exc:
            raise InputTooLong(str(exc)) from exc
        except litellm.RateLimitError as exc:
            raise RateLimited(str(exc)) from exc
        except _TRANSIENT_ERRORS as exc:
            raise ServiceUnavailable(str(exc)) from exc
        except litellm.BadRequestError as exc:
            raise InvalidInput(str(exc)) from exc

        if len(vector) != self.dimensions:
            raise EmbeddingDimensionError(
                f"{self.model} returned {len(vector)} dimensions, expected {self.dimensions}"
            )
        return [float(v) for v in vector]

    def embed_all(self, texts: list[str]) -> list[list[float]]:
        """Embed each text in order; stops at the first failure."""
        vectors: list[list[float]] = []
        for i, text in enumerate(texts):
            vectors.append(self.embed(text))
            logger.debug("Embedded chunk", index=i + 1, total=len(texts))
        return vectors
