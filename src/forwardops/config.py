"""ForwardOps configuration loader.

Priority (high → low):
  1. CLI flags           (handled at call site, not in this module)
  2. Environment variables  (FORWARDOPS_EMBEDDING_MODEL, FORWARDOPS_GENERATION_MODEL,
                             FORWARDOPS_SUMMARY_MODEL, FORWARDOPS_UPLOAD_DIR)
  3. Per-project forwardops.yaml  (next to forwardops.db)
  4. Global ~/.forwardops/config.yaml  (model defaults only, no API keys)
  5. Hardcoded defaults

Global config must never contain API keys; use environment variables instead.
All YAML reads use yaml.safe_load(), never yaml.load().
"""

from __future__ import annotations

import os
import re
import warnings
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_GLOBAL_CONFIG_DIR: Path = Path.home() / ".forwardops"
_GLOBAL_CONFIG_PATH: Path = _GLOBAL_CONFIG_DIR / "config.yaml"
_PROJECT_CONFIG_NAME: str = "forwardops.yaml"

# Fields that suggest an API key are forbidden in global config.
# Does NOT match legitimate config keys like max_tokens_per_chunk or max_input_tokens.
_API_KEY_RE: re.Pattern[str] = re.compile(
    r"api[_\-]?(?:key|secret)"
    r"|_token$"
    r"|^token$"
    r"|_secret$"
    r"|^secret$"
    r"|passw(?:ord|d)"
    r"|credential",
    re.IGNORECASE,
)

_KNOWN_SECTIONS: frozenset[str] = frozenset(
    ["embedding", "generation", "chunking", "retrieval", "ingestion", "storage"]
)

DEFAULT_MIME_TYPES: tuple[str, ...] = ("application/pdf", "text/plain", "application/json")


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class ConfigError(ValueError):
    """Raised when a config file contains an invalid or forbidden value."""


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------


@dataclass
class EmbeddingCfg:
    """Embedding model configuration (forwardops.yaml: embedding:).

    Attributes:
        model: LiteLLM embedding model string (provider/model).
        dimensions: Vector length the model returns; fixes the vec table shape.
        max_input_tokens: Longest input the model accepts.
        num_retries: LiteLLM retries (exponential backoff) on transient errors.
    """

    model: str = "openai/text-embedding-3-small"
    dimensions: int = 1536
    max_input_tokens: int = 8_191
    num_retries: int = 3


@dataclass
class GenerationCfg:
    """Chat / summary / title models (forwardops.yaml: generation:)."""

    model: str = "openai/gpt-4-turbo-preview"
    summary_model: str = "openai/gpt-4-turbo-preview"
    summary_max_tokens: int = 4_096
    title_model: str = "openai/gpt-3.5-turbo"
    max_history_messages: int = 10


@dataclass
class ChunkingCfg:
    """Token-window chunking (forwardops.yaml: chunking:)."""

    max_tokens_per_chunk: int = 512
    encoding: str = "cl100k_base"


@dataclass
class RetrievalCfg:
    """Query-time retrieval (forwardops.yaml: retrieval:)."""

    threshold: float = 0.78
    max_results: int = 5
    max_context_chars: int = 24_000
    summary_limit: int = 5
    cache_ttl_seconds: int = 3_600


@dataclass
class IngestionCfg:
    """Upload validation and ingestion lifecycle (forwardops.yaml: ingestion:)."""

    max_upload_bytes: int = 10 * 1024 * 1024
    allowed_mime_types: tuple[str, ...] = DEFAULT_MIME_TYPES
    summary_input_chars: int = 24_000
    stale_after_seconds: int = 900


@dataclass
class StorageCfg:
    """Local storage locations (forwardops.yaml: storage:)."""

    db_path: str = "forwardops.db"
    upload_dir: str = "uploads"


@dataclass
class ForwardOpsConfig:
    """Root configuration object, built by load_config() from merged YAML layers."""

    embedding: EmbeddingCfg = field(default_factory=EmbeddingCfg)
    generation: GenerationCfg = field(default_factory=GenerationCfg)
    chunking: ChunkingCfg = field(default_factory=ChunkingCfg)
    retrieval: RetrievalCfg = field(default_factory=RetrievalCfg)
    ingestion: IngestionCfg = field(default_factory=IngestionCfg)
    storage: StorageCfg = field(default_factory=StorageCfg)


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------


def _check_no_api_keys(data: dict[str, Any], source: Path) -> None:
    """Raise ConfigError if *data* contains any API-key-like key names."""

    def _scan(obj: Any, path: str) -> None:
        if isinstance(obj, dict):
            for k, v in obj.items():
                full = f"{path}.{k}" if path else k
                if _API_KEY_RE.search(str(k)):
                    raise ConfigError(
                        f"Global config '{source}' contains a forbidden key '{full}'.\n"
                        f"  API keys must be set via environment variables, not config files.\n"
                        f"  Remove '{full}' from {source.name} and use:\n"
                        f"    export {str(k).upper().replace('-', '_')}=<value>"
                    )
                _scan(v, full)

    _scan(data, "")


def _warn_unknown_keys(data: dict[str, Any], source: Path) -> None:
    """Emit a UserWarning for unrecognised top-level keys."""
    for key in data:
        if key not in _KNOWN_SECTIONS:
            warnings.warn(
                f"Unknown config key '{key}' in '{source}' — ignored.",
                UserWarning,
                stacklevel=4,
            )


def _validate(cfg: ForwardOpsConfig) -> None:
    """Raise ConfigError for values the pipeline cannot run with."""
    if cfg.embedding.dimensions < 1:
        raise ConfigError(f"embedding.dimensions must be >= 1, got {cfg.embedding.dimensions}")
    if cfg.embedding.num_retries < 0:
        raise ConfigError(f"embedding.num_retries must be >= 0, got {cfg.embedding.num_retries}")
    if cfg.chunking.max_tokens_per_chunk < 1:
        raise ConfigError(
            f"chunking.max_tokens_per_chunk must be >= 1, got {cfg.chunking.max_tokens_per_chunk}"
        )
    if cfg.chunking.max_tokens_per_chunk > cfg.embedding.max_input_tokens:
        raise ConfigError(
            "chunking.max_tokens_per_chunk "
            f"({cfg.chunking.max_tokens_per_chunk}) exceeds embedding.max_input_tokens "
            f"({cfg.embedding.max_input_tokens})."
        )
    if not 0.0 <= cfg.retrieval.threshold <= 1.0:
        raise ConfigError(f"retrieval.threshold must be in [0, 1], got {cfg.retrieval.threshold}")
    if cfg.retrieval.max_results < 1:
        raise ConfigError(f"retrieval.max_results must be >= 1, got {cfg.retrieval.max_results}")
    if cfg.retrieval.max_context_chars < 1:
        raise ConfigError(
            f"retrieval.max_context_chars must be >= 1, got {cfg.retrieval.max_context_chars}"
        )
    if cfg.ingestion.max_upload_bytes < 1:
        raise ConfigError(
            f"ingestion.max_upload_bytes must be >= 1, got {cfg.ingestion.max_upload_bytes}"
        )
    if not cfg.ingestion.allowed_mime_types:
        raise ConfigError("ingestion.allowed_mime_types must not be empty")


# ---------------------------------------------------------------------------
# Merge + build
# ---------------------------------------------------------------------------


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Return a new dict that is *base* deep-merged with *override*."""
    result = dict(base)
    for k, v in override.items():
        if k in result and isinstance(result[k], dict) and isinstance(v, dict):
            result[k] = _deep_merge(result[k], v)
        else:
            result[k] = v
    return result


def _cfg_from_dict(data: dict[str, Any]) -> ForwardOpsConfig:
    """Build a *ForwardOpsConfig* from a merged raw YAML dict."""
    cfg = ForwardOpsConfig()

    try:
        if "embedding" in data:
            e = data["embedding"]
            cfg.embedding = EmbeddingCfg(
                model=str(e.get("model", cfg.embedding.model)),
                dimensions=int(e.get("dimensions", cfg.embedding.dimensions)),
                max_input_tokens=int(e.get("max_input_tokens", cfg.embedding.max_input_tokens)),
                num_retries=int(e.get("num_retries", cfg.embedding.num_retries)),
            )

        if "generation" in data:
            g = data["generation"]
            cfg.generation = GenerationCfg(
                model=str(g.get("model", cfg.generation.model)),
                summary_model=str(g.get("summary_model", cfg.generation.summary_model)),
                summary_max_tokens=int(
                    g.get("summary_max_tokens", cfg.generation.summary_max_tokens)
                ),
                title_model=str(g.get("title_model", cfg.generation.title_model)),
                max_history_messages=int(
                    g.get("max_history_messages", cfg.generation.max_history_messages)
                ),
            )

        if "chunking" in data:
            c = data["chunking"]
            cfg.chunking = ChunkingCfg(
                max_tokens_per_chunk=int(
                    c.get("max_tokens_per_chunk", cfg.chunking.max_tokens_per_chunk)
                ),
                encoding=str(c.get("encoding", cfg.chunking.encoding)),
            )

        if "retrieval" in data:
            r = data["retrieval"]
            cfg.retrieval = RetrievalCfg(
                threshold=float(r.get("threshold", cfg.retrieval.threshold)),
                max_results=int(r.get("max_results", cfg.retrieval.max_results)),
                max_context_chars=int(r.get("max_context_chars", cfg.retrieval.max_context_chars)),
                summary_limit=int(r.get("summary_limit", cfg.retrieval.summary_limit)),
                cache_ttl_seconds=int(r.get("cache_ttl_seconds", cfg.retrieval.cache_ttl_seconds)),
            )

        if "ingestion" in data:
            i = data["ingestion"]
            cfg.ingestion = IngestionCfg(
                max_upload_bytes=int(i.get("max_upload_bytes", cfg.ingestion.max_upload_bytes)),
                allowed_mime_types=tuple(
                    str(m) for m in i.get("allowed_mime_types", cfg.ingestion.allowed_mime_types)
                ),
                summary_input_chars=int(
                    i.get("summary_input_chars", cfg.ingestion.summary_input_chars)
                ),
                stale_after_seconds=int(
                    i.get("stale_after_seconds", cfg.ingestion.stale_after_seconds)
                ),
            )

        if "storage" in data:
            s = data["storage"]
            cfg.storage = StorageCfg(
                db_path=str(s.get("db_path", cfg.storage.db_path)),
                upload_dir=str(s.get("upload_dir", cfg.storage.upload_dir)),
            )
    except (TypeError, ValueError, AttributeError) as exc:
        raise ConfigError(f"Invalid config value: {exc}") from exc

    return cfg


def _apply_env_overrides(cfg: ForwardOpsConfig) -> ForwardOpsConfig:
    """Apply FORWARDOPS_* environment variable overrides (layer 2)."""
    if model := os.environ.get("FORWARDOPS_EMBEDDING_MODEL"):
        cfg.embedding.model = model
    if model := os.environ.get("FORWARDOPS_GENERATION_MODEL"):
        cfg.generation.model = model
    if model := os.environ.get("FORWARDOPS_SUMMARY_MODEL"):
        cfg.generation.summary_model = model
    if upload_dir := os.environ.get("FORWARDOPS_UPLOAD_DIR"):
        cfg.storage.upload_dir = upload_dir
    return cfg


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(
    project_dir: Path | None = None,
    *,
    global_config_path: Path | None = None,
) -> ForwardOpsConfig:
    """Load and return a merged *ForwardOpsConfig*.

    Applies layers in order: global → per-project → env vars.
    CLI flag overrides must be applied by the caller after this function.

    Args:
        project_dir: Directory to search for *forwardops.yaml*. Defaults to CWD.
        global_config_path: Override the global config path (for testing).

    Returns:
        Fully merged and validated *ForwardOpsConfig*.

    Raises:
        ConfigError: If global config contains API-key-like fields, or any value
            is malformed or out of range.
    """
    global_path = global_config_path if global_config_path is not None else _GLOBAL_CONFIG_PATH
    search_dir = project_dir if project_dir is not None else Path.cwd()

    merged: dict[str, Any] = {}

    if global_path.exists():
        raw_global = yaml.safe_load(global_path.read_text(encoding="utf-8")) or {}
        _check_no_api_keys(raw_global, global_path)
        _warn_unknown_keys(raw_global, global_path)
        merged = _deep_merge(merged, raw_global)

    project_cfg_path = search_dir / _PROJECT_CONFIG_NAME
    if project_cfg_path.exists():
        raw_project = yaml.safe_load(project_cfg_path.read_text(encoding="utf-8")) or {}
        _warn_unknown_keys(raw_project, project_cfg_path)
        merged = _deep_merge(merged, raw_project)

    cfg = _apply_env_overrides(_cfg_from_dict(merged))
    _validate(cfg)
    return cfg


def ensure_global_config(
    global_config_path: Path | None = None,
) -> Path:
    """Create ``~/.forwardops/config.yaml`` with defaults if it does not exist.

    Creates parent directory with mode 0o700 and the config file with
    mode 0o600 (owner-readable only).

    Args:
        global_config_path: Override path (for testing).

    Returns:
        Path to the global config file.
    """
    target = global_config_path if global_config_path is not None else _GLOBAL_CONFIG_PATH
    target.parent.mkdir(mode=0o700, parents=True, exist_ok=True)

    if not target.exists():
        content = (
            "# ForwardOps global configuration — model defaults only.\n"
            "# NEVER store API keys here — use environment variables:\n"
            "#   export OPENAI_API_KEY=sk-...\n"
            "\n"
            "embedding:\n"
            "  model: openai/text-embedding-3-small\n"
            "  dimensions: 1536\n"
            "\n"
            "generation:\n"
            "  model: openai/gpt-4-turbo-preview\n"
        )
        target.write_text(content, encoding="utf-8")
        target.chmod(0o600)

    return target
