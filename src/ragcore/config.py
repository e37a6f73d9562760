"""ragcore configuration loader.

Priority (high → low):
  1. CLI flags           (--verbose; applied by the CLI after loading)
  2. Environment variables  (RAGCORE_GENERATION_MODEL, RAGCORE_EMBEDDING_MODEL,
                             RAGCORE_PROVIDER, RAGCORE_LOG_LEVEL)
  3. Per-project ragcore.yaml  (working directory)
  4. Global ~/.ragcore/config.yaml  (provider and model defaults)
  5. Hardcoded defaults

Global config must never contain API keys; use environment variables instead.
Files are parsed with yaml.safe_load().
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

_GLOBAL_CONFIG_DIR: Path = Path.home() / ".ragcore"
_GLOBAL_CONFIG_PATH: Path = _GLOBAL_CONFIG_DIR / "config.yaml"
_PROJECT_CONFIG_NAME: str = "ragcore.yaml"

# Key names that look like credentials are forbidden in global config.
# Does NOT match legitimate keys like max_tokens or max_tool_calls.
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
    ["embedding", "generation", "rag", "tools", "chat", "logging"]
)

PROVIDERS: frozenset[str] = frozenset(["openai", "local"])

DEFAULT_SYSTEM_PROMPT = (
    "You are a helpful assistant. Answer the user's question using the provided "
    "context when it is relevant, and cite sources using their [Source: ...] labels. "
    "If the context does not contain the answer, say so."
)


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
    """Embedding model configuration (ragcore.yaml: embedding:)."""

    model: str = "openai/text-embedding-3-small"
    dimensions: int = 1536
    api_base: str | None = None
    max_concurrency: int = 8
    num_retries: int = 3


@dataclass
class GenerationCfg:
    """Chat model configuration (ragcore.yaml: generation:).

    Attributes:
        provider: 'openai' for any OpenAI-compatible endpoint, 'local' for a
            locally served model (Ollama).
        model: LiteLLM model string.
        api_base: Optional endpoint override (self-hosted gateways, Ollama host).
    """

    provider: str = "openai"
    model: str = "openai/gpt-4o-mini"
    api_base: str | None = None
    temperature: float = 0.7
    max_tokens: int = 2000
    num_retries: int = 3
    timeout_seconds: float = 60.0


@dataclass
class MMRCfg:
    """MMR reranking weights (ragcore.yaml: rag.mmr:)."""

    similarity_weight: float = 0.7
    diversity_weight: float = 0.3
    same_document: float = 0.5
    near_chunk: float = 0.3
    near_distance: int = 2
    far_chunk: float = 0.1
    far_distance: int = 5


@dataclass
class RagCfg:
    """Chunking and retrieval configuration (ragcore.yaml: rag:)."""

    top_k: int = 6
    max_context_chars: int = 10_000
    chunk_size: int = 3_000
    chunk_overlap: int = 200
    system_prompt: str = DEFAULT_SYSTEM_PROMPT
    cache_ttl_seconds: float = 300.0
    cache_max_entries: int = 256
    mmr: MMRCfg = field(default_factory=MMRCfg)


@dataclass
class ToolsCfg:
    """Tool calling configuration (ragcore.yaml: tools:)."""

    enabled: bool = True
    max_tool_calls: int = 3
    timeout_seconds: float = 30.0


@dataclass
class ChatCfg:
    """Chat session configuration (ragcore.yaml: chat:)."""

    history_window: int = 10


@dataclass
class LoggingCfg:
    level: str = "WARNING"


@dataclass
class RagcoreConfig:
    """Root configuration object, built by load_config() from merged YAML layers."""

    embedding: EmbeddingCfg = field(default_factory=EmbeddingCfg)
    generation: GenerationCfg = field(default_factory=GenerationCfg)
    rag: RagCfg = field(default_factory=RagCfg)
    tools: ToolsCfg = field(default_factory=ToolsCfg)
    chat: ChatCfg = field(default_factory=ChatCfg)
    logging: LoggingCfg = field(default_factory=LoggingCfg)


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------


def _check_no_api_keys(data: dict[str, Any], source: Path) -> None:
    """Raise ConfigError if *data* contains any API-key-like key names.

    Global config must never store credentials; they belong in env vars.
    """

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


def _validate(cfg: RagcoreConfig) -> None:
    """Raise ConfigError for values the pipeline cannot run with."""
    if cfg.generation.provider not in PROVIDERS:
        raise ConfigError(
            f"generation.provider must be one of {sorted(PROVIDERS)}, "
            f"got '{cfg.generation.provider}'."
        )
    if cfg.rag.chunk_size < 1:
        raise ConfigError(f"rag.chunk_size must be >= 1, got {cfg.rag.chunk_size}.")
    if not 0 <= cfg.rag.chunk_overlap < cfg.rag.chunk_size:
        raise ConfigError(
            f"rag.chunk_overlap must be in [0, chunk_size), got {cfg.rag.chunk_overlap}."
        )
    if cfg.rag.top_k < 1:
        raise ConfigError(f"rag.top_k must be >= 1, got {cfg.rag.top_k}.")
    if cfg.rag.max_context_chars < 1:
        raise ConfigError(
            f"rag.max_context_chars must be >= 1, got {cfg.rag.max_context_chars}."
        )
    if cfg.tools.max_tool_calls < 0:
        raise ConfigError(
            f"tools.max_tool_calls must be >= 0, got {cfg.tools.max_tool_calls}."
        )
    if cfg.embedding.max_concurrency < 1:
        raise ConfigError(
            f"embedding.max_concurrency must be >= 1, got {cfg.embedding.max_concurrency}."
        )


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


def _parse_mmr(raw: dict[str, Any], defaults: MMRCfg) -> MMRCfg:
    return MMRCfg(
        similarity_weight=float(raw.get("similarity_weight", defaults.similarity_weight)),
        diversity_weight=float(raw.get("diversity_weight", defaults.diversity_weight)),
        same_document=float(raw.get("same_document", defaults.same_document)),
        near_chunk=float(raw.get("near_chunk", defaults.near_chunk)),
        near_distance=int(raw.get("near_distance", defaults.near_distance)),
        far_chunk=float(raw.get("far_chunk", defaults.far_chunk)),
        far_distance=int(raw.get("far_distance", defaults.far_distance)),
    )


def _cfg_from_dict(data: dict[str, Any]) -> RagcoreConfig:
    """Build a *RagcoreConfig* from a merged raw YAML dict."""
    cfg = RagcoreConfig()

    if "embedding" in data:
        e = data["embedding"] or {}
        cfg.embedding = EmbeddingCfg(
            model=str(e.get("model", cfg.embedding.model)),
            dimensions=int(e.get("dimensions", cfg.embedding.dimensions)),
            api_base=e.get("api_base") or cfg.embedding.api_base,
            max_concurrency=int(e.get("max_concurrency", cfg.embedding.max_concurrency)),
            num_retries=int(e.get("num_retries", cfg.embedding.num_retries)),
        )

    if "generation" in data:
        g = data["generation"] or {}
        cfg.generation = GenerationCfg(
            provider=str(g.get("provider", cfg.generation.provider)).lower(),
            model=str(g.get("model", cfg.generation.model)),
            api_base=g.get("api_base") or cfg.generation.api_base,
            temperature=float(g.get("temperature", cfg.generation.temperature)),
            max_tokens=int(g.get("max_tokens", cfg.generation.max_tokens)),
            num_retries=int(g.get("num_retries", cfg.generation.num_retries)),
            timeout_seconds=float(g.get("timeout_seconds", cfg.generation.timeout_seconds)),
        )

    if "rag" in data:
        r = data["rag"] or {}
        cfg.rag = RagCfg(
            top_k=int(r.get("top_k", cfg.rag.top_k)),
            max_context_chars=int(r.get("max_context_chars", cfg.rag.max_context_chars)),
            chunk_size=int(r.get("chunk_size", cfg.rag.chunk_size)),
            chunk_overlap=int(r.get("chunk_overlap", cfg.rag.chunk_overlap)),
            system_prompt=str(r.get("system_prompt", cfg.rag.system_prompt)),
            cache_ttl_seconds=float(r.get("cache_ttl_seconds", cfg.rag.cache_ttl_seconds)),
            cache_max_entries=int(r.get("cache_max_entries", cfg.rag.cache_max_entries)),
            mmr=_parse_mmr(r.get("mmr") or {}, cfg.rag.mmr),
        )

    if "tools" in data:
        t = data["tools"] or {}
        cfg.tools = ToolsCfg(
            enabled=bool(t.get("enabled", cfg.tools.enabled)),
            max_tool_calls=int(t.get("max_tool_calls", cfg.tools.max_tool_calls)),
            timeout_seconds=float(t.get("timeout_seconds", cfg.tools.timeout_seconds)),
        )

    if "chat" in data:
        c = data["chat"] or {}
        cfg.chat = ChatCfg(
            history_window=int(c.get("history_window", cfg.chat.history_window)),
        )

    if "logging" in data:
        lg = data["logging"] or {}
        cfg.logging = LoggingCfg(level=str(lg.get("level", cfg.logging.level)).upper())

    return cfg


def _apply_env_overrides(cfg: RagcoreConfig) -> RagcoreConfig:
    """Apply RAGCORE_* environment variable overrides (layer 2)."""
    if model := os.environ.get("RAGCORE_GENERATION_MODEL"):
        cfg.generation.model = model
    if model := os.environ.get("RAGCORE_EMBEDDING_MODEL"):
        cfg.embedding.model = model
    if provider := os.environ.get("RAGCORE_PROVIDER"):
        cfg.generation.provider = provider.lower()
    if level := os.environ.get("RAGCORE_LOG_LEVEL"):
        cfg.logging.level = level.upper()
    return cfg


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(
    project_dir: Path | None = None,
    *,
    global_config_path: Path | None = None,
) -> RagcoreConfig:
    """Load and return a merged *RagcoreConfig*.

    Applies layers in order: global → per-project → env vars.
    CLI flag overrides must be applied by the caller after this function.

    Args:
        project_dir: Directory to search for *ragcore.yaml*. Defaults to CWD.
        global_config_path: Override the global config path (for testing).

    Returns:
        Fully merged *RagcoreConfig* with env var overrides applied.

    Raises:
        ConfigError: If global config contains API-key-like fields, or if a
            merged value is out of range.
    """
    global_path = global_config_path if global_config_path is not None else _GLOBAL_CONFIG_PATH
    search_dir = project_dir if project_dir is not None else Path.cwd()

    merged: dict[str, Any] = {}

    # Layer 1: global config
    if global_path.exists():
        raw_global = yaml.safe_load(global_path.read_text(encoding="utf-8")) or {}
        _check_no_api_keys(raw_global, global_path)
        _warn_unknown_keys(raw_global, global_path)
        merged = _deep_merge(merged, raw_global)

    # Layer 2: per-project config
    project_cfg_path = search_dir / _PROJECT_CONFIG_NAME
    if project_cfg_path.exists():
        raw_project = yaml.safe_load(project_cfg_path.read_text(encoding="utf-8")) or {}
        _warn_unknown_keys(raw_project, project_cfg_path)
        merged = _deep_merge(merged, raw_project)

    cfg = _cfg_from_dict(merged)

    # Layer 3: env var overrides
    cfg = _apply_env_overrides(cfg)

    _validate(cfg)
    return cfg


def ensure_global_config(
    global_config_path: Path | None = None,
) -> Path:
    """Create ``~/.ragcore/config.yaml`` with defaults if it does not exist.

    Creates parent directory with mode 0o700 and the config file with
    mode 0o600 (owner-readable only).
    """
    target = global_config_path if global_config_path is not None else _GLOBAL_CONFIG_PATH
    target.parent.mkdir(mode=0o700, parents=True, exist_ok=True)

    if not target.exists():
        content = (
            "# ragcore global configuration: model defaults only.\n"
            "# NEVER store API keys here. Use environment variables:\n"
            "#   export OPENAI_API_KEY=sk-...\n"
            "\n"
            "embedding:\n"
            "  model: openai/text-embedding-3-small\n"
            "\n"
            "generation:\n"
            "  provider: openai\n"
            "  model: openai/gpt-4o-mini\n"
        )
        target.write_text(content, encoding="utf-8")
        target.chmod(0o600)

    return target
