"""
Pipeline configuration.

All tunable defaults live here instead of being scattered as literals
across call sites. Values load from environment variables and fall back
to the defaults below.

Environment Variables:
    DOCQA_CHUNK_SIZE: Target chunk length in characters (default: 1000)
    DOCQA_CHUNK_OVERLAP: Overlap budget in characters (default: 200)
    DOCQA_EMBEDDING_MODEL: OpenAI embedding model (default: text-embedding-3-small)
    DOCQA_EMBEDDING_BATCH_SIZE: Max concurrent embedding requests (default: 10)
    DOCQA_EMBEDDING_BATCH_DELAY: Seconds to pause between batches (default: 0.1)
    DOCQA_DEFAULT_K: Chunks retrieved per question (default: 5)
    DOCQA_DEFAULT_THRESHOLD: Min similarity when answering (default: 0.3)
    DOCQA_SEARCH_THRESHOLD: Min similarity for raw search (default: 0.7)
    DOCQA_GENERATION_MODELS: Comma-separated fallback chain, tried in order
    DOCQA_SNIPPET_LENGTH: Max citation snippet length (default: 200)
    DOCQA_STAGE_BUDGET_CHUNK / _EMBED / _SEARCH / _GENERATE: seconds, 0 = unlimited
    USE_POSTGRES: Use PgVectorChunkStore instead of the in-memory store
    USE_MOCK_EMBEDDINGS: Use MockEmbeddings (default: false)
    DATABASE_URL: PostgreSQL connection string
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field


DEFAULT_GENERATION_MODELS = ["gpt-4o-mini", "gpt-4.1-mini", "gpt-4o"]


def _env_bool(name: str, default: str = "false") -> bool:
    return os.environ.get(name, default).lower() in ("true", "1", "yes")


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    return float(raw) if raw not in (None, "") else default


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    return int(raw) if raw not in (None, "") else default


@dataclass
class StageBudgets:
    """Per-stage time budgets in seconds. None means unlimited."""

    chunk: float | None = None
    embed: float | None = None
    search: float | None = None
    generate: float | None = None

    @classmethod
    def from_env(cls) -> "StageBudgets":
        def budget(stage: str) -> float | None:
            value = _env_float(f"DOCQA_STAGE_BUDGET_{stage.upper()}", 0.0)
            return value if value > 0 else None

        return cls(
            chunk=budget("chunk"),
            embed=budget("embed"),
            search=budget("search"),
            generate=budget("generate"),
        )


@dataclass
class PipelineConfig:
    """Configuration for the chunk → embed → retrieve → generate pipeline."""

    # Chunking
    chunk_size: int = 1000
    chunk_overlap: int = 200

    # Embeddings
    embedding_model: str = "text-embedding-3-small"
    embedding_batch_size: int = 10
    embedding_batch_delay_s: float = 0.1

    # Retrieval
    default_k: int = 5
    default_threshold: float = 0.3
    search_threshold: float = 0.7

    # Generation
    generation_models: list[str] = field(
        default_factory=lambda: list(DEFAULT_GENERATION_MODELS)
    )
    temperature: float = 0.1
    top_p: float = 0.8
    max_output_tokens: int = 2048

    # Citations
    snippet_length: int = 200

    # Infrastructure
    use_postgres: bool = False
    use_mock_embeddings: bool = False
    database_url: str = "postgresql://localhost/document_qa"

    budgets: StageBudgets = field(default_factory=StageBudgets)

    @classmethod
    def from_env(cls) -> "PipelineConfig":
        """Load config from environment variables."""
        models_raw = os.environ.get("DOCQA_GENERATION_MODELS", "")
        models = [m.strip() for m in models_raw.split(",") if m.strip()]

        return cls(
            chunk_size=_env_int("DOCQA_CHUNK_SIZE", 1000),
            chunk_overlap=_env_int("DOCQA_CHUNK_OVERLAP", 200),
            embedding_model=os.environ.get("DOCQA_EMBEDDING_MODEL", "text-embedding-3-small"),
            embedding_batch_size=_env_int("DOCQA_EMBEDDING_BATCH_SIZE", 10),
            embedding_batch_delay_s=_env_float("DOCQA_EMBEDDING_BATCH_DELAY", 0.1),
            default_k=_env_int("DOCQA_DEFAULT_K", 5),
            default_threshold=_env_float("DOCQA_DEFAULT_THRESHOLD", 0.3),
            search_threshold=_env_float("DOCQA_SEARCH_THRESHOLD", 0.7),
            generation_models=models or list(DEFAULT_GENERATION_MODELS),
            snippet_length=_env_int("DOCQA_SNIPPET_LENGTH", 200),
            use_postgres=_env_bool("USE_POSTGRES"),
            use_mock_embeddings=_env_bool("USE_MOCK_EMBEDDINGS"),
            database_url=os.environ.get("DATABASE_URL", "postgresql://localhost/document_qa"),
            budgets=StageBudgets.from_env(),
        )


# Global config singleton
_config: PipelineConfig | None = None


def get_config() -> PipelineConfig:
    """Get the global pipeline config (lazy-loaded from env)."""
    global _config
    if _config is None:
        _config = PipelineConfig.from_env()
    return _config


def reset_config() -> None:
    """Reset config (useful for testing)."""
    global _config
    _config = None
