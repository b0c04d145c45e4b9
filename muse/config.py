"""Configuration settings using pydantic-settings."""

from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Redis
    redis_url: str = "redis://localhost:6379/0"

    # Qdrant
    qdrant_host: str = "localhost"
    qdrant_port: int = 6333

    # Google AI (Gemini)
    google_ai_api_key: Optional[str] = None

    # Semantic Scholar (optional, raises the rate limit)
    semantic_scholar_api_key: Optional[str] = None

    # OpenAlex / Crossref polite pool
    contact_email: Optional[str] = None

    # Evidence corpus
    evidence_dir: Path = Path("contents/evidence")
    deployments_dir: Path = Path("contents/deployments")

    # Application
    debug: bool = False
    log_level: str = "INFO"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


class RetrievalConfig(BaseSettings):
    """Configuration for edge-level evidence retrieval.

    Covers both the hybrid path (vector narrowing then per-record
    validation) and the single-call batch path.
    """

    model_config = SettingsConfigDict(
        env_prefix="MUSE_RETRIEVAL_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Vector narrowing
    rag_top_k: int = Field(
        default=15,
        ge=1,
        description="Chunks fetched from the vector index per edge",
    )
    rag_similarity_floor: float = Field(
        default=0.5,
        ge=0.0,
        le=1.0,
        description="Minimum normalised similarity for a chunk to become a candidate",
    )

    # Validation
    validation_concurrency: int = Field(
        default=3,
        ge=1,
        description="Max concurrent validation calls per edge",
    )
    validation_score_threshold: int = Field(
        default=60,
        ge=0,
        le=100,
        description="Validated matches must score strictly above this",
    )

    # Batch evaluation
    batch_min_score: int = Field(
        default=70,
        ge=0,
        le=100,
        description="Batch matches must score at least this",
    )
    max_matches_per_edge: int = Field(
        default=3,
        ge=1,
        description="Cap on matches kept per edge in batch mode",
    )

    # Quality
    quality_threshold: int = Field(
        default=3,
        ge=0,
        le=5,
        description="Evidence strength below this carries a warning",
    )

    # Language model
    model: str = Field(
        default="gemini-2.5-flash",
        description="Gemini model used for validation and batch matching",
    )
    llm_timeout: float = Field(
        default=60.0,
        gt=0,
        description="Per-attempt timeout for a language model call (seconds)",
    )
    max_retries: int = Field(
        default=3,
        ge=0,
        description="Retries after the first failed attempt",
    )
    initial_delay: float = Field(
        default=2.0,
        ge=0.0,
        description="First backoff delay, doubled on every retry (seconds)",
    )


@lru_cache
def get_retrieval_config() -> RetrievalConfig:
    """Get cached retrieval config instance."""
    return RetrievalConfig()


# Native output size of each embedding provider's default model
EMBEDDING_DIMS = {
    "sentence_transformers": 384,  # all-MiniLM-L6-v2
    "gemini": 768,  # text-embedding-004
}


class IndexingConfig(BaseSettings):
    """Configuration for chunking, embedding and the vector index."""

    model_config = SettingsConfigDict(
        env_prefix="MUSE_INDEX_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    chunk_size: int = Field(default=512, ge=16, description="Max characters per chunk")
    chunk_overlap: int = Field(default=50, ge=0, description="Characters shared by neighbouring chunks")
    batch_size: int = Field(
        default=10,
        ge=1,
        description="Records embedded concurrently; batches run one after another",
    )

    vector_backend: Literal["memory", "qdrant"] = Field(
        default="qdrant",
        description="Document store holding the evidence vectors",
    )
    collection_name: str = "muse_evidence_chunks"

    embedding_provider: Literal["sentence_transformers", "gemini"] = Field(
        default="sentence_transformers",
        description="Where chunk and query embeddings are computed",
    )
    embedding_model: str = "sentence-transformers/all-MiniLM-L6-v2"
    gemini_embedding_model: str = "text-embedding-004"
    embedding_dim: Optional[int] = Field(
        default=None,
        ge=1,
        description="Vector size; unset means the provider model's native size",
    )

    @property
    def vector_dim(self) -> int:
        if self.embedding_dim is not None:
            return self.embedding_dim
        return EMBEDDING_DIMS[self.embedding_provider]


@lru_cache
def get_indexing_config() -> IndexingConfig:
    """Get cached indexing config instance."""
    return IndexingConfig()


class ExternalSearchConfig(BaseSettings):
    """Configuration for academic paper search outside the curated corpus."""

    model_config = SettingsConfigDict(
        env_prefix="MUSE_EXTERNAL_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    enabled: bool = True
    max_papers: int = Field(default=5, ge=1, description="Papers returned per query")
    per_provider_results: int = Field(default=5, ge=1)
    timeout: float = Field(default=10.0, gt=0, description="Per-provider HTTP timeout (seconds)")
    provider_deadline: float = Field(
        default=30.0,
        gt=0,
        description="Overall time limit for one provider including retries (seconds)",
    )
    free_text_max_chars: int = Field(default=200, ge=1)
    extract_keywords: bool = Field(
        default=False,
        description="Ask the language model for English search keywords per edge",
    )
    query_max_chars: int = Field(default=100, ge=1)

    cache_backend: Literal["memory", "redis"] = "memory"
    cache_ttl_seconds: int = Field(default=24 * 3600, ge=1)
    cache_max_entries: int = Field(default=500, ge=1)

    max_retries: int = Field(default=2, ge=0)
    initial_delay: float = Field(default=1.0, ge=0.0)


@lru_cache
def get_external_search_config() -> ExternalSearchConfig:
    """Get cached external search config instance."""
    return ExternalSearchConfig()


class PipelineConfig(BaseSettings):
    """Configuration for the end-to-end generation run."""

    model_config = SettingsConfigDict(
        env_prefix="MUSE_PIPELINE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    search_mode: Literal["batch", "per_edge"] = Field(
        default="batch",
        description="One model call per edge group, or hybrid retrieval per edge",
    )
    batch_edge_group_size: int = Field(
        default=8,
        ge=1,
        description="Edges evaluated together in one batch call",
    )
    structure_model: str = "gemini-2.5-flash"


@lru_cache
def get_pipeline_config() -> PipelineConfig:
    """Get cached pipeline config instance."""
    return PipelineConfig()
