"""
Application Settings.

Centralized configuration using Pydantic Settings with environment variable loading.
Every pipeline policy (allow-list, significance threshold, category override,
concept bound, overlap threshold, timeouts, recency capacity) is a setting
rather than a constant so deployments can tune them without code changes.

Enrichment backends are optional: when their credentials are absent the
container leaves them unconfigured and the pipeline runs canonical-only.

Production Mode:
    When app_env="production", additional validations apply:
    - api_key_enabled must be True
    - debug must be False
    - cors_allowed_origins cannot be ["*"]
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_CATEGORIES = [
    "faktenwissen",
    "prozedurales_wissen",
    "erlebnisse",
    "bewusstsein",
    "humor",
    "zusammenarbeit",
    "codex",
    "kernerinnerungen",
    "programmieren",
    "projekte",
    "debugging",
    "philosophie",
    "anstehende_aufgaben",
    "erledigte_aufgaben",
    "forgotten_memories",
]


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # -------------------------------------------------------------------------
    # Canonical Record Store
    # -------------------------------------------------------------------------
    record_store_backend: Literal["sqlite", "supabase"] = Field(
        default="sqlite",
        description="Backend for canonical memory records",
    )
    sqlite_db_path: str = Field(
        default="memories.db",
        description="SQLite database file (':memory:' for ephemeral)",
    )
    supabase_url: str | None = Field(default=None, description="Supabase project URL")
    supabase_key: SecretStr | None = Field(default=None, description="Supabase service key")
    supabase_table: str = Field(default="memories", description="Table holding memories")

    # -------------------------------------------------------------------------
    # Neo4j (Relationship Graph)
    # -------------------------------------------------------------------------
    neo4j_uri: str | None = Field(default=None, description="Neo4j connection URI (bolt://)")
    neo4j_user: str = Field(default="neo4j", description="Neo4j username")
    neo4j_password: SecretStr | None = Field(default=None, description="Neo4j password")
    neo4j_database: str = Field(default="neo4j", description="Neo4j database name")

    # -------------------------------------------------------------------------
    # Pinecone (Concept Index)
    # -------------------------------------------------------------------------
    pinecone_api_key: SecretStr | None = Field(default=None, description="Pinecone API key")
    pinecone_index_name: str = Field(
        default="mempipe-concepts",
        description="Pinecone index name",
    )
    pinecone_namespace: str = Field(default="", description="Pinecone namespace for concepts")

    # -------------------------------------------------------------------------
    # Cohere (Embeddings)
    # -------------------------------------------------------------------------
    cohere_api_key: SecretStr | None = Field(default=None, description="Cohere API key for embeddings")
    cohere_embedding_model: str = Field(
        default="embed-multilingual-v3.0",
        description="Cohere embedding model (e.g., embed-english-v3.0, embed-multilingual-v3.0)",
    )
    cohere_embedding_dimension: int = Field(
        default=1024,
        description="Embedding dimension (384, 512, 768, or 1024)",
    )
    cohere_rerank_model: str = Field(
        default="rerank-v3.5",
        description="Cohere rerank model behind the llm search strategy",
    )

    # -------------------------------------------------------------------------
    # Anthropic (Semantic Analysis)
    # -------------------------------------------------------------------------
    anthropic_api_key: SecretStr | None = Field(
        default=None, description="Anthropic API key for Claude"
    )
    anthropic_model: str = Field(
        default="claude-sonnet-4-20250514",
        description="Model used for semantic analysis",
    )
    llm_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Per-attempt timeout for the analysis call",
    )
    llm_max_attempts: int = Field(
        default=3,
        ge=1,
        description="Attempts for retryable analysis failures",
    )

    # -------------------------------------------------------------------------
    # Redis (Recency Cache)
    # -------------------------------------------------------------------------
    redis_url: str | None = Field(default=None, description="Redis connection URL")
    recency_capacity: int = Field(
        default=10,
        ge=1,
        description="Number of recent memories kept before FIFO eviction",
    )

    # -------------------------------------------------------------------------
    # Pipeline Policy
    # -------------------------------------------------------------------------
    allowed_categories: list[str] = Field(
        default_factory=lambda: list(DEFAULT_CATEGORIES),
        description="Closed set of memory categories",
    )
    significance_threshold: float = Field(
        default=0.8,
        ge=0.0,
        le=1.0,
        description="Minimum combined score for a memory to be enriched",
    )
    significance_confidence_weight: float = Field(
        default=0.5,
        ge=0.0,
        le=1.0,
        description="Weight of analysis confidence against the heuristic score",
    )
    significance_signal_confidence: float = Field(
        default=0.7,
        ge=0.0,
        le=1.0,
        description="Confidence at which an explicit LLM significance flag alone earns enrichment",
    )
    category_override_threshold: float = Field(
        default=0.85,
        ge=0.0,
        le=1.0,
        description="Confidence above which an LLM category suggestion wins",
    )
    max_concepts: int = Field(
        default=5,
        ge=0,
        description="Upper bound of concepts indexed per memory",
    )
    relationship_similarity_threshold: float = Field(
        default=0.2,
        ge=0.0,
        le=1.0,
        description="Minimum concept/keyword overlap for a derived edge",
    )
    relationship_candidate_limit: int = Field(
        default=15,
        ge=1,
        description="Maximum candidate nodes considered per memory",
    )
    enrichment_concurrency: int = Field(
        default=4,
        ge=1,
        description="Concurrent concept or edge writes per ingestion",
    )
    enrichment_timeout_seconds: float = Field(
        default=15.0,
        gt=0,
        description="Timeout applied to each individual enrichment write",
    )

    # -------------------------------------------------------------------------
    # Application Settings
    # -------------------------------------------------------------------------
    app_env: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Application environment",
    )
    debug: bool = Field(
        default=True,
        description="Enable debug mode",
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )
    api_host: str = Field(default="0.0.0.0", description="API bind address")
    api_port: int = Field(default=8000, description="API port")

    # -------------------------------------------------------------------------
    # Security Settings
    # -------------------------------------------------------------------------
    api_key: SecretStr | None = Field(
        default=None,
        description="API key for authentication. If set, all requests require X-API-Key header.",
    )
    api_key_enabled: bool = Field(
        default=False,
        description="Enable API key authentication. Set True for production.",
    )

    # -------------------------------------------------------------------------
    # CORS Settings
    # -------------------------------------------------------------------------
    cors_allowed_origins: list[str] = Field(
        default=["http://localhost:3000", "http://localhost:8000"],
        description="Allowed CORS origins. Use ['*'] for development only.",
    )
    cors_allow_credentials: bool = Field(
        default=True,
        description="Allow credentials in CORS requests",
    )

    @field_validator("allowed_categories")
    @classmethod
    def normalize_categories(cls, value: list[str]) -> list[str]:
        """Lower-case and de-duplicate categories, keeping order."""
        seen: list[str] = []
        for category in value:
            normalized = category.strip().lower()
            if normalized and normalized not in seen:
                seen.append(normalized)
        if not seen:
            raise ValueError("allowed_categories must not be empty")
        return seen

    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.app_env == "development"

    @property
    def graph_enabled(self) -> bool:
        return bool(self.neo4j_uri and self.neo4j_password)

    @property
    def concepts_enabled(self) -> bool:
        return bool(self.pinecone_api_key and self.cohere_api_key)

    @property
    def analysis_enabled(self) -> bool:
        return self.anthropic_api_key is not None

    @model_validator(mode="after")
    def validate_backend_settings(self) -> "Settings":
        """Validate backend selection and production hardening."""
        errors = []

        if self.record_store_backend == "supabase" and not (
            self.supabase_url and self.supabase_key
        ):
            errors.append("supabase_url and supabase_key are required for the supabase backend")

        if self.app_env == "production":
            # API key must be enabled in production
            if not self.api_key_enabled:
                errors.append("api_key_enabled must be True in production")

            # API key must be set if enabled
            if self.api_key_enabled and not self.api_key:
                errors.append("api_key must be set when api_key_enabled is True")

            # Debug must be disabled in production
            if self.debug:
                errors.append("debug must be False in production")

            # CORS cannot allow all origins in production
            if "*" in self.cors_allowed_origins:
                errors.append("cors_allowed_origins cannot contain '*' in production")

        if errors:
            raise ValueError(f"Configuration errors: {'; '.join(errors)}")

        return self


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    Call get_settings.cache_clear() to reload settings if needed.
    """
    return Settings()
