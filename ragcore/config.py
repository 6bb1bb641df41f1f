"""Application configuration using Pydantic Settings.

All configuration is loaded from environment variables.
No secrets are hardcoded.
"""

from enum import Enum
from functools import lru_cache

from pydantic import BaseModel, Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    """Application environment."""

    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


class ChunkStrategy(str, Enum):
    """Available text chunking strategies."""

    FIXED = "fixed"
    RECURSIVE = "recursive"
    SENTENCE = "sentence"
    SEMANTIC = "semantic"


class EmbeddingProviderType(str, Enum):
    """Available embedding providers."""

    COHERE = "cohere"
    BGE_M3 = "bge-m3"


class VectorStoreType(str, Enum):
    """Available vector store backends."""

    QDRANT = "qdrant"
    PGVECTOR = "pgvector"


class ChunkingSettings(BaseSettings):
    """Default chunking configuration for a project."""

    model_config = SettingsConfigDict(env_prefix="CHUNKING_")

    strategy: ChunkStrategy = Field(
        default=ChunkStrategy.RECURSIVE,
        description="Chunking strategy tag",
    )
    max_tokens: int = Field(
        default=512,
        ge=1,
        description="Token budget per chunk (4 characters per token)",
    )
    overlap: int = Field(
        default=50,
        ge=0,
        description="Tokens carried over from the previous chunk",
    )


class CohereSettings(BaseModel):
    """Cohere hosted embedding API configuration."""

    api_key: SecretStr = Field(description="Cohere API key")
    base_url: str = Field(
        default="https://api.cohere.com/v2",
        description="Cohere API base URL",
    )
    model: str = Field(default="embed-v4.0", description="Embedding model name")
    dimensions: int = Field(default=1024, ge=1, description="Output dimensions")
    timeout: float = Field(default=60.0, description="Request timeout in seconds")


class BgeM3Settings(BaseModel):
    """Self-hosted BGE-M3 model server configuration."""

    base_url: str = Field(description="Model server base URL")
    dimensions: int = Field(default=1024, ge=1, description="Output dimensions")
    batch_size: int = Field(
        default=32,
        ge=1,
        description="Maximum texts per request",
    )
    timeout: float = Field(default=60.0, description="Request timeout in seconds")


class EmbeddingSettings(BaseSettings):
    """Embedding provider selection.

    Each provider reads its own nested block, e.g.
    ``EMBEDDING_COHERE__API_KEY`` or ``EMBEDDING_BGE_M3__BASE_URL``.
    """

    model_config = SettingsConfigDict(
        env_prefix="EMBEDDING_",
        env_nested_delimiter="__",
    )

    provider: EmbeddingProviderType = Field(
        default=EmbeddingProviderType.BGE_M3,
        description="Embedding provider tag",
    )
    cohere: CohereSettings | None = Field(
        default=None,
        description="Cohere configuration block",
    )
    bge_m3: BgeM3Settings | None = Field(
        default=None,
        description="BGE-M3 configuration block",
    )


class QdrantSettings(BaseModel):
    """Qdrant vector database configuration."""

    url: str | None = Field(default=None, description="Qdrant server URL")
    api_key: SecretStr | None = Field(
        default=None,
        description="Qdrant API key (optional for local)",
    )
    upsert_batch_size: int = Field(
        default=100,
        ge=1,
        description="Points per upsert request",
    )


class PgVectorSettings(BaseModel):
    """PostgreSQL + pgvector configuration."""

    connection_string: str | None = Field(
        default=None,
        description="PostgreSQL connection string",
    )
    pool_size: int = Field(default=5, ge=1, description="Connection pool size")
    upsert_batch_size: int = Field(
        default=500,
        ge=1,
        description="Rows per upsert statement",
    )


class VectorStoreSettings(BaseSettings):
    """Vector store selection.

    Each backend reads its own nested block, e.g.
    ``VECTOR_STORE_QDRANT__URL`` or ``VECTOR_STORE_PGVECTOR__CONNECTION_STRING``.
    """

    model_config = SettingsConfigDict(
        env_prefix="VECTOR_STORE_",
        env_nested_delimiter="__",
    )

    type: VectorStoreType = Field(
        default=VectorStoreType.QDRANT,
        description="Vector store backend tag",
    )
    qdrant: QdrantSettings | None = Field(
        default=None,
        description="Qdrant configuration block",
    )
    pgvector: PgVectorSettings | None = Field(
        default=None,
        description="pgvector configuration block",
    )


class RetrySettings(BaseSettings):
    """Backoff policy used by the resilience wrapper."""

    model_config = SettingsConfigDict(env_prefix="RETRY_")

    max_retries: int = Field(default=3, ge=0, description="Retry attempts")
    base_delay: float = Field(
        default=1.0,
        gt=0,
        description="Delay before the first retry in seconds",
    )
    max_delay: float = Field(
        default=10.0,
        gt=0,
        description="Upper bound on a single delay in seconds",
    )


class CircuitBreakerSettings(BaseSettings):
    """Thresholds used by the embedding circuit breaker."""

    model_config = SettingsConfigDict(env_prefix="CIRCUIT_BREAKER_")

    failure_threshold: int = Field(
        default=5,
        ge=1,
        description="Consecutive failures that open the circuit",
    )
    recovery_timeout: float = Field(
        default=30.0,
        gt=0,
        description="Seconds the circuit stays open before a test call",
    )


class Settings(BaseSettings):
    """Main application settings.

    Aggregates all configuration sections.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Application settings
    environment: Environment = Field(
        default=Environment.DEVELOPMENT,
        description="Application environment",
    )
    log_level: str = Field(
        default="INFO",
        description="Logging level",
    )
    debug: bool = Field(
        default=False,
        description="Enable debug mode",
    )
    collection_name: str = Field(
        default="rag_chunks",
        description="Default vector collection",
    )

    # Nested settings
    chunking: ChunkingSettings = Field(default_factory=ChunkingSettings)
    embedding: EmbeddingSettings = Field(default_factory=EmbeddingSettings)
    vector_store: VectorStoreSettings = Field(default_factory=VectorStoreSettings)
    retry: RetrySettings = Field(default_factory=RetrySettings)
    circuit_breaker: CircuitBreakerSettings = Field(default_factory=CircuitBreakerSettings)


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings.

    Returns:
        Settings instance loaded from environment.
    """
    return Settings()
