"""Configuration management using pydantic-settings."""

import warnings
from enum import Enum
from typing import List, Optional

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    """Application environment."""

    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


class RetrievalFailurePolicy(str, Enum):
    """What the chat facade does when context retrieval fails."""

    PROPAGATE = "propagate"
    UNGROUNDED = "ungrounded"


class EmbeddingSettings(BaseSettings):
    """Embedding configuration (OpenAI-compatible endpoint)."""

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=False)

    openai_api_key: Optional[str] = Field(
        default=None,
        description="API key for the OpenAI-compatible gateway. Env var: OPENAI_API_KEY",
    )
    openai_base_url: Optional[str] = Field(
        default=None,
        description="Base URL of the OpenAI-compatible gateway (self-hosted or vendor). Env var: OPENAI_BASE_URL",
    )
    embedding_model: str = Field(
        default="text-embedding-3-small",
        description="Embedding model name. Env var: EMBEDDING_MODEL",
    )
    embedding_dimension: int = Field(
        default=1536,
        description="Embedding dimension, also the vector collection size. Env var: EMBEDDING_DIMENSION",
    )
    embedding_batch_size: int = Field(
        default=100,
        description="Inputs per embedding request. Env var: EMBEDDING_BATCH_SIZE",
    )
    embedding_timeout: float = Field(
        default=30.0,
        description="Embedding request timeout in seconds. Env var: EMBEDDING_TIMEOUT",
    )
    embedding_max_retries: int = Field(
        default=3,
        description="Max attempts per embedding request. Env var: EMBEDDING_MAX_RETRIES",
    )

    @property
    def is_configured(self) -> bool:
        """Check if an API key is available."""
        return bool(self.openai_api_key)


class LLMSettings(BaseSettings):
    """Chat completion configuration (LiteLLM, OpenAI-compatible gateway)."""

    model_config = SettingsConfigDict(env_prefix="LLM_", case_sensitive=False)

    model: str = Field(
        default="openai/gpt-4o-mini",
        description="Completion model (LiteLLM format). Env var: LLM_MODEL",
    )
    fallback_model: Optional[str] = Field(
        default=None,
        description="Model tried when the primary model fails. Env var: LLM_FALLBACK_MODEL",
    )
    enable_fallbacks: bool = Field(
        default=False, description="Enable the fallback model. Env var: LLM_ENABLE_FALLBACKS"
    )
    base_url: Optional[str] = Field(
        default=None,
        description="OpenAI-compatible gateway URL (falls back to OPENAI_BASE_URL). Env var: LLM_BASE_URL",
    )
    api_key: Optional[str] = Field(
        default=None,
        description="Gateway API key (falls back to OPENAI_API_KEY). Env var: LLM_API_KEY",
    )
    temperature: float = Field(default=0.7, description="Sampling temperature. Env var: LLM_TEMPERATURE")
    max_tokens: int = Field(default=1000, description="Max completion tokens. Env var: LLM_MAX_TOKENS")
    timeout: float = Field(default=60.0, description="Completion timeout in seconds. Env var: LLM_TIMEOUT")
    max_retries: int = Field(default=3, description="Max attempts per model. Env var: LLM_MAX_RETRIES")


class QdrantSettings(BaseSettings):
    """Qdrant vector database configuration."""

    model_config = SettingsConfigDict(env_prefix="QDRANT_", case_sensitive=False)

    url: str = Field(default="http://localhost:6333", description="Qdrant connection URL")
    api_key: Optional[str] = Field(
        default=None, description="Qdrant API key (for Qdrant Cloud). Env var: QDRANT_API_KEY"
    )
    timeout: int = Field(default=30, description="Request timeout in seconds")
    collection_name: str = Field(
        default="knowledge_base",
        description="Single collection partitioned by thread_id payload. Env var: QDRANT_COLLECTION_NAME",
    )

    @property
    def is_cloud(self) -> bool:
        """Check if using Qdrant Cloud (has API key)."""
        return bool(self.api_key)


class ChunkingSettings(BaseSettings):
    """Text chunking configuration."""

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=False)

    chunk_size: int = Field(default=1024, description="Chunk size in tokens. Env var: CHUNK_SIZE")
    chunk_overlap: int = Field(
        default=200, description="Overlap between chunks in tokens. Env var: CHUNK_OVERLAP"
    )
    chunking_method: str = Field(
        default="sentence",
        description="Chunking method: sentence, paragraph, or fixed. Env var: CHUNKING_METHOD",
    )

    @field_validator("chunking_method")
    @classmethod
    def validate_chunking_method(cls, v: str) -> str:
        """Validate chunking method."""
        valid_methods = ["sentence", "paragraph", "fixed"]
        if v.lower() not in valid_methods:
            raise ValueError(f"Chunking method must be one of {valid_methods}")
        return v.lower()


class RetrievalSettings(BaseSettings):
    """Similarity search configuration."""

    model_config = SettingsConfigDict(env_prefix="RETRIEVAL_", case_sensitive=False)

    top_k: int = Field(default=5, ge=1, description="Chunks returned per query. Env var: RETRIEVAL_TOP_K")
    score_threshold: float = Field(
        default=0.2,
        ge=-1.0,
        le=1.0,
        description="Minimum cosine similarity. Env var: RETRIEVAL_SCORE_THRESHOLD",
    )


class RAGSettings(BaseSettings):
    """Generation and context assembly behaviour."""

    model_config = SettingsConfigDict(env_prefix="RAG_", case_sensitive=False, populate_by_name=True)

    retrieval_failure_policy: RetrievalFailurePolicy = Field(
        default=RetrievalFailurePolicy.PROPAGATE,
        description="propagate or ungrounded. Env var: RAG_RETRIEVAL_FAILURE_POLICY",
    )
    context_providers_str: str = Field(
        default="document",
        description="Comma-separated providers: document, link, memory. Env var: RAG_CONTEXT_PROVIDERS",
        validation_alias="RAG_CONTEXT_PROVIDERS",
    )
    min_relevance: float = Field(
        default=0.1, description="Minimum score kept by the context aggregator. Env var: RAG_MIN_RELEVANCE"
    )
    ingestion_workers: int = Field(
        default=2, ge=1, description="Background ingestion workers. Env var: RAG_INGESTION_WORKERS"
    )
    job_history: int = Field(
        default=1000, ge=1, description="Finished ingestion jobs kept for status lookups. Env var: RAG_JOB_HISTORY"
    )

    @property
    def context_providers(self) -> List[str]:
        """Get configured context providers as a list."""
        valid = {"document", "link", "memory"}
        names = [p.strip().lower() for p in self.context_providers_str.split(",") if p.strip()]
        unknown = [n for n in names if n not in valid]
        if unknown:
            raise ValueError(f"Unknown context providers: {unknown}. Valid: {sorted(valid)}")
        return names or ["document"]


class DatabaseSettings(BaseSettings):
    """Metadata store configuration."""

    model_config = SettingsConfigDict(env_prefix="DATABASE_", case_sensitive=False)

    url: str = Field(
        default="sqlite+aiosqlite:///./rag_core.db",
        description="SQLAlchemy async URL. Env var: DATABASE_URL",
    )
    echo: bool = Field(default=False, description="Log SQL statements. Env var: DATABASE_ECHO")


class ScraperSettings(BaseSettings):
    """Web link scraping configuration."""

    model_config = SettingsConfigDict(env_prefix="SCRAPER_", case_sensitive=False)

    timeout: float = Field(default=30.0, description="Fetch timeout in seconds. Env var: SCRAPER_TIMEOUT")
    user_agent: str = Field(
        default="Mozilla/5.0 (compatible; KnowledgeBase/1.0)",
        description="User-Agent header. Env var: SCRAPER_USER_AGENT",
    )
    max_content_chars: int = Field(
        default=200_000,
        description="Scraped text is truncated to this many characters. Env var: SCRAPER_MAX_CONTENT_CHARS",
    )


class ServerSettings(BaseSettings):
    """Server configuration."""

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=False)

    host: str = Field(default="0.0.0.0", description="Server host. Env var: HOST")
    port: int = Field(default=8000, description="HTTP server port. Env var: PORT")


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    app_name: str = Field(default="rag-core", description="Application name. Env var: APP_NAME")
    environment: Environment = Field(
        default=Environment.DEVELOPMENT,
        description="Application environment. Env var: ENVIRONMENT",
    )
    debug: bool = Field(default=False, description="Enable debug mode. Env var: DEBUG")
    log_level: str = Field(default="INFO", description="Logging level. Env var: LOG_LEVEL")

    allowed_file_types_str: Optional[str] = Field(
        default="pdf,docx,txt,text,md,markdown,csv,html,htm,jpg,jpeg,png,gif,webp,bmp,tiff",
        description="Allowed file types (comma-separated). Env var: ALLOWED_FILE_TYPES",
        validation_alias="ALLOWED_FILE_TYPES",
    )
    max_file_size_mb: int = Field(
        default=10, description="Maximum upload size in MB. Env var: MAX_FILE_SIZE_MB"
    )

    embedding: Optional[EmbeddingSettings] = None
    llm: Optional[LLMSettings] = None
    qdrant: Optional[QdrantSettings] = None
    chunking: Optional[ChunkingSettings] = None
    retrieval: Optional[RetrievalSettings] = None
    rag: Optional[RAGSettings] = None
    database: Optional[DatabaseSettings] = None
    scraper: Optional[ScraperSettings] = None
    server: Optional[ServerSettings] = None

    @model_validator(mode="after")
    def initialize_nested_settings(self) -> "Settings":
        """Initialize nested settings to ensure they read from environment."""
        if self.embedding is None:
            self.embedding = EmbeddingSettings()
        if self.llm is None:
            self.llm = LLMSettings()
        if self.qdrant is None:
            self.qdrant = QdrantSettings()
        if self.chunking is None:
            self.chunking = ChunkingSettings()
        if self.retrieval is None:
            self.retrieval = RetrievalSettings()
        if self.rag is None:
            self.rag = RAGSettings()
        if self.database is None:
            self.database = DatabaseSettings()
        if self.scraper is None:
            self.scraper = ScraperSettings()
        if self.server is None:
            self.server = ServerSettings()
        return self

    @field_validator("environment", mode="before")
    @classmethod
    def parse_environment(cls, v):
        """Parse environment from string."""
        if isinstance(v, str):
            try:
                return Environment(v.lower())
            except ValueError:
                return Environment.DEVELOPMENT
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Log level must be one of {valid_levels}")
        return v.upper()

    @property
    def allowed_file_types(self) -> List[str]:
        """Get allowed file types as a list."""
        if not self.allowed_file_types_str:
            return ["pdf", "docx", "txt", "md"]
        return [ft.strip().lower() for ft in self.allowed_file_types_str.split(",") if ft.strip()]

    @property
    def max_file_size_bytes(self) -> int:
        return self.max_file_size_mb * 1024 * 1024

    @property
    def llm_api_key(self) -> Optional[str]:
        """LLM key, defaulting to the embedding gateway key."""
        return self.llm.api_key or self.embedding.openai_api_key

    @property
    def llm_base_url(self) -> Optional[str]:
        """LLM base URL, defaulting to the embedding gateway URL."""
        return self.llm.base_url or self.embedding.openai_base_url

    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.environment == Environment.DEVELOPMENT

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == Environment.PRODUCTION

    def validate_configuration(self) -> None:
        """Warn about services that are not configured."""
        if not self.embedding.is_configured:
            warnings.warn(
                "Embeddings are not configured. Set OPENAI_API_KEY (and OPENAI_BASE_URL for a gateway).",
                UserWarning,
            )

    def validate_production_settings(self) -> None:
        """Validate that production settings are secure."""
        if self.is_production:
            if self.debug:
                raise ValueError("DEBUG must be False in production")
            if not self.embedding.is_configured:
                raise ValueError("OPENAI_API_KEY must be configured in production")


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get the global settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
        _settings.validate_configuration()
        try:
            _settings.validate_production_settings()
        except ValueError as e:
            import logging

            logging.error(f"Configuration validation failed: {e}")
            if _settings.is_production:
                raise
    return _settings
