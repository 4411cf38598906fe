"""
Service settings loaded from environment variables
"""

from functools import lru_cache
from typing import List, Optional
import os

from pydantic import BaseModel, Field, field_validator

from fusion_agent import __version__


class Settings(BaseModel):
    """Process-wide configuration for the agent server"""

    # Service
    environment: str = Field(default="development")
    service_name: str = Field(default="fusion-agent")
    version: str = Field(default=__version__)
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="json")
    cors_origin: str = Field(default="*")

    # Session memory
    max_memory_messages: int = Field(default=10, ge=1, description="Messages retained per session")
    memory_eviction_age_minutes: int = Field(default=1440, ge=1)
    memory_cleanup_interval_seconds: float = Field(default=3600.0, gt=0)
    memory_summary_messages: int = Field(default=2, ge=0)

    # Ingestion
    chunk_window_size: int = Field(default=30, ge=1, description="Tokens per chunk")
    chunk_batch_size: int = Field(default=3, ge=1, description="Chunks per batch")
    documents_path: str = Field(default="data/documents")
    document_extensions: List[str] = Field(default_factory=lambda: [".md"])
    ingest_clean_markdown: bool = Field(default=False)
    index_max_chunks: int = Field(default=1000, ge=1)

    # Retrieval
    max_search_results: int = Field(default=3, ge=1)
    agent_similarity_threshold: float = Field(default=0.5, ge=0.0, le=1.0)
    search_similarity_threshold: float = Field(default=0.7, ge=0.0, le=1.0)
    search_timeout_seconds: float = Field(default=10.0, gt=0)

    # Language model
    gemini_api_key: Optional[str] = None
    gemini_model: str = Field(default="gemini-2.0-flash-lite")
    llm_temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    llm_max_tokens: int = Field(default=1000, ge=1)
    llm_timeout_seconds: float = Field(default=30.0, gt=0)

    # Plugins
    openweather_api_key: Optional[str] = None
    plugin_timeout_seconds: float = Field(default=10.0, gt=0)

    # API
    max_message_length: int = Field(default=1000, ge=1)

    # Tracing
    langfuse_public_key: Optional[str] = None
    langfuse_secret_key: Optional[str] = None
    langfuse_host: Optional[str] = None

    @field_validator("document_extensions", mode="before")
    @classmethod
    def _split_extensions(cls, value):
        if isinstance(value, str):
            value = [part.strip() for part in value.split(",") if part.strip()]
        return [ext if ext.startswith(".") else f".{ext}" for ext in value]

    @field_validator("log_format")
    @classmethod
    def _check_log_format(cls, value: str) -> str:
        if value not in ("json", "console"):
            raise ValueError("log_format must be 'json' or 'console'")
        return value

    @property
    def tracing_enabled(self) -> bool:
        return bool(self.langfuse_public_key and self.langfuse_secret_key)

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from the process environment; unset variables keep their defaults"""

        env_map = {
            "ENVIRONMENT": "environment",
            "SERVICE_NAME": "service_name",
            "SERVICE_VERSION": "version",
            "LOG_LEVEL": "log_level",
            "LOG_FORMAT": "log_format",
            "CORS_ORIGIN": "cors_origin",
            "MAX_MEMORY_MESSAGES": "max_memory_messages",
            "MEMORY_EVICTION_AGE_MINUTES": "memory_eviction_age_minutes",
            "MEMORY_CLEANUP_INTERVAL_SECONDS": "memory_cleanup_interval_seconds",
            "MEMORY_SUMMARY_MESSAGES": "memory_summary_messages",
            "CHUNK_WINDOW_SIZE": "chunk_window_size",
            "CHUNK_BATCH_SIZE": "chunk_batch_size",
            "DOCUMENTS_PATH": "documents_path",
            "DOCUMENT_EXTENSIONS": "document_extensions",
            "INGEST_CLEAN_MARKDOWN": "ingest_clean_markdown",
            "INDEX_MAX_CHUNKS": "index_max_chunks",
            "MAX_SEARCH_RESULTS": "max_search_results",
            "AGENT_SIMILARITY_THRESHOLD": "agent_similarity_threshold",
            "SEARCH_SIMILARITY_THRESHOLD": "search_similarity_threshold",
            "SEARCH_TIMEOUT_SECONDS": "search_timeout_seconds",
            "GEMINI_API_KEY": "gemini_api_key",
            "GEMINI_MODEL": "gemini_model",
            "LLM_TEMPERATURE": "llm_temperature",
            "LLM_MAX_TOKENS": "llm_max_tokens",
            "LLM_TIMEOUT_SECONDS": "llm_timeout_seconds",
            "OPENWEATHER_API_KEY": "openweather_api_key",
            "PLUGIN_TIMEOUT_SECONDS": "plugin_timeout_seconds",
            "MAX_MESSAGE_LENGTH": "max_message_length",
            "LANGFUSE_PUBLIC_KEY": "langfuse_public_key",
            "LANGFUSE_SECRET_KEY": "langfuse_secret_key",
            "LANGFUSE_HOST": "langfuse_host",
        }

        values = {}
        for env_name, field_name in env_map.items():
            raw = os.getenv(env_name)
            if raw is not None and raw != "":
                values[field_name] = raw

        return cls(**values)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Cached settings for the running process"""
    return Settings.from_env()
