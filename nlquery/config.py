"""
Application Configuration

Pydantic-based settings management using environment variables.
Supports nested configuration, validation, and caching.

Usage:
    from nlquery.config import get_settings

    settings = get_settings()
    print(settings.llm.default_provider)
    print(settings.knowledge.collection_prefix)
"""

import logging
import os
from functools import lru_cache
from pathlib import Path
from typing import Literal

from dotenv import load_dotenv
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

ProviderName = Literal["openai", "anthropic", "local"]


class LLMSettings(BaseSettings):
    """LLM provider configuration."""

    # Provider selection
    default_provider: ProviderName = Field(
        default="openai", description="Default LLM provider"
    )
    sql_provider: ProviderName | None = Field(
        None, description="Provider for SQL generation (defaults to default_provider)"
    )
    router_provider: ProviderName | None = Field(
        None, description="Provider for LLM-based routing (defaults to default_provider)"
    )
    reasoning_provider: ProviderName | None = Field(
        None, description="Provider for result explanations (defaults to default_provider)"
    )

    # OpenAI configuration
    openai_api_key: str | None = Field(
        None,
        description="OpenAI API key",
        min_length=20,
    )
    openai_model: str = Field(default="gpt-4o", description="OpenAI model for SQL generation")
    openai_model_mini: str = Field(
        default="gpt-4o-mini", description="OpenAI model for routing and explanations"
    )

    # Anthropic configuration
    anthropic_api_key: str | None = Field(
        None,
        description="Anthropic API key",
        min_length=20,
    )
    anthropic_model: str = Field(
        default="claude-3-5-sonnet-20241022", description="Anthropic model for SQL generation"
    )
    anthropic_model_mini: str = Field(
        default="claude-3-5-haiku-20241022", description="Anthropic lightweight model"
    )

    # Local model configuration
    local_base_url: str = Field(
        default="http://localhost:11434",
        description="Base URL for an OpenAI-compatible local model server",
    )
    local_model: str = Field(default="llama3.1:8b", description="Local model name")

    # Common settings
    temperature: float = Field(
        default=0.0,
        ge=0.0,
        le=2.0,
        description="Default temperature when a request does not set one",
    )
    max_tokens: int = Field(
        default=2000,
        gt=0,
        le=16000,
        description="Maximum tokens per LLM response",
    )
    timeout: int = Field(
        default=30,
        gt=0,
        description="Request timeout in seconds",
    )

    model_config = SettingsConfigDict(
        env_prefix="LLM_",
        env_file=".env",
        extra="ignore",
    )

    @field_validator("openai_api_key")
    @classmethod
    def validate_openai_key(cls, v: str | None) -> str | None:
        """Validate OpenAI API key format."""
        if v and not v.startswith("sk-"):
            raise ValueError("OpenAI API key must start with 'sk-'")
        return v

    @field_validator("anthropic_api_key")
    @classmethod
    def validate_anthropic_key(cls, v: str | None) -> str | None:
        """Validate Anthropic API key format."""
        if v and not v.startswith("sk-ant-"):
            raise ValueError("Anthropic API key must start with 'sk-ant-'")
        return v

    @model_validator(mode="after")
    def validate_provider_keys(self) -> "LLMSettings":
        """Ensure an API key is set for every selected hosted provider."""
        provider_key_map = {
            "openai": self.openai_api_key,
            "anthropic": self.anthropic_api_key,
        }

        selected_providers = {
            self.default_provider,
            self.sql_provider,
            self.router_provider,
            self.reasoning_provider,
        }

        for provider in selected_providers:
            if provider in provider_key_map and not provider_key_map[provider]:
                raise ValueError(
                    f"API key required for {provider} provider. Set LLM_{provider.upper()}_API_KEY"
                )

        return self


class KnowledgeSettings(BaseSettings):
    """Schema knowledge store (Chroma) configuration."""

    persist_dir: Path = Field(
        default=Path("./knowledge_data"),
        description="Directory for Chroma persistence",
    )
    collection_prefix: str = Field(
        default="datasource_",
        description="Prefix of the per-data-source collection name",
    )
    embedding_model: str = Field(
        default="text-embedding-3-small",
        description="OpenAI embedding model",
    )
    source_tag: str = Field(
        default="schema",
        description="Value of the `source` payload field written and filtered on",
    )
    max_tables: int = Field(
        default=100,
        gt=0,
        le=10000,
        description="Maximum table records read from a collection per resolution",
    )
    max_columns_per_table: int = Field(
        default=500,
        gt=0,
        le=10000,
        description="Maximum column records read per table",
    )
    top_k: int = Field(
        default=5,
        gt=0,
        le=50,
        description="Number of records returned by semantic searches",
    )

    model_config = SettingsConfigDict(
        env_prefix="KNOWLEDGE_",
        env_file=".env",
        extra="ignore",
    )

    @field_validator("persist_dir")
    @classmethod
    def validate_persist_dir(cls, v: Path) -> Path:
        """Ensure persist directory exists."""
        v.mkdir(parents=True, exist_ok=True)
        return v.resolve()


class DataSourceSettings(BaseSettings):
    """Registered data sources and connection behaviour."""

    config_path: Path = Field(
        default=Path("config/data_sources.yaml"),
        description="YAML file listing the data sources that can be queried",
    )
    pool_size: int = Field(
        default=5,
        gt=0,
        le=20,
        description="Connection pool size per data source",
    )
    timeout: int = Field(
        default=30,
        gt=0,
        description="Connection and statement timeout in seconds",
    )

    model_config = SettingsConfigDict(
        env_prefix="DATA_SOURCES_",
        env_file=".env",
        extra="ignore",
    )


class PipelineSettings(BaseSettings):
    """Pipeline behaviour settings."""

    sql_model: str | None = Field(
        default=None,
        description="Model for SQL generation (None = provider default)",
    )
    sql_temperature: float = Field(
        default=0.1,
        ge=0.0,
        le=2.0,
        description="Temperature for SQL generation",
    )
    reasoning_model: str | None = Field(
        default=None,
        description="Model for result explanations (None = provider default)",
    )
    reasoning_temperature: float = Field(
        default=0.3,
        ge=0.0,
        le=2.0,
        description="Temperature for result explanations",
    )
    reasoning_preview_rows: int = Field(
        default=5,
        ge=0,
        le=100,
        description="Result rows shown to the model when explaining a query",
    )
    include_reasoning: bool = Field(
        default=False,
        description="Explain results when a request does not say otherwise",
    )
    sample_rows_limit: int = Field(
        default=5,
        ge=0,
        le=100,
        description="Sample rows fetched per table during introspection",
    )
    introspection_concurrency: int = Field(
        default=8,
        ge=1,
        le=64,
        description="Tables introspected concurrently",
    )
    router_mode: Literal["heuristic", "llm"] = Field(
        default="heuristic",
        description="Classifier used to pick a processing path",
    )

    model_config = SettingsConfigDict(
        env_prefix="PIPELINE_",
        env_file=".env",
        extra="ignore",
    )


class LoggingSettings(BaseSettings):
    """Logging configuration."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Application log level",
    )
    format: str = Field(
        default="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        description="Log message format",
    )
    date_format: str = Field(
        default="%Y-%m-%d %H:%M:%S",
        description="Log timestamp format",
    )
    file: Path | None = Field(
        default=None,
        description="Optional log file path (None = stderr only)",
    )

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        env_file=".env",
        extra="ignore",
    )

    def configure(self) -> None:
        """Configure Python logging with these settings."""
        handlers: list[logging.Handler] = [logging.StreamHandler()]

        if self.file:
            self.file.parent.mkdir(parents=True, exist_ok=True)
            handlers.append(logging.FileHandler(self.file))

        logging.basicConfig(
            level=getattr(logging, self.level),
            format=self.format,
            datefmt=self.date_format,
            handlers=handlers,
            force=True,
        )


class Settings(BaseSettings):
    """
    Main application settings.

    Loads configuration from environment variables and .env file.
    Settings are nested by domain (llm, knowledge, data_sources, pipeline, logging).

    Environment Variables:
        ENVIRONMENT: Deployment environment (development, staging, production)
        APP_NAME: Application name for logging
        DEBUG: Enable debug mode
        LLM_*: LLM provider configuration (see LLMSettings)
        KNOWLEDGE_*: Schema knowledge store configuration (see KnowledgeSettings)
        DATA_SOURCES_*: Data source registry configuration (see DataSourceSettings)
        PIPELINE_*: Pipeline behaviour (see PipelineSettings)
        LOG_*: Logging configuration (see LoggingSettings)

    Example:
        >>> settings = get_settings()
        >>> settings.llm.default_provider
        'openai'
        >>> settings.pipeline.sql_temperature
        0.1
    """

    environment: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Deployment environment",
    )
    app_name: str = Field(
        default="NLQuery",
        description="Application name",
    )
    debug: bool = Field(
        default=False,
        description="Enable debug mode",
    )

    # Nested settings
    llm: LLMSettings = Field(default_factory=LLMSettings)
    knowledge: KnowledgeSettings = Field(default_factory=KnowledgeSettings)
    data_sources: DataSourceSettings = Field(default_factory=DataSourceSettings)
    pipeline: PipelineSettings = Field(default_factory=PipelineSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.environment == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == "production"

    @model_validator(mode="after")
    def configure_logging(self) -> "Settings":
        """Configure logging when settings are loaded."""
        self.logging.configure()
        return self

    def model_post_init(self, __context) -> None:
        """Log configuration on initialization."""
        logger = logging.getLogger(__name__)
        logger.info(
            f"Settings loaded for {self.app_name} ({self.environment})",
            extra={
                "environment": self.environment,
                "debug": self.debug,
                "llm_provider": self.llm.default_provider,
                "router_mode": self.pipeline.router_mode,
                "collection_prefix": self.knowledge.collection_prefix,
            },
        )


_DOTENV_PATH = Path(__file__).resolve().parents[1] / ".env"


def _apply_dotenv_precedence() -> None:
    env_source = os.getenv("NLQUERY_ENV_SOURCE", "dotenv").lower()
    if env_source not in {"dotenv", "envfile", "file"}:
        return
    if _DOTENV_PATH.exists():
        load_dotenv(_DOTENV_PATH, override=True)


@lru_cache
def get_settings() -> Settings:
    """
    Get cached application settings.

    Settings are loaded once per process; call clear_settings_cache()
    to reload them after changing the environment.

    Returns:
        Settings: Singleton settings instance
    """
    _apply_dotenv_precedence()
    return Settings()


def clear_settings_cache() -> None:
    """
    Clear the settings cache.

    Useful for testing when you need to reload settings with different
    environment variables.
    """
    get_settings.cache_clear()
