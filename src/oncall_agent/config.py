"""
Configuration management for OnCall-Agent

Uses pydantic-settings for environment variable parsing and validation.
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field, ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class LLMConfig(BaseSettings):
    """Configuration for a single LLM provider."""

    model_config = SettingsConfigDict(extra="ignore")

    provider: Literal["anthropic", "openai", "openrouter"] = "openai"
    model: str = "gpt-4o"
    api_key: str = ""
    base_url: str | None = None
    max_tokens: int = 4096
    temperature: float = 0.2


class Settings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        env_nested_delimiter="__",
    )

    # Application
    app_name: str = "OnCall-Agent"
    debug: bool = False
    log_level: str = "INFO"
    log_format: Literal["console", "json"] = "console"

    # Server
    host: str = "0.0.0.0"
    port: int = 8080

    # LLM Providers (API Keys)
    anthropic_api_key: str = Field(default="", description="Anthropic API key for Claude")
    openai_api_key: str = Field(default="", description="OpenAI API key")
    openrouter_api_key: str = Field(default="", description="OpenRouter API key")
    llm_base_url: str = Field(default="", description="Override base URL for OpenAI-compatible endpoints")

    # Default model settings
    default_provider: Literal["anthropic", "openai", "openrouter"] = "openai"
    default_model: str = ""
    max_tokens: int = 4096
    temperature: float = 0.2

    # Session
    session_ttl_minutes: int = Field(default=30, description="Idle minutes before a session is evicted")
    session_cleanup_interval_seconds: int = Field(default=300, description="Eviction sweep interval")
    max_history: int = Field(default=50, description="Messages kept verbatim in context")
    summary_after: int = Field(default=20, description="Minimum backlog before summarizing")

    # Planning
    max_plan_revisions: int = Field(default=5, description="Max plan revisions applied per request")

    # RAG
    enable_rag: bool = False
    embedding_model: str = "text-embedding-3-small"
    chunk_size: int = 500
    chunk_overlap: int = 50
    rag_top_k: int = 5
    knowledge_dir: str = Field(default="", description="Directory of .md/.txt files indexed at startup")

    # Tools
    log_api_url: str = Field(default="", description="Base URL of the log query backend")
    monitor_api_url: str = Field(default="", description="Base URL of the metrics/alerts backend")
    tool_timeout_seconds: float = Field(default=30.0, description="HTTP timeout for tool backends")

    @field_validator("log_api_url", "monitor_api_url", "llm_base_url", mode="before")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.strip().rstrip("/") if v else ""

    @field_validator("chunk_overlap")
    @classmethod
    def overlap_below_chunk_size(cls, v: int, info: ValidationInfo) -> int:
        chunk_size = info.data.get("chunk_size", 0)
        if chunk_size > 0 and v >= chunk_size:
            raise ValueError("chunk_overlap must be smaller than chunk_size")
        return v

    def get_llm_config(self, provider: str | None = None) -> LLMConfig:
        """Get LLM configuration for a provider."""
        provider = provider or self.default_provider

        api_key_map = {
            "anthropic": self.anthropic_api_key,
            "openai": self.openai_api_key,
            "openrouter": self.openrouter_api_key,
        }

        model_map = {
            "anthropic": "claude-sonnet-4-20250514",
            "openai": "gpt-4o",
            "openrouter": "openai/gpt-4o",
        }

        base_url_map = {
            "anthropic": None,
            "openai": self.llm_base_url or None,
            "openrouter": self.llm_base_url or "https://openrouter.ai/api/v1",
        }

        return LLMConfig(
            provider=provider,  # type: ignore
            model=self.default_model or model_map.get(provider, "gpt-4o"),
            api_key=api_key_map.get(provider, ""),
            base_url=base_url_map.get(provider),
            max_tokens=self.max_tokens,
            temperature=self.temperature,
        )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
