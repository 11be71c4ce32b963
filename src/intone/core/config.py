"""
Configuration management for the governance engine.
"""

from functools import lru_cache
from typing import List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = Field(default="Intone Governance API")
    app_version: str = Field(default="0.1.0")
    app_description: str = Field(default="Brand language rule governance engine")
    debug: bool = Field(default=False, description="Enable debug mode")

    # Server
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8001, description="Server port")
    cors_origins: str = Field(default="*", description="Comma-separated allowed CORS origins")

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")
    log_format: str = Field(default="json", description="Log format: json | console")

    # Security
    secret_key: str = Field(default="change-me", description="Secret used to derive the Fernet key")

    # Semantic evaluator (OpenAI-compatible chat completions)
    evaluator_base_url: str = Field(default="https://api.openai.com", description="Evaluator API base URL")
    evaluator_api_key: str = Field(default="", description="Fallback evaluator API key")
    evaluator_model: str = Field(default="gpt-4o-mini", description="Evaluator model name")
    evaluator_temperature: float = Field(default=0.7, description="Default sampling temperature")
    evaluator_variant_temperature: float = Field(default=0.8, description="Temperature for extra variants")
    evaluator_max_tokens: int = Field(default=2000, description="Max tokens per evaluation")
    evaluator_timeout: int = Field(default=60, description="Per-request evaluator timeout in seconds")
    evaluator_max_retries: int = Field(default=2, description="Retries for transient evaluator failures")

    # Crawling
    crawl_user_agent: str = Field(
        default="Mozilla/5.0 (compatible; IntoneAudit/1.0)",
        description="User-Agent sent by the crawler and file-link fetcher",
    )
    crawl_request_timeout: float = Field(default=15.0, description="Per-request fetch timeout")
    crawl_default_depth: int = Field(default=2, description="Default crawl depth")
    crawl_default_max_pages: int = Field(default=50, description="Default crawl page cap")

    # Chunking / evaluation
    max_chunk_size: int = Field(default=8000, description="Max characters per evaluator chunk")
    chunk_concurrency: int = Field(default=4, description="Concurrent chunk evaluations per page")
    audit_context: str = Field(default="ui", description="Surface used when compiling audit prompts")

    # File ingestion
    max_file_size: int = Field(default=10485760, description="Max ingested file size in bytes")

    # Channels
    channels_config_path: str = Field(default="", description="Override path for channels.yaml")

    @property
    def parsed_cors_origins(self) -> List[str]:
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @property
    def evaluator_deadline(self) -> float:
        """Overall budget for one evaluator call: every attempt plus the backoff between them."""
        attempts = self.evaluator_max_retries + 1
        backoff = sum(min(2 ** attempt, 10) for attempt in range(self.evaluator_max_retries))
        return float(self.evaluator_timeout * attempts + backoff)


@lru_cache()
def get_settings() -> Settings:
    """Get cached application settings."""
    return Settings()
