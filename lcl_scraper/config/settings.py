"""Application settings using pydantic-settings."""

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from lcl_scraper.core.exceptions import ConfigurationError


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # Supabase (checked lazily, see require_persistence)
    supabase_url: str | None = Field(default=None, alias="SUPABASE_URL")
    supabase_service_role_key: str | None = Field(default=None, alias="SUPABASE_SERVICE_ROLE_KEY")

    # Fetcher
    user_agent: str = Field(
        default=(
            "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
            "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
        ),
        alias="SCRAPER_USER_AGENT",
    )
    fetch_timeout: float = Field(default=15.0, alias="SCRAPER_FETCH_TIMEOUT")
    fetch_max_attempts: int = Field(default=3, alias="SCRAPER_FETCH_MAX_ATTEMPTS")
    fetch_backoff_schedule: list[float] = Field(
        default_factory=lambda: [1.0, 3.0, 9.0], alias="SCRAPER_BACKOFF_SCHEDULE"
    )
    min_host_interval: float = Field(default=0.5, alias="SCRAPER_MIN_HOST_INTERVAL")
    enable_deep_scraping: bool = Field(default=True, alias="SCRAPER_DEEP_SCRAPING")

    # Firecrawl (external dynamic/headless fetcher)
    firecrawl_url: str | None = Field(default=None, alias="FIRECRAWL_URL")
    firecrawl_api_key: str | None = Field(default=None, alias="FIRECRAWL_API_KEY")

    # LLM providers: Groq first, OpenAI-compatible second
    groq_api_key: str | None = Field(default=None, alias="GROQ_API_KEY")
    groq_model: str = Field(default="llama-3.3-70b-versatile", alias="GROQ_MODEL")
    openai_api_key: str | None = Field(default=None, alias="OPENAI_API_KEY")
    openai_model: str = Field(default="gpt-4o-mini", alias="OPENAI_MODEL")
    openai_base_url: str | None = Field(default=None, alias="OPENAI_BASE_URL")
    llm_timeout: float = Field(default=30.0, alias="LLM_TIMEOUT")

    # Orchestrator
    max_concurrent_sources: int = Field(default=1, alias="SCRAPER_MAX_CONCURRENT_SOURCES")
    run_timeout: float | None = Field(default=None, alias="SCRAPER_RUN_TIMEOUT")
    persist_sample_size: int = Field(default=25, alias="SCRAPER_PERSIST_SAMPLE_SIZE")
    report_sample_size: int = Field(default=3, alias="SCRAPER_REPORT_SAMPLE_SIZE")
    auto_disable_after_failures: int = Field(default=5, alias="SCRAPER_AUTO_DISABLE_AFTER")

    # Job queue
    job_max_attempts: int = Field(default=3, alias="JOB_MAX_ATTEMPTS")

    # Source discovery
    discovery_auto_enable_threshold: int = Field(default=90, alias="DISCOVERY_AUTO_ENABLE_THRESHOLD")
    discovery_min_confidence: int = Field(default=60, alias="DISCOVERY_MIN_CONFIDENCE")
    discovery_alert_min_population: int = Field(default=100_000, alias="DISCOVERY_ALERT_MIN_POPULATION")
    discovery_alert_min_confidence: int = Field(default=80, alias="DISCOVERY_ALERT_MIN_CONFIDENCE")
    slack_webhook_url: str | None = Field(default=None, alias="SLACK_WEBHOOK_URL")
    serper_api_key: str | None = Field(default=None, alias="SERPER_API_KEY")
    discovery_fetch_timeout: float = Field(default=10.0, alias="DISCOVERY_FETCH_TIMEOUT")

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO", alias="LOG_LEVEL"
    )
    log_format: Literal["json", "console"] = Field(default="console", alias="LOG_FORMAT")
    log_file: str | None = Field(default=None, alias="LOG_FILE")

    # Environment
    environment: Literal["development", "staging", "production"] = Field(
        default="development", alias="ENVIRONMENT"
    )
    dry_run: bool = Field(default=False, alias="DRY_RUN")

    @property
    def has_dynamic_fetcher(self) -> bool:
        return bool(self.firecrawl_url)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


def require_persistence(settings: Settings | None = None) -> Settings:
    """Fail fast when persistence credentials are missing.

    Raises:
        ConfigurationError: if SUPABASE_URL or SUPABASE_SERVICE_ROLE_KEY is unset
    """
    settings = settings or get_settings()
    missing = [
        name
        for name, value in (
            ("SUPABASE_URL", settings.supabase_url),
            ("SUPABASE_SERVICE_ROLE_KEY", settings.supabase_service_role_key),
        )
        if not value
    ]
    if missing:
        raise ConfigurationError(
            f"Missing persistence credentials: {', '.join(missing)}",
            details={"missing": missing},
        )
    return settings
