"""Application configuration using Pydantic Settings."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    DATABASE_URL: str = "sqlite:///./reportflow.db"

    # LLM (OpenAI-compatible chat completions)
    LLM_API_KEY: str = ""
    LLM_BASE_URL: str = "https://api.openai.com/v1"
    BASIC_MODEL: str = "gpt-4o-mini"  # cost-optimized tier
    PREMIUM_MODEL: str = "gpt-4o"  # quality-optimized tier
    LLM_TIMEOUT: float = 120.0
    LLM_MAX_RETRIES: int = 3
    LLM_RETRY_BASE_DELAY: float = 1.0  # 1s, 2s, 4s...

    # Web search (Tavily)
    TAVILY_API_KEY: str = ""
    TAVILY_BASE_URL: str = "https://api.tavily.com"
    SEARCH_TIMEOUT: float = 30.0

    # Research
    RESEARCH_MAX_SOURCES: int = 5
    RESEARCH_PARALLEL: bool = False
    RESEARCH_QUESTION_DELAY: float = 1.0

    # Workflow phases
    PHASE_MAX_ATTEMPTS: int = 3  # 1 attempt + 2 retries
    PHASE_RETRY_BASE_DELAY: float = 5.0
    PHASE_RETRY_MAX_DELAY: float = 60.0

    # Worker
    WORKER_POLL_INTERVAL: int = 5
    WORKER_CONCURRENCY: int = 4
    JOB_STALE_AFTER_SECONDS: int = 1800
    JOB_HEARTBEAT_INTERVAL: int = 60  # must stay well under JOB_STALE_AFTER_SECONDS

    # Request boundary
    GENERATE_RATE_LIMIT: int = 10
    GENERATE_RATE_WINDOW: int = 3600
    ACCESS_RATE_LIMIT: int = 100
    ACCESS_RATE_WINDOW: int = 60
    LIST_LIMIT: int = 50
    DEFAULT_CREDITS: int = 3

    LOG_LEVEL: str = "INFO"

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True)


# Global settings instance
settings = Settings()
