from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    # core
    ENV: str = "dev"
    API_PREFIX: str = "/api"
    LOG_LEVEL: str = "INFO"

    # cors
    FRONTEND_ORIGIN: str | None = None
    # Explicit debug-only switch for wide-open CORS in non-prod envs
    CORS_ALLOW_ALL_ORIGINS: bool = False

    # llm (extraction, semantic resolution, narrative)
    OPENROUTER_API_KEY: str | None = None
    OPENAI_API_KEY: str | None = None
    LLM_MODEL: str = "openai/gpt-5.1"
    # Hard cap on concurrent LLM calls per process
    LLM_MAX_CONCURRENCY: int = 4

    # web-grounded research (OpenAI-compatible endpoint)
    PERPLEXITY_API_KEY: str | None = None
    PERPLEXITY_BASE_URL: str = "https://api.perplexity.ai"
    PERPLEXITY_MODEL: str = "sonar"

    # search + deep fetch
    GOOGLE_SEARCH_API_KEY: str | None = None
    GOOGLE_SEARCH_ENGINE_ID: str | None = None
    GOOGLE_SEARCH_RESULTS: int = 5
    FIRECRAWL_API_KEY: str | None = None
    FIRECRAWL_BASE_URL: str = "https://api.firecrawl.dev/v1"
    FIRECRAWL_MAX_PAGES: int = 3

    # entity resolution
    SEMANTIC_RESOLUTION_ENABLED: bool = True

    # timeouts (seconds); a timed-out call is handled like a failed one
    EXTRACTION_TIMEOUT_SECONDS: float = 90.0
    RESOLUTION_TIMEOUT_SECONDS: float = 60.0
    NARRATIVE_TIMEOUT_SECONDS: float = 30.0
    HTTP_TIMEOUT_SECONDS: int = 20

    class Config:
        env_file = ".env"
        case_sensitive = True


@lru_cache
def get_settings() -> Settings:
    return Settings()
