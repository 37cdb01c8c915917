"""Settings (pydantic-settings, loaded from env vars)."""

from pydantic_settings import BaseSettings

from .models import CacheConfig, Depth


class Settings(BaseSettings):
    # --- Default models ---
    THINKING_PROVIDER: str = "openai"
    THINKING_MODEL: str = "gpt-4o"
    TASK_PROVIDER: str = "openai"
    TASK_MODEL: str = "gpt-4o-mini"
    SEARCH_PROVIDER: str = "duckduckgo"

    # --- Server-side credentials ---
    OPENAI_API_KEY: str = ""
    ANTHROPIC_API_KEY: str = ""
    GROQ_API_KEY: str = ""
    DEEPSEEK_API_KEY: str = ""
    OPENROUTER_API_KEY: str = ""
    XAI_API_KEY: str = ""
    GOOGLE_API_KEY: str = ""
    MISTRAL_API_KEY: str = ""

    # --- Result cache ---
    CACHE_ENABLED: bool = True
    CACHE_TTL_COMPANY_HOURS: float = 24
    CACHE_TTL_MARKET_HOURS: float = 12
    CACHE_TTL_BULK_HOURS: float = 24
    CACHE_TTL_FREE_FORM_HOURS: float = 6
    CACHE_MAX_ENTRIES: int = 500
    CACHE_AUTO_CLEANUP: bool = True
    CACHE_PATH: str = ""

    # --- Fan-out ---
    BATCH_WAVE_SIZE: int = 3
    MAX_BATCH_ENTITIES: int = 50
    MAX_PARALLEL_SEARCHES: int = 5

    # --- Run budgets, enforced around the pipeline ---
    TIMEOUT_FAST_SECONDS: float = 180
    TIMEOUT_MEDIUM_SECONDS: float = 300
    TIMEOUT_DEEP_SECONDS: float = 600

    model_config = {"env_prefix": "", "case_sensitive": True, "extra": "ignore"}

    def timeout_for(self, depth: Depth) -> float:
        return {
            "fast": self.TIMEOUT_FAST_SECONDS,
            "medium": self.TIMEOUT_MEDIUM_SECONDS,
            "deep": self.TIMEOUT_DEEP_SECONDS,
        }[depth]

    def cache_config(self) -> CacheConfig:
        hour = 60 * 60
        return CacheConfig(
            enabled=self.CACHE_ENABLED,
            ttl={
                "company-research": self.CACHE_TTL_COMPANY_HOURS * hour,
                "market-research": self.CACHE_TTL_MARKET_HOURS * hour,
                "bulk-company-research": self.CACHE_TTL_BULK_HOURS * hour,
                "free-form-research": self.CACHE_TTL_FREE_FORM_HOURS * hour,
            },
            max_entries=self.CACHE_MAX_ENTRIES,
            auto_cleanup=self.CACHE_AUTO_CLEANUP,
        )
