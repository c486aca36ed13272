from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    database_url: str = "sqlite:///./wellness.db"
    default_user_tz: str = "UTC"

    # Text generation provider: "anthropic" or "openai" (any OpenAI-compatible endpoint)
    llm_provider: str = "anthropic"
    anthropic_api_key: str = ""
    anthropic_model: str = "claude-sonnet-4-5"
    openai_api_key: str = ""
    openai_base_url: str = "https://api.deepseek.com"
    openai_model: str = "deepseek-chat"
    disable_llm: bool = False
    insight_fast_mode: bool = False  # single call, no continuation/repair

    first_call_max_tokens: int = 1200
    continuation_max_tokens: int = 900
    repair_max_tokens: int = 1200
    llm_timeout_seconds: float = 60.0

    cache_ttl_minutes: int = 15

    min_samples_for_analysis: int = 1
    burnout_min_samples: int = 5
    trend_window_days: int = 14
    claims_min_points: int = 5
    claims_min_observed_days: int = 5
    notes_max_chars: int = 1200
    include_schedule: bool = False  # legacy hourly schedule block

    analysis_hour: int = 0

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
