"""
Application configuration using pydantic-settings.
All config is validated at startup - fail fast if anything is missing.
"""
from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    # Application
    app_env: str = "development"
    app_host: str = "0.0.0.0"
    app_port: int = 8000
    app_base_url: str = "http://localhost:8000"
    log_level: str = "INFO"

    # Database
    database_url: str = "postgresql+asyncpg://localhost/safetalk"
    database_pool_size: int = 10
    database_max_overflow: int = 5

    # Redis (webhook dedup + AI spend tracking)
    redis_url: str = "redis://localhost:6379/0"
    dedup_window_seconds: int = 1800

    # Anthropic (primary)
    anthropic_api_key: str = ""
    anthropic_model_fast: str = "claude-haiku-4-5-20251001"
    anthropic_model_smart: str = "claude-sonnet-4-5-20250929"
    anthropic_max_tokens_fast: int = 400
    anthropic_max_tokens_smart: int = 600
    anthropic_timeout_seconds: int = 10

    # OpenAI (fallback)
    openai_api_key: str = ""
    openai_base_url: str = ""
    openai_model_fast: str = "gpt-4o-mini"
    openai_model_smart: str = "gpt-4o"
    openai_max_tokens_fast: int = 400
    openai_max_tokens_smart: int = 600
    openai_timeout_seconds: int = 10

    ai_daily_budget_usd: float = 10.0

    # Twilio
    twilio_account_sid: str = ""
    twilio_auth_token: str = ""
    twilio_phone_number: str = ""  # The shared SafeTalk service number
    twilio_messaging_service_sid: str = ""

    # Telnyx (failover)
    telnyx_api_key: str = ""
    telnyx_messaging_profile_id: str = ""

    # Webhooks
    allow_unsigned_webhooks: bool = False

    # Bearer token for the message API used by app clients
    app_api_token: str = ""

    # Phone normalization
    default_country_code: str = "1"

    # Public links used in SMS copy
    subscribe_url: str = "https://safetalk-coparents.vercel.com"
    support_url: str = "safetalk.com/support"

    # Sentry
    sentry_dsn: str = ""

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


@lru_cache()
def get_settings() -> Settings:
    return Settings()
