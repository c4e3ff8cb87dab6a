"""
Application configuration using pydantic-settings.
All config is validated at startup - fail fast if anything is missing.
"""
from pydantic_settings import BaseSettings
from pydantic import Field
from functools import lru_cache


class Settings(BaseSettings):
    # Application
    app_env: str = "development"
    app_host: str = "0.0.0.0"
    app_port: int = 8000
    app_secret_key: str
    log_level: str = "INFO"
    frontend_url: str = "http://localhost:3000"

    # Database
    database_url: str
    database_pool_size: int = 20
    database_max_overflow: int = 10

    # Redis (lead locks + worker heartbeats)
    redis_url: str = "redis://localhost:6379/0"

    # Stripe (lead acceptance charges)
    stripe_secret_key: str = ""
    stripe_webhook_secret: str = ""
    stripe_currency: str = "usd"

    # SendGrid
    sendgrid_api_key: str = ""
    from_email: str = "noreply@leadrouter.io"
    from_name: str = "LeadRouter"

    # Auth (tokens are issued by the account service)
    jwt_secret: str = ""

    # Cron callers of the scheduled task endpoints
    scheduled_tasks_api_key: str = ""

    # Sentry
    sentry_dsn: str = ""

    # Lead pricing (cents)
    default_lead_cost_cents: int = 2000
    category_pricing: dict[int, int] = Field(default_factory=dict)

    # Platform fee taken from proposal payouts
    platform_fee_percentage: float = 0.10
    platform_fee_minimum: float = 0.0

    # Routing
    priority_window_hours: int = 24
    fallback_sweep_interval_seconds: int = 3600
    fallback_sweep_batch_size: int = 500

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


@lru_cache()
def get_settings() -> Settings:
    return Settings()
