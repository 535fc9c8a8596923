"""
Configuration settings for the application
"""
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings

# Subscription tiers
TIER_FREE = "free"
TIER_PAID = "paid"

# Free-tier daily ceilings
FREE_DAILY_MESSAGES = 20
FREE_DAILY_WEATHER_QUERIES = 10
FREE_DAILY_MARKET_QUERIES = 10

DEFAULT_CONVERSATION_TITLE = "New Conversation"


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # Core authentication and security
    jwt_secret_key: Optional[str] = Field(default=None, alias="JWT_SECRET_KEY")
    verification_code_ttl_minutes: int = Field(default=10, alias="VERIFICATION_CODE_TTL_MINUTES")
    verification_max_attempts: int = Field(default=5, alias="VERIFICATION_MAX_ATTEMPTS")
    # Echo codes in the send-code response; never honoured in production
    expose_dev_codes: bool = Field(default=False, alias="EXPOSE_DEV_CODES")

    # Generative model
    openai_api_key: Optional[str] = Field(default=None, alias="OPENAI_API_KEY")
    openai_model: str = Field(default="gpt-4o-mini", alias="OPENAI_MODEL")
    llm_temperature: float = Field(default=0.7, alias="LLM_TEMPERATURE")

    # Stripe billing configuration
    stripe_secret_key: Optional[str] = Field(default=None, alias="STRIPE_SECRET_KEY")
    stripe_webhook_secret: Optional[str] = Field(default=None, alias="STRIPE_WEBHOOK_SECRET")
    stripe_price_id: Optional[str] = Field(default=None, alias="STRIPE_PRICE_ID")
    paid_subscription_days: int = Field(default=30, alias="PAID_SUBSCRIPTION_DAYS")

    # Infrastructure configuration
    redis_url: Optional[str] = Field(default=None, alias="REDIS_URL")
    database_url: Optional[str] = Field(default="sqlite+aiosqlite:///./yaung_chi.db", alias="DATABASE_URL")
    rate_limit_per_minute: int = Field(default=30, alias="RATE_LIMIT_PER_MINUTE")

    # Chat behaviour
    auto_title_delay_seconds: float = Field(default=2.0, alias="AUTO_TITLE_DELAY_SECONDS")

    # Frontend configuration
    frontend_url: Optional[str] = Field(default="http://localhost:5173", alias="FRONTEND_URL")

    # Render.com deployment configuration
    render: Optional[str] = Field(default=None, alias="RENDER")
    render_external_url: Optional[str] = Field(default=None, alias="RENDER_EXTERNAL_URL")
    render_service_name: Optional[str] = Field(default=None, alias="RENDER_SERVICE_NAME")

    # Environment configuration
    env: Optional[str] = Field(default=None, alias="ENV")

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "populate_by_name": True,
        "extra": "ignore",
    }


# Instantiate settings object
settings = Settings()

# Determine if we're in production mode
IS_PRODUCTION = bool(settings.render) or (settings.env and settings.env.lower() == "production")
