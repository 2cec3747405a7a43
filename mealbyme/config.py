from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")
    
    # Database
    database_url: str
    
    # OpenAI Assistants (meal plans + single recipes)
    openai_api_key: str
    openai_meal_plan_assistant_id: str | None = None
    openai_recipe_assistant_id: str | None = None
    
    # Clerk Auth
    clerk_secret_key: str | None = None
    clerk_frontend_api: str = "clerk.your-domain.com"  # e.g., "prepared-mole-42.clerk.accounts.dev"
    clerk_api_url: str = "https://api.clerk.com/v1"
    
    # Stripe billing
    stripe_secret_key: str | None = None
    stripe_webhook_secret: str | None = None
    stripe_price_id: str | None = None  # The single premium subscription price
    
    # Used for checkout/portal redirects when the request has no Origin header
    app_url: str = "http://localhost:5173"
    
    # Sentry error monitoring
    sentry_dsn: str | None = None
    
    # Environment
    environment: str = "development"
    
    # API Settings
    api_title: str = "MealByMe API"
    api_version: str = "1.0.0"
    
    # Generation polling
    generation_poll_max_attempts: int = 30
    generation_poll_interval_seconds: float = 1.0
    
    # Retry helper (idempotent upserts only)
    retry_max_attempts: int = 3
    retry_base_delay_seconds: float = 1.0
    
    # Free tier
    free_daily_recipe_generations: int = 5
    meal_plans_require_subscription: bool = True
    
    # Provisional meal plans older than this are swept
    provisional_plan_ttl_hours: int = 24
    
    @property
    def billing_enabled(self) -> bool:
        """Check if Stripe is configured."""
        return all([
            self.stripe_secret_key,
            self.stripe_webhook_secret,
            self.stripe_price_id,
        ])
    
    @property
    def async_database_url(self) -> str:
        """Convert database URL to async format for SQLAlchemy."""
        url = self.database_url
        # Convert to asyncpg driver
        if url.startswith("postgres://"):
            url = url.replace("postgres://", "postgresql+asyncpg://", 1)
        elif url.startswith("postgresql://"):
            url = url.replace("postgresql://", "postgresql+asyncpg://", 1)
        # Remove sslmode parameter (handled separately by asyncpg)
        if "?sslmode=" in url:
            url = url.split("?sslmode=")[0]
        elif "&sslmode=" in url:
            url = url.replace("&sslmode=require", "").replace("&sslmode=prefer", "")
        return url


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
