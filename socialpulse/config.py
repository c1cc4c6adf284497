from pydantic_settings import BaseSettings, SettingsConfigDict

import os

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    database_url: str = "sqlite:///./socialpulse.db"
    secondary_database_url: str | None = None

    secret_key: str = os.getenv("JWT_SECRET", "change-me-in-production-for-jwt")
    admin_api_key: str | None = os.getenv("ADMIN_API_KEY")

    openai_api_key: str | None = os.getenv("OPENAI_API_KEY")
    openai_cluster_model: str = "gpt-4o"
    openai_default_model: str = "gpt-3.5-turbo"

    # Sentiment batching (chunk size / pause between chunks for rate limits)
    sentiment_batch_size: int = 5
    sentiment_batch_delay_seconds: float = 1.0
    influencer_follower_threshold: int = 100000

    slack_webhook_url: str | None = None
    scheduler_enabled: bool = True

    axiom_token: str | None = None
    axiom_dataset: str | None = None
    axiom_url: str = "https://api.axiom.co"
    axiom_org_id: str | None = None

settings = Settings()
