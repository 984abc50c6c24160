from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import field_validator

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    ENV: str = "local"
    APP_NAME: str = "Tripwise API"
    # Comma-separated origins for CORS (e.g. https://tripwise.com.np,https://admin.tripwise.com.np). If empty, uses localhost defaults.
    CORS_ORIGINS: str = ""
    LOG_LEVEL: str = "INFO"

    DATABASE_URL: str

    @field_validator("DATABASE_URL", mode="after")
    @classmethod
    def normalize_database_url(cls, v: str) -> str:
        """Hosted Postgres often hands out postgres://; SQLAlchemy expects postgresql+psycopg2://."""
        if v and v.startswith("postgres://"):
            return "postgresql+psycopg2://" + v[11:]
        return v
    REDIS_URL: str = "redis://localhost:6379/0"

    # Local zone for peak-hour and time-of-day buckets
    TIMEZONE: str = "Asia/Kathmandu"

    # Dynamic pricing
    PRICING_SCHEDULER_BACKEND: str = "inprocess"  # inprocess|celery|off
    PRICING_INTERVAL_SECONDS: float = 900.0
    PRICING_INITIAL_DELAY_SECONDS: float = 30.0
    PRICING_HORIZON_DAYS: int = 7
    PRICING_UPDATE_THRESHOLD_PERCENT: float = 2.0
    PRICING_SIGNIFICANT_CHANGE_PERCENT: float = 10.0
    # Redis lock shared by API and workers when the celery backend drives pricing; expiry frees it after a crash
    PRICING_LOCK_NAME: str = "tripwise:pricing-batch"
    PRICING_LOCK_TIMEOUT_SECONDS: float = 3600.0

    @field_validator("PRICING_SCHEDULER_BACKEND", mode="after")
    @classmethod
    def check_scheduler_backend(cls, v: str) -> str:
        v = (v or "").strip().lower()
        if v not in ("inprocess", "celery", "off"):
            raise ValueError("PRICING_SCHEDULER_BACKEND must be inprocess, celery or off")
        return v


settings = Settings()
