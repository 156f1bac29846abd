from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Application
    APP_NAME: str = "Firewall Metrics Rollup"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False

    # Database
    DATABASE_URL: str = "postgresql+asyncpg://firewall:firewall@db:5432/firewall"

    # Redis (polling state written by the device poller)
    REDIS_URL: str = "redis://redis:6379/0"

    # Daily rollup
    ROLLUP_ENABLED: bool = True
    ROLLUP_CRON: str = "0 0 * * *"       # minute hour day month day_of_week
    ROLLUP_TIMEZONE: str = "UTC"
    ROLLUP_RETENTION_DAYS: int = 365
    ROLLUP_LOCK_TTL_SECONDS: int = 3600  # Redis lock so only one worker runs each firing

    # Polling state cache
    SNAPSHOT_RETENTION_DAYS: int = 7
    POLLING_STATE_TTL_SECONDS: int = 86400

    class Config:
        env_file = ".env"
        case_sensitive = True


settings = Settings()
