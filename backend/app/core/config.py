from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    DATABASE_URL: str = "sqlite:///./dashboard.db"
    DATABASE_ECHO: bool = False

    # Keys the HMAC tag on pagination cursors
    SECRET_KEY: str = "dev-insecure-key-change-in-production"

    CORS_ORIGINS: list[str] = ["http://localhost:5173"]

    LOG_LEVEL: str = "INFO"

    # Option lists
    OPTIONS_DEFAULT_LIMIT: int = 20
    OPTIONS_MAX_LIMIT: int = 100

    # Store access: per-query timeout and transient-failure retries
    STORE_TIMEOUT_SECONDS: float = 5.0
    STORE_MAX_RETRIES: int = 2
    STORE_RETRY_BASE_DELAY: float = 0.05  # seconds
    STORE_RETRY_MAX_DELAY: float = 1.0  # seconds

    # HTTP cache hints for summary / chart responses
    CACHE_ENABLED: bool = True
    CACHE_TTL_SECONDS: int = 300

    CHART_MAX_RANGE_DAYS: int = 366


settings = Settings()
