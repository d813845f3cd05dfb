from pathlib import Path
from urllib.parse import urlparse

from pydantic_settings import BaseSettings, SettingsConfigDict

ENV_PATH = Path(__file__).resolve().parent.parent / ".env.local"


class Settings(BaseSettings):
    # Environment settings
    environment: str = "development"
    debug: bool = False
    LOG_LEVEL: str = "INFO"

    # Page configuration store (Postgres)
    DATABASE_URL: str | None = None

    # Redis settings
    REDIS_URL: str | None = None
    UPSTASH_REDIS_REST_URL: str | None = None
    UPSTASH_REDIS_REST_TOKEN: str | None = None

    # Upstream catalog API
    CATALOG_API_BASE_URL: str = "https://public.api.bondsports.co/v1"
    CATALOG_API_KEY: str = ""
    CATALOG_DEFAULT_ORG_IDS: list[str] = []
    CATALOG_REQUEST_TIMEOUT: float = 30.0

    # =================================================================
    # DISCOVERY EVENTS PIPELINE
    # =================================================================
    DISCOVERY_FULL_CACHE_TTL: int = 15 * 60
    DISCOVERY_AVAILABILITY_CACHE_TTL: int = 60
    DISCOVERY_PROGRAM_CONCURRENCY: int = 3
    DISCOVERY_SESSION_CONCURRENCY: int = 5
    DISCOVERY_CACHE_BACKEND: str = "redis"  # "redis" or "memory"

    # Cache warming
    DISCOVERY_WARM_CONCURRENCY: int = 2
    DISCOVERY_WARM_INTERVAL_MINUTES: int = 5
    CRON_SECRET: str | None = None

    # Embedded discovery pages call the API cross-origin
    CORS_ALLOWED_ORIGINS: list[str] = []

    # =================================================================
    # DATABASE POOL SETTINGS
    # =================================================================
    DB_POOL_MIN_SIZE: int = 2
    DB_POOL_MAX_SIZE: int = 8
    DB_POOL_TIMEOUT: float = 30.0
    DB_POOL_MAX_IDLE: float = 600.0  # 10 minutes
    DB_POOL_MAX_LIFETIME: float = 3600.0  # 1 hour

    model_config = SettingsConfigDict(
        env_file=str(ENV_PATH),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    def redis_url(self) -> str | None:
        """
        Resolve the Redis connection URL.
        An explicit REDIS_URL wins; otherwise derive the native TLS URL
        from the Upstash REST endpoint and token.
        """
        if self.REDIS_URL:
            return self.REDIS_URL
        if not (self.UPSTASH_REDIS_REST_URL and self.UPSTASH_REDIS_REST_TOKEN):
            return None
        host = urlparse(self.UPSTASH_REDIS_REST_URL).hostname or self.UPSTASH_REDIS_REST_URL
        return f"rediss://default:{self.UPSTASH_REDIS_REST_TOKEN}@{host}:6379"

    def database_configured(self) -> bool:
        return bool(self.DATABASE_URL)

    def get_db_pool_config(self) -> dict:
        """
        Get database pool configuration.
        Adjust environment-specific settings based on self.environment.
        """
        config = {
            "min_size": self.DB_POOL_MIN_SIZE,
            "max_size": self.DB_POOL_MAX_SIZE,
            "timeout": self.DB_POOL_TIMEOUT,
            "max_idle": self.DB_POOL_MAX_IDLE,
            "max_lifetime": self.DB_POOL_MAX_LIFETIME,
        }

        if self.environment == "development":
            # Page config reads are light; keep local pools small
            config.update({"min_size": 1, "max_size": 4, "timeout": 15.0})

        return config


settings = Settings()
