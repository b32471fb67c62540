"""Application configuration with environment variables."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Environment
    ENV: str = "dev"
    LOG_LEVEL: str = "INFO"

    # App Version (format: a.bc.de - major.feature.patch)
    VERSION: str = "0.01.00"

    # Database (PostgreSQL in production, SQLite for local runs and tests)
    DATABASE_URL: str = "sqlite+pysqlite:///./helpdesk.db"

    # Session Token (supports key rotation)
    JWT_SECRET: str = "change-this-in-production"
    JWT_SECRET_PREVIOUS: str = ""  # Set during rotation, clear after
    JWT_EXPIRES_HOURS: int = 12

    # CORS
    CORS_ORIGINS: str = "http://localhost:3000"

    # Error Tracking (optional, set in production)
    SENTRY_DSN: str = ""

    # Rate Limiting (requests per minute)
    RATE_LIMIT_API: int = 120
    REDIS_URL: str = ""  # Shared limiter storage; in-memory when empty

    # Ticket chat
    MESSAGE_MAX_LENGTH: int = 2000
    MESSAGE_PAGE_SIZE: int = 50
    MESSAGE_PAGE_MAX: int = 200
    MESSAGE_PREVIEW_LENGTH: int = 100  # Notification body preview
    MY_CHATS_LIMIT: int = 50

    # Notification inbox
    NOTIFICATION_LIST_LIMIT: int = 50
    NOTIFICATION_LIST_MAX: int = 200

    # Real-time channel
    WS_SEND_TIMEOUT_SECONDS: float = 5.0

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS_ORIGINS into a list."""
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]

    @property
    def jwt_secrets(self) -> list[str]:
        """Returns list of valid secrets (current first, then previous if set)."""
        secrets = [self.JWT_SECRET]
        if self.JWT_SECRET_PREVIOUS:
            secrets.append(self.JWT_SECRET_PREVIOUS)
        return secrets

    @property
    def cookie_secure(self) -> bool:
        """Secure cookies only in production."""
        return self.ENV != "dev"


settings = Settings()
