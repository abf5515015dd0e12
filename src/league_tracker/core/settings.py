"""Application settings and configuration.

Settings are loaded from environment variables (or a ``.env`` file) with
defaults suitable for local development.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application metadata
    app_name: str = Field(default="League Tracker", alias="APP_NAME")
    app_version: str = Field(default="0.1.0", alias="APP_VERSION")
    debug: bool = Field(default=False, alias="DEBUG")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Security and authentication
    secret_key: str = Field(default="dev-secret-change-me", alias="SECRET_KEY")
    jwt_algorithm: str = Field(default="HS256", alias="JWT_ALGORITHM")
    access_token_expire_minutes: int = Field(
        default=60 * 24,
        alias="ACCESS_TOKEN_EXPIRE_MINUTES",
    )

    # Database configuration
    database_url: str = Field(default="sqlite:///./league_tracker.db", alias="DATABASE_URL")
    test_database_url: str | None = Field(default=None, alias="TEST_DATABASE_URL")
    use_testing_database: bool = Field(default=False, alias="USE_TEST_DATABASE")
    sql_debug: bool = Field(default=False, alias="SQL_DEBUG")

    # Tracker rules
    tracker_max_per_user: int = Field(default=4, alias="TRACKER_MAX_PER_USER")
    tracker_username_max_length: int = Field(
        default=100,
        alias="TRACKER_USERNAME_MAX_LENGTH",
    )

    # Job queue and workers
    worker_enabled: bool = Field(default=False, alias="WORKER_ENABLED")
    queue_concurrency: int = Field(default=2, alias="QUEUE_CONCURRENCY")
    queue_max_attempts: int = Field(default=3, alias="QUEUE_MAX_ATTEMPTS")
    queue_backoff_seconds: float = Field(default=2.0, alias="QUEUE_BACKOFF_SECONDS")
    queue_max_backoff_seconds: float = Field(default=60.0, alias="QUEUE_MAX_BACKOFF_SECONDS")

    # Transactional outbox dispatcher
    outbox_poll_interval_seconds: float = Field(
        default=5.0,
        alias="OUTBOX_POLL_INTERVAL_SECONDS",
    )
    outbox_batch_size: int = Field(default=10, alias="OUTBOX_BATCH_SIZE")
    outbox_max_retries: int = Field(default=3, alias="OUTBOX_MAX_RETRIES")

    # Discord notifications
    discord_bot_token: str | None = Field(default=None, alias="DISCORD_BOT_TOKEN")
    discord_api_url: str = Field(
        default="https://discord.com/api/v10",
        alias="DISCORD_API_URL",
    )
    discord_http_timeout_seconds: float = Field(
        default=10.0,
        alias="DISCORD_HTTP_TIMEOUT_SECONDS",
    )
    discord_circuit_breaker_threshold: int = Field(
        default=5,
        alias="DISCORD_CIRCUIT_BREAKER_THRESHOLD",
    )
    discord_circuit_breaker_timeout_seconds: float = Field(
        default=60.0,
        alias="DISCORD_CIRCUIT_BREAKER_TIMEOUT_SECONDS",
    )
    frontend_url: str = Field(default="http://localhost:3000", alias="FRONTEND_URL")

    # CORS configuration for web frontend access
    cors_origins: list[str] = Field(
        default=["*"],
        alias="CORS_ORIGINS",
    )
    cors_allow_credentials: bool = Field(default=True, alias="CORS_ALLOW_CREDENTIALS")
    cors_allow_methods: list[str] = Field(
        default=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
        alias="CORS_ALLOW_METHODS",
    )
    cors_allow_headers: list[str] = Field(
        default=["*"],
        alias="CORS_ALLOW_HEADERS",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        validate_assignment=True,
        extra="ignore",
    )

    @property
    def database_url_sync(self) -> str:
        """Return a sync-compatible database URL for tooling such as Alembic."""
        url = self.effective_database_url
        if url.startswith("postgresql+asyncpg"):
            return url.replace("postgresql+asyncpg", "postgresql+psycopg", 1)
        return url

    @property
    def effective_database_url(self) -> str:
        """Return the database URL respecting testing overrides."""
        if self.use_testing_database and self.test_database_url:
            return self.test_database_url
        return self.database_url


settings = Settings()  # type: ignore[call-arg]
