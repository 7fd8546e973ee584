"""Application settings and configuration.

This module defines every tunable of the Ephemera engine: TTL bounds,
cleanup cadence, rate-limit ceilings, reputation rules, moderation cutoffs
and identity secrets. Settings are loaded from environment variables with
sensible defaults and validated at construction.
"""

from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Services never read configuration from module globals; an instance of
    this class is passed to each of them explicitly so that tests can build
    isolated configurations.
    """

    # Application metadata
    app_name: str = Field(default="Ephemera", alias="APP_NAME")
    app_version: str = Field(default="0.1.0", alias="APP_VERSION")
    debug: bool = Field(default=False, alias="DEBUG")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Database configuration
    database_url: str = Field(default="sqlite:///./ephemera.db", alias="DATABASE_URL")
    test_database_url: str | None = Field(default=None, alias="TEST_DATABASE_URL")
    use_testing_database: bool = Field(default=False, alias="USE_TEST_DATABASE")
    sql_debug: bool = Field(default=False, alias="SQL_DEBUG")

    # TTL bounds (hours)
    ttl_default_hours: int = Field(default=24, ge=1, le=24 * 30, alias="TTL_DEFAULT_HOURS")
    ttl_min_hours: int = Field(default=1, ge=1, le=24 * 30, alias="TTL_MIN_HOURS")
    ttl_max_hours: int = Field(default=72, ge=1, le=24 * 30, alias="TTL_MAX_HOURS")

    # Expiration sweep
    cleanup_interval_minutes: float = Field(
        default=5.0, gt=0, le=24 * 60, alias="CLEANUP_INTERVAL_MINUTES"
    )
    cleanup_strategy: Literal["timer", "lazy"] = Field(
        default="timer", alias="CLEANUP_STRATEGY"
    )
    cron_secret: str | None = Field(default=None, alias="CRON_SECRET")

    # Rate limiting (wall-clock windows)
    max_posts_per_hour: int = Field(default=5 * 60, ge=1, alias="MAX_POSTS_PER_HOUR")

    # Reputation
    initial_reputation: int = Field(default=50, ge=0, le=100, alias="INITIAL_REPUTATION")
    min_reputation_to_post: int = Field(
        default=10, ge=0, le=100, alias="MIN_REPUTATION_TO_POST"
    )
    reputation_penalty_grayed: int = Field(
        default=10, ge=0, le=100, alias="REPUTATION_PENALTY_GRAYED"
    )
    reputation_penalty_hidden: int = Field(
        default=20, ge=0, le=100, alias="REPUTATION_PENALTY_HIDDEN"
    )

    # Community and automatic moderation
    default_flag_threshold: int = Field(default=5, ge=1, alias="DEFAULT_FLAG_THRESHOLD")
    auto_mod_enabled: bool = Field(default=True, alias="AUTO_MOD_ENABLED")
    objectionable_reaction_threshold: int = Field(
        default=3, ge=1, alias="OBJECTIONABLE_REACTION_THRESHOLD"
    )
    moderation_warn_score: int = Field(default=60, ge=1, le=100, alias="MODERATION_WARN_SCORE")
    moderation_min_length: int = Field(default=3, ge=0, alias="MODERATION_MIN_LENGTH")
    caps_ratio_threshold: float = Field(default=0.7, gt=0, le=1, alias="CAPS_RATIO_THRESHOLD")
    caps_min_length: int = Field(default=20, ge=0, alias="CAPS_MIN_LENGTH")
    banned_patterns: list[str] = Field(default_factory=list, alias="BANNED_PATTERNS")

    # Soft identity
    fingerprint_salt: str = Field(
        default="change-this-in-production", min_length=8, alias="FINGERPRINT_SALT"
    )
    session_cookie_name: str = Field(default="s24_session", alias="SESSION_COOKIE_NAME")
    session_cookie_secure: bool = Field(default=False, alias="SESSION_COOKIE_SECURE")
    session_max_age_seconds: int = Field(
        default=7 * 24 * 60 * 60, ge=60, alias="SESSION_MAX_AGE_SECONDS"
    )

    # Content limits
    max_post_length: int = Field(default=1000, ge=1, alias="MAX_POST_LENGTH")
    max_reply_length: int = Field(default=500, ge=1, alias="MAX_REPLY_LENGTH")
    feed_max_limit: int = Field(default=100, ge=1, alias="FEED_MAX_LIMIT")

    # Moderator access to the moderation endpoints
    admin_token: str | None = Field(default=None, alias="ADMIN_TOKEN")

    # CORS configuration for web frontend access
    cors_origins: list[str] = Field(default=["*"], alias="CORS_ORIGINS")
    cors_allow_credentials: bool = Field(default=True, alias="CORS_ALLOW_CREDENTIALS")
    cors_allow_methods: list[str] = Field(
        default=["GET", "POST", "OPTIONS"],
        alias="CORS_ALLOW_METHODS",
    )
    cors_allow_headers: list[str] = Field(default=["*"], alias="CORS_ALLOW_HEADERS")

    model_config = SettingsConfigDict(
        env_file=".env",
        validate_assignment=True,
        extra="ignore",
        populate_by_name=True,
    )

    @model_validator(mode="after")
    def _check_ttl_bounds(self) -> "Settings":
        if not self.ttl_min_hours <= self.ttl_default_hours <= self.ttl_max_hours:
            raise ValueError(
                "TTL bounds must satisfy ttl_min_hours <= ttl_default_hours <= ttl_max_hours"
            )
        return self

    @property
    def database_url_sync(self) -> str:
        """Return a sync-compatible database URL for tooling.

        Converts asyncpg URLs to psycopg for synchronous database operations
        like Alembic migrations.
        """
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

    @property
    def cleanup_interval_seconds(self) -> float:
        """Return the sweep interval in seconds."""
        return self.cleanup_interval_minutes * 60.0


settings = Settings()  # type: ignore[call-arg]
