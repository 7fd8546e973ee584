"""Tests for settings validation and derived values."""

import pytest
from pydantic import ValidationError

from ephemera.core.settings import Settings


def test_defaults() -> None:
    settings = Settings(_env_file=None)
    assert settings.ttl_default_hours == 24
    assert settings.initial_reputation == 50
    assert settings.cleanup_strategy == "timer"
    assert settings.cleanup_interval_seconds == pytest.approx(300.0)


def test_environment_aliases(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("TTL_DEFAULT_HOURS", "12")
    monkeypatch.setenv("CLEANUP_STRATEGY", "lazy")
    monkeypatch.setenv("MAX_POSTS_PER_HOUR", "7")
    settings = Settings(_env_file=None)
    assert settings.ttl_default_hours == 12
    assert settings.cleanup_strategy == "lazy"
    assert settings.max_posts_per_hour == 7


def test_ttl_default_must_sit_inside_bounds() -> None:
    with pytest.raises(ValidationError):
        Settings(_env_file=None, ttl_min_hours=2, ttl_default_hours=1, ttl_max_hours=72)


def test_unknown_cleanup_strategy_rejected() -> None:
    with pytest.raises(ValidationError):
        Settings(_env_file=None, cleanup_strategy="cron")


def test_database_url_sync_converts_asyncpg() -> None:
    settings = Settings(
        _env_file=None,
        database_url="postgresql+asyncpg://user:pw@localhost/ephemera",
    )
    assert settings.database_url_sync == "postgresql+psycopg://user:pw@localhost/ephemera"


def test_testing_database_override() -> None:
    settings = Settings(
        _env_file=None,
        database_url="sqlite:///./prod.db",
        test_database_url="sqlite:///./test.db",
        use_testing_database=True,
    )
    assert settings.effective_database_url == "sqlite:///./test.db"
