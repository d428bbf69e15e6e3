"""
Tests for environment configuration.
"""

from datetime import timedelta
from pathlib import Path

import pytest

from staffgate.config import Settings
from staffgate.errors import ConfigurationError


class TestFromEnv:
    """Test reading settings from the environment."""

    def test_missing_secret(self):
        with pytest.raises(ConfigurationError) as exc_info:
            Settings.from_env({})
        assert "JWT_SECRET" in exc_info.value.message

    def test_blank_secret(self):
        with pytest.raises(ConfigurationError):
            Settings.from_env({"JWT_SECRET": "   "})

    def test_defaults(self):
        settings = Settings.from_env({"JWT_SECRET": "s3cret"})

        assert settings.jwt_algorithm == "HS256"
        assert settings.token_ttl == timedelta(days=7)
        assert settings.bcrypt_rounds == 12
        assert settings.lockout_threshold == 5
        assert settings.lockout_duration == timedelta(minutes=30)
        assert settings.database_path == Path("data/staff.db")
        assert settings.live_scope_resolution is False
        assert settings.port == 3000

    def test_overrides(self):
        settings = Settings.from_env({
            "JWT_SECRET": "s3cret",
            "TOKEN_TTL_MINUTES": "60",
            "LOCKOUT_THRESHOLD": "3",
            "LIVE_SCOPE_RESOLUTION": "true",
            "DATABASE_PATH": "/tmp/other.db",
            "LOG_FORMAT": "TEXT",
            "PORT": "",
        })

        assert settings.token_ttl == timedelta(hours=1)
        assert settings.lockout_threshold == 3
        assert settings.live_scope_resolution is True
        assert settings.database_path == Path("/tmp/other.db")
        assert settings.log_format == "text"
        assert settings.port == 3000

    def test_invalid_value(self):
        with pytest.raises(ConfigurationError) as exc_info:
            Settings.from_env({"JWT_SECRET": "s3cret", "BCRYPT_ROUNDS": "abc"})
        assert "bcrypt_rounds" in exc_info.value.message

    def test_pool_bounds(self):
        with pytest.raises(ConfigurationError):
            Settings.from_env({
                "JWT_SECRET": "s3cret",
                "DATABASE_POOL_MIN": "5",
                "DATABASE_POOL_MAX": "2",
            })

    def test_unknown_log_format(self):
        with pytest.raises(ConfigurationError):
            Settings.from_env({"JWT_SECRET": "s3cret", "LOG_FORMAT": "xml"})

    def test_secret_hidden_from_repr(self):
        assert "s3cret" not in repr(Settings.from_env({"JWT_SECRET": "s3cret"}))

    def test_pool_min_must_hold_a_connection(self):
        with pytest.raises(ConfigurationError):
            Settings.from_env({"JWT_SECRET": "s3cret", "DATABASE_POOL_MIN": "0"})


class TestFrontDoorSettings:
    """Test rate limit and CORS settings."""

    def test_defaults(self):
        settings = Settings.from_env({"JWT_SECRET": "s3cret"})

        assert settings.rate_limit_window_ms == 60_000
        assert settings.rate_limit_window_seconds == 60
        assert settings.rate_limit_max_requests == 100
        assert settings.cors_origins == ["http://localhost:3000"]
        assert settings.cors_credentials is False

    def test_overrides(self):
        settings = Settings.from_env({
            "JWT_SECRET": "s3cret",
            "RATE_LIMIT_WINDOW": "1500",
            "RATE_LIMIT_MAX_REQUESTS": "5",
            "CORS_ORIGINS": "https://admin.example.com, https://ops.example.com,",
            "CORS_CREDENTIALS": "true",
        })

        assert settings.rate_limit_window_seconds == 2
        assert settings.rate_limit_max_requests == 5
        assert settings.cors_origins == ["https://admin.example.com", "https://ops.example.com"]
        assert settings.cors_credentials is True

    def test_window_too_short(self):
        with pytest.raises(ConfigurationError):
            Settings.from_env({"JWT_SECRET": "s3cret", "RATE_LIMIT_WINDOW": "10"})
