"""Tests for application configuration."""
import pytest
from pydantic import ValidationError

from core.config import MIN_JWT_SECRET_LENGTH, Settings

SECRET = "x" * MIN_JWT_SECRET_LENGTH


class TestCorsOriginsParsing:
    """Tests for CORS origins parsing from environment variables."""

    def test_parse_single_origin_string(self) -> None:
        """Single origin string is parsed correctly."""
        settings = Settings(
            _env_file=None,
            database_url="sqlite+aiosqlite:///:memory:",
            jwt_secret=SECRET,
            CORS_ORIGINS="http://localhost:4200",
        )
        assert settings.cors_origins == ["http://localhost:4200"]

    def test_parse_origins_with_whitespace_and_trailing_comma(self) -> None:
        """Whitespace is stripped and empty entries are dropped."""
        settings = Settings(
            _env_file=None,
            database_url="sqlite+aiosqlite:///:memory:",
            jwt_secret=SECRET,
            CORS_ORIGINS="  http://localhost:4200 , https://example.com ,",
        )
        assert settings.cors_origins == [
            "http://localhost:4200",
            "https://example.com",
        ]

    def test_parse_empty_string(self) -> None:
        """Empty string results in empty list."""
        settings = Settings(
            _env_file=None,
            database_url="sqlite+aiosqlite:///:memory:",
            jwt_secret=SECRET,
            CORS_ORIGINS="",
        )
        assert settings.cors_origins == []

    def test_default_cors_origins(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Without CORS_ORIGINS the local frontend is allowed."""
        monkeypatch.delenv("CORS_ORIGINS", raising=False)
        settings = Settings(
            _env_file=None,
            database_url="sqlite+aiosqlite:///:memory:",
            jwt_secret=SECRET,
        )
        assert settings.cors_origins == ["http://localhost:4200"]


class TestJwtSecretValidation:
    """Tests for the signing secret strength check."""

    def test__short_secret__rejected(self) -> None:
        """A secret shorter than the minimum fails validation."""
        with pytest.raises(ValidationError, match="JWT_SECRET must be at least"):
            Settings(
                _env_file=None,
                database_url="sqlite+aiosqlite:///:memory:",
                jwt_secret="too-short",
            )

    def test__minimum_length_secret__accepted(self) -> None:
        """A secret of exactly the minimum length is accepted."""
        settings = Settings(
            _env_file=None,
            database_url="sqlite+aiosqlite:///:memory:",
            jwt_secret=SECRET,
        )
        assert settings.jwt_secret == SECRET


class TestDefaults:
    """Tests for default values and environment overrides."""

    def test__defaults(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Unset options fall back to their documented defaults."""
        for name in (
            "JWT_ALGORITHM",
            "ACCESS_TOKEN_EXPIRE_MINUTES",
            "PASSWORD_RESET_TTL_MINUTES",
            "METADATA_FETCH_TIMEOUT",
            "DEFAULT_PAGE_SIZE",
            "MAX_PAGE_SIZE",
        ):
            monkeypatch.delenv(name, raising=False)
        settings = Settings(
            _env_file=None,
            database_url="sqlite+aiosqlite:///:memory:",
            jwt_secret=SECRET,
        )
        assert settings.jwt_algorithm == "HS256"
        assert settings.access_token_expire_minutes == 1440
        assert settings.password_reset_ttl_minutes == 15
        assert settings.metadata_fetch_timeout == 10.0
        assert settings.default_page_size == 10
        assert settings.max_page_size == 100

    def test__env_overrides(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Options are read from their environment variables."""
        monkeypatch.setenv("MAX_PAGE_SIZE", "25")
        monkeypatch.setenv("METADATA_FETCH_TIMEOUT", "2.5")
        settings = Settings(
            _env_file=None,
            database_url="sqlite+aiosqlite:///:memory:",
            jwt_secret=SECRET,
        )
        assert settings.max_page_size == 25
        assert settings.metadata_fetch_timeout == 2.5
