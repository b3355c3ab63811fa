"""
Tests for app/core/config.py - Configuration and settings validation.
"""
import pytest

from app.core.config import Settings

SECURE_ACCESS = "a-very-secure-access-secret-that-is-long-enough-32chars"
SECURE_REFRESH = "a-very-secure-refresh-secret-that-is-long-enough-32chars"


def _production(**overrides) -> Settings:
    values = dict(
        _env_file=None,
        ENVIRONMENT="production",
        DEBUG=False,
        ACCESS_TOKEN_SECRET=SECURE_ACCESS,
        REFRESH_TOKEN_SECRET=SECURE_REFRESH,
        DATABASE_URL="postgresql+asyncpg://app:s3cure-db-pass@db:5432/webide",
        ALLOWED_ORIGINS="https://ide.example.com",
        BCRYPT_ROUNDS=12,
    )
    values.update(overrides)
    return Settings(**values)


class TestSettingsValidation:
    """Test configuration validation logic."""

    def test_development_mode_allows_default_secrets(self):
        settings = Settings(_env_file=None, ENVIRONMENT="development", DEBUG=True)

        assert settings.ENVIRONMENT == "development"
        assert settings.ACCESS_TOKEN_SECRET != settings.REFRESH_TOKEN_SECRET

    def test_valid_production_configuration(self):
        settings = _production()

        assert settings.is_production
        assert settings.ALLOWED_ORIGINS == ["https://ide.example.com"]

    def test_production_rejects_default_secrets(self):
        with pytest.raises(ValueError) as exc_info:
            _production(ACCESS_TOKEN_SECRET="changeme")

        assert "ACCESS_TOKEN_SECRET is insecure" in str(exc_info.value)

    def test_production_rejects_short_secret(self):
        with pytest.raises(ValueError) as exc_info:
            _production(REFRESH_TOKEN_SECRET="short-secret")

        assert "REFRESH_TOKEN_SECRET is insecure" in str(exc_info.value)

    def test_production_rejects_identical_secrets(self):
        with pytest.raises(ValueError) as exc_info:
            _production(REFRESH_TOKEN_SECRET=SECURE_ACCESS)

        assert "must be different" in str(exc_info.value)

    def test_production_rejects_debug(self):
        with pytest.raises(ValueError) as exc_info:
            _production(DEBUG=True)

        assert "DEBUG must be False" in str(exc_info.value)

    def test_production_rejects_low_bcrypt_rounds(self):
        with pytest.raises(ValueError) as exc_info:
            _production(BCRYPT_ROUNDS=4)

        assert "BCRYPT_ROUNDS" in str(exc_info.value)

    def test_production_rejects_localhost_origins(self):
        with pytest.raises(ValueError) as exc_info:
            _production(ALLOWED_ORIGINS="http://localhost:3000")

        assert "ALLOWED_ORIGINS" in str(exc_info.value)

    def test_production_rejects_insecure_db_password(self):
        with pytest.raises(ValueError) as exc_info:
            _production(DATABASE_URL="postgresql+asyncpg://postgres:postgres@db:5432/webide")

        assert "insecure password" in str(exc_info.value)

    def test_production_reports_all_errors_at_once(self):
        with pytest.raises(ValueError) as exc_info:
            _production(DEBUG=True, BCRYPT_ROUNDS=4)

        message = str(exc_info.value)
        assert "DEBUG" in message
        assert "BCRYPT_ROUNDS" in message


class TestSettingsDefaults:
    def test_database_url_built_from_components(self, monkeypatch):
        monkeypatch.delenv("DATABASE_URL", raising=False)

        settings = Settings(
            _env_file=None,
            POSTGRES_USER="app",
            POSTGRES_PASSWORD="pw",
            POSTGRES_SERVER="dbhost",
            POSTGRES_DB="ide",
        )

        assert settings.DATABASE_URL == "postgresql+asyncpg://app:pw@dbhost:5432/ide"

    def test_secret_aliases(self, monkeypatch):
        monkeypatch.setenv("JWT_SECRET_KEY", "from-legacy-access-variable")
        monkeypatch.setenv("JWT_REFRESH_SECRET_KEY", "from-legacy-refresh-variable")

        settings = Settings(_env_file=None)

        assert settings.ACCESS_TOKEN_SECRET == "from-legacy-access-variable"
        assert settings.REFRESH_TOKEN_SECRET == "from-legacy-refresh-variable"

    def test_token_lifetimes(self):
        settings = Settings(_env_file=None, ACCESS_TOKEN_EXPIRE_MINUTES=15, REFRESH_TOKEN_EXPIRE_DAYS=7)

        assert settings.access_token_expires_seconds == 900
        assert settings.refresh_token_expires_seconds == 7 * 86400

    def test_origins_split_from_comma_separated_string(self):
        settings = Settings(_env_file=None, ALLOWED_ORIGINS="https://a.example.com, https://b.example.com")

        assert settings.ALLOWED_ORIGINS == ["https://a.example.com", "https://b.example.com"]
