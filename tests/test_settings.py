"""
Tests for environment-driven settings.
"""
from firefeed.core.settings import DEFAULT_DEV_ORIGINS, DEFAULT_PROD_ORIGINS, Settings


class TestAllowedOrigins:
    """CORS allow-list assembly."""

    def test_production_defaults(self):
        s = Settings(ENVIRONMENT="production")
        assert s.allowed_origins == list(DEFAULT_PROD_ORIGINS)
        assert s.is_production

    def test_development_adds_dev_origins(self):
        s = Settings(ENVIRONMENT="development")
        assert s.allowed_origins == list(DEFAULT_PROD_ORIGINS) + list(DEFAULT_DEV_ORIGINS)

    def test_csv_overrides_and_dedupes(self):
        s = Settings(
            ENVIRONMENT="development",
            CORS_ORIGINS_PROD="https://a.test, https://b.test",
            CORS_ORIGINS_DEV="http://localhost:3000,https://a.test",
        )
        assert s.allowed_origins == ["https://a.test", "https://b.test", "http://localhost:3000"]

    def test_staging_gets_no_dev_origins(self):
        s = Settings(ENVIRONMENT="staging", CORS_ORIGINS_DEV="http://localhost:3000")
        assert "http://localhost:3000" not in s.allowed_origins


class TestDataSourceSettings:
    def test_postgres_from_url(self):
        assert Settings(FIRE_DATABASE_URL="postgresql://reader@db/wfca").has_postgres

    def test_postgres_needs_host_name_and_user(self):
        assert not Settings(WFCA_PG_HOST="db", WFCA_PG_NAME="wfca").has_postgres
        assert Settings(WFCA_PG_HOST="db", WFCA_PG_NAME="wfca", WFCA_PG_USER="reader").has_postgres

    def test_defaults(self):
        s = Settings()
        assert s.cache_ttl_seconds == 300
        assert s.fire_window_days == 7
        assert s.fire_min_acres == 1.0
