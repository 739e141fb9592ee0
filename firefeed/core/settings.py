from __future__ import annotations

from typing import List, Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_PROD_ORIGINS = (
    "https://wfca.com",
    "https://www.wfca.com",
    "https://dailydispatch.com",
    "https://www.dailydispatch.com",
    "https://fire-map.wfca.com",
)

DEFAULT_DEV_ORIGINS = (
    "http://localhost:3000",
    "http://localhost:8000",
    "http://localhost:8080",
    "http://localhost:8888",
)


def _split_csv(raw: str | None) -> list[str]:
    if not raw:
        return []
    return [p.strip() for p in raw.split(",") if p.strip()]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=None, extra="ignore")

    environment: str = Field(default="development", alias="ENVIRONMENT")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # ──────────────────────────────────────────────────────────────
    # Fire data source: Postgres+PostGIS (production)
    # FIRE_DATABASE_URL takes priority over the discrete WFCA_PG_* vars.
    # ──────────────────────────────────────────────────────────────

    fire_database_url: str | None = Field(default=None, alias="FIRE_DATABASE_URL")
    pg_host: str | None = Field(default=None, alias="WFCA_PG_HOST")
    pg_port: int = Field(default=5432, alias="WFCA_PG_PORT")
    pg_name: str | None = Field(default=None, alias="WFCA_PG_NAME")
    pg_user: str | None = Field(default=None, alias="WFCA_PG_USER")
    pg_password: str | None = Field(default=None, alias="WFCA_PG_PASS")

    fire_db_pool_min: int = Field(default=1, alias="FIRE_DB_POOL_MIN")
    fire_db_pool_max: int = Field(default=5, alias="FIRE_DB_POOL_MAX")
    fire_db_connect_timeout_s: int = Field(default=5, alias="FIRE_DB_CONNECT_TIMEOUT_S")
    fire_db_statement_timeout_ms: int = Field(default=10_000, alias="FIRE_DB_STATEMENT_TIMEOUT_MS")

    # Fire data source: SQLite fallback (local dev, see scripts/seed_dev_fires.py)
    fire_db_path: str = Field(default="firefeed/data/fires_dev.db", alias="FIRE_DB_PATH")

    # Query window
    fire_window_days: int = Field(default=7, alias="FIRE_WINDOW_DAYS")
    fire_min_acres: float = Field(default=1.0, alias="FIRE_MIN_ACRES")

    # ──────────────────────────────────────────────────────────────
    # Response cache
    # ──────────────────────────────────────────────────────────────

    cache_backend: Literal["memory", "file", "sqlite"] = Field(default="file", alias="CACHE_BACKEND")
    cache_dir: str = Field(default="firefeed/data/cache", alias="CACHE_DIR")
    cache_db_path: str = Field(default="firefeed/data/firefeed_cache.db", alias="CACHE_DB_PATH")
    cache_ttl_seconds: int = Field(default=300, alias="CACHE_TTL_SECONDS")  # 5 min
    cache_sweep_max_age_s: int = Field(default=3600, alias="CACHE_SWEEP_MAX_AGE_S")
    cache_sweep_probability: float = Field(default=0.01, alias="CACHE_SWEEP_PROBABILITY")

    # ──────────────────────────────────────────────────────────────
    # CORS: comma-separated allow-lists. Dev origins only apply in development.
    # ──────────────────────────────────────────────────────────────

    cors_origins_prod: str | None = Field(default=None, alias="CORS_ORIGINS_PROD")
    cors_origins_dev: str | None = Field(default=None, alias="CORS_ORIGINS_DEV")

    # Fire Map deep links
    fire_map_url: str = Field(default="https://fire-map.wfca.com", alias="FIRE_MAP_URL")

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def has_postgres(self) -> bool:
        return bool(self.fire_database_url or (self.pg_host and self.pg_name and self.pg_user))

    @property
    def allowed_origins(self) -> List[str]:
        origins = _split_csv(self.cors_origins_prod) or list(DEFAULT_PROD_ORIGINS)
        if self.environment == "development":
            origins += _split_csv(self.cors_origins_dev) or list(DEFAULT_DEV_ORIGINS)
        # de-dupe, keep order
        return list(dict.fromkeys(origins))


settings = Settings()
