"""
Configuration settings for the scam listing cache service.

Uses Pydantic Settings to load environment variables for the database, the HTTP
front, the refresh/PR/pull/price timers, the snapshot producer and the upstream
GitHub repository. Intervals are configured in milliseconds (mirroring the
upstream config file) and exposed in seconds for the scheduler.
"""
from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Database
    db_host: str = Field("localhost", alias="DB_HOST")
    db_port: int = Field(5432, alias="DB_PORT")
    db_user: str = Field("postgres", alias="DB_USER")
    db_password: str = Field("postgres", alias="DB_PASSWORD")
    db_name: str = Field("scamcache", alias="DB_NAME")
    db_pool_min_size: int = Field(1, alias="DB_POOL_MIN_SIZE")
    db_pool_max_size: int = Field(5, alias="DB_POOL_MAX_SIZE")
    db_statement_timeout_ms: int = Field(30_000, alias="DB_STATEMENT_TIMEOUT_MS")

    # Application
    app_env: str = Field("development", alias="APP_ENV")
    log_level: str = Field("INFO", alias="LOG_LEVEL")
    log_json: bool = Field(False, alias="LOG_JSON")
    host: str = Field("127.0.0.1", alias="HOST")
    port: int = Field(5111, alias="PORT")

    # Timers
    cache_renew_check_ms: int = Field(3_600_000, alias="CACHE_RENEW_CHECK_MS")
    startup_delay_ms: int = Field(100, alias="STARTUP_DELAY_MS")
    auto_pr_interval_ms: int = Field(3_600_000, alias="AUTO_PR_INTERVAL_MS")
    auto_pull_enabled: bool = Field(False, alias="AUTO_PULL_ENABLED")
    auto_pull_interval_ms: int = Field(3_600_000, alias="AUTO_PULL_INTERVAL_MS")
    price_lookup_interval_ms: int = Field(0, alias="PRICE_LOOKUP_INTERVAL_MS")

    # Snapshot producer
    probe_timeout_seconds: float = Field(10.0, alias="PROBE_TIMEOUT_SECONDS")
    probe_concurrency: int = Field(20, alias="PROBE_CONCURRENCY")

    # Local data / upstream repository
    data_dir: str = Field("data", alias="DATA_DIR")
    data_file: str = Field("entries.json", alias="DATA_FILE")
    github_token: Optional[str] = Field(None, alias="GITHUB_TOKEN")
    github_api_url: str = Field("https://api.github.com", alias="GITHUB_API_URL")
    github_raw_url: str = Field("https://raw.githubusercontent.com", alias="GITHUB_RAW_URL")
    github_owner: str = Field("scamcache", alias="GITHUB_OWNER")
    github_repo: str = Field("blacklist", alias="GITHUB_REPO")
    github_branch: str = Field("master", alias="GITHUB_BRANCH")
    github_data_path: str = Field("data/entries.json", alias="GITHUB_DATA_PATH")

    # Price lookup
    price_api_url: str = Field(
        "https://min-api.cryptocompare.com/data/pricemulti", alias="PRICE_API_URL"
    )
    price_symbols: str = Field("BTC,ETH,ETC,LTC", alias="PRICE_SYMBOLS")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    @property
    def dsn(self) -> str:
        return (
            f"postgresql://{self.db_user}:{self.db_password}"
            f"@{self.db_host}:{self.db_port}/{self.db_name}"
        )

    @property
    def data_path(self) -> Path:
        return Path(self.data_dir) / self.data_file

    @property
    def symbols(self) -> List[str]:
        return [s.strip().upper() for s in self.price_symbols.split(",") if s.strip()]

    @property
    def cache_renew_check_seconds(self) -> float:
        return self.cache_renew_check_ms / 1000

    @property
    def startup_delay_seconds(self) -> float:
        return self.startup_delay_ms / 1000

    @property
    def auto_pr_interval_seconds(self) -> float:
        return self.auto_pr_interval_ms / 1000

    @property
    def auto_pull_interval_seconds(self) -> float:
        return self.auto_pull_interval_ms / 1000

    @property
    def price_lookup_interval_seconds(self) -> float:
        return self.price_lookup_interval_ms / 1000


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Retrieve a cached instance of Settings to avoid repeated env parsing.
    """
    return Settings()


__all__ = ["Settings", "get_settings"]
