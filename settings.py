from functools import lru_cache
from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Cache
    cache_ttl_seconds: int = 3600
    cache_namespace: str = "scrape"

    # Timeouts (milliseconds, like the request options)
    default_timeout_ms: int = 30000
    max_timeout_ms: int = 60000
    retry_backoff_seconds: float = 1.0

    # Fixed-window rate limit per domain
    rate_limit_max_requests: int = 60
    rate_limit_window_ms: int = 60000

    # Storage
    store_backend: str = "memory"  # memory | file
    store_dir: str = ".cache/store"

    # Browser
    browser_backend: str = "playwright"  # playwright | static
    browser_headless: bool = True
    block_resources: bool = True
    default_user_agent: str = (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/114.0.0.0 Safari/537.36"
    )

    # URL validation
    allowed_protocols: List[str] = ["http", "https"]
    allowed_domains: List[str] = []
    blocked_domains: List[str] = []
    require_https: bool = False

    # App
    host: str = "0.0.0.0"
    port: int = 8000
    debug: bool = False
    log_level: str = "INFO"
    noisy_log_level: str = "WARNING"

    model_config = SettingsConfigDict(
        env_prefix="SCRAPER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


@lru_cache
def get_settings() -> Settings:
    return Settings()
