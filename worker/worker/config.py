from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class WorkerSettings(BaseSettings):
    database_url: str = "sqlite:///./dropline.db"
    redis_url: str = "redis://localhost:6379/0"
    notifications_enabled: bool = True
    api_base_url: str = "http://localhost:8000"

    source_base_url: str = "https://www.shein.com"
    source_domain: str = "shein"
    cart_path: str = "/cart"

    poll_interval_seconds: float = 30.0
    lease_ttl_seconds: int = 600
    retry_backoff_seconds: float = 60.0
    retry_backoff_max_seconds: float = 3600.0

    navigation_timeout_seconds: float = 30.0
    action_timeout_seconds: float = 10.0
    settle_timeout_seconds: float = 8.0
    headless: bool = True
    browser_proxy_url: str | None = None
    browser_profile_dir: str | None = None

    max_products_per_batch: int = 50
    import_max_retries: int = 2
    log_level: str = "INFO"

    model_config = SettingsConfigDict(env_file=".env", env_prefix="DROPLINE_")


@lru_cache
def get_settings() -> WorkerSettings:
    return WorkerSettings()
