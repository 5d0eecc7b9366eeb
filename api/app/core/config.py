from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "Dropline API"
    env: str = "dev"
    database_url: str = Field(default="sqlite:///./dropline.db")
    admin_token: str = "dev-admin-token"
    source_platform: str = "shein"
    default_max_retries: int = 3
    token_ttl_days: int = 30
    max_error_entries: int = 10
    max_error_length: int = 300

    model_config = SettingsConfigDict(env_file=".env", env_prefix="DROPLINE_")


@lru_cache
def get_settings() -> Settings:
    return Settings()
