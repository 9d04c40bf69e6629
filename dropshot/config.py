from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):
    database_url: str = "sqlite:///./dropshot.db"
    redis_url: str = "redis://localhost:6379/0"
    environment: str = "development"
    log_level: str = "INFO"

    admin_token_digest: str = ""

    geo_db: Optional[str] = None
    geo_cache_enabled: bool = False
    geo_cache_ttl: int = 3600

    ipcat: dict[str, str] = {}
    cloudflare_enabled: bool = False

    upload_directory: str = "."
    upload_permissions: int = 0o600
    upload_max_size: int = 1000000

    self_destruct_enabled: bool = False
    self_destruct_keyword: str = "\U0001f4a3"
    self_destruct_files: list[str] = []

    redirect_levels: int = 128
    proxy_timeout: float = 30.0

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False
        extra = "ignore"


settings = Settings()
