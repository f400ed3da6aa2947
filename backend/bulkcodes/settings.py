from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    SURECART_API_BASE_URL: str = "https://api.surecart.com"
    SURECART_API_KEY: str = ""
    SURECART_TIMEOUT_SECONDS: float = 30.0

    REDIS_URL: str = "redis://localhost:6379/0"
    SECRET_KEY: str = "dev-change-me"
    LOG_LEVEL: str = "INFO"

    # Admin API guard; empty disables the header check (local use only)
    ADMIN_TOKEN: str = ""

    # CSV output
    EXPORT_DIR: str = "exports"
    DOWNLOAD_LINK_MAX_AGE_SECONDS: int = 60 * 60 * 24

    PRODUCTS_CACHE_TTL_SECONDS: int = 60 * 15
    COUPONS_CACHE_TTL_SECONDS: int = 60 * 10

    # CORS
    CORS_ALLOW_ORIGINS: list[str] = ["http://localhost:3000"]

settings = Settings()
