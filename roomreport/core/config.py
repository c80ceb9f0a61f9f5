# roomreport/core/config.py

import logging
import re
from datetime import timedelta
from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(h|m|s)")


class Settings(BaseSettings):
    """Application settings"""
    # Base App Config
    APP_NAME: str = "Room Report API"
    API_PREFIX: str = "/api"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # Server
    HOST: str = "0.0.0.0"  # reachable from other devices on the network
    PORT: int = 8080
    CERT_DIR: str = "certificates"

    # Database (SQLAlchemy URL)
    DATABASE_URL: str = "sqlite:///./roomreport.db"
    SEED_DEFAULTS: bool = True

    # JWT
    JWT_SECRET: str = "change-this-secret-in-production"
    JWT_EXPIRY: str = "24h"

    # Uploads
    STORAGE_BACKEND: str = "local"  # "local" or "r2"
    UPLOAD_DIR: str = "./uploads"
    MAX_FILE_SIZE: int = 1073741824  # 1GB

    # Cloudflare R2 (only used when STORAGE_BACKEND == "r2")
    R2_ENDPOINT_URL: str | None = None
    R2_ACCESS_KEY_ID: str | None = None
    R2_SECRET_ACCESS_KEY: str | None = None
    R2_BUCKET_NAME: str | None = None

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding='utf-8',
        extra="ignore",
    )

    @property
    def jwt_expiry(self) -> timedelta:
        return parse_duration(self.JWT_EXPIRY)


def parse_duration(value: str) -> timedelta:
    """
    Parse a Go-style duration such as "24h", "1h30m" or "90s".
    """
    value = value.strip()
    parts = _DURATION_PART.findall(value)
    if not parts or "".join(n + u for n, u in parts) != value:
        raise ValueError(f"Invalid duration: {value!r}")

    seconds = 0.0
    for number, unit in parts:
        seconds += float(number) * {"h": 3600, "m": 60, "s": 1}[unit]
    return timedelta(seconds=seconds)


@lru_cache()
def get_settings():
    return Settings()

settings = get_settings()
