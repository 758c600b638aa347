from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Any, List
import json


def parse_cors_origins(v: Any) -> List[str]:
    """Parse CORS origins from string or list"""
    if isinstance(v, list):
        return v
    if isinstance(v, str):
        # Try JSON parsing first
        if v.startswith('['):
            try:
                return json.loads(v)
            except json.JSONDecodeError:
                pass
        # Fall back to comma-separated
        return [origin.strip() for origin in v.split(',') if origin.strip()]
    return []


class Settings(BaseSettings):
    """Application settings - all configurable via environment variables"""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # ==========================================
    # Application
    # ==========================================
    APP_NAME: str = "Donation Portal API"
    ENVIRONMENT: str = "development"
    DEBUG: bool = True

    SERVER_HOST: str = "0.0.0.0"
    SERVER_PORT: int = 8000

    # ==========================================
    # Database
    # ==========================================
    DATABASE_URL: str = "mongodb://localhost:27017"
    DATABASE_NAME: str = "donations"

    # CORS (stored as comma-separated string, parsed to list)
    CORS_ORIGINS_STR: str = "*"

    @property
    def CORS_ORIGINS(self) -> List[str]:
        return parse_cors_origins(self.CORS_ORIGINS_STR)

    # ==========================================
    # Auth
    # ==========================================
    JWT_SECRET_KEY: str
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24

    OTP_TTL_SECONDS: int = 300
    OTP_RESEND_INTERVAL_SECONDS: int = 30
    OTP_MAX_ATTEMPTS: int = 5

    # ==========================================
    # Media uploads
    # ==========================================
    MEDIA_ROOT: str = "media"
    MEDIA_URL_PREFIX: str = "/media"
    MAX_UPLOAD_BYTES: int = 50 * 1024 * 1024

    # ==========================================
    # Receipts
    # ==========================================
    RECEIPTS_PAGE_SIZE: int = 6
    RECEIPTS_DEFAULT_LIMIT: int = 10

    # ==========================================
    # API client
    # ==========================================
    API_BASE_URL: str = "http://localhost:8000"
    CLIENT_MAX_ATTEMPTS: int = 3
    CLIENT_BACKOFF_SECONDS: float = 1.0
    CLIENT_TIMEOUT_SECONDS: float = 15.0

    # ==========================================
    # Logging
    # ==========================================
    LOG_LEVEL: str = "INFO"
    LOG_FILE: str = ""


# Create settings instance
settings = Settings()
