# session_auth/core/config.py
import logging
from typing import Literal
from pathlib import Path

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings

BASE_DIR = Path(__file__).resolve().parent.parent.parent
ENV_FILE_PATH = BASE_DIR / ".env"

MIN_SECRET_KEY_BYTES = 32


class Settings(BaseSettings):

    # Access Token (JWT)
    SECRET_KEY: str
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 15

    # Refresh Token (opaque, hashed at rest)
    REFRESH_TOKEN_EXPIRE_DAYS: int = 7
    REFRESH_TOKEN_BYTES: int = 64

    # OIDC-style claims
    JWT_ISSUER: str = "urn:session-auth:api"
    JWT_AUDIENCE: str = "urn:session-auth:client"

    # Session store
    SESSION_STORE_BACKEND: Literal["memory", "database"] = "memory"
    DATABASE_URL: str | None = None

    # Cleanup sweep
    CLEANUP_INTERVAL_SECONDS: int = 3600
    CLOCK_SKEW_SECONDS: int = 300

    # Internal API key for /mgmt
    INTERNAL_API_KEY: str

    # Refresh cookie transport
    REFRESH_COOKIE_NAME: str = "refresh_token"
    REFRESH_COOKIE_SECURE: bool = True

    # Rate limiting / CORS
    RATE_LIMIT_DEFAULT: str = "10/minute"
    RATE_LIMIT_ENABLED: bool = True
    CORS_ORIGINS: list[str] = [
        "http://localhost:5173",
        "http://localhost:3000",
        "http://localhost:8000",
    ]

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = False

    @field_validator("SECRET_KEY")
    @classmethod
    def validate_secret_key(cls, v: str) -> str:
        if len(v.encode("utf-8")) < MIN_SECRET_KEY_BYTES:
            raise ValueError(f"SECRET_KEY must be at least {MIN_SECRET_KEY_BYTES} bytes")
        return v

    @field_validator("REFRESH_TOKEN_BYTES")
    @classmethod
    def validate_refresh_bytes(cls, v: int) -> int:
        # 32 bytes = 256 bits of entropy
        if v < 32:
            raise ValueError("REFRESH_TOKEN_BYTES must be at least 32")
        return v

    @field_validator("CLOCK_SKEW_SECONDS")
    @classmethod
    def validate_clock_skew(cls, v: int) -> int:
        if v < 0:
            raise ValueError("CLOCK_SKEW_SECONDS must not be negative")
        return v

    @model_validator(mode="after")
    def validate_backend(self) -> "Settings":
        if self.SESSION_STORE_BACKEND == "database" and not self.DATABASE_URL:
            raise ValueError("DATABASE_URL is required when SESSION_STORE_BACKEND=database")
        return self

    @property
    def access_token_ttl_seconds(self) -> int:
        return self.ACCESS_TOKEN_EXPIRE_MINUTES * 60

    @property
    def refresh_token_ttl_seconds(self) -> int:
        return self.REFRESH_TOKEN_EXPIRE_DAYS * 24 * 60 * 60

    class Config:
        case_sensitive = True
        env_file = ENV_FILE_PATH
        env_file_encoding = 'utf-8'

try:
    settings = Settings()
except Exception as e:
    logging.error(f"FATAL: could not load 'settings' from environment / {ENV_FILE_PATH}: {e}")
    raise e
