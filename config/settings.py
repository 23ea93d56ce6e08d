"""
config/settings.py
Environment-driven configuration for the GetLife API (pydantic-settings).
Values come from the process environment, then `.env`.
"""

from functools import lru_cache
from typing import List

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _split_csv(value: str) -> List[str]:
    return [part.strip() for part in value.split(",") if part.strip()]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ── Application / server ─────────────────────────────────
    APP_NAME: str = "GetLife Home Services"
    APP_ENV: str = "development"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    WORKERS: int = 4

    # ── Data stores ──────────────────────────────────────────
    DATABASE_URL: str
    DATABASE_POOL_SIZE: int = 20
    DATABASE_MAX_OVERFLOW: int = 40
    DATABASE_POOL_TIMEOUT: int = 30
    REDIS_URL: str = "redis://localhost:6379/0"
    REDIS_MAX_CONNECTIONS: int = 50

    # ── Tokens ───────────────────────────────────────────────
    JWT_SECRET_KEY: str
    JWT_ALGORITHM: str = "HS256"
    JWT_ACCESS_TOKEN_EXPIRE_MINUTES: int = 60
    JWT_REFRESH_TOKEN_EXPIRE_DAYS: int = 30

    # ── Identity documents (blob storage) ────────────────────
    STORAGE_URL: str = "http://localhost:54321/storage/v1"
    STORAGE_SERVICE_KEY: str = ""
    STORAGE_DOCUMENTS_BUCKET: str = "documents"
    STORAGE_TIMEOUT_SECONDS: float = 15.0
    DOCUMENT_MAX_BYTES: int = 5 * 1024 * 1024

    # ── HTTP edge ────────────────────────────────────────────
    ALLOWED_ORIGINS: str = "http://localhost:5173,http://localhost:3000"
    ALLOWED_HOSTS: str = "*"
    RATE_LIMIT_UNAUTH_PER_MINUTE: int = 20

    # ── Marketplace rules ────────────────────────────────────
    MITRA_COMMISSION_PERCENT: float = 20.0
    TOPUP_DENOMINATIONS: str = "50000,100000,200000,500000,1000000"
    MIN_PASSWORD_LENGTH: int = 6

    # ── First admin (both empty = disabled) ──────────────────
    BOOTSTRAP_ADMIN_EMAIL: str = ""
    BOOTSTRAP_ADMIN_PASSWORD: str = ""
    BOOTSTRAP_ADMIN_NAME: str = "Admin GetLife"

    @field_validator("MITRA_COMMISSION_PERCENT")
    @classmethod
    def validate_commission(cls, v: float) -> float:
        if not 0 <= v <= 100:
            raise ValueError("MITRA_COMMISSION_PERCENT must be between 0 and 100")
        return v

    @field_validator("TOPUP_DENOMINATIONS")
    @classmethod
    def validate_denominations(cls, v: str) -> str:
        for part in _split_csv(v):
            if not part.isdigit() or int(part) <= 0:
                raise ValueError(f"Invalid top-up denomination: {part!r}")
        return v

    @property
    def allowed_origins_list(self) -> List[str]:
        return _split_csv(self.ALLOWED_ORIGINS)

    @property
    def allowed_hosts_list(self) -> List[str]:
        return _split_csv(self.ALLOWED_HOSTS) or ["*"]

    @property
    def topup_denominations_list(self) -> List[int]:
        return [int(part) for part in _split_csv(self.TOPUP_DENOMINATIONS)]

    @property
    def is_production(self) -> bool:
        return self.APP_ENV == "production"

    @property
    def bootstrap_admin_enabled(self) -> bool:
        return bool(self.BOOTSTRAP_ADMIN_EMAIL and self.BOOTSTRAP_ADMIN_PASSWORD)


@lru_cache()
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
