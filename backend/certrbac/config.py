"""
Application Configuration — Environment & Settings
Centralizes all config from .env with Pydantic Settings for validation.
"""
from pathlib import Path
from functools import lru_cache
from pydantic_settings import BaseSettings

# Resolve paths relative to backend/ directory
BASE_DIR = Path(__file__).resolve().parent.parent


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # --- Core ---
    APP_NAME: str = "Certificate Protection System"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    APP_BASE_URL: str = "http://localhost:3000"

    # --- Database ---
    DATABASE_URL: str = f"sqlite:///{BASE_DIR / 'data' / 'certificates.db'}"

    # --- Tokens ---
    JWT_SECRET: str = "cert-rbac-access-secret-change-in-production"
    JWT_REFRESH_SECRET: str = "cert-rbac-refresh-secret-change-in-production"
    JWT_ALGORITHM: str = "HS256"
    JWT_ACCESS_EXPIRES_MINUTES: int = 15
    JWT_REFRESH_EXPIRES_DAYS: int = 7
    JWT_ISSUER: str = "certificate-rbac-system"
    JWT_AUDIENCE: str = "certificate-rbac-users"
    JWT_REFRESH_AUDIENCE: str = "certificate-rbac-refresh"

    # --- Certificate Signing ---
    CERT_SIGNING_SECRET: str = "cert-signing-secret-change-in-production"

    # --- Account Lockout ---
    MAX_LOGIN_ATTEMPTS: int = 5
    LOCK_TIME_MINUTES: int = 120

    # --- HTTP ---
    CORS_ORIGINS: list[str] = ["http://localhost:3000", "http://localhost:5173"]

    # --- Logging ---
    LOG_DIR: str = str(BASE_DIR / "logs")
    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = str(BASE_DIR / ".env")
        env_file_encoding = "utf-8"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    """Cached settings singleton."""
    return Settings()
