"""
Environment-aware configuration.
Values come from the process environment, with a .env file loaded first when present.

Key material (ACCESS_TOKEN_PRIVATE_KEY / ACCESS_TOKEN_PUBLIC_KEY) is a PEM,
raw or base64-encoded.
"""
import os
from dotenv import load_dotenv
from datetime import timedelta

load_dotenv()  # Read .env if present

DEFAULT_REFRESH_SECRET = "dev-refresh-secret-change-me-0123456789abcdef"


class BaseConfig:
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret-key")  # Set a strong key in production
    DEBUG = False
    TESTING = False
    # CORS: in dev we usually allow '*', in prod supply a comma-separated list in env
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")
    APP_ENV = os.getenv("APP_ENV", "dev")
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///credential-service.db")
    SQL_ECHO = os.getenv("SQL_ECHO", "0").lower() in ("1", "true", "yes")

    JWT_ISSUER = os.getenv("JWT_ISSUER", "credential-service")
    # Access tokens: RS256
    ACCESS_TOKEN_PRIVATE_KEY = os.getenv("ACCESS_TOKEN_PRIVATE_KEY")
    ACCESS_TOKEN_PUBLIC_KEY = os.getenv("ACCESS_TOKEN_PUBLIC_KEY")
    ACCESS_TOKEN_EXPIRES = timedelta(minutes=int(os.getenv("ACCESS_TOKEN_EXPIRES_MINUTES", "15")))
    # Refresh tokens: HS256
    REFRESH_TOKEN_SECRET = os.getenv("REFRESH_TOKEN_SECRET", DEFAULT_REFRESH_SECRET)
    REFRESH_TOKEN_EXPIRES = timedelta(seconds=int(os.getenv("REFRESH_TOKEN_EXPIRES_SECONDS", "86400")))
    # Lifetime of the server-side refresh record, fixed when the family starts
    REFRESH_RECORD_TTL = timedelta(days=int(os.getenv("REFRESH_RECORD_TTL_DAYS", "1")))


class DevelopmentConfig(BaseConfig):
    DEBUG = True


class TestingConfig(BaseConfig):
    TESTING = True
    APP_ENV = "test"
    DATABASE_URL = "sqlite://"
    LOG_LEVEL = "WARNING"


class ProductionConfig(BaseConfig):
    DEBUG = False
    APP_ENV = "prod"
    # no wildcard default in prod; validate_config refuses "*"
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "")


def get_config(name: str | None):
    """
    Select config class.
    - If name is provided, choose by name.
    - Else choose based on APP_ENV (dev/test/prod).
    """
    env = (name or os.getenv("APP_ENV", "dev")).lower()
    if env in ["prod", "production"]:
        return ProductionConfig
    if env in ["test", "testing"]:
        return TestingConfig
    return DevelopmentConfig


def cors_origins(config) -> list:
    """CORS_ORIGINS as a list, blanks dropped."""
    raw = config.get("CORS_ORIGINS") or ""
    return [origin.strip() for origin in raw.split(",") if origin.strip()]


def validate_config(config) -> None:
    """Refuse to boot production with development secrets."""
    if config.get("APP_ENV") not in ("prod", "production"):
        return
    if config.get("REFRESH_TOKEN_SECRET") == DEFAULT_REFRESH_SECRET:
        raise RuntimeError("REFRESH_TOKEN_SECRET must be set in production")
    if not config.get("ACCESS_TOKEN_PRIVATE_KEY"):
        raise RuntimeError("ACCESS_TOKEN_PRIVATE_KEY must be set in production")
    if "*" in cors_origins(config):
        raise RuntimeError("CORS_ORIGINS must list explicit origins in production, not '*'")
