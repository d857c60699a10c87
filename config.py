"""
Application configuration — environment-aware settings.

All environment variables are documented here. A local .env file is loaded
through python-dotenv when present.

BaseConfig and its subclasses configure the Flask API server; ClientConfig
configures the offline client core (local store, bundle, sync endpoint).
"""

from __future__ import annotations

import os
import warnings
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

BASE_DIR = Path(__file__).parent

load_dotenv(BASE_DIR / ".env")


class BaseConfig:
    # Core Flask
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-key-change-in-production")
    # Server database (SQLite file)
    DATABASE = os.environ.get("DATABASE_URL", str(BASE_DIR / "cloudprep.db"))

    # Bearer tokens
    JWT_SECRET = os.environ.get("JWT_SECRET", "dev-jwt-secret-change-me")
    JWT_ALGORITHM = os.environ.get("JWT_ALGORITHM", "HS256")
    JWT_TTL_MINUTES = int(os.environ.get("JWT_TTL_MINUTES", "10080"))

    # Logging
    LOG_FORMAT = os.environ.get("LOG_FORMAT", "text")  # "json" or "text"
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Durable storage for completed attempts
    CLOUD_STORAGE_BACKEND = os.environ.get("CLOUD_STORAGE_BACKEND", "log")  # "log" or "filesystem"
    CLOUD_STORAGE_DIR = os.environ.get("CLOUD_STORAGE_DIR", str(BASE_DIR / "cloud_archive"))

    # Cloud sync pipeline
    SYNC_BATCH_SIZE = int(os.environ.get("SYNC_BATCH_SIZE", "100"))
    SYNC_CONCURRENCY = int(os.environ.get("SYNC_CONCURRENCY", "10"))
    SYNC_MAX_RETRIES = int(os.environ.get("SYNC_MAX_RETRIES", "12"))
    SYNC_RETRY_BASE_DELAY_MS = int(os.environ.get("SYNC_RETRY_BASE_DELAY_MS", "5000"))
    SYNC_RETENTION_DAYS = int(os.environ.get("SYNC_RETENTION_DAYS", "30"))
    SCHEDULER_ENABLED = os.environ.get("SCHEDULER_ENABLED", "1") == "1"

    # Question feed
    QUESTIONS_DEFAULT_LIMIT = 100
    QUESTIONS_MAX_LIMIT = 500

    # Rate limiting (in-memory unless a storage URI is given)
    RATELIMIT_STORAGE_URI = os.environ.get("RATELIMIT_STORAGE_URI", "memory://")
    RATELIMIT_DEFAULT = os.environ.get("RATELIMIT_DEFAULT", "600 per hour")


class DevelopmentConfig(BaseConfig):
    DEBUG = True
    LOG_FORMAT = os.environ.get("LOG_FORMAT", "text")


class ProductionConfig(BaseConfig):
    DEBUG = False
    LOG_FORMAT = os.environ.get("LOG_FORMAT", "json")

    @classmethod
    def validate(cls):
        """Fail fast on missing or insecure configuration in production."""
        errors: list[str] = []

        if cls.SECRET_KEY in ("dev-key-change-in-production", ""):
            errors.append("SECRET_KEY must be set to a secure value in production.")
        if cls.JWT_SECRET in ("dev-jwt-secret-change-me", ""):
            errors.append("JWT_SECRET must be set to a secure value in production.")

        if cls.CLOUD_STORAGE_BACKEND == "log":
            warnings.warn("CLOUD_STORAGE_BACKEND is 'log'; completed attempts are not archived.")

        if errors:
            raise RuntimeError(
                "Production configuration errors:\n" + "\n".join(f"  - {e}" for e in errors)
            )


class TestingConfig(BaseConfig):
    TESTING = True
    SCHEDULER_ENABLED = False
    SYNC_RETRY_BASE_DELAY_MS = 0


config_by_name = {
    "development": DevelopmentConfig,
    "production": ProductionConfig,
    "testing": TestingConfig,
}


@dataclass
class ClientConfig:
    """Settings for the offline client core."""

    api_base_url: str = "http://localhost:5001"
    api_token: str = ""
    exam_type_id: str = "aws-ccp"
    local_db_path: str = str(BASE_DIR / "cloudprep_local.db")
    bundle_path: str = str(BASE_DIR / "bundles" / "aws-ccp-bundle.json")
    sync_page_size: int = 100
    http_timeout_seconds: float = 15.0
    timer_persist_interval_ms: int = 30_000
    log_format: str = "text"
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> ClientConfig:
        defaults = cls()
        return cls(
            api_base_url=os.environ.get("API_BASE_URL", defaults.api_base_url),
            api_token=os.environ.get("API_TOKEN", defaults.api_token),
            exam_type_id=os.environ.get("EXAM_TYPE_ID", defaults.exam_type_id),
            local_db_path=os.environ.get("LOCAL_DB_PATH", defaults.local_db_path),
            bundle_path=os.environ.get("BUNDLE_PATH", defaults.bundle_path),
            sync_page_size=int(os.environ.get("SYNC_PAGE_SIZE", defaults.sync_page_size)),
            http_timeout_seconds=float(os.environ.get("HTTP_TIMEOUT_SECONDS", defaults.http_timeout_seconds)),
            timer_persist_interval_ms=int(
                os.environ.get("TIMER_PERSIST_INTERVAL_MS", defaults.timer_persist_interval_ms)
            ),
            log_format=os.environ.get("LOG_FORMAT", defaults.log_format),
            log_level=os.environ.get("LOG_LEVEL", defaults.log_level),
        )
