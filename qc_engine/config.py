from pydantic_settings import BaseSettings
from pydantic import field_validator
from typing import Optional
from functools import lru_cache
import json


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # App Settings
    APP_NAME: str = "QC Inspection Engine"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./qc_engine.db"

    # Database Connection Pool Settings (ignored for SQLite)
    DB_POOL_SIZE: int = 10  # Base number of connections in pool
    DB_MAX_OVERFLOW: int = 20  # Extra connections allowed beyond pool_size
    DB_POOL_TIMEOUT: int = 30  # Seconds to wait for connection from pool
    DB_POOL_RECYCLE: int = 1800  # Recycle connections after 30 minutes

    # CORS - accepts JSON string, comma-separated, or list
    CORS_ORIGINS: list[str] = ["*"]

    # Inspection workflow
    QC_MAX_PENDING_PER_INSPECTOR: int = 10  # Assignment ceiling per inspector

    # Alerts
    QC_SLA_BREACH_HOURS: int = 24  # PENDING inspections older than this breach SLA
    QC_INSPECTOR_OVERLOAD_THRESHOLD: int = 10  # Alert when pending count exceeds this

    # Certificates
    QC_QUALITY_CERTIFICATE_VALIDITY_DAYS: int = 365
    QC_DEFAULT_CERTIFICATE_VALIDITY_DAYS: int = 30

    # Dashboard
    QC_DASHBOARD_TREND_DAYS: int = 7
    QC_AVERAGE_TIME_SAMPLE_SIZE: int = 100  # Completed inspections used for average QC time

    # Collaborators (unset = in-process registries)
    PRODUCTION_API_URL: Optional[str] = None  # e.g., "http://production:8000/api/v1"
    DIRECTORY_API_URL: Optional[str] = None  # e.g., "http://hr:8000/api/v1"
    QC_NOTIFICATION_WEBHOOK_URL: Optional[str] = None  # Certificate submission / delivery signals
    HTTP_TIMEOUT_SECONDS: float = 30.0

    @field_validator('CORS_ORIGINS', mode='before')
    @classmethod
    def parse_cors_origins(cls, v):
        if isinstance(v, str):
            try:
                return json.loads(v)
            except json.JSONDecodeError:
                return [origin.strip() for origin in v.split(',')]
        return v

    @property
    def cors_origins_list(self) -> list[str]:
        return list(self.CORS_ORIGINS)

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": True,
    }


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
