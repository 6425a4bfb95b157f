# =====================================================
# FILE: app/core/config.py
# Application Settings (environment / .env driven)
# =====================================================

from typing import List, Optional
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables or .env"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=True,
    )

    # Application
    APP_NAME: str = "eSign Participant Workflow"
    DEBUG: bool = False
    CLIENT_URL: str = "http://localhost:3000"

    # Database
    DATABASE_URL: str = "sqlite:///./esign_workflow.db"
    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 20
    DB_POOL_PRE_PING: bool = True
    DB_ECHO: bool = False

    # One-time passcodes
    OTP_LENGTH: int = 6
    OTP_TTL_SECONDS: int = 60
    OTP_MAX_ATTEMPTS: int = 5
    OTP_GATEWAY_TIMEOUT_SECONDS: float = 10.0
    OTP_DELIVERY_SIMULATE: bool = False

    # SMS gateway (Spryng-compatible REST API)
    SMS_API_BASE_URL: str = "https://rest.spryngsms.com/v1"
    SMS_API_TOKEN: Optional[str] = None
    SMS_ORIGINATOR: str = "eSignFlow"
    SMS_ROUTE: Optional[str] = None
    DEFAULT_COUNTRY_CODE: str = "92"

    # Email (fastapi-mail)
    MAIL_USERNAME: Optional[str] = None
    MAIL_PASSWORD: Optional[str] = None
    MAIL_FROM: str = "noreply@esignflow.local"
    MAIL_FROM_NAME: str = "eSignFlow"
    MAIL_SERVER: str = "smtp.gmail.com"
    MAIL_PORT: int = 587
    MAIL_STARTTLS: bool = True
    MAIL_SSL_TLS: bool = False

    # Files
    FILE_STORAGE_DIR: str = "./storage"

    # Workflow rules
    REJECTION_REASON_MAX_LENGTH: int = 500
    SUPPORTED_LANGUAGES: List[str] = ["en", "es", "fr", "de", "it", "el"]

    # Background jobs
    SCHEDULER_ENABLED: bool = False
    SCHEDULER_TICK_SECONDS: int = 60

    @property
    def mail_configured(self) -> bool:
        return bool(self.MAIL_USERNAME and self.MAIL_PASSWORD)


settings = Settings()
