"""
Application configuration.
Values come from environment variables or a local .env file.
"""

from typing import List
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime settings for the price list admin API"""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Application
    app_name: str = "Cenniki Admin API"
    app_version: str = "1.0.0"
    debug: bool = False
    ENVIRONMENT: str = "development"
    host: str = "0.0.0.0"
    port: int = 8000
    reload: bool = False

    # Logging
    LOG_LEVEL: str = "INFO"

    # CORS
    cors_origins: List[str] = ["http://localhost:3000"]
    cors_allow_credentials: bool = True

    # Storage
    DATABASE_URL: str = "sqlite:///./cenniki.db"
    AUTO_CREATE_TABLES: bool = True
    DATA_DIR: str = "./data"

    # JWT
    JWT_SECRET: str = "change-me"
    JWT_ALGORITHM: str = "HS256"
    JWT_EXPIRATION_HOURS: int = 24

    # Scheduled price changes
    SCHEDULER_ENABLED: bool = True
    SCHEDULER_INTERVAL_SECONDS: int = 3600
    APPLY_CONFLICT_POLICY: str = "overwrite"  # overwrite | verify
    ROW_TABLE_PRICE_GROUPS: List[str] = [
        "grupa I",
        "grupa II",
        "grupa III",
        "grupa IV",
        "grupa V",
        "grupa VI",
    ]

    # E-mail notifications
    SMTP_HOST: str = "smtp.gmail.com"
    SMTP_PORT: int = 587
    SMTP_SECURE: bool = False
    SMTP_USER: str = ""
    SMTP_PASS: str = ""
    SMTP_TIMEOUT_SECONDS: int = 10
    NOTIFICATION_EMAIL: str = ""

    @property
    def log_format(self) -> str:
        return "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    @property
    def smtp_configured(self) -> bool:
        return bool(self.SMTP_USER and self.SMTP_PASS)


settings = Settings()
