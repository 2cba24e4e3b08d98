"""Application configuration settings."""

from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List
import json


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    MONGODB_URL: str = "mongodb://localhost:27017"
    DATABASE_NAME: str = "smartlab"
    DB_TIMEOUT_MS: int = 10000

    # Authentication
    JWT_SECRET_KEY: str
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_DAYS: int = 7
    BCRYPT_ROUNDS: int = 12
    PASSWORD_RESET_EXPIRE_MINUTES: int = 10
    EMAIL_VERIFICATION_EXPIRE_HOURS: int = 24
    ALLOW_STAFF_SELF_REGISTRATION: bool = False
    COOKIE_SECURE: bool = False

    # Application
    APP_NAME: str = "SmartLab AI"
    SERVICE_TAG: str = "smartlab-ai"
    API_PREFIX: str = "/api"
    PORT: int = 5000

    # CORS - front-end origins allowed to send credentials
    BACKEND_CORS_ORIGINS: str = '["http://localhost:3000", "http://localhost:5173"]'

    # Environment
    ENVIRONMENT: str = "development"
    DEBUG: bool = True

    # Logging
    LOG_LEVEL: str = "INFO"  # DEBUG, INFO, WARNING, ERROR, CRITICAL
    LOG_DIR: str = "logs"
    LOG_TO_FILE: bool = True
    LOG_RETENTION_GENERAL_DAYS: int = 14
    LOG_RETENTION_ERROR_DAYS: int = 30
    LOG_RETENTION_SECURITY_DAYS: int = 90
    LOG_RETENTION_AUDIT_DAYS: int = 365

    # Rate limiting (requests per window, per client address)
    RATE_LIMIT_WINDOW_SECONDS: int = 15 * 60
    RATE_LIMIT_AUTH: int = 5
    RATE_LIMIT_PATIENT: int = 20
    RATE_LIMIT_GENERAL: int = 100

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    @property
    def cors_origins(self) -> List[str]:
        """Parse CORS origins from JSON string."""
        try:
            return json.loads(self.BACKEND_CORS_ORIGINS)
        except ValueError:
            return ["http://localhost:3000"]

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"


settings = Settings()
