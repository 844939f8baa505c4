from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional
from pydantic import field_validator
from functools import lru_cache
import json


class Settings(BaseSettings):
    # Application
    app_name: str = "Choose the Heat"
    app_version: str = "0.1.0"
    debug: bool = False
    environment: str = "development"  # development, production, test

    # Database
    database_url: str = "sqlite:///./data/heat.db"
    database_echo: bool = False

    # Sessions
    session_cookie_name: str = "session_id"
    session_expiry_days: int = 30
    cookie_secure: Optional[bool] = None  # None = secure only in production

    # Pre-launch site lock (HTTP Basic Auth in front of everything)
    site_password: Optional[str] = None
    site_auth_realm: str = "Choose the Heat - Testing Access"

    # Admin bootstrap (used by init_database.py)
    admin_email: str = "admin@localhost"
    admin_password: str = "ChangeMe123"
    admin_name: str = "Administrator"

    # Audit log retention
    audit_log_retention_days: int = 90

    # CORS
    cors_origins: str = "*"  # comma-separated or JSON list

    @field_validator('cors_origins', mode='after')
    @classmethod
    def parse_cors_origins(cls, v):
        """Parse CORS_ORIGINS from environment variable"""
        if isinstance(v, str):
            if v == "*":
                return ["*"]
            try:
                return json.loads(v)
            except (json.JSONDecodeError, ValueError):
                return [origin.strip() for origin in v.split(',') if origin.strip()]
        return v

    @field_validator('site_password', mode='after')
    @classmethod
    def blank_site_password_disables_lock(cls, v):
        if v is not None and not v.strip():
            return None
        return v

    # Logging
    log_level: str = "INFO"
    log_file: Optional[str] = None

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    @property
    def is_development(self) -> bool:
        return self.environment.lower() == "development"

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    @property
    def secure_cookies(self) -> bool:
        """Whether session cookies carry the Secure attribute"""
        if self.cookie_secure is not None:
            return self.cookie_secure
        return self.is_production


@lru_cache
def get_settings() -> Settings:
    """Build the process-wide settings once; callers pass the result around explicitly."""
    return Settings()
