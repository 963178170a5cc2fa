# clinicdesk/config.py - configuration management
from dotenv import load_dotenv

load_dotenv()
from typing import Optional, Union
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, field_validator


class Settings(BaseSettings):
    """Application settings with validation and environment variable support"""

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="allow",
        case_sensitive=False,
        populate_by_name=True,
    )

    # Application
    app_name: str = "Smile More Clinic Scheduler"
    app_version: str = "1.0.0"
    environment: str = Field(default="development", alias="ENVIRONMENT")
    debug: bool = Field(default=False, alias="DEBUG")

    # Database
    database_url: str = Field(..., alias="DATABASE_URL")
    database_pool_size: int = Field(default=10, alias="DATABASE_POOL_SIZE")

    # Sessions
    secret_key: str = Field(..., alias="SECRET_KEY")
    algorithm: str = Field(default="HS256", alias="ALGORITHM")
    access_token_expire_minutes: int = Field(default=720, alias="ACCESS_TOKEN_EXPIRE_MINUTES")
    session_cookie_name: str = Field(default="clinicdesk_session", alias="SESSION_COOKIE_NAME")

    # Google OAuth
    google_client_id: Optional[str] = Field(default=None, alias="GOOGLE_CLIENT_ID")
    google_client_secret: Optional[str] = Field(default=None, alias="GOOGLE_CLIENT_SECRET")
    oauth_redirect_url: str = Field(default="http://localhost:8000/api/v1/auth/callback", alias="OAUTH_REDIRECT_URL")
    frontend_url: str = Field(default="http://localhost:3000", alias="FRONTEND_URL")
    admin_emails: Union[str, list[str]] = Field(default=[], alias="ADMIN_EMAILS")

    # Calendar
    clinic_timezone: str = Field(default="Asia/Jerusalem", alias="CLINIC_TIMEZONE")
    # 0 = Sunday ... 6 = Saturday
    business_days: Union[str, list[int]] = Field(default=[0, 1, 2, 3, 4, 5], alias="BUSINESS_DAYS")
    business_opening_hour: int = Field(default=8, ge=0, le=23, alias="BUSINESS_OPENING_HOUR")
    business_closing_hour: int = Field(default=21, ge=1, le=24, alias="BUSINESS_CLOSING_HOUR")
    default_clinic_name: str = Field(default="Smile More Clinic", alias="DEFAULT_CLINIC_NAME")
    default_clinic_color: str = Field(default="#2196F3", alias="DEFAULT_CLINIC_COLOR")

    # CORS
    cors_origins: Union[str, list[str]] = Field(default=["http://localhost:3000"], alias="CORS_ORIGINS")

    # Rate limiting
    rate_limit_enabled: bool = Field(default=True, alias="RATE_LIMIT_ENABLED")
    appointment_rate_limit: str = Field(default="30/minute", alias="APPOINTMENT_RATE_LIMIT")

    # WhatsApp (Twilio)
    twilio_account_sid: Optional[str] = Field(default=None, alias="TWILIO_ACCOUNT_SID")
    twilio_auth_token: Optional[str] = Field(default=None, alias="TWILIO_AUTH_TOKEN")
    twilio_whatsapp_from: Optional[str] = Field(default=None, alias="TWILIO_WHATSAPP_FROM")
    notification_template_code: str = Field(default="appointment_created", alias="NOTIFICATION_TEMPLATE_CODE")

    @field_validator("cors_origins", "admin_emails", mode="before")
    @classmethod
    def parse_comma_list(cls, v):
        if isinstance(v, str):
            return [item.strip() for item in v.split(",") if item.strip()]
        return v

    @field_validator("admin_emails")
    @classmethod
    def lowercase_emails(cls, v):
        return [email.lower() for email in v]

    @field_validator("business_days", mode="before")
    @classmethod
    def parse_business_days(cls, v):
        if isinstance(v, str):
            return [int(day) for day in v.split(",") if day.strip()]
        return v

    @field_validator("business_days")
    @classmethod
    def validate_business_days(cls, v):
        if any(day < 0 or day > 6 for day in v):
            raise ValueError("BUSINESS_DAYS must be weekday numbers 0 (Sunday) to 6 (Saturday)")
        return v

    @field_validator("database_url")
    @classmethod
    def validate_database_url(cls, v):
        if not v:
            raise ValueError("DATABASE_URL is required")
        if not v.startswith(("postgresql://", "postgresql+psycopg2://", "sqlite://")):
            raise ValueError("DATABASE_URL must be a valid PostgreSQL or SQLite URL")
        return v

    @field_validator("secret_key")
    @classmethod
    def validate_key_length(cls, v):
        if not v or len(v) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters long")
        return v

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")

    @property
    def oauth_enabled(self) -> bool:
        return bool(self.google_client_id and self.google_client_secret)

    @property
    def whatsapp_enabled(self) -> bool:
        return bool(self.twilio_account_sid and self.twilio_auth_token and self.twilio_whatsapp_from)


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()

# Note: Do not instantiate settings at import time to avoid failing
# on missing environment variables. Use `get_settings()` instead.
