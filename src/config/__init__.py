"""
Configuration Module
====================

Application settings and configuration management using Pydantic.
"""

from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Uses Pydantic for validation and type safety.
    """

    # ========== Application ==========
    app_name: str = Field(default="service-desk", description="Application name")
    app_version: str = Field(default="1.0.0", description="Application version")
    environment: str = Field(default="development", description="Environment name")
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: str = Field(default="INFO", description="Root log level")

    # ========== Server ==========
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8000, description="Server port", ge=1, le=65535)

    # ========== Database ==========
    database_url: str = Field(
        default="postgresql+asyncpg://localhost:5432/servicedesk",
        description="Database connection URL (async driver)"
    )
    db_pool_size: int = Field(default=5, description="Database connection pool size", ge=1)
    db_max_overflow: int = Field(default=10, description="Max overflow connections", ge=0)

    # ========== Verification Codes ==========
    verification_code_expiry_minutes: int = Field(
        default=15,
        description="Minutes a freshly issued verification code stays valid",
        ge=1
    )
    verification_max_retries: int = Field(
        default=3,
        description="Wrong-code attempts allowed per verification code",
        ge=1
    )
    verification_daily_limit: int = Field(
        default=10,
        description="Codes that may be issued to a single address per day",
        ge=1
    )
    verification_resend_cooldown_seconds: int = Field(
        default=60,
        description="Minimum seconds between two codes for the same address and type",
        ge=0
    )
    verification_rate_limit_window_minutes: int = Field(
        default=60,
        description="Sliding window for per-client verification requests",
        ge=1
    )
    verification_rate_limit_max_requests: int = Field(
        default=5,
        description="Verification requests allowed per client and address inside the window",
        ge=1
    )

    # ========== Email Transport ==========
    use_mock_email: bool = Field(
        default=True,
        description="Log outgoing mail instead of sending it (no SMTP connection)"
    )
    smtp_host: Optional[str] = Field(default=None, description="SMTP server host")
    smtp_port: int = Field(default=587, description="SMTP server port", ge=1, le=65535)
    smtp_username: Optional[str] = Field(default=None, description="SMTP username")
    smtp_password: Optional[str] = Field(default=None, description="SMTP password")
    smtp_use_tls: bool = Field(default=True, description="Upgrade the SMTP connection with STARTTLS")
    smtp_timeout_seconds: float = Field(
        default=30.0,
        description="Timeout for SMTP operations",
        ge=1,
        le=120
    )
    mail_from_email: Optional[str] = Field(default=None, description="Sender address")
    mail_from_name: str = Field(default="Service Desk", description="Sender display name")
    email_relay_url: Optional[str] = Field(
        default=None,
        description="HTTP mail relay endpoint; used instead of SMTP when set"
    )
    email_relay_api_key: Optional[str] = Field(default=None, description="HTTP mail relay API key")

    # ========== Notification Queue ==========
    email_templates_path: Path = Field(
        default=Path("templates/email"),
        description="Directory holding <name>.html email templates"
    )
    email_blacklist_path: Path = Field(
        default=Path("data/email-blacklist.txt"),
        description="Line-oriented list of blocked recipient addresses"
    )
    notification_max_retries: int = Field(
        default=3,
        description="Delivery attempts per queued notification",
        ge=1
    )
    notification_retry_backoff_seconds: float = Field(
        default=30.0,
        description="Base delay before a failed notification is retried (doubles per attempt)",
        ge=0
    )
    notification_retry_backoff_max_seconds: float = Field(
        default=900.0,
        description="Upper bound for the retry delay",
        ge=0
    )
    notification_process_interval: int = Field(
        default=30,
        description="Seconds between queue drains; 0 disables the scheduler",
        ge=0
    )

    # ========== CORS ==========
    cors_origins: List[str] = Field(
        default=["http://localhost:3000", "http://localhost:8080"],
        description="Allowed CORS origins"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Ensure environment is one of allowed values."""
        allowed = {"development", "testing", "staging", "production"}
        if v not in allowed:
            raise ValueError(f"environment must be one of {allowed}")
        return v


@lru_cache()
def get_settings() -> Settings:
    """Returns cached Settings instance."""
    return Settings()


# Global settings instance
settings = get_settings()


# ========== Constants ==========

class VerificationType(str, Enum):
    """What a verification code proves control of the address for."""
    CUSTOMER_REGISTRATION = "customer_registration"
    USER_CREATION = "user_creation"          # Admin / manager / technician accounts
    PASSWORD_RESET = "password_reset"
    EMAIL_CHANGE = "email_change"
    ACCOUNT_ACTIVATION = "account_activation"


class VerificationError(str, Enum):
    """Reasons a verification attempt can fail."""
    NOT_FOUND = "not_found"
    EXPIRED = "expired"
    ALREADY_USED = "already_used"
    INVALID_CODE = "invalid_code"
    RETRY_EXHAUSTED = "retry_exhausted"


VERIFICATION_TYPE_DISPLAY_NAMES = {
    VerificationType.CUSTOMER_REGISTRATION: "Customer Registration",
    VerificationType.USER_CREATION: "Account Creation",
    VerificationType.PASSWORD_RESET: "Password Reset",
    VerificationType.EMAIL_CHANGE: "Email Change",
    VerificationType.ACCOUNT_ACTIVATION: "Account Activation",
}

VERIFICATION_CODE_LENGTH = 6

# Fallback template used when a message names an unknown template
DEFAULT_TEMPLATE_NAME = "default"
BLACKLISTED_ERROR_MESSAGE = "blacklisted"
