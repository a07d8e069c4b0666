"""
Gurukul application settings.

Extends the base settings with auth, OTP, session and email configuration.
"""

from typing import Optional
from common.config import BaseAppSettings


class Settings(BaseAppSettings):
    """Gurukul-specific settings."""

    # ==========================================================================
    # One-Time Passcodes
    # ==========================================================================
    OTP_LENGTH: int = 6
    OTP_EXPIRE_MINUTES: int = 10

    # Single-use ticket handed out after a password-reset OTP is verified
    RESET_TICKET_EXPIRE_MINUTES: int = 10

    # ==========================================================================
    # Sessions
    # ==========================================================================
    SESSION_EXPIRE_HOURS: int = 24

    # Inactive sessions are kept for reporting, then removed by TTL index
    SESSION_RETENTION_DAYS: int = 30

    # Per-user login lease
    SESSION_LOCK_TTL_SECONDS: int = 10
    SESSION_LOCK_TIMEOUT_SECONDS: float = 5.0

    # Periodic expiry sweep inside the API process (0 disables it)
    SESSION_CLEANUP_INTERVAL_MINUTES: int = 15

    # ==========================================================================
    # Email Settings (OTP and welcome emails)
    # ==========================================================================
    EMAIL_MODE: str = "console"  # console, smtp, resend
    RESEND_API_KEY: Optional[str] = None
    SMTP_HOST: Optional[str] = None
    SMTP_PORT: int = 587
    SMTP_USER: Optional[str] = None
    SMTP_PASSWORD: Optional[str] = None
    SMTP_FROM_EMAIL: str = "noreply@atplgurukul.com"
    SMTP_FROM_NAME: str = "ATPL Gurukul"

    # ==========================================================================
    # Frontend URL (for email links)
    # ==========================================================================
    FRONTEND_URL: str = "http://localhost:3000"


# Global settings instance
settings = Settings()
