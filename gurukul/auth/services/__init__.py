"""
Auth System Services

Contains service classes for authentication operations.
"""

from gurukul.auth.services.user_store import UserStore, normalize_email
from gurukul.auth.services.otp_manager import OtpManager
from gurukul.auth.services.session_manager import SessionManager

__all__ = [
    "UserStore",
    "normalize_email",
    "OtpManager",
    "SessionManager",
]
