"""
Email delivery for OTP and welcome messages.
"""

from gurukul.services.email.base import Notifier
from gurukul.services.email.email_service import EmailService

__all__ = ["Notifier", "EmailService"]
