"""
Auth System

Password login with single-active-session enforcement, email OTPs for
signup verification and password reset.

Services live in ``gurukul.auth.services``; flows are orchestrated by
``gurukul.auth.coordinator.AuthCoordinator``.
"""

from gurukul.auth.models import (
    UserRole,
    OtpPurpose,
    DeactivationReason,
    ClientInfo,
)

__all__ = [
    "UserRole",
    "OtpPurpose",
    "DeactivationReason",
    "ClientInfo",
]
