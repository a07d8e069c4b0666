"""
Pydantic models and enums for the Auth system.

Closed enums for roles and OTP purposes, plus the projections that leave
the core (user, session, session stats). Password digests and token hashes
never appear in these projections.
"""

from datetime import datetime
from enum import Enum
from typing import Optional, List
from pydantic import BaseModel, ConfigDict, Field


class UserRole(str, Enum):
    """Account role."""
    STUDENT = "student"
    TEACHER = "teacher"
    ADMIN = "admin"


class OtpPurpose(str, Enum):
    """What an OTP proves control of the mailbox for."""
    SIGNUP = "signup"
    PASSWORD_RESET = "password-reset"

    @classmethod
    def _missing_(cls, value):
        # Older clients send "forgot-password" on the resend route
        if value == "forgot-password":
            return cls.PASSWORD_RESET
        return None


class DeactivationReason(str, Enum):
    """Why a session stopped being active."""
    SUPERSEDED = "superseded"
    LOGOUT = "logout"
    LOGOUT_DEVICE = "logout_device"
    LOGOUT_ALL = "logout_all"
    EXPIRED = "expired"


class ClientInfo(BaseModel):
    """Device metadata recorded with a session at login."""
    deviceInfo: Optional[str] = Field(None, description="e.g. 'Chrome on Windows'")
    ipAddress: Optional[str] = None
    userAgent: Optional[str] = None


class UserResponse(BaseModel):
    """User projection returned by signup and profile lookups."""
    model_config = ConfigDict(use_enum_values=True)

    id: str
    name: str
    email: str
    role: UserRole
    isEmailVerified: bool = False
    createdAt: Optional[datetime] = None
    updatedAt: Optional[datetime] = None
    lastLoginAt: Optional[datetime] = None


class LoginUserResponse(BaseModel):
    """Minimal user projection returned by login."""
    model_config = ConfigDict(use_enum_values=True)

    id: str
    name: str
    email: str
    role: UserRole


class SessionResponse(BaseModel):
    """Session information for the self-service session list."""
    id: str = Field(..., description="Session ID")
    deviceInfo: str
    ipAddress: str
    userAgent: str
    isActive: bool
    lastActivity: Optional[datetime] = None
    createdAt: datetime
    expiresAt: datetime


class SessionStatsResponse(BaseModel):
    """Aggregate session counts for a user."""
    activeSessions: int
    totalSessions: int
    lastLogin: Optional[datetime] = None


class SessionInfoResponse(BaseModel):
    """Response for the session management view."""
    sessions: List[SessionResponse]
    stats: SessionStatsResponse


def format_user(user: dict) -> dict:
    """Public projection of a user document (drops the password digest)."""
    return UserResponse(
        id=str(user["_id"]),
        name=user.get("name", ""),
        email=user["email"],
        role=user.get("role", UserRole.STUDENT.value),
        isEmailVerified=user.get("isEmailVerified", False),
        createdAt=user.get("createdAt"),
        updatedAt=user.get("updatedAt"),
        lastLoginAt=user.get("lastLoginAt"),
    ).model_dump()


def format_session(session: dict) -> dict:
    """Public projection of a session document (drops the token hash)."""
    return SessionResponse(
        id=str(session["_id"]),
        deviceInfo=session.get("deviceInfo") or "",
        ipAddress=session.get("ipAddress") or "",
        userAgent=session.get("userAgent") or "",
        isActive=session.get("isActive", False),
        lastActivity=session.get("lastActivityAt"),
        createdAt=session["createdAt"],
        expiresAt=session["expiresAt"],
    ).model_dump()
