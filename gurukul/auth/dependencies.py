"""
FastAPI dependencies for the Auth system.

Builds the auth services once at startup and hands them to routes.
"""

from typing import Annotated

from fastapi import Depends, Request
from motor.motor_asyncio import AsyncIOMotorDatabase

from common.auth.credential_hasher import CredentialHasher
from common.auth.token_issuer import TokenIssuer
from gurukul.auth.client_info import get_client_info
from gurukul.auth.coordinator import AuthCoordinator
from gurukul.auth.middleware import AuthMiddleware
from gurukul.auth.models import ClientInfo
from gurukul.auth.services.otp_manager import OtpManager
from gurukul.auth.services.session_manager import SessionManager
from gurukul.auth.services.user_store import UserStore
from gurukul.services.email.base import Notifier
from gurukul.services.email.email_service import EmailService


_otp_manager: OtpManager | None = None
_session_manager: SessionManager | None = None
_coordinator: AuthCoordinator | None = None
_auth_middleware: AuthMiddleware | None = None


def init_auth_services(
    db: AsyncIOMotorDatabase,
    settings,
    notifier: Notifier | None = None
) -> AuthCoordinator:
    """
    Initialize auth services with database and settings.

    Called once at application startup.

    Args:
        db: MongoDB database connection
        settings: Application settings (secrets, expiries, email config)
        notifier: Overrides the email service built from settings

    Returns:
        The coordinator, for lifecycle management by the caller
    """
    global _otp_manager, _session_manager, _coordinator, _auth_middleware

    notifier = notifier or EmailService.from_settings(settings)

    _otp_manager = OtpManager(
        db=db,
        notifier=notifier,
        code_length=settings.OTP_LENGTH,
        expire_minutes=settings.OTP_EXPIRE_MINUTES,
        reset_ticket_expire_minutes=settings.RESET_TICKET_EXPIRE_MINUTES
    )

    _session_manager = SessionManager(
        db=db,
        expire_hours=settings.SESSION_EXPIRE_HOURS,
        lock_ttl_seconds=settings.SESSION_LOCK_TTL_SECONDS,
        lock_timeout_seconds=settings.SESSION_LOCK_TIMEOUT_SECONDS
    )

    _coordinator = AuthCoordinator(
        user_store=UserStore(db),
        credential_hasher=CredentialHasher(rounds=settings.BCRYPT_ROUNDS),
        token_issuer=TokenIssuer(
            secret=settings.JWT_SECRET,
            algorithm=settings.JWT_ALGORITHM,
            expire_hours=settings.JWT_EXPIRE_HOURS
        ),
        otp_manager=_otp_manager,
        session_manager=_session_manager,
        notifier=notifier
    )

    _auth_middleware = AuthMiddleware(coordinator=_coordinator)

    return _coordinator


def get_otp_manager() -> OtpManager:
    """Get OTP manager instance."""
    if _otp_manager is None:
        raise RuntimeError("Auth services not initialized. Call init_auth_services first.")
    return _otp_manager


def get_session_manager() -> SessionManager:
    """Get session manager instance."""
    if _session_manager is None:
        raise RuntimeError("Auth services not initialized. Call init_auth_services first.")
    return _session_manager


def get_auth_coordinator() -> AuthCoordinator:
    """Get auth coordinator instance."""
    if _coordinator is None:
        raise RuntimeError("Auth services not initialized. Call init_auth_services first.")
    return _coordinator


def get_auth_middleware() -> AuthMiddleware:
    """Get auth middleware instance."""
    if _auth_middleware is None:
        raise RuntimeError("Auth services not initialized. Call init_auth_services first.")
    return _auth_middleware


async def require_auth(
    request: Request,
    auth_middleware: Annotated[AuthMiddleware, Depends(get_auth_middleware)]
) -> dict:
    """
    Dependency that requires authentication.

    Usage:
        @router.get("/sessions")
        async def sessions(user: Annotated[dict, Depends(require_auth)]):
            return await coordinator.get_session_info(str(user["_id"]))
    """
    return await auth_middleware.require_auth(request)


def client_info(request: Request) -> ClientInfo:
    """
    Dependency with the device metadata recorded at login.

    Usage:
        @router.post("/login")
        async def login(body: LoginRequest, client: Annotated[ClientInfo, Depends(client_info)]):
            ...
    """
    return get_client_info(request)
