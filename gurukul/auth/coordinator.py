"""
Auth flow orchestration.

Account flow:  unregistered -> pendingEmailVerification -> verified
Reset flow:    verified -> passwordResetRequested -> passwordResetCompleted -> verified

The coordinator sequences the user store, credential hasher, token issuer,
OTP manager and session manager. Session rows are only written by the
session manager and OTP rows only by the OTP manager.
"""

import asyncio
import logging
from typing import Optional

from common.auth.credential_hasher import CredentialHasher
from common.auth.token_issuer import InvalidTokenError, TokenClaims, TokenIssuer
from common.utils.exceptions import (
    ConflictException,
    NotFoundException,
    ServiceUnavailableException,
    UnauthorizedException,
    ValidationException,
)
from gurukul.auth.models import (
    LoginUserResponse,
    OtpPurpose,
    UserRole,
    format_session,
    format_user,
)
from gurukul.auth.services.otp_manager import OtpManager
from gurukul.auth.services.session_manager import SessionManager
from gurukul.auth.services.user_store import UserStore, normalize_email
from gurukul.services.email.base import Notifier

logger = logging.getLogger(__name__)

UNKNOWN_DEVICE = "Unknown Device"
UNKNOWN_IP = "Unknown IP"
UNKNOWN_USER_AGENT = "Unknown User Agent"


class AuthCoordinator:
    """
    Signup, login, OTP, password reset and logout flows.
    """

    def __init__(
        self,
        user_store: UserStore,
        credential_hasher: CredentialHasher,
        token_issuer: TokenIssuer,
        otp_manager: OtpManager,
        session_manager: SessionManager,
        notifier: Notifier,
    ):
        self._user_store = user_store
        self._hasher = credential_hasher
        self._token_issuer = token_issuer
        self._otp_manager = otp_manager
        self._session_manager = session_manager
        self._notifier = notifier
        self._background_tasks: set[asyncio.Task] = set()
        self._dummy_digest: Optional[str] = None

    # ─────────────────────────────────────────────────────────────────
    # Registration
    # ─────────────────────────────────────────────────────────────────

    async def signup(
        self,
        name: str,
        email: str,
        password: str,
        role: Optional[str] = None
    ) -> dict:
        """
        Register an unverified account and send the verification OTP.

        Args:
            name: Display name
            email: Email address (stored lower-cased)
            password: Plain password, only its digest is stored
            role: "student" (default), "teacher" or "admin"

        Returns:
            dict with message and the public user projection

        Raises:
            ConflictException: Email already registered
            ValidationException: Unknown role
        """
        email = normalize_email(email)
        user_role = self._parse_role(role)

        existing_user = await self._user_store.get_user_by_email(email)
        if existing_user:
            raise ConflictException(
                message="User with this email already exists",
                code="EMAIL_ALREADY_REGISTERED"
            )

        password_hash = self._hasher.hash(password)

        # The unique index still catches a concurrent signup for the same email
        user = await self._user_store.create_user(
            name=name,
            email=email,
            password_hash=password_hash,
            role=user_role
        )

        await self._otp_manager.issue(email, OtpPurpose.SIGNUP)

        logger.info(f"User registered: {user['_id']}")

        return {
            "message": "User registered successfully. Please verify your email with OTP.",
            "user": format_user(user),
        }

    async def verify_email_otp(self, email: str, code: str) -> dict:
        """
        Confirm the signup OTP and mark the email verified.

        The welcome email is sent in the background; its outcome does not
        affect the response.

        Raises:
            UnauthorizedException: Wrong, expired or already used code
            NotFoundException: The account was removed after signup
        """
        email = normalize_email(email)

        is_valid = await self._otp_manager.verify(email, code, OtpPurpose.SIGNUP)
        if not is_valid:
            raise UnauthorizedException(message="Invalid or expired OTP", code="INVALID_OTP")

        user = await self._user_store.get_user_by_email(email)
        if not user:
            logger.warning(f"Signup OTP verified for {email} but the account no longer exists")
            raise NotFoundException(message="User not found", code="USER_NOT_FOUND")

        await self._user_store.mark_email_verified(user["_id"])
        self._schedule(self._send_welcome(email, user.get("name", "")))
        logger.info(f"Email verified for user {user['_id']}")

        return {"message": "Email verified successfully. Welcome email has been sent."}

    async def resend_otp(self, email: str, purpose) -> dict:
        """
        Send a fresh OTP, superseding the pending one.

        Args:
            email: Account email
            purpose: "signup" or "password-reset" ("forgot-password" accepted)

        Raises:
            ValidationException: Unknown purpose
            NotFoundException: No such user
            ServiceUnavailableException: The code could not be stored
        """
        try:
            otp_purpose = OtpPurpose(purpose)
        except ValueError:
            raise ValidationException(
                message="Invalid OTP purpose",
                code="INVALID_OTP_PURPOSE",
                details={"allowed": [p.value for p in OtpPurpose]}
            )

        email = normalize_email(email)
        user = await self._user_store.get_user_by_email(email)
        if not user:
            raise NotFoundException(message="User not found", code="USER_NOT_FOUND")

        success = await self._otp_manager.resend(email, otp_purpose)
        if not success:
            raise ServiceUnavailableException(message="Failed to resend OTP", code="OTP_RESEND_FAILED")

        return {"message": "OTP has been resent to your email address"}

    # ─────────────────────────────────────────────────────────────────
    # Login / logout
    # ─────────────────────────────────────────────────────────────────

    async def login(
        self,
        email: str,
        password: str,
        device_info: Optional[str] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None
    ) -> dict:
        """
        Authenticate with email and password.

        Logging in ends every other session of the account.

        Args:
            email: Account email
            password: Plain password
            device_info: Device description, defaults to "Unknown Device"
            ip_address: Client IP, defaults to "Unknown IP"
            user_agent: Client User-Agent, defaults to "Unknown User Agent"

        Returns:
            dict with access_token, minimal user and message

        Raises:
            UnauthorizedException: Unknown email or wrong password (same
                error for both)
            ServiceUnavailableException: Another login for the account holds
                the session lock
        """
        email = normalize_email(email)
        user = await self._user_store.get_user_by_email(email)

        if not user:
            # Same bcrypt cost as a real check
            self._hasher.verify(password, self._get_dummy_digest())
            raise self._invalid_credentials()

        if not self._hasher.verify(password, user.get("passwordHash", "")):
            raise self._invalid_credentials()

        user_id = str(user["_id"])
        access_token = self._token_issuer.issue(
            subject_id=user_id,
            email=user["email"],
            role=user.get("role", UserRole.STUDENT.value)
        )

        await self._session_manager.create_session(
            user_id=user_id,
            token=access_token,
            device_info=device_info or UNKNOWN_DEVICE,
            ip_address=ip_address or UNKNOWN_IP,
            user_agent=user_agent or UNKNOWN_USER_AGENT
        )
        await self._user_store.update_last_login(user["_id"])

        logger.info(f"User logged in: {user_id}")

        return {
            "access_token": access_token,
            "user": LoginUserResponse(
                id=user_id,
                name=user.get("name", ""),
                email=user["email"],
                role=user.get("role", UserRole.STUDENT.value),
            ).model_dump(),
            "message": "Login successful. All other devices have been logged out.",
        }

    async def logout(
        self,
        token: str,
        logout_all_devices: bool = False,
        session_id: Optional[str] = None
    ) -> dict:
        """
        End one or all sessions.

        Modes, first match wins:
            1. logout_all_devices: every session of the token's user
            2. session_id: that session, only if it belongs to the token's user
            3. otherwise: the session of this token

        Raises:
            UnauthorizedException: No token, or an invalid token in modes 1 and 2
        """
        if not token:
            raise UnauthorizedException(message="No token provided", code="AUTH_REQUIRED")

        if logout_all_devices:
            claims = self._decode(token)
            await self._session_manager.force_logout_all_devices(claims.subject_id)
            return {"message": "Logged out from all devices successfully"}

        if session_id:
            claims = self._decode(token)
            await self._session_manager.force_logout_device(session_id, user_id=claims.subject_id)
            return {"message": "Logged out from specific device successfully"}

        await self._session_manager.deactivate_session(token)
        return {"message": "Logged out successfully"}

    # ─────────────────────────────────────────────────────────────────
    # Password reset
    # ─────────────────────────────────────────────────────────────────

    async def forgot_password(self, email: str) -> dict:
        """
        Send a password reset OTP.

        Raises:
            NotFoundException: No such user
        """
        email = normalize_email(email)
        user = await self._user_store.get_user_by_email(email)
        if not user:
            raise NotFoundException(
                message="User with this email not found",
                code="USER_NOT_FOUND"
            )

        await self._otp_manager.issue(email, OtpPurpose.PASSWORD_RESET)

        return {"message": "OTP has been sent to your email address"}

    async def verify_otp(self, email: str, code: str) -> dict:
        """
        Confirm the password reset OTP.

        Returns:
            dict with message and resetToken, the single-use ticket
            change_password requires

        Raises:
            UnauthorizedException: Wrong, expired or already used code
            NotFoundException: The account was removed after signup
        """
        email = normalize_email(email)

        is_valid = await self._otp_manager.verify(email, code, OtpPurpose.PASSWORD_RESET)
        if not is_valid:
            raise UnauthorizedException(message="Invalid or expired OTP", code="INVALID_OTP")

        reset_token = await self._otp_manager.issue_reset_ticket(email)

        return {
            "message": "OTP verified successfully. You can now change your password.",
            "resetToken": reset_token,
        }

    async def change_password(self, email: str, new_password: str, reset_token: Optional[str]) -> dict:
        """
        Set a new password using the ticket from verify_otp.

        Raises:
            NotFoundException: No such user
            UnauthorizedException: Ticket missing, expired, used or for
                another email
        """
        email = normalize_email(email)
        user = await self._user_store.get_user_by_email(email)
        if not user:
            raise NotFoundException(message="User not found", code="USER_NOT_FOUND")

        if not await self._otp_manager.consume_reset_ticket(email, reset_token):
            raise UnauthorizedException(
                message="Invalid or expired reset token",
                code="INVALID_RESET_TOKEN"
            )

        password_hash = self._hasher.hash(new_password)
        await self._user_store.update_password(user["_id"], password_hash)

        logger.info(f"Password changed for user {user['_id']}")

        return {"message": "Password changed successfully"}

    # ─────────────────────────────────────────────────────────────────
    # Authenticated access
    # ─────────────────────────────────────────────────────────────────

    async def authenticate(self, token: str) -> dict:
        """
        Resolve a bearer token to its user.

        The token must verify and its session must be active; the session's
        last activity is refreshed.

        Returns:
            User document

        Raises:
            UnauthorizedException: Invalid token, ended session or deleted user
        """
        claims = self._decode(token)

        if not await self._session_manager.validate_session(token):
            raise UnauthorizedException(
                message="Session expired or logged out from another device",
                code="INVALID_SESSION"
            )

        user = await self._user_store.get_user_by_id(claims.subject_id)
        if not user:
            raise UnauthorizedException(message="User not found", code="USER_NOT_FOUND")

        return user

    async def get_profile(self, token: str) -> dict:
        """Public projection of the authenticated user."""
        return format_user(await self.authenticate(token))

    async def get_session_info(self, user_id: str) -> dict:
        """
        Session list and stats for the session management view.
        """
        sessions = await self._session_manager.get_all_user_sessions(user_id)
        stats = await self._session_manager.get_session_stats(user_id)

        return {
            "sessions": [format_session(session) for session in sessions],
            "stats": stats,
        }

    # ─────────────────────────────────────────────────────────────────
    # Background notifications
    # ─────────────────────────────────────────────────────────────────

    async def wait_for_background_tasks(self) -> None:
        """Wait until scheduled notifications have finished."""
        while self._background_tasks:
            await asyncio.gather(*list(self._background_tasks), return_exceptions=True)

    def _schedule(self, coro) -> None:
        task = asyncio.create_task(coro)
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)

    async def _send_welcome(self, email: str, name: str) -> None:
        try:
            await self._notifier.send_welcome(email, name)
        except Exception:
            logger.exception(f"Welcome email to {email} failed")

    # ─────────────────────────────────────────────────────────────────
    # Helpers
    # ─────────────────────────────────────────────────────────────────

    def _decode(self, token: str) -> TokenClaims:
        try:
            return self._token_issuer.decode(token)
        except InvalidTokenError as e:
            logger.debug(f"Token rejected: {e}")
            raise UnauthorizedException(message="Invalid or expired token", code="INVALID_TOKEN")

    def _get_dummy_digest(self) -> str:
        if self._dummy_digest is None:
            self._dummy_digest = self._hasher.hash("not-a-real-password")
        return self._dummy_digest

    @staticmethod
    def _invalid_credentials() -> UnauthorizedException:
        return UnauthorizedException(message="Invalid credentials", code="INVALID_CREDENTIALS")

    @staticmethod
    def _parse_role(role: Optional[str]) -> UserRole:
        if role is None:
            return UserRole.STUDENT
        try:
            return UserRole(role)
        except ValueError:
            raise ValidationException(
                message="Invalid role",
                code="INVALID_ROLE",
                details={"allowed": [r.value for r in UserRole]}
            )
