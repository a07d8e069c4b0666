"""End-to-end tests for AuthCoordinator over the in-memory store."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest
from bson import ObjectId

from common.utils.exceptions import (
    ConflictException,
    NotFoundException,
    ServiceUnavailableException,
    UnauthorizedException,
    ValidationException,
)
from gurukul.auth.coordinator import AuthCoordinator
from gurukul.auth.models import OtpPurpose

ANN = "ann@x.com"
PASSWORD = "pw123456"


async def _signup_verified(coordinator, notifier, email=ANN, password=PASSWORD):
    await coordinator.signup("Ann", email, password)
    code = notifier.last_code(email, OtpPurpose.SIGNUP)
    await coordinator.verify_email_otp(email, code)
    await coordinator.wait_for_background_tasks()


def _active_sessions(fake_db, user_id):
    return [
        d for d in fake_db["sessions"].docs
        if d["userId"] == ObjectId(user_id) and d["isActive"]
    ]


# ─────────────────────────────────────────────────────────────────
# Signup and email verification
# ─────────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_signup_then_verify_email_sends_welcome(coordinator, fake_db, notifier):
    result = await coordinator.signup("Ann", ANN, PASSWORD)

    user = result["user"]
    assert user["email"] == ANN
    assert user["role"] == "student"
    assert user["isEmailVerified"] is False
    assert "passwordHash" not in user and "password" not in user

    code = notifier.last_code(ANN, OtpPurpose.SIGNUP)
    assert code is not None

    await coordinator.verify_email_otp(ANN, code)
    await coordinator.wait_for_background_tasks()

    stored = fake_db["users"].docs[0]
    assert stored["isEmailVerified"] is True
    assert stored["passwordHash"] != PASSWORD
    assert notifier.welcomes == [(ANN, "Ann")]


@pytest.mark.asyncio
async def test_signup_normalizes_email(coordinator, fake_db):
    await coordinator.signup("Ann", "  Ann@X.com ", PASSWORD)

    assert fake_db["users"].docs[0]["email"] == ANN


@pytest.mark.asyncio
async def test_signup_duplicate_email_conflicts(coordinator):
    await coordinator.signup("Ann", ANN, PASSWORD)

    with pytest.raises(ConflictException) as exc_info:
        await coordinator.signup("Ann Again", "ANN@x.com", "other-password")

    assert exc_info.value.status_code == 409


@pytest.mark.asyncio
async def test_concurrent_signups_create_one_user(coordinator, fake_db):
    results = await asyncio.gather(
        coordinator.signup("Ann", ANN, PASSWORD),
        coordinator.signup("Ann", ANN, PASSWORD),
        return_exceptions=True,
    )

    assert sum(isinstance(r, ConflictException) for r in results) == 1
    assert len(fake_db["users"].docs) == 1


@pytest.mark.asyncio
async def test_signup_with_unknown_role_is_rejected(coordinator, fake_db):
    with pytest.raises(ValidationException):
        await coordinator.signup("Ann", ANN, PASSWORD, role="superuser")

    assert fake_db["users"].docs == []


@pytest.mark.asyncio
async def test_signup_with_teacher_role(coordinator):
    result = await coordinator.signup("Tess", "tess@x.com", PASSWORD, role="teacher")

    assert result["user"]["role"] == "teacher"


@pytest.mark.asyncio
async def test_verify_email_with_wrong_code(coordinator, fake_db, notifier):
    await coordinator.signup("Ann", ANN, PASSWORD)
    code = notifier.last_code(ANN, OtpPurpose.SIGNUP)
    wrong = f"{(int(code) + 1) % 1_000_000:06d}"

    with pytest.raises(UnauthorizedException) as exc_info:
        await coordinator.verify_email_otp(ANN, wrong)

    assert exc_info.value.message == "Invalid or expired OTP"
    assert fake_db["users"].docs[0]["isEmailVerified"] is False
    assert notifier.welcomes == []


@pytest.mark.asyncio
async def test_verify_email_for_removed_account(coordinator, fake_db, notifier):
    await coordinator.signup("Ann", ANN, PASSWORD)
    code = notifier.last_code(ANN, OtpPurpose.SIGNUP)
    fake_db["users"].docs.clear()

    with pytest.raises(NotFoundException) as exc_info:
        await coordinator.verify_email_otp(ANN, code)
    await coordinator.wait_for_background_tasks()

    assert exc_info.value.code == "USER_NOT_FOUND"
    assert notifier.welcomes == []


@pytest.mark.asyncio
async def test_welcome_failure_does_not_fail_verification(coordinator, fake_db, notifier):
    notifier.send_welcome = AsyncMock(side_effect=RuntimeError("provider down"))
    await coordinator.signup("Ann", ANN, PASSWORD)
    code = notifier.last_code(ANN, OtpPurpose.SIGNUP)

    result = await coordinator.verify_email_otp(ANN, code)
    await coordinator.wait_for_background_tasks()

    assert "Email verified" in result["message"]
    assert fake_db["users"].docs[0]["isEmailVerified"] is True
    notifier.send_welcome.assert_awaited_once_with(ANN, "Ann")


# ─────────────────────────────────────────────────────────────────
# Login
# ─────────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_login_returns_token_and_minimal_user(coordinator, token_issuer, fake_db, notifier):
    await _signup_verified(coordinator, notifier)

    result = await coordinator.login(ANN, PASSWORD, device_info="Chrome on Windows", ip_address="10.0.0.1")

    assert set(result["user"]) == {"id", "name", "email", "role"}
    assert "other devices" in result["message"]
    claims = token_issuer.decode(result["access_token"])
    assert claims.subject_id == result["user"]["id"]
    assert claims.role == "student"

    session = fake_db["sessions"].docs[0]
    assert session["deviceInfo"] == "Chrome on Windows"
    assert session["ipAddress"] == "10.0.0.1"
    assert session["userAgent"] == "Unknown User Agent"
    assert fake_db["users"].docs[0]["lastLoginAt"] is not None


@pytest.mark.asyncio
async def test_login_defaults_unknown_device_fields(coordinator, fake_db, notifier):
    await _signup_verified(coordinator, notifier)

    await coordinator.login(ANN, PASSWORD)

    session = fake_db["sessions"].docs[0]
    assert session["deviceInfo"] == "Unknown Device"
    assert session["ipAddress"] == "Unknown IP"
    assert session["userAgent"] == "Unknown User Agent"


@pytest.mark.asyncio
async def test_login_failures_are_indistinguishable(coordinator, notifier):
    await _signup_verified(coordinator, notifier)

    with pytest.raises(UnauthorizedException) as wrong_password:
        await coordinator.login(ANN, "wrong-password")
    with pytest.raises(UnauthorizedException) as unknown_email:
        await coordinator.login("nobody@x.com", PASSWORD)

    assert wrong_password.value.status_code == unknown_email.value.status_code == 401
    assert wrong_password.value.detail == unknown_email.value.detail
    assert wrong_password.value.headers == unknown_email.value.headers


@pytest.mark.asyncio
async def test_unknown_email_still_runs_password_check(fake_db):
    hasher = MagicMock()
    hasher.hash.return_value = "$2b$04$dummy"
    hasher.verify.return_value = False
    coordinator = AuthCoordinator(
        user_store=AsyncMock(get_user_by_email=AsyncMock(return_value=None)),
        credential_hasher=hasher,
        token_issuer=MagicMock(),
        otp_manager=AsyncMock(),
        session_manager=AsyncMock(),
        notifier=AsyncMock(),
    )

    with pytest.raises(UnauthorizedException):
        await coordinator.login("nobody@x.com", PASSWORD)

    hasher.verify.assert_called_once_with(PASSWORD, "$2b$04$dummy")


@pytest.mark.asyncio
async def test_second_device_login_ends_first_session(coordinator, session_manager, fake_db, notifier):
    await _signup_verified(coordinator, notifier)

    first = await coordinator.login(ANN, PASSWORD, device_info="Device A")
    assert await session_manager.validate_session(first["access_token"]) is True

    second = await coordinator.login(ANN, PASSWORD, device_info="Device B")

    user_id = second["user"]["id"]
    active = _active_sessions(fake_db, user_id)
    assert len(active) == 1
    assert active[0]["deviceInfo"] == "Device B"
    assert await session_manager.validate_session(first["access_token"]) is False
    assert await session_manager.validate_session(second["access_token"]) is True


@pytest.mark.asyncio
async def test_concurrent_logins_keep_single_active_session(coordinator, fake_db, notifier):
    await _signup_verified(coordinator, notifier)

    results = await asyncio.gather(*[
        coordinator.login(ANN, PASSWORD, device_info=f"Device {i}") for i in range(5)
    ])

    user_id = results[0]["user"]["id"]
    assert len(fake_db["sessions"].docs) == 5
    assert len(_active_sessions(fake_db, user_id)) == 1


@pytest.mark.asyncio
async def test_login_propagates_session_busy(notifier):
    user_store = AsyncMock()
    user_store.get_user_by_email.return_value = {
        "_id": ObjectId(), "name": "Ann", "email": ANN, "role": "student", "passwordHash": "digest",
    }
    hasher = MagicMock()
    hasher.verify.return_value = True
    session_manager = AsyncMock()
    session_manager.create_session.side_effect = ServiceUnavailableException(code="SESSION_BUSY")
    token_issuer = MagicMock()
    token_issuer.issue.return_value = "token"

    coordinator = AuthCoordinator(user_store, hasher, token_issuer, AsyncMock(), session_manager, notifier)

    with pytest.raises(ServiceUnavailableException):
        await coordinator.login(ANN, PASSWORD)

    user_store.update_last_login.assert_not_called()


# ─────────────────────────────────────────────────────────────────
# Password reset
# ─────────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_password_reset_flow(coordinator, fake_db, notifier):
    await _signup_verified(coordinator, notifier)
    original_hash = fake_db["users"].docs[0]["passwordHash"]

    await coordinator.forgot_password(ANN)
    code = notifier.last_code(ANN, OtpPurpose.PASSWORD_RESET)
    wrong = f"{(int(code) + 1) % 1_000_000:06d}"

    with pytest.raises(UnauthorizedException):
        await coordinator.verify_otp(ANN, wrong)
    assert fake_db["users"].docs[0]["passwordHash"] == original_hash

    verified = await coordinator.verify_otp(ANN, code)
    assert verified["resetToken"]

    await coordinator.change_password(ANN, "new-password-1", verified["resetToken"])

    assert fake_db["users"].docs[0]["passwordHash"] != original_hash
    with pytest.raises(UnauthorizedException):
        await coordinator.login(ANN, PASSWORD)
    result = await coordinator.login(ANN, "new-password-1")
    assert result["access_token"]


@pytest.mark.asyncio
async def test_change_password_requires_reset_token(coordinator, fake_db, notifier):
    await _signup_verified(coordinator, notifier)
    original_hash = fake_db["users"].docs[0]["passwordHash"]

    with pytest.raises(UnauthorizedException) as exc_info:
        await coordinator.change_password(ANN, "new-password-1", None)

    assert exc_info.value.code == "INVALID_RESET_TOKEN"
    assert fake_db["users"].docs[0]["passwordHash"] == original_hash


@pytest.mark.asyncio
async def test_reset_token_cannot_be_reused_or_moved(coordinator, fake_db, notifier):
    await _signup_verified(coordinator, notifier)
    await _signup_verified(coordinator, notifier, email="bob@x.com")

    await coordinator.forgot_password(ANN)
    verified = await coordinator.verify_otp(ANN, notifier.last_code(ANN, OtpPurpose.PASSWORD_RESET))
    ticket = verified["resetToken"]

    with pytest.raises(UnauthorizedException):
        await coordinator.change_password("bob@x.com", "hijacked-1", ticket)

    await coordinator.change_password(ANN, "new-password-1", ticket)
    with pytest.raises(UnauthorizedException):
        await coordinator.change_password(ANN, "new-password-2", ticket)


@pytest.mark.asyncio
async def test_signup_code_cannot_reset_password(coordinator, notifier):
    await coordinator.signup("Ann", ANN, PASSWORD)
    signup_code = notifier.last_code(ANN, OtpPurpose.SIGNUP)

    with pytest.raises(UnauthorizedException):
        await coordinator.verify_otp(ANN, signup_code)


@pytest.mark.asyncio
async def test_unknown_user_paths_raise_not_found(coordinator):
    with pytest.raises(NotFoundException):
        await coordinator.forgot_password("nobody@x.com")
    with pytest.raises(NotFoundException):
        await coordinator.change_password("nobody@x.com", "new-password-1", "ticket")
    with pytest.raises(NotFoundException):
        await coordinator.resend_otp("nobody@x.com", "signup")


# ─────────────────────────────────────────────────────────────────
# Resend
# ─────────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_resend_otp_supersedes_previous_code(coordinator, notifier):
    await coordinator.signup("Ann", ANN, PASSWORD)
    first = notifier.last_code(ANN, OtpPurpose.SIGNUP)

    await coordinator.resend_otp(ANN, "signup")
    latest = notifier.last_code(ANN, OtpPurpose.SIGNUP)

    assert len(notifier.otps) == 2
    if first != latest:
        with pytest.raises(UnauthorizedException):
            await coordinator.verify_email_otp(ANN, first)
    await coordinator.verify_email_otp(ANN, latest)
    await coordinator.wait_for_background_tasks()

    assert notifier.welcomes == [(ANN, "Ann")]


@pytest.mark.asyncio
async def test_resend_accepts_forgot_password_alias(coordinator, notifier):
    await coordinator.signup("Ann", ANN, PASSWORD)

    await coordinator.resend_otp(ANN, "forgot-password")

    assert notifier.otps[-1][2] == OtpPurpose.PASSWORD_RESET


@pytest.mark.asyncio
async def test_resend_rejects_unknown_purpose(coordinator, notifier):
    await coordinator.signup("Ann", ANN, PASSWORD)

    with pytest.raises(ValidationException) as exc_info:
        await coordinator.resend_otp(ANN, "login")

    assert exc_info.value.status_code == 422
    assert len(notifier.otps) == 1


# ─────────────────────────────────────────────────────────────────
# Logout, authentication and session info
# ─────────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_logout_current_session(coordinator, notifier):
    await _signup_verified(coordinator, notifier)
    token = (await coordinator.login(ANN, PASSWORD))["access_token"]

    result = await coordinator.logout(token)

    assert result["message"] == "Logged out successfully"
    with pytest.raises(UnauthorizedException):
        await coordinator.authenticate(token)


@pytest.mark.asyncio
async def test_logout_all_devices(coordinator, fake_db, notifier):
    await _signup_verified(coordinator, notifier)
    login = await coordinator.login(ANN, PASSWORD)

    result = await coordinator.logout(login["access_token"], logout_all_devices=True)

    assert result["message"] == "Logged out from all devices successfully"
    assert _active_sessions(fake_db, login["user"]["id"]) == []


@pytest.mark.asyncio
async def test_logout_all_devices_takes_priority(coordinator, notifier):
    await _signup_verified(coordinator, notifier)
    token = (await coordinator.login(ANN, PASSWORD))["access_token"]

    result = await coordinator.logout(token, logout_all_devices=True, session_id=str(ObjectId()))

    assert result["message"] == "Logged out from all devices successfully"


@pytest.mark.asyncio
async def test_logout_specific_session_only_for_owner(coordinator, fake_db, notifier):
    await _signup_verified(coordinator, notifier)
    await _signup_verified(coordinator, notifier, email="bob@x.com")
    ann = await coordinator.login(ANN, PASSWORD)
    bob = await coordinator.login("bob@x.com", PASSWORD)
    ann_session_id = str(_active_sessions(fake_db, ann["user"]["id"])[0]["_id"])

    await coordinator.logout(bob["access_token"], session_id=ann_session_id)
    assert len(_active_sessions(fake_db, ann["user"]["id"])) == 1

    result = await coordinator.logout(ann["access_token"], session_id=ann_session_id)
    assert result["message"] == "Logged out from specific device successfully"
    assert _active_sessions(fake_db, ann["user"]["id"]) == []


@pytest.mark.asyncio
async def test_logout_with_invalid_token(coordinator):
    with pytest.raises(UnauthorizedException):
        await coordinator.logout("")
    with pytest.raises(UnauthorizedException) as exc_info:
        await coordinator.logout("not-a-jwt", logout_all_devices=True)
    assert exc_info.value.code == "INVALID_TOKEN"


@pytest.mark.asyncio
async def test_authenticate_and_profile(coordinator, notifier):
    await _signup_verified(coordinator, notifier)
    token = (await coordinator.login(ANN, PASSWORD))["access_token"]

    user = await coordinator.authenticate(token)
    profile = await coordinator.get_profile(token)

    assert user["email"] == ANN
    assert profile["email"] == ANN
    assert profile["isEmailVerified"] is True
    assert "passwordHash" not in profile


@pytest.mark.asyncio
async def test_authenticate_rejects_superseded_session(coordinator, notifier):
    await _signup_verified(coordinator, notifier)
    old_token = (await coordinator.login(ANN, PASSWORD))["access_token"]
    await coordinator.login(ANN, PASSWORD)

    with pytest.raises(UnauthorizedException) as exc_info:
        await coordinator.authenticate(old_token)

    assert exc_info.value.code == "INVALID_SESSION"


@pytest.mark.asyncio
async def test_get_session_info(coordinator, notifier):
    await _signup_verified(coordinator, notifier)
    await coordinator.login(ANN, PASSWORD, device_info="Device A")
    login = await coordinator.login(ANN, PASSWORD, device_info="Device B")

    info = await coordinator.get_session_info(login["user"]["id"])

    assert info["stats"]["activeSessions"] == 1
    assert info["stats"]["totalSessions"] == 2
    assert {s["deviceInfo"] for s in info["sessions"]} == {"Device A", "Device B"}
    assert all("tokenHash" not in s for s in info["sessions"])
