"""Tests for UserStore and the public projections."""

import pytest
from bson import ObjectId

from common.utils.exceptions import ConflictException
from gurukul.auth.models import UserRole, format_user
from gurukul.auth.services.user_store import normalize_email


def test_normalize_email():
    assert normalize_email("  Ann@X.COM ") == "ann@x.com"
    assert normalize_email(None) == ""


@pytest.mark.asyncio
async def test_create_and_lookup(user_store):
    created = await user_store.create_user("Ann", "Ann@x.com", "digest")

    by_email = await user_store.get_user_by_email("ANN@x.com")
    by_id = await user_store.get_user_by_id(str(created["_id"]))

    assert by_email["_id"] == by_id["_id"] == created["_id"]
    assert by_email["role"] == UserRole.STUDENT.value
    assert by_email["isEmailVerified"] is False


@pytest.mark.asyncio
async def test_duplicate_email_raises_conflict(user_store):
    await user_store.create_user("Ann", "ann@x.com", "digest")

    with pytest.raises(ConflictException) as exc_info:
        await user_store.create_user("Other Ann", "ann@x.com", "digest")

    assert exc_info.value.code == "EMAIL_ALREADY_REGISTERED"


@pytest.mark.asyncio
@pytest.mark.parametrize("user_id", ["not-an-id", "", None])
async def test_get_user_by_bad_id(user_store, user_id):
    assert await user_store.get_user_by_id(user_id) is None


@pytest.mark.asyncio
async def test_updates_touch_updated_at(user_store):
    created = await user_store.create_user("Ann", "ann@x.com", "digest")

    assert await user_store.update_password(created["_id"], "new-digest") is True
    assert await user_store.mark_email_verified(created["_id"]) is True
    assert await user_store.update_last_login(created["_id"]) is True
    assert await user_store.update_password(ObjectId(), "x") is False

    stored = await user_store.get_user_by_id(created["_id"])
    assert stored["passwordHash"] == "new-digest"
    assert stored["isEmailVerified"] is True
    assert stored["lastLoginAt"] is not None
    assert stored["updatedAt"] >= created["updatedAt"]


@pytest.mark.asyncio
async def test_format_user_drops_digest(user_store):
    created = await user_store.create_user("Ann", "ann@x.com", "digest", role=UserRole.ADMIN)

    public = format_user(created)

    assert public["id"] == str(created["_id"])
    assert public["role"] == "admin"
    assert "passwordHash" not in public
