"""
User store for the subset of user data the auth core reads and writes.

Profile, subscription and dashboard data belong to other modules; this
service only touches identity fields.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from bson import ObjectId
from bson.errors import InvalidId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.errors import DuplicateKeyError

from common.utils.exceptions import ConflictException
from gurukul.auth.models import UserRole
from gurukul.database.collections import USERS

logger = logging.getLogger(__name__)


def normalize_email(email: str) -> str:
    """Emails are unique case-insensitively; store them lower-cased."""
    return (email or "").strip().lower()


class UserStore:
    """
    Reads and writes identity fields of user documents.
    """

    def __init__(self, db: AsyncIOMotorDatabase):
        """
        Initialize UserStore.

        Args:
            db: MongoDB database connection
        """
        self._users_collection = db[USERS]

    async def create_user(
        self,
        name: str,
        email: str,
        password_hash: str,
        role: UserRole = UserRole.STUDENT,
    ) -> dict:
        """
        Insert a new, unverified user.

        Returns:
            Created user document (including its digest, callers must
            project before returning it outward)

        Raises:
            ConflictException: Email already registered (unique index)
        """
        now = datetime.now(timezone.utc)
        user_doc = {
            "name": name,
            "email": normalize_email(email),
            "passwordHash": password_hash,
            "role": UserRole(role).value,
            "isEmailVerified": False,
            "lastLoginAt": None,
            "createdAt": now,
            "updatedAt": now,
        }

        try:
            result = await self._users_collection.insert_one(user_doc)
        except DuplicateKeyError:
            raise ConflictException(
                message="User with this email already exists",
                code="EMAIL_ALREADY_REGISTERED"
            )

        user_doc["_id"] = result.inserted_id
        logger.info(f"User created: {result.inserted_id}")
        return user_doc

    async def get_user_by_email(self, email: str) -> Optional[dict]:
        """
        Load user by email address.

        Returns:
            User document or None if not found
        """
        return await self._users_collection.find_one({"email": normalize_email(email)})

    async def get_user_by_id(self, user_id: str) -> Optional[dict]:
        """
        Load user by MongoDB ID.

        Returns:
            User document or None if not found or the ID is malformed
        """
        if not user_id:
            return None
        try:
            object_id = ObjectId(user_id)
        except (InvalidId, TypeError):
            return None
        return await self._users_collection.find_one({"_id": object_id})

    async def update_password(self, user_id, password_hash: str) -> bool:
        """Replace the stored password digest."""
        return await self._update(user_id, {"passwordHash": password_hash})

    async def mark_email_verified(self, user_id) -> bool:
        """Flag the user's email as verified."""
        return await self._update(user_id, {"isEmailVerified": True})

    async def update_last_login(self, user_id) -> bool:
        """Stamp the user's last successful login."""
        return await self._update(user_id, {"lastLoginAt": datetime.now(timezone.utc)})

    async def _update(self, user_id, fields: dict) -> bool:
        fields = {**fields, "updatedAt": datetime.now(timezone.utc)}
        result = await self._users_collection.update_one(
            {"_id": ObjectId(user_id)},
            {"$set": fields}
        )
        return result.matched_count > 0
