"""
Session management for user authentication.

Sessions live in their own collection, one document per login. A user has
at most one active, non-expired session: creating a session deactivates the
others while holding a per-user lease in ``sessionlocks``.
"""

import asyncio
import logging
import secrets
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from typing import Optional

from bson import ObjectId
from bson.errors import InvalidId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import DESCENDING, ReturnDocument
from pymongo.errors import DuplicateKeyError

from common.utils.exceptions import ServiceUnavailableException
from gurukul.auth.models import DeactivationReason
from gurukul.auth.services.digests import digest
from gurukul.database.collections import SESSIONS, SESSION_LOCKS

logger = logging.getLogger(__name__)


def _as_object_id(value) -> Optional[ObjectId]:
    # ObjectId(None) would mint a fresh id
    if not value:
        return None
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        return None


class SessionManager:
    """
    Handles session CRUD operations and the single-active-session policy.
    """

    DEFAULT_EXPIRATION_HOURS = 24
    DEFAULT_LOCK_TTL_SECONDS = 10
    DEFAULT_LOCK_TIMEOUT_SECONDS = 5.0

    def __init__(
        self,
        db: AsyncIOMotorDatabase,
        expire_hours: int = DEFAULT_EXPIRATION_HOURS,
        lock_ttl_seconds: int = DEFAULT_LOCK_TTL_SECONDS,
        lock_timeout_seconds: float = DEFAULT_LOCK_TIMEOUT_SECONDS,
        lock_poll_interval: float = 0.05,
    ):
        """
        Initialize SessionManager.

        Args:
            db: MongoDB database connection
            expire_hours: Session validity window
            lock_ttl_seconds: Lease length of the per-user login lock; a
                crashed holder loses it after this long
            lock_timeout_seconds: How long a login waits for the lock
            lock_poll_interval: Sleep between lock attempts
        """
        self._sessions_collection = db[SESSIONS]
        self._locks_collection = db[SESSION_LOCKS]
        self._expire = timedelta(hours=expire_hours)
        self._lock_ttl = timedelta(seconds=lock_ttl_seconds)
        self._lock_timeout = lock_timeout_seconds
        self._lock_poll_interval = lock_poll_interval

    @asynccontextmanager
    async def _user_lock(self, user_id: ObjectId):
        """
        Hold the login lease for one user.

        The lease document is claimed by a conditional upsert: it matches
        only when the previous lease has run out, and the upsert collides
        on ``_id`` while someone else holds it.

        Raises:
            ServiceUnavailableException: Lease not obtained before the timeout
        """
        owner = secrets.token_hex(8)
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._lock_timeout

        while True:
            now = datetime.now(timezone.utc)
            try:
                await self._locks_collection.find_one_and_update(
                    {"_id": user_id, "expiresAt": {"$lte": now}},
                    {"$set": {"owner": owner, "expiresAt": now + self._lock_ttl}},
                    upsert=True
                )
                break
            except DuplicateKeyError:
                if loop.time() >= deadline:
                    logger.warning(f"Session lock for user {user_id} not acquired in time")
                    raise ServiceUnavailableException(
                        message="Another login for this account is in progress, please retry",
                        code="SESSION_BUSY",
                        retry_after=1
                    )
                await asyncio.sleep(self._lock_poll_interval)

        try:
            yield
        finally:
            await self._locks_collection.delete_one({"_id": user_id, "owner": owner})

    async def create_session(
        self,
        user_id,
        token: str,
        device_info: str,
        ip_address: str,
        user_agent: str
    ) -> dict:
        """
        Create the user's only active session.

        Args:
            user_id: MongoDB user ID
            token: Bearer token the client will present
            device_info: Human readable device description
            ip_address: Client IP address
            user_agent: Client User-Agent header

        Returns:
            The inserted session document

        Side Effects:
            - Deactivates every active session of the user (reason "superseded")
            - Inserts the new session with the token's hash, expiring in 24 hours
        """
        user_oid = ObjectId(user_id)

        async with self._user_lock(user_oid):
            now = datetime.now(timezone.utc)

            superseded = await self._sessions_collection.update_many(
                {"userId": user_oid, "isActive": True},
                {"$set": {
                    "isActive": False,
                    "deactivatedAt": now,
                    "deactivationReason": DeactivationReason.SUPERSEDED.value,
                }}
            )

            session = {
                "userId": user_oid,
                "tokenHash": digest(token),
                "deviceInfo": device_info,
                "ipAddress": ip_address,
                "userAgent": user_agent,
                "isActive": True,
                "createdAt": now,
                "lastActivityAt": now,
                "expiresAt": now + self._expire,
            }
            result = await self._sessions_collection.insert_one(session)
            session["_id"] = result.inserted_id

        if superseded.modified_count > 0:
            logger.info(f"Logged out {superseded.modified_count} other device(s) for user {user_id}")
        logger.info(f"Session created for user {user_id}")
        return session

    async def validate_session(self, token: str) -> bool:
        """
        Check a bearer token against its session and refresh activity.

        Returns:
            True iff the session is active and not expired
        """
        if not token:
            return False

        now = datetime.now(timezone.utc)
        session = await self._sessions_collection.find_one_and_update(
            {
                "tokenHash": digest(token),
                "isActive": True,
                "expiresAt": {"$gt": now},
            },
            {"$set": {"lastActivityAt": now}},
            return_document=ReturnDocument.AFTER
        )
        return session is not None

    async def deactivate_session(self, token: str) -> bool:
        """
        End the session bound to a token.

        Returns:
            True if an active session was deactivated, False if there was
            nothing to do
        """
        return await self._deactivate(
            {"tokenHash": digest(token)},
            DeactivationReason.LOGOUT
        ) > 0

    async def force_logout_device(self, session_id: str, user_id=None) -> bool:
        """
        End a session by its ID.

        Args:
            session_id: Session document ID
            user_id: When given, only a session of this user is touched

        Returns:
            True if an active session was deactivated
        """
        session_oid = _as_object_id(session_id)
        if session_oid is None:
            return False

        query = {"_id": session_oid}
        if user_id is not None:
            user_oid = _as_object_id(user_id)
            if user_oid is None:
                return False
            query["userId"] = user_oid

        return await self._deactivate(query, DeactivationReason.LOGOUT_DEVICE) > 0

    async def force_logout_all_devices(self, user_id) -> int:
        """
        End every active session of a user.

        Returns:
            Number of sessions deactivated
        """
        user_oid = _as_object_id(user_id)
        if user_oid is None:
            return 0

        count = await self._deactivate({"userId": user_oid}, DeactivationReason.LOGOUT_ALL)
        logger.info(f"Logged out {count} session(s) for user {user_id}")
        return count

    async def _deactivate(self, query: dict, reason: DeactivationReason) -> int:
        result = await self._sessions_collection.update_many(
            {**query, "isActive": True},
            {"$set": {
                "isActive": False,
                "deactivatedAt": datetime.now(timezone.utc),
                "deactivationReason": reason.value,
            }}
        )
        return result.modified_count

    async def get_active_session(self, user_id) -> Optional[dict]:
        """Current active, non-expired session of a user, if any."""
        user_oid = _as_object_id(user_id)
        if user_oid is None:
            return None

        return await self._sessions_collection.find_one({
            "userId": user_oid,
            "isActive": True,
            "expiresAt": {"$gt": datetime.now(timezone.utc)},
        })

    async def get_all_user_sessions(self, user_id) -> list[dict]:
        """
        Get every session of a user, active or not, newest first.
        """
        user_oid = _as_object_id(user_id)
        if user_oid is None:
            return []

        cursor = self._sessions_collection.find({"userId": user_oid}).sort("createdAt", DESCENDING)
        return await cursor.to_list(length=None)

    async def get_session_stats(self, user_id) -> dict:
        """
        Session counts for a user.

        Returns:
            dict with activeSessions, totalSessions and lastLogin (creation
            time of the newest session)
        """
        user_oid = _as_object_id(user_id)
        if user_oid is None:
            return {"activeSessions": 0, "totalSessions": 0, "lastLogin": None}

        now = datetime.now(timezone.utc)
        active = await self._sessions_collection.count_documents({
            "userId": user_oid,
            "isActive": True,
            "expiresAt": {"$gt": now},
        })
        total = await self._sessions_collection.count_documents({"userId": user_oid})
        latest = await self._sessions_collection.find_one(
            {"userId": user_oid},
            sort=[("createdAt", DESCENDING)]
        )

        return {
            "activeSessions": active,
            "totalSessions": total,
            "lastLogin": latest["createdAt"] if latest else None,
        }

    async def cleanup_expired_sessions(self) -> int:
        """
        Mark active sessions past their expiry as inactive.

        Only ever moves sessions from active to inactive, so it can run
        alongside logins and logouts.

        Returns:
            Number of sessions deactivated
        """
        count = await self._deactivate(
            {"expiresAt": {"$lte": datetime.now(timezone.utc)}},
            DeactivationReason.EXPIRED
        )
        if count > 0:
            logger.info(f"Cleaned up {count} expired sessions")
        return count
