"""
Gurukul collection names and indexes.

Each collection has exactly one owning service:
    users          -> UserStore
    otps           -> OtpManager
    resettickets   -> OtpManager
    sessions       -> SessionManager
    sessionlocks   -> SessionManager
"""

import logging

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING

logger = logging.getLogger(__name__)

USERS = "users"
OTPS = "otps"
RESET_TICKETS = "resettickets"
SESSIONS = "sessions"
SESSION_LOCKS = "sessionlocks"


async def ensure_indexes(
    db: AsyncIOMotorDatabase,
    session_retention_days: int = 30,
) -> None:
    """
    Create the indexes the auth core relies on. Idempotent.

    Args:
        db: MongoDB database connection
        session_retention_days: How long past expiry a session document is
            kept for reporting before the TTL monitor removes it
    """
    users = db[USERS]
    await users.create_index([("email", ASCENDING)], unique=True)

    otps = db[OTPS]
    await otps.create_index([("email", ASCENDING), ("purpose", ASCENDING)], unique=True)
    await otps.create_index([("expiresAt", ASCENDING)], expireAfterSeconds=0)

    tickets = db[RESET_TICKETS]
    await tickets.create_index([("email", ASCENDING)], unique=True)
    await tickets.create_index([("expiresAt", ASCENDING)], expireAfterSeconds=0)

    sessions = db[SESSIONS]
    await sessions.create_index([("tokenHash", ASCENDING)], unique=True)
    await sessions.create_index([("userId", ASCENDING), ("createdAt", DESCENDING)])
    await sessions.create_index([("isActive", ASCENDING), ("expiresAt", ASCENDING)])
    await sessions.create_index(
        [("expiresAt", ASCENDING)],
        name="sessions_retention_ttl",
        expireAfterSeconds=session_retention_days * 24 * 60 * 60,
    )

    locks = db[SESSION_LOCKS]
    await locks.create_index([("expiresAt", ASCENDING)], expireAfterSeconds=0)

    logger.info("Auth indexes ensured")
