"""
One-time passcode lifecycle.

State per (email, purpose): none -> pending -> {verified | expired | superseded}.

Codes are stored hashed. Each pair owns exactly one record, enforced by a
unique index; issuing a code overwrites it in a single upsert, so at most
one pending code exists even when issues race. Consuming a code is a single
conditional update on ``isUsed: False``, so two racing verifications of
the same code cannot both succeed.

Also owns password-reset tickets: short-lived, single-use secrets handed
out after a password-reset OTP is verified and required to change the
password.
"""

import logging
import re
from datetime import datetime, timedelta, timezone
from typing import Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError, PyMongoError

from gurukul.auth.models import OtpPurpose
from gurukul.auth.services.digests import digest, numeric_code, reset_ticket
from gurukul.database.collections import OTPS, RESET_TICKETS
from gurukul.services.email.base import Notifier

logger = logging.getLogger(__name__)


class OtpManager:
    """
    Issues, verifies and expires one-time passcodes.
    """

    DEFAULT_CODE_LENGTH = 6
    DEFAULT_EXPIRE_MINUTES = 10
    DEFAULT_RESET_TICKET_EXPIRE_MINUTES = 10

    def __init__(
        self,
        db: AsyncIOMotorDatabase,
        notifier: Optional[Notifier],
        code_length: int = DEFAULT_CODE_LENGTH,
        expire_minutes: int = DEFAULT_EXPIRE_MINUTES,
        reset_ticket_expire_minutes: int = DEFAULT_RESET_TICKET_EXPIRE_MINUTES,
    ):
        """
        Initialize OtpManager.

        Args:
            db: MongoDB database connection
            notifier: Delivers codes to the user. May be None for
                maintenance jobs that never issue codes
            code_length: Number of digits per code
            expire_minutes: Code validity window
            reset_ticket_expire_minutes: Reset ticket validity window
        """
        self._otps_collection = db[OTPS]
        self._tickets_collection = db[RESET_TICKETS]
        self._notifier = notifier
        self._code_length = code_length
        self._code_pattern = re.compile(rf"^\d{{{code_length}}}$")
        self._expire = timedelta(minutes=expire_minutes)
        self._ticket_expire = timedelta(minutes=reset_ticket_expire_minutes)

    async def issue(self, email: str, purpose: OtpPurpose) -> str:
        """
        Create a fresh code for (email, purpose) and send it.

        Args:
            email: Normalized email address
            purpose: OTP purpose

        Returns:
            The plain code. Only for tests and internal use; it reaches the
            user through the notifier and must not be logged or returned
            to API clients.

        Side Effects:
            - Overwrites the pair's record (pending or used) with the hashed
              code and a 10 minute expiry, in one upsert
            - Asks the notifier to deliver the code; delivery failures are
              logged and do not undo the write
        """
        purpose = OtpPurpose(purpose)
        now = datetime.now(timezone.utc)

        code = numeric_code(self._code_length)
        await self._replace_current(
            self._otps_collection,
            {"email": email, "purpose": purpose.value},
            {
                "email": email,
                "codeHash": digest(code),
                "purpose": purpose.value,
                "isUsed": False,
                "expiresAt": now + self._expire,
                "createdAt": now,
            },
        )
        logger.info(f"OTP issued for {email} ({purpose.value})")

        if self._notifier is None:
            logger.warning(f"No notifier configured; OTP for {email} was stored but not sent")
            return code

        try:
            delivered = await self._notifier.send_otp(email, code, purpose)
        except Exception:
            logger.exception(f"Notifier raised while sending OTP to {email}")
            delivered = False

        if not delivered:
            logger.warning(f"OTP for {email} ({purpose.value}) was not delivered; resend is available")

        return code

    async def verify(self, email: str, code: str, purpose: OtpPurpose) -> bool:
        """
        Consume a code if it is current, unused and matches.

        Returns:
            True exactly once per issued code; False for wrong, expired,
            superseded or already-used codes (no mutation in that case)
        """
        purpose = OtpPurpose(purpose)
        if not isinstance(code, str) or not self._code_pattern.match(code):
            return False

        now = datetime.now(timezone.utc)
        consumed = await self._otps_collection.find_one_and_update(
            {
                "email": email,
                "purpose": purpose.value,
                "codeHash": digest(code),
                "isUsed": False,
                "expiresAt": {"$gt": now},
            },
            {"$set": {"isUsed": True, "usedAt": now}},
            return_document=ReturnDocument.AFTER
        )

        if consumed is None:
            logger.info(f"OTP verification failed for {email} ({purpose.value})")
            return False

        logger.info(f"OTP verified for {email} ({purpose.value})")
        return True

    async def resend(self, email: str, purpose: OtpPurpose) -> bool:
        """
        Re-issue a code, superseding any pending one.

        Returns:
            True if a new code was stored, False if the store failed
        """
        try:
            await self.issue(email, purpose)
        except PyMongoError:
            logger.exception(f"Failed to re-issue OTP for {email}")
            return False
        return True

    async def is_expired(self, email: str, purpose: OtpPurpose) -> bool:
        """
        Check whether the pair has no usable pending code.

        Returns:
            True if there is no unused code or it is past its expiry
        """
        purpose = OtpPurpose(purpose)
        otp = await self._otps_collection.find_one({
            "email": email,
            "purpose": purpose.value,
            "isUsed": False,
        })

        if not otp:
            return True

        return otp["expiresAt"] <= datetime.now(timezone.utc)

    # ─────────────────────────────────────────────────────────────────
    # Password reset tickets
    # ─────────────────────────────────────────────────────────────────

    async def issue_reset_ticket(self, email: str) -> str:
        """
        Hand out a single-use ticket authorizing one password change.

        Earlier tickets for the email are discarded.

        Returns:
            The plain ticket (only its hash is stored)
        """
        now = datetime.now(timezone.utc)

        ticket = reset_ticket()
        await self._replace_current(
            self._tickets_collection,
            {"email": email},
            {
                "email": email,
                "ticketHash": digest(ticket),
                "isUsed": False,
                "expiresAt": now + self._ticket_expire,
                "createdAt": now,
            },
        )
        return ticket

    async def consume_reset_ticket(self, email: str, ticket: Optional[str]) -> bool:
        """
        Spend a reset ticket.

        Returns:
            True if the ticket belonged to the email, was unused and
            unexpired; it is marked used in the same update
        """
        if not ticket:
            return False

        now = datetime.now(timezone.utc)
        consumed = await self._tickets_collection.find_one_and_update(
            {
                "email": email,
                "ticketHash": digest(ticket),
                "isUsed": False,
                "expiresAt": {"$gt": now},
            },
            {"$set": {"isUsed": True, "usedAt": now}},
            return_document=ReturnDocument.AFTER
        )
        return consumed is not None

    @staticmethod
    async def _replace_current(collection, key: dict, document: dict) -> None:
        """
        Replace the single record identified by ``key``, creating it if absent.

        Two upserts racing on a missing record both try to insert; the unique
        index rejects the loser, whose retry then matches and replaces.
        """
        try:
            await collection.replace_one(key, document, upsert=True)
        except DuplicateKeyError:
            await collection.replace_one(key, document, upsert=True)

    async def cleanup_expired(self) -> int:
        """
        Delete expired codes and tickets.

        The TTL index does the same lazily; this runs with the session sweep.

        Returns:
            Number of documents removed
        """
        now = datetime.now(timezone.utc)
        otps = await self._otps_collection.delete_many({"expiresAt": {"$lte": now}})
        tickets = await self._tickets_collection.delete_many({"expiresAt": {"$lte": now}})

        removed = otps.deleted_count + tickets.deleted_count
        if removed > 0:
            logger.info(f"Cleaned up {removed} expired OTPs and reset tickets")
        return removed
