"""
Session and OTP expiry sweep.

Marks active sessions past their expiry as inactive and deletes expired
OTPs and password reset tickets. The API process runs the same sweep
periodically; this job is for deployments that prefer CRON.

Usage:
    Run via CRON:
        */15 * * * * cd /path/to/project && python -m jobs.session_cleanup

    Or run directly:
        python -m jobs.session_cleanup
"""

import asyncio
import logging
import sys
from datetime import datetime, timezone

from common.database import MongoDB
from gurukul.auth.services.otp_manager import OtpManager
from gurukul.auth.services.session_manager import SessionManager

logger = logging.getLogger(__name__)


class SessionCleanupJob:
    """
    Runs one expiry sweep.

    The sweep only moves sessions from active to inactive, so it is safe
    to run while users log in and out.
    """

    def __init__(self, session_manager: SessionManager, otp_manager: OtpManager):
        """
        Initialize the cleanup job.

        Args:
            session_manager: Owner of the sessions collection
            otp_manager: Owner of the OTP and reset ticket collections
        """
        self._session_manager = session_manager
        self._otp_manager = otp_manager

    async def run(self) -> dict:
        """
        Run the sweep.

        Returns:
            Summary with counts, timing and any errors
        """
        start_time = datetime.now(timezone.utc)
        results = {
            "startTime": start_time.isoformat(),
            "sessionsExpired": 0,
            "otpsDeleted": 0,
            "errors": [],
        }

        try:
            results["sessionsExpired"] = await self._session_manager.cleanup_expired_sessions()
        except Exception as e:
            logger.error(f"Session sweep failed: {e}")
            results["errors"].append({"step": "sessions", "error": str(e)})

        try:
            results["otpsDeleted"] = await self._otp_manager.cleanup_expired()
        except Exception as e:
            logger.error(f"OTP sweep failed: {e}")
            results["errors"].append({"step": "otps", "error": str(e)})

        end_time = datetime.now(timezone.utc)
        results["endTime"] = end_time.isoformat()
        results["durationSeconds"] = (end_time - start_time).total_seconds()

        logger.info(
            f"Expiry sweep finished: {results['sessionsExpired']} sessions expired, "
            f"{results['otpsDeleted']} OTPs/tickets deleted"
        )
        return results


async def main():
    """Main entry point for the session cleanup job."""
    from gurukul.config import settings

    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    database = MongoDB()
    await database.connect(uri=settings.MONGODB_URI, database_name=settings.MONGODB_DATABASE)

    # The sweep never sends messages
    job = SessionCleanupJob(
        session_manager=SessionManager(db=database.db),
        otp_manager=OtpManager(db=database.db, notifier=None),
    )

    try:
        results = await job.run()

        print("\n=== Session Cleanup Job Results ===")
        print(f"Start Time: {results['startTime']}")
        print(f"End Time: {results['endTime']}")
        print(f"Duration: {results['durationSeconds']:.2f} seconds")
        print(f"Sessions Expired: {results['sessionsExpired']}")
        print(f"OTPs/Tickets Deleted: {results['otpsDeleted']}")

        if results["errors"]:
            print(f"\nErrors ({len(results['errors'])}):")
            for error in results["errors"]:
                print(f"  - {error}")

        exit_code = 1 if results["errors"] else 0
        sys.exit(exit_code)

    finally:
        await database.disconnect()


if __name__ == "__main__":
    asyncio.run(main())
