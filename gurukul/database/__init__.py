"""
Gurukul collection names and index setup.
"""

from gurukul.database.collections import (
    USERS,
    OTPS,
    RESET_TICKETS,
    SESSIONS,
    SESSION_LOCKS,
    ensure_indexes,
)

__all__ = [
    "USERS",
    "OTPS",
    "RESET_TICKETS",
    "SESSIONS",
    "SESSION_LOCKS",
    "ensure_indexes",
]
