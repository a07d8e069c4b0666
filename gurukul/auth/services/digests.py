"""
Opaque secrets and their storage digests.

Session tokens, OTP codes and reset tickets only ever reach the database
as SHA-256 hex digests.
"""

import hashlib
import secrets


def digest(secret: str) -> str:
    """SHA-256 hex digest used as the stored form of a secret."""
    return hashlib.sha256(secret.encode("utf-8")).hexdigest()


def numeric_code(digits: int) -> str:
    # randbelow keeps every code equally likely, leading zeros included
    return str(secrets.randbelow(10 ** digits)).zfill(digits)


def reset_ticket(nbytes: int = 32) -> str:
    return secrets.token_urlsafe(nbytes)
