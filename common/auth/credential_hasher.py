"""
bcrypt password hashing.

One-way credential hashing with a fresh random salt per call.

Example:
    hasher = CredentialHasher(rounds=10)

    digest = hasher.hash("pw123456")
    hasher.verify("pw123456", digest)   # True
    hasher.verify("wrong", digest)      # False
"""

import base64
import hashlib

import bcrypt as bcrypt_lib


class CredentialHasher:
    """
    bcrypt hasher with SHA-256 pre-hashing.

    Hashing errors (bad cost factor, no entropy source) are not caught here:
    the caller must abort the operation rather than persist anything.
    """

    def __init__(self, rounds: int = 10):
        """
        Initialize the hasher.

        Args:
            rounds: bcrypt cost factor (4-31)
        """
        if not 4 <= rounds <= 31:
            raise ValueError(f"bcrypt rounds must be between 4 and 31, got {rounds}")
        self._rounds = rounds

    @property
    def rounds(self) -> int:
        return self._rounds

    def _prehash(self, plaintext: str) -> bytes:
        """
        SHA-256 then base64 encode.

        Keeps every password under bcrypt's 72-byte input limit.
        """
        digest = hashlib.sha256(plaintext.encode("utf-8")).digest()
        return base64.b64encode(digest)

    def hash(self, plaintext: str) -> str:
        """Return a bcrypt digest for the password."""
        salt = bcrypt_lib.gensalt(rounds=self._rounds)
        return bcrypt_lib.hashpw(self._prehash(plaintext), salt).decode("utf-8")

    def verify(self, plaintext: str, digest: str) -> bool:
        """
        Check a password against a stored digest.

        Digests written before pre-hashing was introduced (plain bcrypt of
        the password) are accepted too. Malformed digests return False.
        """
        if not digest:
            return False

        digest_bytes = digest.encode("utf-8")

        try:
            if bcrypt_lib.checkpw(self._prehash(plaintext), digest_bytes):
                return True
        except ValueError:
            return False

        # Legacy digest (plain bcrypt)
        try:
            return bcrypt_lib.checkpw(plaintext.encode("utf-8"), digest_bytes)
        except ValueError:
            # Password longer than bcrypt accepts, cannot be a legacy match
            return False
