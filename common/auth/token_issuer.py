"""
JWT bearer token issuing and verification.

Tokens are HS256-signed (by default) and carry the identity claims
``sub``, ``email`` and ``role`` plus ``iat``/``exp``/``jti``.

The signing secret is handed in by the caller at construction time, so
tests and key rotation only need a different instance.

Example:
    issuer = TokenIssuer(secret="your-secret-key", expire_hours=24)

    token = issuer.issue("65f0c0ffee...", "ann@x.com", "student")
    claims = issuer.decode(token)
    print(claims.subject_id)
"""

import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import jwt, JWTError


class InvalidTokenError(ValueError):
    """Token is malformed, badly signed, expired or missing claims."""


@dataclass(frozen=True)
class TokenClaims:
    """Identity claims carried by a verified token."""

    subject_id: str
    email: str
    role: str
    issued_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    token_id: Optional[str] = None


class TokenIssuer:
    """
    Signs and verifies time-bounded identity tokens.
    """

    REQUIRED_CLAIMS = ("sub", "email", "role")

    def __init__(
        self,
        secret: str,
        algorithm: str = "HS256",
        expire_hours: int = 24,
    ):
        """
        Initialize the issuer.

        Args:
            secret: Signing secret (keep this secure!)
            algorithm: JWT algorithm (default: HS256)
            expire_hours: Token validity window
        """
        if not secret:
            raise ValueError("TokenIssuer requires a non-empty signing secret")

        self._secret = secret
        self._algorithm = algorithm
        self._expire = timedelta(hours=expire_hours)

    @property
    def expire_delta(self) -> timedelta:
        return self._expire

    def issue(self, subject_id: str, email: str, role: str) -> str:
        """
        Create a signed token for the given identity.

        Args:
            subject_id: User ID
            email: User email
            role: User role

        Returns:
            Encoded JWT string
        """
        now = datetime.now(timezone.utc)
        payload = {
            "sub": str(subject_id),
            "email": email,
            "role": role,
            "iat": now,
            "exp": now + self._expire,
            # Distinguishes tokens issued for the same user in the same second
            "jti": secrets.token_hex(8),
        }
        return jwt.encode(payload, self._secret, algorithm=self._algorithm)

    def decode(self, token: str) -> TokenClaims:
        """
        Verify a token and return its claims.

        Raises:
            InvalidTokenError: On bad signature, malformed token, expiry or
                missing identity claims
        """
        if not token:
            raise InvalidTokenError("Invalid token: empty")

        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[self._algorithm],
                options={"require_exp": True, "require_iat": True},
            )
        except JWTError as e:
            raise InvalidTokenError(f"Invalid token: {e}") from e

        missing = [claim for claim in self.REQUIRED_CLAIMS if not payload.get(claim)]
        if missing:
            raise InvalidTokenError(f"Invalid token: missing claims {missing}")

        return TokenClaims(
            subject_id=str(payload["sub"]),
            email=payload["email"],
            role=payload["role"],
            issued_at=datetime.fromtimestamp(payload["iat"], tz=timezone.utc),
            expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
            token_id=payload.get("jti"),
        )
