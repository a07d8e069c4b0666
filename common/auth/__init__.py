"""
Authentication module - password hashing and bearer token signing.
"""

from common.auth.credential_hasher import CredentialHasher
from common.auth.token_issuer import TokenIssuer, TokenClaims, InvalidTokenError

__all__ = ["CredentialHasher", "TokenIssuer", "TokenClaims", "InvalidTokenError"]
