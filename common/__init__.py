"""
Common library for reusable infrastructure components.

- auth: password hashing (bcrypt) and bearer tokens (JWT)
- database: async MongoDB connection over Motor
- utils: response envelopes and typed exceptions
- config: base settings class
"""

from common.database import MongoDB
from common.auth import CredentialHasher, TokenIssuer, TokenClaims, InvalidTokenError
from common.utils import (
    success_response,
    error_response,
    APIException,
    UnauthorizedException,
    NotFoundException,
    ConflictException,
    ValidationException,
    ServiceUnavailableException,
)
from common.config import BaseAppSettings

__all__ = [
    # Database
    "MongoDB",
    # Auth
    "CredentialHasher",
    "TokenIssuer",
    "TokenClaims",
    "InvalidTokenError",
    # Utils
    "success_response",
    "error_response",
    "APIException",
    "UnauthorizedException",
    "NotFoundException",
    "ConflictException",
    "ValidationException",
    "ServiceUnavailableException",
    # Config
    "BaseAppSettings",
]
