"""
Authentication middleware for protected routes.

Validates bearer tokens and attaches user context to requests.
"""

import logging
from typing import Optional

from fastapi import Request

from common.utils.exceptions import UnauthorizedException
from gurukul.auth.coordinator import AuthCoordinator

logger = logging.getLogger(__name__)


class AuthMiddleware:
    """
    Validates the bearer token and attaches the user to the request.
    """

    def __init__(self, coordinator: AuthCoordinator):
        """
        Initialize AuthMiddleware.

        Args:
            coordinator: Resolves tokens to users
        """
        self._coordinator = coordinator

    async def require_auth(self, request: Request) -> dict:
        """
        Validate request is authenticated.

        Args:
            request: HTTP request object

        Returns:
            User document

        Raises:
            UnauthorizedException: No header, invalid token or ended session

        Side Effects:
            - Refreshes the session's lastActivityAt
            - Attaches user to request.state.user
            - Attaches the raw token to request.state.token (logout needs it)
        """
        token = self._extract_token(request)

        if not token:
            raise UnauthorizedException(
                message="Authentication required",
                code="AUTH_REQUIRED"
            )

        user = await self._coordinator.authenticate(token)

        request.state.user = user
        request.state.token = token

        return user

    def _extract_token(self, request: Request) -> Optional[str]:
        """
        Extract bearer token from Authorization header.

        Expected format: "Authorization: Bearer <token>"
        """
        auth_header = request.headers.get("Authorization")

        if not auth_header:
            return None

        parts = auth_header.split()

        if len(parts) != 2:
            return None

        scheme, token = parts

        if scheme.lower() != "bearer":
            return None

        return token
