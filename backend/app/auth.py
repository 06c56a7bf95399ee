"""
Authentication boundary.

Tokens are issued by the identity service; this module only verifies them and
turns the claims into a ``CurrentUser``:
- Bearer JWT verification (HS256 by default)
- FastAPI dependencies for authenticated and admin-only routes
"""

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from uuid import UUID

import jwt
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.config import get_settings
from app.errors import ForbiddenError, UnauthorizedError

# Security scheme for Bearer token authentication
security = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class CurrentUser:
    """The caller as resolved from a verified token."""

    id: UUID
    is_admin: bool = False

    def can_access(self, owner_id: UUID) -> bool:
        return self.is_admin or self.id == owner_id


def verify_token(token: str) -> CurrentUser:
    """
    Verify and decode a JWT token.

    Raises:
        UnauthorizedError if the token is invalid, expired or lacks a user id
    """
    settings = get_settings()
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except jwt.ExpiredSignatureError:
        raise UnauthorizedError("Token has expired")
    except jwt.InvalidTokenError:
        raise UnauthorizedError("Invalid token")

    try:
        user_id = UUID(str(payload["id"]))
    except (KeyError, ValueError):
        raise UnauthorizedError("Invalid token")

    return CurrentUser(id=user_id, is_admin=bool(payload.get("isAdmin", False)))


def create_access_token(user_id: UUID, is_admin: bool = False, expires_in_minutes: int = 60) -> str:
    """Create a token the way the identity service does (used by tests and tooling)."""
    settings = get_settings()
    now = datetime.now(UTC)
    payload = {
        "id": str(user_id),
        "isAdmin": is_admin,
        "iat": now,
        "exp": now + timedelta(minutes=expires_in_minutes),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> CurrentUser:
    """FastAPI dependency resolving the Bearer token to a user."""
    if credentials is None or not credentials.credentials:
        raise UnauthorizedError("Authentication required")
    return verify_token(credentials.credentials)


async def require_admin(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
    """FastAPI dependency for admin-only routes."""
    if not user.is_admin:
        raise ForbiddenError("Admin privileges required")
    return user
