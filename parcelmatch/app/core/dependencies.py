"""
Authentication dependencies for FastAPI.

Resolves the bearer token to a live User row. The role used for
authorization always comes from the database, never from token claims.
"""

from fastapi import Depends, Header
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from typing import Optional
from parcelmatch.app.core.config import settings
from parcelmatch.app.core.exceptions import AuthenticationError, InsufficientPermissionsError
from parcelmatch.app.core.jwt import decode_access_token
from parcelmatch.app.db.session import get_db
from parcelmatch.app.models.user import User

# HTTP Bearer security scheme
security = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: AsyncSession = Depends(get_db)
) -> User:
    """
    Resolve the caller from the Authorization header.

    Raises:
        AuthenticationError: missing, invalid or expired token, or unknown user
        InsufficientPermissionsError: user account is inactive
    """
    if credentials is None:
        raise AuthenticationError("Not authenticated")

    payload = decode_access_token(credentials.credentials)
    if payload is None:
        raise AuthenticationError("Could not validate credentials")

    user_id = payload.get("user_id")
    if not user_id:
        raise AuthenticationError("Invalid token payload")

    # Real-time database check: user must still exist and be active
    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()

    if not user:
        raise AuthenticationError("User not found")
    if not user.is_active:
        raise InsufficientPermissionsError("User account is inactive")

    return user


async def verify_payment_webhook(x_webhook_secret: Optional[str] = Header(None)) -> None:
    """Reject payment gateway calls that do not carry the shared secret."""
    if x_webhook_secret != settings.payment_webhook_secret:
        raise AuthenticationError("Invalid webhook secret")
