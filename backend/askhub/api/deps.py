"""
FastAPI dependencies for authentication and per-request context.

Key patterns:
1. get_current_user: extracts and validates the JWT, returns the User identity
2. get_current_profile: the signed-in user's Profile, required by most writes
3. No global "current user" or feed state: everything arrives through Depends

Security model:
- JWT stored in HttpOnly cookie (recommended) or Authorization header
- Ownership and participant checks happen in the services
"""

from datetime import datetime, timedelta, timezone
from typing import Annotated
from uuid import UUID

from fastapi import Cookie, Depends, Header, HTTPException, status
from jose import JWTError, jwt
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.requests import HTTPConnection

from askhub.config import Settings, get_settings
from askhub.db.models import Profile, User
from askhub.db.session import get_db
from askhub.services.chat_service import TokenChatService
from askhub.services.realtime import ChangeFeed
from askhub.services.storage import AvatarStorage, get_avatar_storage

settings = get_settings()


# =============================================================================
# JWT UTILITIES
# =============================================================================


def create_access_token(user_id: UUID) -> str:
    """
    Create a JWT access token for a user.

    The payload only carries ``sub`` (the user id) and ``exp``.
    """
    expire = datetime.now(timezone.utc) + timedelta(minutes=settings.jwt_expire_minutes)
    payload = {
        "sub": str(user_id),
        "exp": expire,
    }
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> UUID | None:
    """Returns the user id if the token is valid, None if invalid or expired."""
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm],
        )
        user_id_str = payload.get("sub")
        if user_id_str is None:
            return None
        return UUID(user_id_str)
    except (JWTError, ValueError):
        return None


# =============================================================================
# AUTHENTICATION DEPENDENCIES
# =============================================================================


async def get_token_from_request(
    authorization: Annotated[str | None, Header()] = None,
    access_token: Annotated[str | None, Cookie()] = None,
) -> str:
    """
    Extract the JWT from the request.

    The HttpOnly ``access_token`` cookie wins over an ``Authorization: Bearer``
    header.
    """
    if access_token:
        return access_token

    if authorization:
        parts = authorization.split()
        if len(parts) == 2 and parts[0].lower() == "bearer":
            return parts[1]

    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Not authenticated",
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_user(
    token: Annotated[str, Depends(get_token_from_request)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> User:
    """
    Validate the JWT and return the authenticated identity.

    Raises 401 if the token is missing, invalid or expired, or the user no
    longer exists.
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    user_id = decode_access_token(token)
    if user_id is None:
        raise credentials_exception

    user = await db.get(User, user_id)
    if user is None:
        raise credentials_exception

    return user


async def get_current_profile(
    user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> Profile:
    """The caller's profile. Raises 404 until one has been created."""
    profile = await db.get(Profile, user.id)
    if profile is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Profile not found. Create a profile first.",
        )
    return profile


# =============================================================================
# APPLICATION SERVICES
# =============================================================================


def get_change_feed(connection: HTTPConnection) -> ChangeFeed:
    """The feed created at startup; works for both HTTP and WebSocket routes."""
    return connection.app.state.change_feed


def get_chat_service(
    feed: Annotated[ChangeFeed, Depends(get_change_feed)],
) -> TokenChatService:
    return TokenChatService(get_settings(), feed)


# Type aliases for dependency injection
CurrentUser = Annotated[User, Depends(get_current_user)]
CurrentProfile = Annotated[Profile, Depends(get_current_profile)]
DbSession = Annotated[AsyncSession, Depends(get_db)]
Feed = Annotated[ChangeFeed, Depends(get_change_feed)]
ChatService = Annotated[TokenChatService, Depends(get_chat_service)]
Storage = Annotated[AvatarStorage, Depends(get_avatar_storage)]
AppSettings = Annotated[Settings, Depends(get_settings)]
