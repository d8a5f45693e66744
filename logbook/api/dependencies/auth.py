"""Authentication dependencies for API endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel

from logbook.core.config import settings


class User(BaseModel):
    """Authenticated principal: owns log entries within one client (organisation)."""

    id: UUID
    client_id: UUID
    email: str
    full_name: str
    is_active: bool = True


# Security scheme
security = HTTPBearer()


async def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(security)]
) -> User:
    """
    Resolve the principal for a bearer token.

    Token validation belongs to the identity service in front of this API;
    requests reaching it are attributed to the configured development
    principal (DEV_USER_ID / DEV_CLIENT_ID).

    Args:
        credentials: Bearer token from Authorization header

    Returns:
        User: Principal whose entries the request may address
    """
    return User(
        id=UUID(settings.DEV_USER_ID),
        client_id=UUID(settings.DEV_CLIENT_ID),
        email="practitioner@logbook.local",
        full_name="Logbook Practitioner",
    )


async def get_current_active_user(
    current_user: Annotated[User, Depends(get_current_user)]
) -> User:
    """
    Verify user is active.

    Raises:
        HTTPException: If user is inactive
    """
    if not current_user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Inactive user",
        )
    return current_user
