from typing import Annotated
from uuid import UUID

from fastapi import Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from audittrail.core.database import get_db
from audittrail.core.security import oauth2_scheme, decode_token
from audittrail.core.roles import UserRole
from audittrail.models.user import User


# =============================================================================
# Authentication: Get current user from token
# =============================================================================

async def get_current_user(
    token: Annotated[str, Depends(oauth2_scheme)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> User:
    """
    Extract and validate the current user from the JWT token.

    Raises:
        HTTP 401: If token is invalid or user not found
        HTTP 400: If user is inactive
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    payload = decode_token(token)
    if payload is None:
        raise credentials_exception

    user_id = payload.get("sub")
    if user_id is None:
        raise credentials_exception

    try:
        user_uuid = UUID(str(user_id))
    except ValueError:
        raise credentials_exception

    result = await db.execute(select(User).where(User.id == user_uuid))
    user = result.scalar_one_or_none()

    if user is None:
        raise credentials_exception

    if not user.is_active:
        raise HTTPException(status_code=400, detail="Inactive user")

    return user


CurrentUser = Annotated[User, Depends(get_current_user)]


# =============================================================================
# Role Guards
# =============================================================================

def require_admin(current_user: User) -> None:
    """
    Guard: Allows ONLY users with role = ADMIN.

    Raises:
        HTTP 403: If user role is not 'admin'
    """
    if (current_user.role or "").lower() != UserRole.ADMIN.value:
        raise HTTPException(
            status_code=403,
            detail={"code": "FORBIDDEN_ROLE", "message": "This endpoint is only available for administrators"}
        )


def _ensure_admin(current_user: CurrentUser) -> User:
    require_admin(current_user)
    return current_user


AdminUser = Annotated[User, Depends(_ensure_admin)]
