from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from typing import Optional

from app.core.database import get_db
from app.core.exceptions import UnauthorizedError, ForbiddenError
from app.core.logging_config import set_user_id
from app.core.security import decode_token
from app.models.user import User, Role, UserStatus

security = HTTPBearer(auto_error=False)


async def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: AsyncSession = Depends(get_db)
) -> User:
    """Get current authenticated user"""
    if not credentials or not credentials.credentials:
        raise UnauthorizedError("Authentication required")

    payload = decode_token(credentials.credentials)

    if payload.get("type") != "access":
        raise UnauthorizedError("Invalid token type", code="INVALID_TOKEN")

    user_id = payload.get("sub")
    try:
        user_id = int(user_id)
    except (TypeError, ValueError):
        raise UnauthorizedError("Invalid token payload", code="INVALID_TOKEN")

    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()

    if not user or user.is_deleted:
        raise UnauthorizedError("User not found")

    if user.status != UserStatus.ACTIVE:
        raise UnauthorizedError("User account is inactive")

    request.state.user_id = user.id
    set_user_id(str(user.id))
    return user


def require_roles(*roles: Role):
    """Dependency factory allowing only the given roles"""

    async def checker(current_user: User = Depends(get_current_user)) -> User:
        if current_user.role not in roles:
            raise ForbiddenError("You do not have permission to perform this action")
        return current_user

    return checker


require_admin = require_roles(Role.ADMIN)
require_librarian = require_roles(Role.ADMIN, Role.LIBRARIAN)
require_reader = require_roles(Role.READER)


def is_staff(user: User) -> bool:
    return user.role in (Role.ADMIN, Role.LIBRARIAN)
