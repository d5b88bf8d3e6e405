from typing import Optional
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession
from coursewallet.database import get_db
from coursewallet.core.errors import ErrorKind, ServiceError
from coursewallet.core.security import decode_token
from coursewallet.models.user import User, UserRole

bearer = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer),
    db: AsyncSession = Depends(get_db),
) -> User:
    if credentials is None:
        raise ServiceError(ErrorKind.authentication_missing, "Missing or invalid authorization header")
    user_id = decode_token(credentials.credentials)
    if user_id is None:
        raise ServiceError(ErrorKind.authentication_missing, "Invalid or expired token")
    user = await db.get(User, user_id)
    if user is None:
        raise ServiceError(ErrorKind.authentication_missing, "User not found")
    if user.is_suspended:
        raise ServiceError(ErrorKind.authorization_denied, "Account suspended")
    return user


async def require_admin(user: User = Depends(get_current_user)) -> User:
    if user.role != UserRole.admin:
        raise ServiceError(ErrorKind.authorization_denied, "Admin access required")
    return user
