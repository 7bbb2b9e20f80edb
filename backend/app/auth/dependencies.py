"""FastAPI authentication dependencies for route protection."""

import uuid

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.jwt import decode_token
from app.database import get_db
from app.models.admin import Admin

_bearer_scheme = HTTPBearer(auto_error=False)

_credentials_exception = HTTPException(
    status_code=status.HTTP_401_UNAUTHORIZED,
    detail={"message": "Could not validate credentials", "code": "AUTH_ERROR"},
    headers={"WWW-Authenticate": "Bearer"},
)


async def get_current_account_id(
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer_scheme),
) -> uuid.UUID:
    """Return the auth provider account id (``sub``) of a valid Bearer token.

    Raises:
        HTTPException 401: If the token is missing, invalid, expired or has no usable subject.
    """
    if credentials is None:
        raise _credentials_exception

    try:
        payload = decode_token(credentials.credentials)
    except JWTError:
        raise _credentials_exception from None

    sub: str | None = payload.get("sub")
    if sub is None:
        raise _credentials_exception

    try:
        return uuid.UUID(sub)
    except ValueError:
        raise _credentials_exception from None


async def get_current_admin(
    account_id: uuid.UUID = Depends(get_current_account_id),
    db: AsyncSession = Depends(get_db),
) -> Admin:
    """Return the admin behind the token.

    Raises:
        HTTPException 401: If no admin exists for the token subject.
        HTTPException 403: If the admin account is inactive.
    """
    admin = await db.get(Admin, account_id)
    if admin is None:
        raise _credentials_exception

    if not admin.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={"message": "Account is inactive", "code": "AUTH_ERROR"},
        )
    return admin
