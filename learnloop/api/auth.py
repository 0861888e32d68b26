"""Caller identification.

Users are managed elsewhere; this service only needs to know who is calling.
A bearer JWT signed with SECRET_KEY carries the user id in ``sub``.
"""

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer

from ..core.security import verify_access_token
from .deps import Container, get_container

# OAuth2 scheme for JWT bearer tokens
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="api/v1/auth/token")


async def get_current_user_id(
    token: str = Depends(oauth2_scheme),
    container: Container = Depends(get_container),
) -> str:
    """Get the calling user's id from the JWT token."""
    payload = verify_access_token(token, container.settings)
    if not payload:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user_id = payload.get("sub")
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return str(user_id)
