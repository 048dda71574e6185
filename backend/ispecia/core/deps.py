"""
Request dependencies: the authenticated user.
"""
from typing import Optional
from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from sqlalchemy.orm import selectinload

from ispecia.db.base import get_db
from ispecia.core.security import verify_token
from ispecia.models.user import User


def _unauthorized(message: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=message,
        headers={"WWW-Authenticate": "Bearer"},
    )


def extract_bearer_token(authorization: Optional[str]) -> str:
    """Return the token from an Authorization header or raise 401."""
    if not authorization:
        raise _unauthorized("No token provided")

    parts = authorization.split(" ")
    if len(parts) != 2:
        raise _unauthorized("Token error")

    scheme, token = parts
    if scheme.lower() != "bearer":
        raise _unauthorized("Token malformatted")
    return token


async def get_current_user(
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> User:
    """Resolve the bearer token to an active user with the role loaded."""
    token = extract_bearer_token(request.headers.get("Authorization"))

    user_id = verify_token(token)
    if user_id is None:
        raise _unauthorized("Invalid token")

    result = await db.execute(
        select(User).options(selectinload(User.role)).where(User.id == user_id)
    )
    user = result.scalar_one_or_none()
    if user is None:
        raise _unauthorized("Invalid token")

    if not user.status:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User account is disabled"
        )

    return user
