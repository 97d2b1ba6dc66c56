from typing import Optional
from uuid import UUID

from fastapi import Header, HTTPException, status

from marketplace.models.account import User


async def get_current_user(x_user_id: Optional[str] = Header(default=None)) -> User:
    """
    Resolves the caller from the `X-User-Id` header set by the authentication gateway.
    """
    if not x_user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing user identity.")
    try:
        user_id = UUID(x_user_id)
    except ValueError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid user identity.")

    user = await User.get_or_none(id=user_id)
    if not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unknown user.")
    return user
