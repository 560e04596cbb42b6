from fastapi import Depends
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError
from sqlmodel import Session

from logistics.db import get_session
from logistics.error import _auth_401
from logistics.models import User
from logistics.roles import Actor
from logistics.security import decode_token

# auto_error=False so a missing token uses our error envelope
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/token", auto_error=False)


def require_actor(
    token: str | None = Depends(oauth2_scheme),
    session: Session = Depends(get_session),
) -> Actor:
    # 1) no token
    if not token:
        raise _auth_401("NOT_AUTHENTICATED", "Not authenticated")

    # 2) invalid, expired or signed with another key
    try:
        user_id = decode_token(token)
    except (JWTError, ValueError):
        raise _auth_401("INVALID_TOKEN", "Invalid or expired token")

    # 3) valid token, but the user is missing or inactive
    user = session.get(User, user_id)
    if not user or not user.is_active:
        raise _auth_401("USER_NOT_FOUND", "User not found or deactivated")

    return Actor.of(user.id, user.role)
