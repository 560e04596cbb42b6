from datetime import datetime, timezone
from uuid import uuid4

from jose import jwt

from logistics.config import get_settings

ALGORITHM = "HS256"


def create_access_token(user_id: int) -> str:
    # production tokens come from the identity service; this is for scripts and tests
    settings = get_settings()

    now = datetime.now(timezone.utc)
    iat = int(now.timestamp())
    exp = iat + settings.access_token_expire_minutes * 60

    payload = {
        "sub": str(user_id),
        "iat": iat,
        "exp": exp,
        "jti": uuid4().hex,
        "type": "access",
    }
    return jwt.encode(payload, settings.secret_key, algorithm=ALGORITHM)


def decode_token(token: str) -> int:
    payload = jwt.decode(token, get_settings().secret_key, algorithms=[ALGORITHM])

    sub = payload.get("sub")
    if not sub:
        raise ValueError("Missing subject")
    if payload.get("type") not in (None, "access"):
        raise ValueError("Invalid token type")
    return int(sub)
