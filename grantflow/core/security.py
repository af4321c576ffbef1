from datetime import datetime, timedelta, timezone
from typing import Any, Optional
from jose import jwt, JWTError

from grantflow.core.config import settings

ACCESS_TOKEN_TYPE = "access"


def create_access_token(subject: str | int, expires_minutes: int | None = None) -> str:
    """Issue a bearer token for a user id. Tokens come from the account service in production."""
    now = datetime.now(timezone.utc)
    to_encode = {
        "sub": str(subject),
        "exp": now + timedelta(minutes=expires_minutes or settings.ACCESS_TOKEN_EXPIRE_MINUTES),
        "type": ACCESS_TOKEN_TYPE,
        "iat": now,
    }
    return jwt.encode(to_encode, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def decode_token(token: str) -> Optional[dict[str, Any]]:
    """Claims of a valid, unexpired access token, or None."""
    try:
        payload = jwt.decode(token, settings.JWT_SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
    except JWTError:
        return None
    if payload.get("type", ACCESS_TOKEN_TYPE) != ACCESS_TOKEN_TYPE:
        return None
    return payload
