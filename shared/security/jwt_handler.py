import os
import warnings
from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import JWTError, jwt

_SECRET_KEY: str = os.getenv("JWT_SECRET_KEY", "")

if not _SECRET_KEY:
    warnings.warn(
        "JWT_SECRET_KEY is not set. Tokens are signed with an insecure default. "
        "Set this env var in production!",
        stacklevel=2,
    )
    _SECRET_KEY = "insecure-dev-jwt-secret-change-me"

SECRET_KEY: str = _SECRET_KEY
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "60"))


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """Creates a JWT access token with a UTC expiration."""
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


def verify_access_token(token: str) -> Optional[dict]:
    """Returns the decoded claims, or None if the token is invalid or expired."""
    try:
        return jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        return None
