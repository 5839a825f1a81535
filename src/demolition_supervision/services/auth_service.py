"""Authentication service: JWT token management.

Tokens are issued by the external auth service; this side only needs to
read the caller identity back out. ``create_access_token`` exists for local
development and tests.
"""

from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt

from demolition_supervision.app.config import get_settings

settings = get_settings()


def create_access_token(user_id: int, role: str) -> str:
    expire = datetime.now(timezone.utc) + timedelta(minutes=settings.jwt_expiration_minutes)
    payload = {"sub": str(user_id), "role": role, "exp": expire}
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_token(token: str) -> dict | None:
    try:
        return jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError:
        return None
