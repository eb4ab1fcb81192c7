import uuid
from datetime import datetime, timedelta, timezone
from typing import Any

from jose import JWTError, jwt

from app.config import settings


def _create_token(data: dict[str, Any], expires_delta: timedelta) -> str:
    to_encode = data.copy()
    to_encode["exp"] = datetime.now(timezone.utc) + expires_delta
    to_encode["jti"] = uuid.uuid4().hex
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def create_access_token(user_id: uuid.UUID, expires_delta: timedelta | None = None) -> str:
    """Mint an access token the way the authentication provider does.

    Request handling never calls this; it is for trusted internal callers
    (scripts, service-to-service calls) and the test suite.
    """
    return _create_token(
        {"sub": str(user_id), "type": "access"},
        expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES),
    )


def decode_token(token: str, expected_type: str) -> uuid.UUID:
    """Decode and validate a JWT token. Returns the user UUID.

    Raises JWTError on any validation failure.
    """
    payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])

    if payload.get("type") != expected_type:
        raise JWTError(f"Invalid token type: expected {expected_type}")

    sub = payload.get("sub")
    if sub is None:
        raise JWTError("Token missing subject")

    try:
        return uuid.UUID(sub)
    except ValueError:
        raise JWTError("Invalid subject in token")
