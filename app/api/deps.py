from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError
from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncSession

from app.ai.translator import MistralTranslationClient, TranslationClient
from app.core.security import decode_token
from app.database import get_db
from app.models.user import User
from app.services.auth_service import get_user_by_id

bearer_scheme = HTTPBearer(auto_error=False)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_redis(request: Request) -> Redis:
    return request.app.state.redis


def get_translation_client() -> TranslationClient:
    return MistralTranslationClient()


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_db),
) -> User:
    if credentials is None:
        raise _unauthorized("Not authenticated")
    try:
        user_id = decode_token(credentials.credentials, expected_type="access")
    except JWTError:
        raise _unauthorized("Invalid or expired access token")

    user = await get_user_by_id(db, user_id)
    if user is None or not user.is_active:
        raise _unauthorized("User not found")
    return user
