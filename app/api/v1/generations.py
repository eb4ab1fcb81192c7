import uuid

from fastapi import APIRouter, Depends, Query
from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncSession

from app.ai.translator import TranslationClient
from app.api.deps import get_current_user, get_redis, get_translation_client
from app.database import get_db
from app.models.user import User
from app.schemas.generation import (
    GenerateFlashcardsRequest,
    GenerateFlashcardsResponse,
    GenerationSessionResponse,
    GenerationUsageResponse,
    PaginatedGenerationSessionResponse,
)
from app.services.generation_service import generate_flashcards
from app.services.quota_service import get_quota_usage
from app.services.session_service import get_session_for_owner, list_user_sessions

router = APIRouter(prefix="/generations", tags=["generations"])


@router.post("", response_model=GenerateFlashcardsResponse)
async def generate_flashcards_endpoint(
    data: GenerateFlashcardsRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    redis: Redis = Depends(get_redis),
    client: TranslationClient = Depends(get_translation_client),
):
    return await generate_flashcards(db, redis, current_user, data, client)


@router.get("/usage", response_model=GenerationUsageResponse)
async def get_usage_endpoint(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await get_quota_usage(db, current_user)


@router.get("", response_model=PaginatedGenerationSessionResponse)
async def list_generations_endpoint(
    skip: int = Query(0, ge=0),
    limit: int = Query(20, ge=1, le=100),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    items, total = await list_user_sessions(db, current_user, skip=skip, limit=limit)
    return PaginatedGenerationSessionResponse(items=items, total=total, skip=skip, limit=limit)


@router.get("/{session_id}", response_model=GenerationSessionResponse)
async def get_generation_endpoint(
    session_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await get_session_for_owner(db, session_id, current_user)
