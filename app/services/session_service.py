import logging
import uuid

from fastapi import HTTPException, status
from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.exceptions import PersistenceError
from app.database import utcnow
from app.models.generation_session import GenerationSession, GenerationStatus
from app.models.user import User

logger = logging.getLogger(__name__)


async def create_processing_session(
    db: AsyncSession, user: User, input_count: int,
) -> GenerationSession:
    """Insert a session already in ``processing`` and commit it.

    The row is committed before any translation call so that later failures
    still leave an auditable record.
    """
    if not settings.GENERATION_MIN_SENTENCES <= input_count <= settings.GENERATION_MAX_SENTENCES:
        raise ValueError(f"input_count out of range: {input_count}")

    session = GenerationSession(user_id=user.id)
    session.start_processing(input_count)
    db.add(session)
    try:
        await db.commit()
    except SQLAlchemyError as exc:
        logger.exception("Could not create generation session for user=%s", user.id)
        await db.rollback()
        raise PersistenceError("Could not start generation. Please try again.") from exc

    logger.info(
        "Generation session started id=%s user=%s input_count=%d",
        session.id, user.id, input_count,
    )
    return session


async def finalize_session(
    db: AsyncSession,
    session: GenerationSession,
    final_status: GenerationStatus,
    generated_count: int,
    duration_ms: int,
    error_message: str | None = None,
) -> GenerationSession:
    session.finalize(final_status, generated_count, duration_ms, error_message)
    await db.flush()
    logger.info(
        "Generation session finalized id=%s status=%s generated=%d failed=%d duration_ms=%d",
        session.id, final_status.value, generated_count, session.failed_count, duration_ms,
    )
    return session


async def mark_session_failed(
    db: AsyncSession,
    session_id: uuid.UUID,
    user_id: uuid.UUID,
    duration_ms: int,
    error_message: str,
) -> bool:
    """Force a still-processing session to ``failed`` with one UPDATE.

    Works from a rolled-back or otherwise unusable ORM state since it does not
    touch the loaded instance. Returns False if the session had already left
    ``processing``.
    """
    result = await db.execute(
        update(GenerationSession)
        .where(
            GenerationSession.id == session_id,
            GenerationSession.user_id == user_id,
            GenerationSession.status == GenerationStatus.processing,
        )
        .values(
            status=GenerationStatus.failed,
            duration_ms=duration_ms,
            error_message=error_message,
            updated_at=utcnow(),
        )
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    updated = result.rowcount == 1
    if updated:
        logger.warning(
            "Generation session force-failed id=%s duration_ms=%d", session_id, duration_ms,
        )
    return updated


async def get_session_for_owner(
    db: AsyncSession, session_id: uuid.UUID, user: User,
) -> GenerationSession:
    result = await db.execute(
        select(GenerationSession).where(
            GenerationSession.id == session_id,
            GenerationSession.user_id == user.id,
        )
    )
    session = result.scalar_one_or_none()
    if session is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Generation session not found",
        )
    return session


async def list_user_sessions(
    db: AsyncSession, user: User, skip: int = 0, limit: int = 20,
) -> tuple[list[GenerationSession], int]:
    total_result = await db.execute(
        select(func.count())
        .select_from(GenerationSession)
        .where(GenerationSession.user_id == user.id)
    )
    total = total_result.scalar_one()

    result = await db.execute(
        select(GenerationSession)
        .where(GenerationSession.user_id == user.id)
        .order_by(GenerationSession.created_at.desc())
        .offset(skip)
        .limit(limit)
    )
    return list(result.scalars().all()), total
