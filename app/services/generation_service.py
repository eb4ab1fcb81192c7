import asyncio
import logging
import time
import uuid

from redis.asyncio import Redis
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.ai.translator import TranslationClient
from app.config import settings
from app.core.exceptions import PersistenceError, ServiceUnavailableError
from app.models.user import User
from app.schemas.generation import (
    FlashcardResponse,
    GenerateFlashcardsRequest,
    GenerateFlashcardsResponse,
)
from app.services.normalization_service import normalize_sentences
from app.services.quota_service import check_daily_quota, check_rate_limit
from app.services.reconciliation_service import elapsed_ms, reconcile_results
from app.services.session_service import create_processing_session, mark_session_failed
from app.services.translation_service import BatchTranslator

logger = logging.getLogger(__name__)

TIMED_OUT_MESSAGE = "Generation did not finish in time."
CANCELLED_MESSAGE = "Generation was interrupted."
SAVE_FAILED_MESSAGE = "Flashcards could not be saved."


async def _abort_session(
    db: AsyncSession,
    session_id: uuid.UUID,
    user_id: uuid.UUID,
    started_at: float,
    message: str,
) -> None:
    try:
        await mark_session_failed(db, session_id, user_id, elapsed_ms(started_at), message)
    except SQLAlchemyError:
        logger.exception("Could not mark session=%s as failed", session_id)
        await db.rollback()


async def _abort_cancelled_session(
    db: AsyncSession,
    session_id: uuid.UUID,
    user_id: uuid.UUID,
    started_at: float,
) -> None:
    await db.rollback()
    await _abort_session(db, session_id, user_id, started_at, CANCELLED_MESSAGE)


async def generate_flashcards(
    db: AsyncSession,
    redis: Redis,
    user: User,
    request: GenerateFlashcardsRequest,
    client: TranslationClient,
) -> GenerateFlashcardsResponse:
    batch = normalize_sentences(request.sentences)

    await check_daily_quota(db, user, batch.count)
    await check_rate_limit(redis, user)

    session = await create_processing_session(db, user, batch.count)
    session_id = session.id
    started_at = time.monotonic()

    translator = BatchTranslator.from_settings(client)
    supervisor_timeout = (
        settings.GENERATION_BATCH_DEADLINE_SECONDS
        + settings.GENERATION_SUPERVISOR_GRACE_SECONDS
    )
    try:
        outcomes = await asyncio.wait_for(
            translator.translate(batch.sentences), timeout=supervisor_timeout,
        )
    except asyncio.TimeoutError:
        logger.error("Supervisor timeout for session=%s", session_id)
        await _abort_session(db, session_id, user.id, started_at, TIMED_OUT_MESSAGE)
        raise ServiceUnavailableError(
            "Generation took too long. Please try again later."
        )
    except asyncio.CancelledError:
        logger.warning("Generation cancelled for session=%s", session_id)
        await asyncio.shield(
            _abort_cancelled_session(db, session_id, user.id, started_at)
        )
        raise

    try:
        result = await reconcile_results(db, session, outcomes, started_at)
        await db.commit()
    except SQLAlchemyError as exc:
        logger.exception("Could not save results for session=%s", session_id)
        await db.rollback()
        await _abort_session(db, session_id, user.id, started_at, SAVE_FAILED_MESSAGE)
        raise PersistenceError(SAVE_FAILED_MESSAGE) from exc
    except asyncio.CancelledError:
        # A commit interrupted after it landed leaves the session terminal;
        # the abort only touches rows still in processing.
        logger.warning("Generation cancelled while saving session=%s", session_id)
        await asyncio.shield(
            _abort_cancelled_session(db, session_id, user.id, started_at)
        )
        raise
    except Exception:
        logger.exception("Unexpected error while reconciling session=%s", session_id)
        await db.rollback()
        await _abort_session(db, session_id, user.id, started_at, SAVE_FAILED_MESSAGE)
        raise

    if result.service_unavailable:
        raise ServiceUnavailableError()

    return GenerateFlashcardsResponse(
        session_id=session_id,
        status=result.session.status,
        flashcards=[FlashcardResponse.model_validate(card) for card in result.flashcards],
        generated_count=result.session.generated_count,
        failed_count=result.failed_count,
        duration_ms=result.session.duration_ms,
    )
